from typing import Optional, List
from datetime import datetime
import uuid
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field, Relationship
from enum import Enum


class ShipmentStatus(str, Enum):
    CREATED = "CREATED"                        # Draft, off-chain only
    READY_FOR_DISPATCH = "READY_FOR_DISPATCH"  # Locked on the ledger
    IN_TRANSIT = "IN_TRANSIT"
    AT_WAREHOUSE = "AT_WAREHOUSE"
    DELIVERED = "DELIVERED"
    CONCERN_RAISED = "CONCERN_RAISED"          # Parked by an operator


class ContainerStatus(str, Enum):
    CREATED = "CREATED"
    LOCKED = "LOCKED"
    IN_TRANSIT = "IN_TRANSIT"
    AT_WAREHOUSE = "AT_WAREHOUSE"
    DELIVERED = "DELIVERED"


class ActorRole(str, Enum):
    SUPPLIER = "supplier"
    TRANSPORTER = "transporter"
    WAREHOUSE = "warehouse"
    RETAILER = "retailer"
    ADMIN = "admin"


class ConcernType(str, Enum):
    TEMPERATURE_DEVIATION = "TEMPERATURE_DEVIATION"
    DAMAGE = "DAMAGE"
    DELAY = "DELAY"
    DOCUMENTATION_ISSUE = "DOCUMENTATION_ISSUE"
    QUANTITY_MISMATCH = "QUANTITY_MISMATCH"
    OTHER = "OTHER"


class ConcernSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class ConcernStatus(str, Enum):
    OPEN = "OPEN"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    RESOLVED = "RESOLVED"
    ESCALATED = "ESCALATED"


class ScanResult(str, Enum):
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class RejectionReason(str, Enum):
    INVALID_QR_FORMAT = "INVALID_QR_FORMAT"
    UNKNOWN_CONTAINER = "UNKNOWN_CONTAINER"
    SHIPMENT_CLOSED = "SHIPMENT_CLOSED"
    SHIPMENT_NOT_LOCKED = "SHIPMENT_NOT_LOCKED"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    ROLE_NOT_PERMITTED = "ROLE_NOT_PERMITTED"


class SyncStatus(str, Enum):
    SYNCING = "SYNCING"
    SYNCED = "SYNCED"
    ERROR = "ERROR"
    STOPPED = "STOPPED"


# Forward-only ordering used by every status check.
SHIPMENT_STATUS_RANK = {
    ShipmentStatus.CREATED: 0,
    ShipmentStatus.READY_FOR_DISPATCH: 1,
    ShipmentStatus.IN_TRANSIT: 2,
    ShipmentStatus.AT_WAREHOUSE: 3,
    ShipmentStatus.DELIVERED: 4,
}

CONTAINER_STATUS_RANK = {
    ContainerStatus.CREATED: 0,
    ContainerStatus.LOCKED: 1,
    ContainerStatus.IN_TRANSIT: 2,
    ContainerStatus.AT_WAREHOUSE: 3,
    ContainerStatus.DELIVERED: 4,
}


class TimestampMixin(SQLModel):
    """
    Standard audit timestamps shared by every table.
    """
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="The UTC timestamp when this record was first persisted. Example: '2026-10-27 14:30:00'"
    )
    updated_at: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column_kwargs={"onupdate": datetime.utcnow},
        description="The UTC timestamp when this record was last modified. Updates automatically."
    )


class Shipment(TimestampMixin, SQLModel, table=True):
    """
    A physical consignment owned by a supplier.
    Starts as a mutable draft (CREATED). Locking commits its identity and
    counts to the ledger, after which the record is only advanced forward
    by scans or operator overrides. Shipments are never deleted.
    """
    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        description="Internal row identifier."
    )
    shipment_hash: str = Field(
        unique=True,
        index=True,
        description="Globally unique, derived identifier shared with the ledger. Example: 'SHP-9F3A21C4-MF0Q2K1Z-1A2B3C4D'"
    )
    batch_id: str = Field(
        index=True,
        description="Product batch identifier. Example: 'BATCH-2026-044'"
    )
    supplier_wallet: str = Field(
        index=True,
        description="Lower-cased wallet of the supplier that created the shipment."
    )
    number_of_containers: int = Field(
        ge=1, description="How many containers make up the shipment.")
    quantity_per_container: int = Field(
        ge=1, description="Units packed in each container.")
    total_quantity: int = Field(
        ge=1, description="Always number_of_containers x quantity_per_container.")

    status: ShipmentStatus = Field(
        default=ShipmentStatus.CREATED,
        index=True,
        description="Lifecycle status. Advances forward only."
    )
    status_before_concern: Optional[ShipmentStatus] = Field(
        default=None,
        description="Status to restore when a CONCERN_RAISED shipment has no open concerns left."
    )

    # Ledger facts (null until reconciled)
    ledger_tx_ref: Optional[str] = Field(
        default=None,
        index=True,
        description="Transaction hash of the lock on the ledger."
    )
    block_ref: Optional[int] = Field(
        default=None,
        index=True,
        description="Block number that included the lock transaction."
    )
    locked_at: Optional[datetime] = Field(
        default=None, description="When the lock was mirrored into this store.")

    # Assigned stakeholders
    transporter_wallet: Optional[str] = Field(default=None, index=True)
    transporter_name: Optional[str] = None
    transporter_assigned_at: Optional[datetime] = None
    warehouse_wallet: Optional[str] = Field(default=None, index=True)
    warehouse_name: Optional[str] = None
    warehouse_assigned_at: Optional[datetime] = None

    last_updated_by: str = Field(
        default="SYSTEM",
        description="Wallet (or SYSTEM) that performed the last mutation."
    )

    containers: List["Container"] = Relationship(
        back_populates="shipment",
        sa_relationship_kwargs={"order_by": "Container.container_number"}
    )
    documents: List["SupportingDocument"] = Relationship(
        back_populates="shipment",
        sa_relationship_kwargs={"order_by": "SupportingDocument.created_at"}
    )
    concerns: List["ShipmentConcern"] = Relationship(
        back_populates="shipment",
        sa_relationship_kwargs={"order_by": "ShipmentConcern.raised_at"}
    )


class Container(TimestampMixin, SQLModel, table=True):
    """
    One physical container of a locked shipment.
    The QR printed on it encodes `qr_payload`, which is exactly the
    `container_id`; this table is the sole resolver for that identifier.
    """
    __table_args__ = (
        UniqueConstraint("shipment_hash", "container_number",
                         name="uq_container_shipment_number"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    container_id: str = Field(
        unique=True,
        index=True,
        description="Unique scannable identifier. Example: 'CNT-4E1F0A-001-9C8B7A6D'"
    )
    shipment_hash: str = Field(
        foreign_key="shipment.shipment_hash",
        index=True,
        description="Owning shipment."
    )
    container_number: int = Field(
        ge=1, description="Sequence number within the shipment, 1..N.")
    quantity: int = Field(ge=1)
    status: ContainerStatus = Field(
        default=ContainerStatus.CREATED,
        index=True
    )
    qr_payload: str = Field(
        description="The exact string encoded in the physical QR. Equals container_id."
    )

    last_scan_location: Optional[str] = None
    last_scan_at: Optional[datetime] = None
    last_scanned_by: Optional[str] = Field(
        default=None, description="Wallet of the actor that performed the last scan.")
    last_scanned_role: Optional[ActorRole] = None

    shipment: Optional[Shipment] = Relationship(back_populates="containers")


class SupportingDocument(TimestampMixin, SQLModel, table=True):
    """
    Reference to a file held by the blob store. The bytes never live here.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    shipment_hash: str = Field(
        foreign_key="shipment.shipment_hash", index=True)
    url: str = Field(description="URL returned by the blob store.")
    filename: Optional[str] = None
    mime_type: str
    size_bytes: int = 0
    uploaded_by: str = Field(description="Wallet of the uploader.")

    shipment: Optional[Shipment] = Relationship(back_populates="documents")


class ShipmentConcern(TimestampMixin, SQLModel, table=True):
    """
    Exception raised against a shipment during transit or handling.
    Concerns are transitioned, never deleted.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    concern_id: str = Field(unique=True, index=True)
    shipment_hash: str = Field(
        foreign_key="shipment.shipment_hash", index=True)
    container_id: Optional[str] = Field(default=None, index=True)

    type: ConcernType = Field(default=ConcernType.OTHER)
    severity: ConcernSeverity = Field(default=ConcernSeverity.MEDIUM)
    status: ConcernStatus = Field(default=ConcernStatus.OPEN, index=True)
    description: str = Field(max_length=2000)

    raised_by: str = Field(index=True, description="Reporter wallet.")
    raised_by_role: ActorRole
    raised_at: datetime = Field(default_factory=datetime.utcnow, index=True)

    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None

    resolution: Optional[str] = Field(default=None, max_length=2000)
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None

    escalation_note: Optional[str] = Field(default=None, max_length=2000)
    escalated_by: Optional[str] = None
    escalated_at: Optional[datetime] = None

    shipment: Optional[Shipment] = Relationship(back_populates="concerns")


class ScanLog(SQLModel, table=True):
    """
    Append-only audit trail of every scan attempt, accepted or not.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    scan_id: str = Field(unique=True, index=True)
    container_id: Optional[str] = Field(default=None, index=True)
    shipment_hash: Optional[str] = Field(default=None, index=True)

    actor_wallet: str = Field(index=True)
    actor_role: ActorRole
    location: Optional[str] = None

    result: ScanResult = Field(index=True)
    rejection_reason: Optional[RejectionReason] = None
    message: Optional[str] = None

    previous_status: Optional[ContainerStatus] = None
    new_status: Optional[ContainerStatus] = None
    shipment_status: Optional[ShipmentStatus] = Field(
        default=None, description="Shipment status after the scan was applied.")

    scanned_at: datetime = Field(default_factory=datetime.utcnow, index=True)


class SyncState(TimestampMixin, SQLModel, table=True):
    """
    Progress marker of the ledger indexer, so a restart resumes from the
    next unprocessed block.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    key: str = Field(unique=True, index=True)
    last_synced_block: int = 0
    chain_id: int
    contract_address: str = ""
    total_events_processed: int = 0
    last_sync_at: Optional[datetime] = None
    status: SyncStatus = Field(default=SyncStatus.STOPPED)
    last_error: Optional[str] = None
