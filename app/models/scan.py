from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field

from app.db.schema import (
    ActorRole, ContainerStatus, RejectionReason, ScanResult, ShipmentStatus
)
from app.models.container import ContainerRead
from app.models.shipment import ShipmentRead


class ScanRequest(SQLModel):
    qr_payload: str = Field(max_length=200)
    location: Optional[str] = Field(default=None, max_length=300)


class VerificationResult(SQLModel):
    """
    Outcome of one scan. REJECTED results carry the machine-readable reason;
    VERIFIED results carry the updated container and shipment snapshots.
    """
    result: ScanResult
    scan_id: str
    reason: Optional[RejectionReason] = None
    message: str
    previous_container_status: Optional[ContainerStatus] = None
    shipment_status_changed: bool = False
    container: Optional[ContainerRead] = None
    shipment: Optional[ShipmentRead] = None


class ScanLogRead(SQLModel):
    scan_id: str
    container_id: Optional[str] = None
    shipment_hash: Optional[str] = None
    actor_wallet: str
    actor_role: ActorRole
    location: Optional[str] = None
    result: ScanResult
    rejection_reason: Optional[RejectionReason] = None
    message: Optional[str] = None
    previous_status: Optional[ContainerStatus] = None
    new_status: Optional[ContainerStatus] = None
    shipment_status: Optional[ShipmentStatus] = None
    scanned_at: datetime
