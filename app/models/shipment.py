from typing import Dict, List, Optional
from datetime import datetime
from uuid import UUID
from sqlmodel import SQLModel, Field

from app.db.schema import ShipmentStatus


class StakeholderAssignment(SQLModel):
    """Canonical assignment of a transporter or warehouse to a shipment."""
    wallet_address: str
    name: Optional[str] = None
    assigned_at: Optional[datetime] = None


class AssignmentIn(SQLModel):
    wallet_address: str
    name: Optional[str] = Field(default=None, max_length=200)


class ShipmentCreate(SQLModel):
    batch_id: str = Field(min_length=1, max_length=120)
    number_of_containers: int = Field(ge=1, le=10_000)
    quantity_per_container: int = Field(ge=1)
    transporter: Optional[AssignmentIn] = None
    warehouse: Optional[AssignmentIn] = None


class AssignmentUpdate(SQLModel):
    transporter: Optional[AssignmentIn] = None
    warehouse: Optional[AssignmentIn] = None


class ShipmentStatusUpdate(SQLModel):
    status: ShipmentStatus


class DocumentRead(SQLModel):
    id: UUID
    url: str
    filename: Optional[str] = None
    mime_type: str
    size_bytes: int
    uploaded_by: str
    created_at: datetime


class ShipmentRead(SQLModel):
    """Basic Shipment View"""
    shipment_hash: str
    batch_id: str
    supplier_wallet: str
    number_of_containers: int
    quantity_per_container: int
    total_quantity: int
    status: ShipmentStatus
    ledger_tx_ref: Optional[str] = None
    block_ref: Optional[int] = None
    locked_at: Optional[datetime] = None
    assigned_transporter: Optional[StakeholderAssignment] = None
    assigned_warehouse: Optional[StakeholderAssignment] = None
    created_at: datetime
    updated_at: datetime


class ShipmentDetailRead(ShipmentRead):
    """
    Shipment with its supporting documents and the number of concerns
    still waiting for an outcome.
    """
    supporting_documents: List[DocumentRead] = []
    open_concerns: int = 0


class Pagination(SQLModel):
    page: int
    limit: int
    total: int
    total_pages: int


class ShipmentPage(SQLModel):
    data: List[ShipmentRead]
    pagination: Pagination


class ShipmentSummary(SQLModel):
    total_shipments: int = 0
    total_containers: int = 0
    total_quantity: int = 0
    by_status: Dict[str, int] = {}
