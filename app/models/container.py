from typing import Dict, List, Optional
from datetime import datetime
from sqlmodel import SQLModel

from app.db.schema import ActorRole, ContainerStatus
from app.models.shipment import Pagination


class LastScan(SQLModel):
    location: Optional[str] = None
    actor_wallet: str
    actor_role: Optional[ActorRole] = None
    timestamp: datetime


class ContainerRead(SQLModel):
    container_id: str
    shipment_hash: str
    container_number: int
    quantity: int
    status: ContainerStatus
    qr_payload: str
    last_scan: Optional[LastScan] = None
    created_at: datetime


class ContainerPage(SQLModel):
    data: List[ContainerRead]
    pagination: Pagination


class ContainerStats(SQLModel):
    shipment_hash: str
    total: int
    scanned: int
    by_status: Dict[str, int]


class ContainerQRRead(SQLModel):
    container_id: str
    qr_payload: str
    qr_code_url: str
