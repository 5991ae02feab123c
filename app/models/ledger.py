from enum import Enum
from typing import List, Optional
from datetime import datetime
from sqlmodel import SQLModel, Field

from app.db.schema import SyncStatus


class ReconcileOutcome(str, Enum):
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    PENDING = "pending"


class LockReceiptRead(SQLModel):
    shipment_hash: str
    tx_ref: str
    block_ref: int
    reconciled: ReconcileOutcome


class ReconcileRequest(SQLModel):
    shipment_hash: str = Field(min_length=1)
    tx_ref: str = Field(min_length=1)
    block_ref: int = Field(ge=0)


class ReconcileRead(SQLModel):
    shipment_hash: str
    outcome: ReconcileOutcome
    containers_created: int = 0


class SyncResult(SQLModel):
    from_block: int
    to_block: int
    events_seen: int
    applied: int
    already_applied: int


class SyncStateRead(SQLModel):
    last_synced_block: int
    total_events_processed: int
    status: SyncStatus
    last_sync_at: Optional[datetime] = None
    last_error: Optional[str] = None


class IndexerStatus(SQLModel):
    connected: bool
    listening: bool = False  # background indexer worker running
    contract_address: str
    chain_id: int
    current_block: Optional[int] = None
    sync_state: Optional[SyncStateRead] = None


class IndexerHealth(SQLModel):
    status: str  # healthy | degraded | unhealthy
    timestamp: datetime
    current_block: Optional[int] = None
    last_synced_block: Optional[int] = None
    issues: List[str] = []
