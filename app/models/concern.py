from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field

from app.db.schema import ActorRole, ConcernSeverity, ConcernStatus, ConcernType


class ConcernCreate(SQLModel):
    type: ConcernType = ConcernType.OTHER
    severity: ConcernSeverity = ConcernSeverity.MEDIUM
    description: str = Field(min_length=1, max_length=2000)
    container_id: Optional[str] = None


class ConcernResolve(SQLModel):
    # Optional on purpose: a missing resolution is a domain error, not a 422
    resolution: Optional[str] = Field(default=None, max_length=2000)


class ConcernEscalate(SQLModel):
    note: Optional[str] = Field(default=None, max_length=2000)


class ConcernRead(SQLModel):
    concern_id: str
    shipment_hash: str
    container_id: Optional[str] = None
    type: ConcernType
    severity: ConcernSeverity
    status: ConcernStatus
    description: str
    raised_by: str
    raised_by_role: ActorRole
    raised_at: datetime
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    resolution: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    escalation_note: Optional[str] = None
    escalated_by: Optional[str] = None
    escalated_at: Optional[datetime] = None
