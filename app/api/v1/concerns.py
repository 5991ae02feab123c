from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status

from app.core.dependencies import get_current_actor, get_concern_service
from app.db.schema import ActorRole, ConcernStatus
from app.models.actor import Actor
from app.models.concern import ConcernCreate, ConcernRead, ConcernResolve, ConcernEscalate
from app.services.concern import ConcernService


router = APIRouter()


@router.get(
    "/open",
    response_model=List[ConcernRead],
    summary="Open Concerns of my Shipments",
    description="Open and acknowledged concerns across the calling supplier's shipments."
)
def open_concerns(
    actor: Actor = Depends(get_current_actor),
    service: ConcernService = Depends(get_concern_service)
):
    if actor.role != ActorRole.SUPPLIER:
        raise HTTPException(status.HTTP_403_FORBIDDEN,
                            "Only suppliers have a concern inbox.")
    return service.list_open_for_supplier(actor.wallet)


@router.post(
    "/shipment/{shipment_hash}",
    response_model=ConcernRead,
    status_code=status.HTTP_201_CREATED,
    summary="Raise Concern"
)
def raise_concern(
    shipment_hash: str,
    data: ConcernCreate,
    actor: Actor = Depends(get_current_actor),
    service: ConcernService = Depends(get_concern_service)
):
    return service.raise_concern(actor, shipment_hash, data)


@router.get(
    "/shipment/{shipment_hash}",
    response_model=List[ConcernRead],
    summary="List Concerns of a Shipment"
)
def list_concerns(
    shipment_hash: str,
    status: Optional[ConcernStatus] = None,
    actor: Actor = Depends(get_current_actor),
    service: ConcernService = Depends(get_concern_service)
):
    return service.list_concerns(shipment_hash, status)


@router.post(
    "/{concern_id}/acknowledge",
    response_model=ConcernRead,
    summary="Acknowledge Concern"
)
def acknowledge_concern(
    concern_id: str,
    actor: Actor = Depends(get_current_actor),
    service: ConcernService = Depends(get_concern_service)
):
    return service.acknowledge_concern(actor, concern_id)


@router.post(
    "/{concern_id}/resolve",
    response_model=ConcernRead,
    summary="Resolve Concern",
    description="Closes an acknowledged concern. A resolution text is mandatory."
)
def resolve_concern(
    concern_id: str,
    data: ConcernResolve,
    actor: Actor = Depends(get_current_actor),
    service: ConcernService = Depends(get_concern_service)
):
    return service.resolve_concern(actor, concern_id, data.resolution)


@router.post(
    "/{concern_id}/escalate",
    response_model=ConcernRead,
    summary="Escalate Concern"
)
def escalate_concern(
    concern_id: str,
    data: ConcernEscalate,
    actor: Actor = Depends(get_current_actor),
    service: ConcernService = Depends(get_concern_service)
):
    return service.escalate_concern(actor, concern_id, data.note)
