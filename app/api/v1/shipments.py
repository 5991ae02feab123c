import uuid
from typing import List, Optional
from fastapi import APIRouter, Depends, File, Query, UploadFile, status

from app.core.dependencies import (
    get_current_actor, get_shipment_service, get_lock_service
)
from app.db.schema import ActorRole, ShipmentStatus
from app.models.actor import Actor
from app.models.ledger import LockReceiptRead
from app.models.shipment import (
    ShipmentCreate, ShipmentRead, ShipmentDetailRead, ShipmentPage,
    ShipmentSummary, ShipmentStatusUpdate, AssignmentUpdate, DocumentRead
)
from app.services.lock import LockService
from app.services.shipment import ShipmentService


router = APIRouter()


@router.post(
    "/",
    response_model=ShipmentRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create Draft Shipment",
    description=(
        "Creates a shipment in CREATED status. The shipment hash is derived from the batch, "
        "the supplier wallet and the creation time. Transporter and warehouse can be assigned "
        "now or later, but both are required before locking."
    )
)
def create_shipment(
    data: ShipmentCreate,
    actor: Actor = Depends(get_current_actor),
    service: ShipmentService = Depends(get_shipment_service)
):
    return service.create_draft(actor, data)


@router.get(
    "/",
    response_model=ShipmentPage,
    summary="List Shipments",
    description=(
        "Lists shipments visible to the caller's role: suppliers see their own, transporters and "
        "warehouses what they are assigned to, retailers what reached the warehouse. "
        "Admins may filter by any role and wallet."
    )
)
def list_shipments(
    status: Optional[ShipmentStatus] = None,
    role: Optional[ActorRole] = None,
    wallet: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
    service: ShipmentService = Depends(get_shipment_service)
):
    if actor.role != ActorRole.ADMIN:
        role, wallet = actor.role, actor.wallet
    return service.list_shipments(role=role, wallet=wallet, status=status, page=page, limit=limit)


@router.get(
    "/stats/summary",
    response_model=ShipmentSummary,
    summary="Shipment Summary",
    description="Totals and counts by status over the shipments visible to the caller."
)
def shipment_summary(
    actor: Actor = Depends(get_current_actor),
    service: ShipmentService = Depends(get_shipment_service)
):
    if actor.role == ActorRole.ADMIN:
        return service.summary()
    return service.summary(role=actor.role, wallet=actor.wallet)


@router.get(
    "/{shipment_hash}",
    response_model=ShipmentDetailRead,
    summary="Get Shipment",
    description="Shipment with its assignments, supporting documents and open concern count."
)
def get_shipment(
    shipment_hash: str,
    actor: Actor = Depends(get_current_actor),
    service: ShipmentService = Depends(get_shipment_service)
):
    return service.get_shipment(shipment_hash)


@router.patch(
    "/{shipment_hash}/assignments",
    response_model=ShipmentRead,
    summary="Assign Transporter / Warehouse",
    description="Edits the stakeholder assignment of a draft. Locked shipments are frozen."
)
def update_assignments(
    shipment_hash: str,
    data: AssignmentUpdate,
    actor: Actor = Depends(get_current_actor),
    service: ShipmentService = Depends(get_shipment_service)
):
    return service.update_assignments(actor, shipment_hash, data)


@router.patch(
    "/{shipment_hash}/status",
    response_model=ShipmentRead,
    summary="Override Shipment Status",
    description=(
        "Operator override. Forward-only; IN_TRANSIT and later require every container to have "
        "reached the target. READY_FOR_DISPATCH is only reachable by locking."
    )
)
def update_status(
    shipment_hash: str,
    data: ShipmentStatusUpdate,
    actor: Actor = Depends(get_current_actor),
    service: ShipmentService = Depends(get_shipment_service)
):
    return service.update_status(actor, shipment_hash, data.status)


@router.post(
    "/{shipment_hash}/lock",
    response_model=LockReceiptRead,
    summary="Lock Shipment on the Ledger",
    description=(
        "Commits the shipment identity and counts to the ledger exactly once, then mirrors the "
        "lock off-chain and generates the container set. `reconciled` is `pending` when the "
        "ledger confirmed but the store could not be updated yet."
    )
)
def lock_shipment(
    shipment_hash: str,
    actor: Actor = Depends(get_current_actor),
    service: LockService = Depends(get_lock_service)
):
    return service.lock_shipment(actor, shipment_hash)


# --- Supporting documents ---

@router.get(
    "/{shipment_hash}/documents",
    response_model=List[DocumentRead],
    summary="List Documents"
)
def list_documents(
    shipment_hash: str,
    actor: Actor = Depends(get_current_actor),
    service: ShipmentService = Depends(get_shipment_service)
):
    return service.list_documents(shipment_hash)


@router.post(
    "/{shipment_hash}/documents",
    response_model=DocumentRead,
    status_code=status.HTTP_201_CREATED,
    summary="Attach Document"
)
def attach_document(
    shipment_hash: str,
    file: UploadFile = File(...),
    actor: Actor = Depends(get_current_actor),
    service: ShipmentService = Depends(get_shipment_service)
):
    content = file.file.read()
    return service.attach_document(
        actor, shipment_hash, file.filename, content, file.content_type)


@router.delete(
    "/{shipment_hash}/documents/{document_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove Document"
)
def remove_document(
    shipment_hash: str,
    document_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    service: ShipmentService = Depends(get_shipment_service)
):
    service.remove_document(actor, shipment_hash, document_id)
