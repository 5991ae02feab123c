from typing import Optional
from fastapi import APIRouter, Depends, Query, Request

from app.core.dependencies import get_reconciler_service, require_admin
from app.models.actor import Actor
from app.models.ledger import (
    IndexerStatus, IndexerHealth, SyncResult, ReconcileRequest, ReconcileRead
)
from app.services.reconciler import ReconcilerService


router = APIRouter()


@router.get("/status", response_model=IndexerStatus, summary="Indexer Status")
def indexer_status(request: Request, service: ReconcilerService = Depends(get_reconciler_service)):
    status = service.status()
    worker = getattr(request.app.state, "indexer", None)
    status.listening = bool(worker and worker.running)
    return status


@router.get(
    "/health",
    response_model=IndexerHealth,
    summary="Indexer Health",
    description="`degraded` when more than 100 blocks behind or the last sync failed."
)
def indexer_health(service: ReconcilerService = Depends(get_reconciler_service)):
    return service.health()


@router.post(
    "/sync",
    response_model=SyncResult,
    summary="Catch Up From the Ledger",
    description="Replays ShipmentLocked events since the last synced block (or `from_block`)."
)
def sync(
    from_block: Optional[int] = Query(None, ge=0),
    actor: Actor = Depends(require_admin),
    service: ReconcilerService = Depends(get_reconciler_service)
):
    return service.sync(from_block)


@router.post(
    "/reconcile",
    response_model=ReconcileRead,
    summary="Reconcile One Lock",
    description="Idempotently mirrors a confirmed lock. Safe to call any number of times."
)
def reconcile(
    data: ReconcileRequest,
    actor: Actor = Depends(require_admin),
    service: ReconcilerService = Depends(get_reconciler_service)
):
    return service.reconcile(data.shipment_hash, data.tx_ref, data.block_ref)
