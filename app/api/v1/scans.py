from typing import List
from fastapi import APIRouter, Depends

from app.core.dependencies import get_current_actor, get_scan_service
from app.db.schema import ScanResult
from app.models.actor import Actor
from app.models.scan import ScanRequest, VerificationResult, ScanLogRead
from app.services.scan import ScanService, REJECTION_ERRORS


router = APIRouter()


@router.post(
    "/verify",
    response_model=VerificationResult,
    summary="Verify a Container Scan",
    description=(
        "Advances the scanned container one step if the caller's role owns that step. "
        "Rejected scans are logged and returned with `result = REJECTED` and a reason; "
        "pass `strict=true` to receive the matching HTTP error instead."
    )
)
def verify_scan(
    data: ScanRequest,
    strict: bool = False,
    actor: Actor = Depends(get_current_actor),
    service: ScanService = Depends(get_scan_service)
):
    result = service.verify_scan(
        data.qr_payload, actor.role, actor.wallet, data.location)

    if strict and result.result == ScanResult.REJECTED:
        raise REJECTION_ERRORS[result.reason](result.message, scan_id=result.scan_id)
    return result


@router.get(
    "/shipment/{shipment_hash}",
    response_model=List[ScanLogRead],
    summary="Scan History of a Shipment"
)
def shipment_scans(
    shipment_hash: str,
    actor: Actor = Depends(get_current_actor),
    service: ScanService = Depends(get_scan_service)
):
    return service.scan_history(shipment_hash)


@router.get(
    "/container/{container_id}",
    response_model=List[ScanLogRead],
    summary="Scan History of a Container"
)
def container_scans(
    container_id: str,
    actor: Actor = Depends(get_current_actor),
    service: ScanService = Depends(get_scan_service)
):
    return service.container_history(container_id)
