from typing import Optional
from fastapi import APIRouter, Depends, Query

from app.core.dependencies import get_current_actor, get_container_service
from app.db.schema import ContainerStatus
from app.models.actor import Actor
from app.models.container import ContainerRead, ContainerPage, ContainerStats, ContainerQRRead
from app.services.container import ContainerService


router = APIRouter()


@router.get(
    "/shipment/{shipment_hash}",
    response_model=ContainerPage,
    summary="List Containers of a Shipment",
    description="Containers ordered by container number, optionally filtered by status."
)
def list_containers(
    shipment_hash: str,
    status: Optional[ContainerStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
    service: ContainerService = Depends(get_container_service)
):
    return service.list_containers(shipment_hash, status=status, page=page, limit=limit)


@router.get(
    "/shipment/{shipment_hash}/stats",
    response_model=ContainerStats,
    summary="Container Stats"
)
def container_stats(
    shipment_hash: str,
    actor: Actor = Depends(get_current_actor),
    service: ContainerService = Depends(get_container_service)
):
    return service.container_stats(shipment_hash)


@router.get(
    "/{container_id}",
    response_model=ContainerRead,
    summary="Get Container"
)
def get_container(
    container_id: str,
    actor: Actor = Depends(get_current_actor),
    service: ContainerService = Depends(get_container_service)
):
    return service.get_container(container_id)


@router.get(
    "/{container_id}/qr",
    response_model=ContainerQRRead,
    summary="Container QR Code",
    description="Renders the printable QR for a container. It encodes the container id and nothing else."
)
def get_container_qr(
    container_id: str,
    actor: Actor = Depends(get_current_actor),
    service: ContainerService = Depends(get_container_service)
):
    return service.qr_code(container_id)
