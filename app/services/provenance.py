from typing import List

from app.core.errors import InvalidContainerSpec
from app.db.schema import Container, ContainerStatus
from app.services.identity import derive_container_id


def build_containers(shipment_hash: str, count: int, quantity_per_container: int) -> List[Container]:
    """
    Produces the container set of a shipment, numbered 1..count.
    Rows are returned unsaved; persisting them is the Reconciler's job.
    """
    if count is None or count < 1 or quantity_per_container is None or quantity_per_container < 1:
        raise InvalidContainerSpec(
            count=count, quantity_per_container=quantity_per_container)

    containers = []
    for number in range(1, count + 1):
        container_id = derive_container_id(shipment_hash, number)
        containers.append(Container(
            container_id=container_id,
            shipment_hash=shipment_hash,
            container_number=number,
            quantity=quantity_per_container,
            status=ContainerStatus.CREATED,
            # QR encodes the id and nothing else
            qr_payload=container_id,
        ))
    return containers
