from typing import Optional

from sqlmodel import Session, select, func, col

from app.core.errors import NotFound
from app.db.schema import Shipment, Container, ContainerStatus
from app.models.container import (
    ContainerRead, ContainerPage, ContainerStats, ContainerQRRead, LastScan
)
from app.services.shipment import check_page, paginate
from app.utils.qr import generate_and_save_qr


def to_container_read(container: Container) -> ContainerRead:
    last_scan = None
    if container.last_scan_at:
        last_scan = LastScan(
            location=container.last_scan_location,
            actor_wallet=container.last_scanned_by,
            actor_role=container.last_scanned_role,
            timestamp=container.last_scan_at
        )
    return ContainerRead(
        container_id=container.container_id,
        shipment_hash=container.shipment_hash,
        container_number=container.container_number,
        quantity=container.quantity,
        status=container.status,
        qr_payload=container.qr_payload,
        last_scan=last_scan,
        created_at=container.created_at
    )


class ContainerService:
    def __init__(self, session: Session):
        self.session = session

    def _require_shipment(self, shipment_hash: str):
        exists = self.session.exec(
            select(Shipment.id).where(Shipment.shipment_hash == shipment_hash)
        ).first()
        if not exists:
            raise NotFound(
                f"Shipment '{shipment_hash}' not found.", shipment_hash=shipment_hash)

    def _get(self, container_id: str) -> Container:
        container = self.session.exec(
            select(Container).where(Container.container_id == container_id)
        ).first()
        if not container:
            raise NotFound(
                f"Container '{container_id}' not found.", container_id=container_id)
        return container

    def list_containers(self, shipment_hash: str, status: Optional[ContainerStatus] = None,
                        page: int = 1, limit: int = 50) -> ContainerPage:
        check_page(page, limit)
        self._require_shipment(shipment_hash)

        statement = select(Container).where(
            Container.shipment_hash == shipment_hash)
        count_statement = select(func.count(Container.id)).where(
            Container.shipment_hash == shipment_hash)
        if status:
            statement = statement.where(Container.status == status)
            count_statement = count_statement.where(Container.status == status)

        total = self.session.exec(count_statement).one()
        rows = self.session.exec(
            statement.order_by(col(Container.container_number))
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()

        return ContainerPage(
            data=[to_container_read(c) for c in rows],
            pagination=paginate(total, page, limit)
        )

    def get_container(self, container_id: str) -> ContainerRead:
        return to_container_read(self._get(container_id))

    def container_stats(self, shipment_hash: str) -> ContainerStats:
        self._require_shipment(shipment_hash)
        containers = self.session.exec(
            select(Container).where(Container.shipment_hash == shipment_hash)
        ).all()

        by_status = {s.value: 0 for s in ContainerStatus}
        for c in containers:
            by_status[c.status.value] += 1

        return ContainerStats(
            shipment_hash=shipment_hash,
            total=len(containers),
            scanned=sum(1 for c in containers if c.last_scan_at),
            by_status=by_status
        )

    def qr_code(self, container_id: str) -> ContainerQRRead:
        container = self._get(container_id)
        url = generate_and_save_qr(container.qr_payload, container.container_id)
        return ContainerQRRead(
            container_id=container.container_id,
            qr_payload=container.qr_payload,
            qr_code_url=url
        )
