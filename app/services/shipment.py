import math
import uuid
from typing import Optional
from datetime import datetime

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select, func, col

from app.core.config import settings
from app.core.errors import (
    NotFound, InvalidInput, InvalidTransition, RoleNotPermitted, ShipmentNotLocked
)
from app.core.locks import shipment_locks
from app.db.schema import (
    Shipment, ShipmentStatus, Container, SupportingDocument, ActorRole,
    SHIPMENT_STATUS_RANK, CONTAINER_STATUS_RANK
)
from app.models.actor import Actor
from app.models.shipment import (
    ShipmentCreate, AssignmentUpdate, AssignmentIn, StakeholderAssignment,
    ShipmentRead, ShipmentDetailRead, ShipmentPage, ShipmentSummary,
    DocumentRead, Pagination
)
from app.services.concern import open_concern_count
from app.services.identity import derive_shipment_id, normalize_wallet
from app.utils.file_storage import BlobStore

MAX_PAGE_SIZE = 100


def to_shipment_read(shipment: Shipment) -> ShipmentRead:
    transporter = None
    if shipment.transporter_wallet:
        transporter = StakeholderAssignment(
            wallet_address=shipment.transporter_wallet,
            name=shipment.transporter_name,
            assigned_at=shipment.transporter_assigned_at
        )
    warehouse = None
    if shipment.warehouse_wallet:
        warehouse = StakeholderAssignment(
            wallet_address=shipment.warehouse_wallet,
            name=shipment.warehouse_name,
            assigned_at=shipment.warehouse_assigned_at
        )

    return ShipmentRead(
        shipment_hash=shipment.shipment_hash,
        batch_id=shipment.batch_id,
        supplier_wallet=shipment.supplier_wallet,
        number_of_containers=shipment.number_of_containers,
        quantity_per_container=shipment.quantity_per_container,
        total_quantity=shipment.total_quantity,
        status=shipment.status,
        ledger_tx_ref=shipment.ledger_tx_ref,
        block_ref=shipment.block_ref,
        locked_at=shipment.locked_at,
        assigned_transporter=transporter,
        assigned_warehouse=warehouse,
        created_at=shipment.created_at,
        updated_at=shipment.updated_at
    )


def paginate(total: int, page: int, limit: int) -> Pagination:
    return Pagination(
        page=page,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit) if total else 0
    )


def check_page(page: int, limit: int):
    if page < 1:
        raise InvalidInput("Page must be at least 1.", field="page")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise InvalidInput(
            f"Limit must be between 1 and {MAX_PAGE_SIZE}.", field="limit")


class ShipmentService:
    def __init__(self, session: Session, blob_store: Optional[BlobStore] = None):
        self.session = session
        self.blob_store = blob_store

    def _get(self, shipment_hash: str) -> Shipment:
        shipment = self.session.exec(
            select(Shipment).where(Shipment.shipment_hash == shipment_hash)
        ).first()
        if not shipment:
            raise NotFound(
                f"Shipment '{shipment_hash}' not found.", shipment_hash=shipment_hash)
        return shipment

    def _require_owner(self, actor: Actor, shipment: Shipment):
        if actor.role == ActorRole.ADMIN:
            return
        if actor.role != ActorRole.SUPPLIER or shipment.supplier_wallet != actor.wallet:
            raise RoleNotPermitted(
                "Only the supplier of this shipment or an admin can do this.")

    def _is_participant(self, actor: Actor, shipment: Shipment) -> bool:
        return actor.role in (ActorRole.ADMIN, ActorRole.RETAILER) or actor.wallet in (
            shipment.supplier_wallet,
            shipment.transporter_wallet,
            shipment.warehouse_wallet,
        )

    def _assign(self, shipment: Shipment, role: str, data: AssignmentIn):
        wallet = normalize_wallet(data.wallet_address, field=f"{role}.wallet_address")
        setattr(shipment, f"{role}_wallet", wallet)
        setattr(shipment, f"{role}_name", data.name)
        setattr(shipment, f"{role}_assigned_at", datetime.utcnow())

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    def create_draft(self, actor: Actor, data: ShipmentCreate) -> ShipmentRead:
        if actor.role != ActorRole.SUPPLIER:
            raise RoleNotPermitted("Only suppliers can create shipments.")
        if data.number_of_containers < 1 or data.quantity_per_container < 1:
            raise InvalidInput(
                "Container count and quantity per container must be at least 1.")

        shipment = Shipment(
            shipment_hash=derive_shipment_id(data.batch_id, actor.wallet),
            batch_id=data.batch_id.strip(),
            supplier_wallet=actor.wallet,
            number_of_containers=data.number_of_containers,
            quantity_per_container=data.quantity_per_container,
            total_quantity=data.number_of_containers * data.quantity_per_container,
            status=ShipmentStatus.CREATED,
            last_updated_by=actor.wallet
        )
        if data.transporter:
            self._assign(shipment, "transporter", data.transporter)
        if data.warehouse:
            self._assign(shipment, "warehouse", data.warehouse)

        self.session.add(shipment)
        self.session.commit()
        self.session.refresh(shipment)

        logger.info(
            f"Draft shipment {shipment.shipment_hash} created by {actor.wallet}")
        return to_shipment_read(shipment)

    def update_assignments(self, actor: Actor, shipment_hash: str, data: AssignmentUpdate) -> ShipmentRead:
        with shipment_locks.hold(shipment_hash):
            shipment = self._get(shipment_hash)
            self._require_owner(actor, shipment)

            if shipment.status != ShipmentStatus.CREATED:
                raise InvalidTransition(
                    "Assignments are frozen once the shipment is locked.",
                    status=shipment.status.value)

            if data.transporter:
                self._assign(shipment, "transporter", data.transporter)
            if data.warehouse:
                self._assign(shipment, "warehouse", data.warehouse)

            shipment.last_updated_by = actor.wallet
            self.session.add(shipment)
            self.session.commit()
            self.session.refresh(shipment)

        return to_shipment_read(shipment)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_shipment(self, shipment_hash: str) -> ShipmentDetailRead:
        shipment = self._get(shipment_hash)
        base = to_shipment_read(shipment)
        return ShipmentDetailRead(
            **base.model_dump(),
            supporting_documents=[
                DocumentRead.model_validate(d) for d in shipment.documents],
            open_concerns=open_concern_count(self.session, shipment_hash)
        )

    def _filtered(self, statement, role: Optional[ActorRole], wallet: Optional[str]):
        """Restricts a shipment query to what the given role/wallet takes part in."""
        if role == ActorRole.SUPPLIER and wallet:
            statement = statement.where(Shipment.supplier_wallet == wallet)
        elif role == ActorRole.TRANSPORTER and wallet:
            statement = statement.where(Shipment.transporter_wallet == wallet)
        elif role == ActorRole.WAREHOUSE and wallet:
            statement = statement.where(Shipment.warehouse_wallet == wallet)
        elif role == ActorRole.RETAILER:
            statement = statement.where(col(Shipment.status).in_(
                [ShipmentStatus.AT_WAREHOUSE, ShipmentStatus.DELIVERED]))
        return statement

    def list_shipments(self, role: Optional[ActorRole] = None, wallet: Optional[str] = None,
                       status: Optional[ShipmentStatus] = None,
                       page: int = 1, limit: int = 20) -> ShipmentPage:
        check_page(page, limit)
        wallet = wallet.strip().lower() if wallet else None

        statement = self._filtered(select(Shipment), role, wallet)
        count_statement = self._filtered(
            select(func.count(Shipment.id)), role, wallet)
        if status:
            statement = statement.where(Shipment.status == status)
            count_statement = count_statement.where(Shipment.status == status)

        total = self.session.exec(count_statement).one()
        rows = self.session.exec(
            statement.order_by(col(Shipment.created_at).desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()

        return ShipmentPage(
            data=[to_shipment_read(s) for s in rows],
            pagination=paginate(total, page, limit)
        )

    def summary(self, role: Optional[ActorRole] = None, wallet: Optional[str] = None) -> ShipmentSummary:
        rows = self.session.exec(
            self._filtered(select(Shipment), role, wallet)).all()

        by_status = {s.value: 0 for s in ShipmentStatus}
        for s in rows:
            by_status[s.status.value] += 1

        return ShipmentSummary(
            total_shipments=len(rows),
            total_containers=sum(s.number_of_containers for s in rows),
            total_quantity=sum(s.total_quantity for s in rows),
            by_status=by_status
        )

    # ------------------------------------------------------------------
    # Operator override
    # ------------------------------------------------------------------

    def update_status(self, actor: Actor, shipment_hash: str, new_status: ShipmentStatus) -> ShipmentRead:
        """
        Moves a shipment forward by hand, under the same constraints as
        scan-driven progress. CONCERN_RAISED parks the shipment and keeps the
        status it had so it can be restored once concerns are closed.
        """
        with shipment_locks.hold(shipment_hash):
            shipment = self._get(shipment_hash)
            self._require_owner(actor, shipment)

            if new_status == ShipmentStatus.CONCERN_RAISED:
                self._park(shipment)
            else:
                self._advance(shipment, new_status)

            shipment.last_updated_by = actor.wallet
            self.session.add(shipment)
            self.session.commit()
            self.session.refresh(shipment)

        logger.info(
            f"Shipment {shipment_hash} status set to {new_status.value} by {actor.wallet}")
        return to_shipment_read(shipment)

    def _park(self, shipment: Shipment):
        if shipment.status == ShipmentStatus.CONCERN_RAISED:
            raise InvalidTransition("Shipment is already parked on a concern.")
        if open_concern_count(self.session, shipment.shipment_hash) == 0:
            raise InvalidTransition(
                "CONCERN_RAISED requires an open or acknowledged concern.")
        shipment.status_before_concern = shipment.status
        shipment.status = ShipmentStatus.CONCERN_RAISED

    def _advance(self, shipment: Shipment, new_status: ShipmentStatus):
        if new_status == ShipmentStatus.READY_FOR_DISPATCH:
            raise InvalidTransition(
                "READY_FOR_DISPATCH is only reachable by locking the shipment.")

        parked = shipment.status == ShipmentStatus.CONCERN_RAISED
        current = shipment.status_before_concern if parked else shipment.status
        if SHIPMENT_STATUS_RANK[new_status] <= SHIPMENT_STATUS_RANK[current]:
            raise InvalidTransition(
                f"Cannot move shipment from {current.value} to {new_status.value}.",
                current=current.value, requested=new_status.value)

        if not shipment.ledger_tx_ref:
            raise ShipmentNotLocked()

        required = SHIPMENT_STATUS_RANK[new_status]
        lagging = [
            c.container_number for c in self.session.exec(
                select(Container).where(
                    Container.shipment_hash == shipment.shipment_hash)
            ).all()
            if CONTAINER_STATUS_RANK[c.status] < required
        ]
        if lagging:
            raise InvalidTransition(
                f"{len(lagging)} container(s) have not reached {new_status.value}.",
                lagging_containers=lagging)

        if parked:
            shipment.status_before_concern = new_status
        else:
            shipment.status = new_status

    # ------------------------------------------------------------------
    # Supporting documents
    # ------------------------------------------------------------------

    def attach_document(self, actor: Actor, shipment_hash: str, filename: Optional[str],
                        content: bytes, mime_type: str) -> DocumentRead:
        shipment = self._get(shipment_hash)
        if not self._is_participant(actor, shipment):
            raise RoleNotPermitted(
                "Only participants of this shipment can attach documents.")
        if len(content) > settings.max_document_bytes:
            raise InvalidInput(
                "Document exceeds the maximum allowed size.",
                max_bytes=settings.max_document_bytes)

        url = self.blob_store.store(content, mime_type, filename)
        document = SupportingDocument(
            shipment_hash=shipment_hash,
            url=url,
            filename=filename,
            mime_type=mime_type,
            size_bytes=len(content),
            uploaded_by=actor.wallet
        )
        try:
            self.session.add(document)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            # No row references the blob once the insert is rolled back
            self.blob_store.delete(url)
            logger.error(f"Document upload for {shipment_hash} not recorded; blob discarded")
            raise
        self.session.refresh(document)

        logger.info(f"Document {document.id} attached to {shipment_hash}")
        return DocumentRead.model_validate(document)

    def list_documents(self, shipment_hash: str):
        shipment = self._get(shipment_hash)
        return [DocumentRead.model_validate(d) for d in shipment.documents]

    def remove_document(self, actor: Actor, shipment_hash: str, document_id: uuid.UUID):
        shipment = self._get(shipment_hash)
        document = self.session.get(SupportingDocument, document_id)
        if not document or document.shipment_hash != shipment_hash:
            raise NotFound("Document not found.", document_id=str(document_id))

        if actor.wallet != document.uploaded_by:
            self._require_owner(actor, shipment)

        url = document.url
        self.session.delete(document)
        self.session.commit()
        self.blob_store.delete(url)
        logger.info(f"Document {document_id} removed from {shipment_hash}")
