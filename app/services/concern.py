import secrets
from typing import List, Optional
from datetime import datetime

from loguru import logger
from sqlmodel import Session, select, func, col

from app.core.errors import (
    NotFound, InvalidInput, InvalidTransition, MissingResolution,
    RoleNotPermitted, ShipmentNotLocked
)
from app.core.locks import shipment_locks
from app.db.schema import (
    Shipment, ShipmentStatus, ShipmentConcern, ConcernStatus, Container, ActorRole
)
from app.models.actor import Actor
from app.models.concern import ConcernCreate, ConcernRead

# Concerns still waiting for an outcome
ACTIVE_STATUSES = [ConcernStatus.OPEN, ConcernStatus.ACKNOWLEDGED]


def open_concern_count(session: Session, shipment_hash: str) -> int:
    return session.exec(
        select(func.count(ShipmentConcern.id))
        .where(ShipmentConcern.shipment_hash == shipment_hash)
        .where(col(ShipmentConcern.status).in_(ACTIVE_STATUSES))
    ).one()


class ConcernService:
    def __init__(self, session: Session):
        self.session = session

    def _get_shipment(self, shipment_hash: str) -> Shipment:
        shipment = self.session.exec(
            select(Shipment).where(Shipment.shipment_hash == shipment_hash)
        ).first()
        if not shipment:
            raise NotFound(
                f"Shipment '{shipment_hash}' not found.", shipment_hash=shipment_hash)
        return shipment

    def _get_concern(self, concern_id: str) -> ShipmentConcern:
        concern = self.session.exec(
            select(ShipmentConcern).where(
                ShipmentConcern.concern_id == concern_id)
        ).first()
        if not concern:
            raise NotFound(
                f"Concern '{concern_id}' not found.", concern_id=concern_id)
        return concern

    def _require_supplier(self, actor: Actor, shipment: Shipment):
        if actor.role == ActorRole.ADMIN:
            return
        if actor.role != ActorRole.SUPPLIER or shipment.supplier_wallet != actor.wallet:
            raise RoleNotPermitted(
                "Only the supplier of this shipment or an admin can handle its concerns.")

    def _restore_if_clear(self, shipment: Shipment):
        """Un-parks a CONCERN_RAISED shipment once nothing is left open."""
        if shipment.status != ShipmentStatus.CONCERN_RAISED:
            return
        if open_concern_count(self.session, shipment.shipment_hash) > 0:
            return

        shipment.status = shipment.status_before_concern or ShipmentStatus.READY_FOR_DISPATCH
        shipment.status_before_concern = None
        shipment.last_updated_by = "SYSTEM"
        self.session.add(shipment)
        logger.info(
            f"Shipment {shipment.shipment_hash} restored to {shipment.status.value}")

    def raise_concern(self, actor: Actor, shipment_hash: str, data: ConcernCreate) -> ConcernRead:
        with shipment_locks.hold(shipment_hash):
            shipment = self._get_shipment(shipment_hash)
            if not shipment.ledger_tx_ref:
                raise ShipmentNotLocked(
                    "Concerns can only be raised on locked shipments.")

            if data.container_id:
                container = self.session.exec(
                    select(Container).where(
                        Container.container_id == data.container_id)
                ).first()
                if not container or container.shipment_hash != shipment_hash:
                    raise InvalidInput(
                        "Container does not belong to this shipment.",
                        container_id=data.container_id)

            concern = ShipmentConcern(
                concern_id=f"CNC-{secrets.token_hex(6).upper()}",
                shipment_hash=shipment_hash,
                container_id=data.container_id,
                type=data.type,
                severity=data.severity,
                status=ConcernStatus.OPEN,
                description=data.description.strip(),
                raised_by=actor.wallet,
                raised_by_role=actor.role,
            )
            self.session.add(concern)
            self.session.commit()
            self.session.refresh(concern)

        logger.warning(
            f"Concern {concern.concern_id} ({concern.type.value}/{concern.severity.value}) "
            f"raised on {shipment_hash} by {actor.wallet}")
        return ConcernRead.model_validate(concern)

    def acknowledge_concern(self, actor: Actor, concern_id: str) -> ConcernRead:
        concern = self._get_concern(concern_id)
        with shipment_locks.hold(concern.shipment_hash):
            self.session.refresh(concern)
            self._require_supplier(
                actor, self._get_shipment(concern.shipment_hash))

            if concern.status != ConcernStatus.OPEN:
                raise InvalidTransition(
                    f"Cannot acknowledge a concern that is {concern.status.value}.",
                    status=concern.status.value)

            concern.status = ConcernStatus.ACKNOWLEDGED
            concern.acknowledged_by = actor.wallet
            concern.acknowledged_at = datetime.utcnow()
            self.session.add(concern)
            self.session.commit()
            self.session.refresh(concern)

        return ConcernRead.model_validate(concern)

    def resolve_concern(self, actor: Actor, concern_id: str, resolution: Optional[str]) -> ConcernRead:
        if not resolution or not resolution.strip():
            raise MissingResolution(concern_id=concern_id)

        concern = self._get_concern(concern_id)
        with shipment_locks.hold(concern.shipment_hash):
            self.session.refresh(concern)
            shipment = self._get_shipment(concern.shipment_hash)
            self._require_supplier(actor, shipment)

            if concern.status != ConcernStatus.ACKNOWLEDGED:
                raise InvalidTransition(
                    "Only acknowledged concerns can be resolved.",
                    status=concern.status.value)

            concern.status = ConcernStatus.RESOLVED
            concern.resolution = resolution.strip()
            concern.resolved_by = actor.wallet
            concern.resolved_at = datetime.utcnow()
            self.session.add(concern)
            self.session.flush()

            self._restore_if_clear(shipment)
            self.session.commit()
            self.session.refresh(concern)

        logger.info(f"Concern {concern_id} resolved by {actor.wallet}")
        return ConcernRead.model_validate(concern)

    def escalate_concern(self, actor: Actor, concern_id: str, note: Optional[str] = None) -> ConcernRead:
        concern = self._get_concern(concern_id)
        with shipment_locks.hold(concern.shipment_hash):
            self.session.refresh(concern)
            shipment = self._get_shipment(concern.shipment_hash)
            if actor.wallet != concern.raised_by:
                self._require_supplier(actor, shipment)

            if concern.status not in ACTIVE_STATUSES:
                raise InvalidTransition(
                    f"Cannot escalate a concern that is {concern.status.value}.",
                    status=concern.status.value)

            concern.status = ConcernStatus.ESCALATED
            concern.escalation_note = note.strip() if note else None
            concern.escalated_by = actor.wallet
            concern.escalated_at = datetime.utcnow()
            self.session.add(concern)
            self.session.flush()

            self._restore_if_clear(shipment)
            self.session.commit()
            self.session.refresh(concern)

        logger.warning(f"Concern {concern_id} escalated by {actor.wallet}")
        return ConcernRead.model_validate(concern)

    def list_concerns(self, shipment_hash: str, status: Optional[ConcernStatus] = None) -> List[ConcernRead]:
        self._get_shipment(shipment_hash)
        statement = select(ShipmentConcern).where(
            ShipmentConcern.shipment_hash == shipment_hash)
        if status:
            statement = statement.where(ShipmentConcern.status == status)

        concerns = self.session.exec(
            statement.order_by(col(ShipmentConcern.raised_at).desc())).all()
        return [ConcernRead.model_validate(c) for c in concerns]

    def list_open_for_supplier(self, supplier_wallet: str) -> List[ConcernRead]:
        concerns = self.session.exec(
            select(ShipmentConcern)
            .join(Shipment, Shipment.shipment_hash == ShipmentConcern.shipment_hash)
            .where(Shipment.supplier_wallet == supplier_wallet)
            .where(col(ShipmentConcern.status).in_(ACTIVE_STATUSES))
            .order_by(col(ShipmentConcern.raised_at).desc())
        ).all()
        return [ConcernRead.model_validate(c) for c in concerns]
