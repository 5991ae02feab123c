"""
Scan verification state machine.

Containers only move forward: CREATED/LOCKED -> IN_TRANSIT -> AT_WAREHOUSE
-> DELIVERED. Each scan advances one container by one step, provided the
actor's role owns that step. The shipment follows its slowest container.
"""
import re
import secrets
from typing import List, Optional
from datetime import datetime

from loguru import logger
from sqlmodel import Session, select, col

from app.core.config import settings
from app.core.errors import (
    InvalidInput, UnknownContainer, ShipmentClosed, ShipmentNotLocked,
    InvalidTransition, RoleNotPermitted, NotFound
)
from app.core.locks import shipment_locks
from app.db.schema import (
    Shipment, ShipmentStatus, Container, ContainerStatus, ScanLog, ScanResult,
    RejectionReason, ActorRole, SHIPMENT_STATUS_RANK, CONTAINER_STATUS_RANK
)
from app.models.scan import VerificationResult, ScanLogRead
from app.services.concern import open_concern_count
from app.services.container import to_container_read
from app.services.shipment import to_shipment_read

QR_PAYLOAD_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,120}$")

# States each role may move a container into
ROLE_TARGETS = {
    ActorRole.TRANSPORTER: (ContainerStatus.IN_TRANSIT,),
    ActorRole.WAREHOUSE: (ContainerStatus.AT_WAREHOUSE, ContainerStatus.DELIVERED),
    ActorRole.RETAILER: (ContainerStatus.DELIVERED,),
}

NEXT_CONTAINER_STATUS = {
    ContainerStatus.CREATED: ContainerStatus.IN_TRANSIT,
    ContainerStatus.LOCKED: ContainerStatus.IN_TRANSIT,
    ContainerStatus.IN_TRANSIT: ContainerStatus.AT_WAREHOUSE,
    ContainerStatus.AT_WAREHOUSE: ContainerStatus.DELIVERED,
}

SHIPMENT_STATUS_BY_RANK = {rank: s for s, rank in SHIPMENT_STATUS_RANK.items()}

# Raised instead of returned when the caller asks for strict verification
REJECTION_ERRORS = {
    RejectionReason.INVALID_QR_FORMAT: InvalidInput,
    RejectionReason.UNKNOWN_CONTAINER: UnknownContainer,
    RejectionReason.SHIPMENT_CLOSED: ShipmentClosed,
    RejectionReason.SHIPMENT_NOT_LOCKED: ShipmentNotLocked,
    RejectionReason.INVALID_TRANSITION: InvalidTransition,
    RejectionReason.ROLE_NOT_PERMITTED: RoleNotPermitted,
}


class Rejection(Exception):
    def __init__(self, reason: RejectionReason, message: str):
        super().__init__(message)
        self.reason = reason
        self.message = message


def check_transition(role: ActorRole, current: ContainerStatus) -> ContainerStatus:
    """Returns the state a scan by `role` moves a `current` container into."""
    if current == ContainerStatus.DELIVERED:
        raise Rejection(RejectionReason.INVALID_TRANSITION,
                        "Container has already been delivered.")

    targets = ROLE_TARGETS.get(role, ())
    if not targets:
        raise Rejection(RejectionReason.ROLE_NOT_PERMITTED,
                        f"Role '{role.value}' cannot scan containers.")

    highest = max(CONTAINER_STATUS_RANK[t] for t in targets)
    if highest <= CONTAINER_STATUS_RANK[current]:
        raise Rejection(RejectionReason.INVALID_TRANSITION,
                        f"Container is already {current.value}; a {role.value} scan would move it backward.")

    next_status = NEXT_CONTAINER_STATUS[current]
    if next_status not in targets:
        raise Rejection(RejectionReason.ROLE_NOT_PERMITTED,
                        f"Role '{role.value}' cannot move a container from {current.value} to {next_status.value}.")
    return next_status


class ScanService:
    def __init__(self, session: Session):
        self.session = session

    def _log(self, scan_id: str, actor_role: ActorRole, actor_wallet: str, location: Optional[str],
             result: ScanResult, container: Optional[Container] = None,
             shipment: Optional[Shipment] = None, reason: Optional[RejectionReason] = None,
             message: Optional[str] = None, previous: Optional[ContainerStatus] = None):
        self.session.add(ScanLog(
            scan_id=scan_id,
            container_id=container.container_id if container else None,
            shipment_hash=container.shipment_hash if container else None,
            actor_wallet=actor_wallet,
            actor_role=actor_role,
            location=location,
            result=result,
            rejection_reason=reason,
            message=message,
            previous_status=previous,
            new_status=container.status if container else None,
            shipment_status=shipment.status if shipment else None,
        ))

    def _reject(self, scan_id, actor_role, actor_wallet, location, rejection: Rejection,
                container=None, shipment=None) -> VerificationResult:
        self._log(scan_id, actor_role, actor_wallet, location, ScanResult.REJECTED,
                  container=container, shipment=shipment, reason=rejection.reason,
                  message=rejection.message,
                  previous=container.status if container else None)
        self.session.commit()

        logger.info(
            f"Scan {scan_id} rejected ({rejection.reason.value}) for {actor_role.value} {actor_wallet}")
        return VerificationResult(
            result=ScanResult.REJECTED,
            scan_id=scan_id,
            reason=rejection.reason,
            message=rejection.message,
            previous_container_status=container.status if container else None
        )

    def verify_scan(self, qr_payload: str, actor_role: ActorRole, actor_wallet: str,
                    location: Optional[str] = None) -> VerificationResult:
        scan_id = f"SCN-{secrets.token_hex(6).upper()}"
        payload = (qr_payload or "").strip()
        location = location.strip() if location else None

        if not QR_PAYLOAD_PATTERN.match(payload):
            return self._reject(scan_id, actor_role, actor_wallet, location, Rejection(
                RejectionReason.INVALID_QR_FORMAT, "QR payload is not a container identifier."))

        container = self.session.exec(
            select(Container).where(Container.container_id == payload)
        ).first()
        if not container:
            return self._reject(scan_id, actor_role, actor_wallet, location, Rejection(
                RejectionReason.UNKNOWN_CONTAINER, f"No container matches '{payload}'."))

        with shipment_locks.hold(container.shipment_hash):
            self.session.refresh(container)
            shipment = self.session.exec(
                select(Shipment).where(
                    Shipment.shipment_hash == container.shipment_hash)
            ).first()

            try:
                if not shipment or shipment.status == ShipmentStatus.DELIVERED:
                    raise Rejection(RejectionReason.SHIPMENT_CLOSED,
                                    "Shipment is closed for scanning.")
                if not shipment.ledger_tx_ref:
                    raise Rejection(RejectionReason.SHIPMENT_NOT_LOCKED,
                                    "Shipment has not been locked on the ledger.")
                next_status = check_transition(actor_role, container.status)
            except Rejection as rejection:
                return self._reject(scan_id, actor_role, actor_wallet, location, rejection,
                                    container=container, shipment=shipment)

            previous = container.status
            now = datetime.utcnow()
            container.status = next_status
            container.last_scan_location = location
            container.last_scan_at = now
            container.last_scanned_by = actor_wallet
            container.last_scanned_role = actor_role
            self.session.add(container)
            self.session.flush()

            changed = self._advance_shipment(shipment)
            shipment.last_updated_by = actor_wallet
            self.session.add(shipment)

            self._log(scan_id, actor_role, actor_wallet, location, ScanResult.VERIFIED,
                      container=container, shipment=shipment, previous=previous,
                      message=f"{previous.value} -> {next_status.value}")
            self.session.commit()
            self.session.refresh(container)
            self.session.refresh(shipment)

        logger.info(
            f"Scan {scan_id}: container {container.container_id} {previous.value} -> "
            f"{next_status.value} by {actor_role.value} {actor_wallet}")
        if changed:
            logger.info(
                f"Shipment {shipment.shipment_hash} advanced to {shipment.status.value}")

        return VerificationResult(
            result=ScanResult.VERIFIED,
            scan_id=scan_id,
            message=f"Container {container.container_number} is now {next_status.value}.",
            previous_container_status=previous,
            shipment_status_changed=changed,
            container=to_container_read(container),
            shipment=to_shipment_read(shipment)
        )

    def _advance_shipment(self, shipment: Shipment) -> bool:
        """
        Moves the shipment to the furthest status every container has
        reached. Must run under the shipment lock, after the scanned
        container has been flushed, so the whole set is read consistently.
        """
        containers = self.session.exec(
            select(Container).where(
                Container.shipment_hash == shipment.shipment_hash)
        ).all()
        if not containers:
            return False

        reached = min(CONTAINER_STATUS_RANK[c.status] for c in containers)
        if settings.concerns_block_progress and \
                reached > SHIPMENT_STATUS_RANK[ShipmentStatus.IN_TRANSIT] and \
                open_concern_count(self.session, shipment.shipment_hash) > 0:
            reached = SHIPMENT_STATUS_RANK[ShipmentStatus.IN_TRANSIT]
        target = SHIPMENT_STATUS_BY_RANK[reached]

        if shipment.status == ShipmentStatus.CONCERN_RAISED:
            current = shipment.status_before_concern or ShipmentStatus.READY_FOR_DISPATCH
            if SHIPMENT_STATUS_RANK[target] > SHIPMENT_STATUS_RANK[current]:
                shipment.status_before_concern = target
            return False

        if SHIPMENT_STATUS_RANK[target] > SHIPMENT_STATUS_RANK[shipment.status]:
            shipment.status = target
            return True
        return False

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def scan_history(self, shipment_hash: str) -> List[ScanLogRead]:
        exists = self.session.exec(
            select(Shipment.id).where(Shipment.shipment_hash == shipment_hash)
        ).first()
        if not exists:
            raise NotFound(
                f"Shipment '{shipment_hash}' not found.", shipment_hash=shipment_hash)

        logs = self.session.exec(
            select(ScanLog).where(ScanLog.shipment_hash == shipment_hash)
            .order_by(col(ScanLog.scanned_at))
        ).all()
        return [ScanLogRead.model_validate(log) for log in logs]

    def container_history(self, container_id: str) -> List[ScanLogRead]:
        logs = self.session.exec(
            select(ScanLog).where(ScanLog.container_id == container_id)
            .order_by(col(ScanLog.scanned_at))
        ).all()
        return [ScanLogRead.model_validate(log) for log in logs]
