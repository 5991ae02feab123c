from loguru import logger
from sqlmodel import Session, select

from app.core.errors import (
    NotFound, RoleNotPermitted, IncompleteAssignment, DuplicateLock,
    SignerRejected, ShipmentError
)
from app.core.locks import shipment_locks
from app.db.schema import Shipment, ShipmentStatus, ActorRole
from app.ledger.base import LedgerClient
from app.models.actor import Actor
from app.models.ledger import LockReceiptRead, ReconcileOutcome
from app.services.reconciler import ReconcilerService


class LockService:
    """
    Takes a draft shipment to the ledger exactly once.

    Validation and the ledger existence check run under the per-shipment
    lock. The signed submission and the wait for its receipt do not, so a
    slow ledger never blocks scans or reads of the same shipment.
    """

    def __init__(self, session: Session, ledger: LedgerClient, reconciler: ReconcilerService = None):
        self.session = session
        self.ledger = ledger
        self.reconciler = reconciler or ReconcilerService(session, ledger)

    def _check_lockable(self, actor: Actor, shipment_hash: str) -> Shipment:
        shipment = self.session.exec(
            select(Shipment).where(Shipment.shipment_hash == shipment_hash)
        ).first()
        if not shipment:
            raise NotFound(
                f"Shipment '{shipment_hash}' not found.", shipment_hash=shipment_hash)

        if actor.role == ActorRole.SUPPLIER:
            if shipment.supplier_wallet != actor.wallet:
                raise RoleNotPermitted(
                    "Only the supplier that created the shipment can lock it.")
        elif actor.role != ActorRole.ADMIN:
            raise RoleNotPermitted("Only suppliers can lock shipments.")

        if shipment.ledger_tx_ref:
            raise DuplicateLock(
                shipment_hash=shipment_hash, tx_ref=shipment.ledger_tx_ref)

        missing = []
        if not shipment.transporter_wallet:
            missing.append("transporter")
        if not shipment.warehouse_wallet:
            missing.append("warehouse")
        if shipment.status != ShipmentStatus.CREATED or missing:
            raise IncompleteAssignment(
                status=shipment.status.value, missing=missing)

        # The ledger, not this store, is the source of truth for existence
        if self.ledger.exists(shipment_hash):
            raise DuplicateLock(shipment_hash=shipment_hash)

        return shipment

    def lock_shipment(self, actor: Actor, shipment_hash: str) -> LockReceiptRead:
        with shipment_locks.hold(shipment_hash):
            shipment = self._check_lockable(actor, shipment_hash)
            batch_id = shipment.batch_id
            number_of_containers = shipment.number_of_containers
            quantity_per_container = shipment.quantity_per_container

        logger.info(
            f"Submitting lock for {shipment_hash} ({number_of_containers} x {quantity_per_container})")
        try:
            receipt = self.ledger.submit_lock(
                shipment_hash, batch_id, number_of_containers, quantity_per_container)
        except SignerRejected:
            logger.info(f"Lock of {shipment_hash} declined by signer")
            raise
        except ShipmentError as e:
            logger.error(f"Lock of {shipment_hash} failed: {e}")
            raise

        logger.info(
            f"Shipment {shipment_hash} locked in tx {receipt.tx_ref} (block {receipt.block_ref})")

        try:
            outcome = self.reconciler.reconcile(
                receipt.shipment_hash, receipt.tx_ref, receipt.block_ref).outcome
        except ShipmentError as e:
            # Indexer sync or a manual reconcile converges it later
            logger.error(
                f"Reconcile of {shipment_hash} pending after lock: {e}")
            outcome = ReconcileOutcome.PENDING

        return LockReceiptRead(
            shipment_hash=receipt.shipment_hash,
            tx_ref=receipt.tx_ref,
            block_ref=receipt.block_ref,
            reconciled=outcome
        )
