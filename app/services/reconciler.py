from datetime import datetime
from itertools import groupby
from typing import Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlmodel import Session, select, func
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from app.core.config import settings
from app.core.errors import ContainerSetExists, NotFound, ShipmentError, StoreUnavailable
from app.core.locks import shipment_locks
from app.db.schema import (
    Shipment, ShipmentStatus, Container, ContainerStatus, SyncState, SyncStatus
)
from app.ledger.base import LedgerClient, LockEvent
from app.models.ledger import (
    ReconcileOutcome, ReconcileRead, SyncResult, SyncStateRead,
    IndexerStatus, IndexerHealth
)
from app.services.provenance import build_containers


class ReconcilerService:
    """
    Mirrors ledger locks into the off-chain store.

    Called from the lock path right after a receipt, and from the indexer
    catch-up path for every `ShipmentLocked` event. Both converge: applying
    the same lock twice leaves the store exactly as a single delivery would.
    """

    SYNC_KEY = "shipment-indexer"
    MAX_BLOCK_LAG = 100

    def __init__(self, session: Session, ledger: LedgerClient):
        self.session = session
        self.ledger = ledger

    # ------------------------------------------------------------------
    # Reconcile
    # ------------------------------------------------------------------

    def reconcile(self, shipment_hash: str, tx_ref: str, block_ref: int) -> ReconcileRead:
        """
        Applies one confirmed lock. Store outages are retried with
        exponential backoff, then surface as StoreUnavailable.
        """
        @retry(
            stop=stop_after_attempt(settings.reconcile_max_attempts),
            wait=wait_exponential(multiplier=0.2, min=0.2, max=5),
            retry=retry_if_exception_type(OperationalError),
            reraise=True
        )
        def _retry_wrapper():
            return self._apply(shipment_hash, tx_ref, block_ref)

        try:
            return _retry_wrapper()
        except OperationalError as e:
            logger.error(
                f"Reconcile of {shipment_hash} failed after retries: {e}")
            raise StoreUnavailable(shipment_hash=shipment_hash)

    def _apply(self, shipment_hash: str, tx_ref: str, block_ref: int) -> ReconcileRead:
        with shipment_locks.hold(shipment_hash):
            try:
                shipment = self.session.exec(
                    select(Shipment).where(
                        Shipment.shipment_hash == shipment_hash)
                ).first()
                if not shipment:
                    raise NotFound(
                        f"Shipment '{shipment_hash}' not found.", shipment_hash=shipment_hash)

                if shipment.ledger_tx_ref:
                    logger.info(
                        f"Reconcile skipped: {shipment_hash} already mirrors {shipment.ledger_tx_ref}")
                    return ReconcileRead(
                        shipment_hash=shipment_hash,
                        outcome=ReconcileOutcome.ALREADY_APPLIED
                    )

                existing = self.session.exec(
                    select(func.count(Container.id)).where(
                        Container.shipment_hash == shipment_hash)
                ).one()

                # --- START TRANSACTION ---
                shipment.status = ShipmentStatus.READY_FOR_DISPATCH
                shipment.ledger_tx_ref = tx_ref
                shipment.block_ref = block_ref
                shipment.locked_at = datetime.utcnow()
                shipment.last_updated_by = "SYSTEM"
                self.session.add(shipment)

                created = 0
                if existing == 0:
                    for container in build_containers(
                            shipment_hash,
                            shipment.number_of_containers,
                            shipment.quantity_per_container):
                        container.status = ContainerStatus.LOCKED
                        self.session.add(container)
                        created += 1
                else:
                    # Rows written ahead of the lock are frozen with it
                    for container in self.session.exec(
                            select(Container)
                            .where(Container.shipment_hash == shipment_hash)
                            .where(Container.status == ContainerStatus.CREATED)).all():
                        container.status = ContainerStatus.LOCKED
                        self.session.add(container)

                self.session.commit()
                # --- COMMIT ---

            except IntegrityError:
                self.session.rollback()
                mirrored = self.session.exec(
                    select(Shipment.ledger_tx_ref).where(
                        Shipment.shipment_hash == shipment_hash)
                ).first()
                if not mirrored:
                    logger.error(
                        f"Reconcile of {shipment_hash} hit a foreign container set")
                    raise ContainerSetExists(shipment_hash=shipment_hash)

                # A concurrent reconcile of the same lock committed first
                logger.warning(
                    f"Reconcile of {shipment_hash} lost a race; treating as already applied")
                return ReconcileRead(
                    shipment_hash=shipment_hash,
                    outcome=ReconcileOutcome.ALREADY_APPLIED
                )
            except OperationalError:
                self.session.rollback()
                raise

        logger.info(
            f"Reconciled {shipment_hash} at block {block_ref}: {created} containers created")
        return ReconcileRead(
            shipment_hash=shipment_hash,
            outcome=ReconcileOutcome.APPLIED,
            containers_created=created
        )

    def reconcile_event(self, event: LockEvent) -> ReconcileRead:
        """
        Event-subscription entry point. Shipments locked directly on the
        ledger are first inserted from the event fields.
        """
        exists = self.session.exec(
            select(Shipment.id).where(
                Shipment.shipment_hash == event.shipment_hash)
        ).first()

        if not exists:
            try:
                self.session.add(Shipment(
                    shipment_hash=event.shipment_hash,
                    batch_id=event.batch_id,
                    supplier_wallet=event.supplier.lower(),
                    number_of_containers=event.number_of_containers,
                    quantity_per_container=event.quantity_per_container,
                    total_quantity=event.number_of_containers * event.quantity_per_container,
                    status=ShipmentStatus.CREATED,
                ))
                self.session.commit()
                logger.info(
                    f"Backfilled shipment {event.shipment_hash} from ledger event")
            except IntegrityError:
                self.session.rollback()

        return self.reconcile(event.shipment_hash, event.tx_ref, event.block_ref)

    # ------------------------------------------------------------------
    # Indexer
    # ------------------------------------------------------------------

    def _sync_state(self) -> SyncState:
        state = self.session.exec(
            select(SyncState).where(SyncState.key == self.SYNC_KEY)
        ).first()
        if not state:
            state = SyncState(
                key=self.SYNC_KEY,
                chain_id=self.ledger.chain_id,
                contract_address=self.ledger.contract_address,
                last_synced_block=settings.indexer_start_block,
            )
            self.session.add(state)
            self.session.commit()
            self.session.refresh(state)
        return state

    def sync(self, from_block: Optional[int] = None) -> SyncResult:
        """
        Catch-up/backfill: replays lock events from the block after the last
        synced one up to the current head.

        The cursor only records blocks whose events all reconciled, so a run
        that fails halfway through a block replays that block next time.
        """
        state = self._sync_state()
        if from_block is None:
            from_block = state.last_synced_block if state.last_sync_at is None \
                else state.last_synced_block + 1

        state.status = SyncStatus.SYNCING
        self.session.add(state)
        self.session.commit()

        applied = already = 0
        try:
            to_block = self.ledger.current_block()
            events = []
            if from_block <= to_block:
                events = sorted(
                    self.ledger.get_lock_events(from_block, to_block),
                    key=lambda e: e.block_ref
                )

            for block_ref, block_events in groupby(events, key=lambda e: e.block_ref):
                for event in block_events:
                    result = self.reconcile_event(event)
                    if result.outcome == ReconcileOutcome.APPLIED:
                        applied += 1
                    else:
                        already += 1
                    state.total_events_processed += 1

                # Only whole blocks move the cursor; a failure mid-block replays it
                state.last_synced_block = block_ref
                self.session.add(state)
                self.session.commit()

        except ShipmentError as e:
            self.session.rollback()
            state.status = SyncStatus.ERROR
            state.last_error = e.message
            self.session.add(state)
            self.session.commit()
            logger.error(f"Indexer sync failed at block {state.last_synced_block}: {e}")
            raise

        state.last_synced_block = max(state.last_synced_block, to_block)
        state.status = SyncStatus.SYNCED
        state.last_error = None
        state.last_sync_at = datetime.utcnow()
        self.session.add(state)
        self.session.commit()

        logger.info(
            f"Indexer synced blocks {from_block}..{to_block}: "
            f"{len(events)} events, {applied} applied")
        return SyncResult(
            from_block=from_block,
            to_block=to_block,
            events_seen=len(events),
            applied=applied,
            already_applied=already
        )

    def mark_stopped(self) -> SyncState:
        state = self._sync_state()
        state.status = SyncStatus.STOPPED
        self.session.add(state)
        self.session.commit()
        self.session.refresh(state)
        logger.info(f"Indexer stopped at block {state.last_synced_block}")
        return state

    def _current_block(self) -> Optional[int]:
        try:
            return self.ledger.current_block()
        except ShipmentError as e:
            logger.warning(f"Ledger head unavailable: {e}")
            return None

    def status(self) -> IndexerStatus:
        current = self._current_block()
        state = self.session.exec(
            select(SyncState).where(SyncState.key == self.SYNC_KEY)
        ).first()

        return IndexerStatus(
            connected=current is not None,
            contract_address=self.ledger.contract_address,
            chain_id=self.ledger.chain_id,
            current_block=current,
            sync_state=SyncStateRead.model_validate(state) if state else None
        )

    def health(self) -> IndexerHealth:
        current = self._current_block()
        state = self.session.exec(
            select(SyncState).where(SyncState.key == self.SYNC_KEY)
        ).first()

        issues = []
        status = "healthy"
        if current is None:
            status = "unhealthy"
            issues.append("Ledger is not reachable")
        else:
            synced = state.last_synced_block if state else settings.indexer_start_block
            if current - synced > self.MAX_BLOCK_LAG:
                status = "degraded"
                issues.append(f"Indexer is {current - synced} blocks behind")

        if state and state.status == SyncStatus.ERROR:
            if status == "healthy":
                status = "degraded"
            issues.append(f"Last sync failed: {state.last_error}")

        return IndexerHealth(
            status=status,
            timestamp=datetime.utcnow(),
            current_block=current,
            last_synced_block=state.last_synced_block if state else None,
            issues=issues
        )
