import asyncio
from typing import Optional

from loguru import logger
from sqlalchemy.engine import Engine
from sqlmodel import Session

from app.core.config import settings
from app.ledger.base import LedgerClient
from app.models.ledger import SyncResult
from app.services.reconciler import ReconcilerService


class IndexerWorker:
    """
    Keeps the store in step with the ledger for the lifetime of the app.

    Every tick runs a catch-up sync in a worker thread with its own session.
    Failed ticks are recorded on the sync state by the reconciler and retried
    with exponential backoff; the loop only ends when `stop()` is awaited.
    """

    def __init__(self, engine: Engine, ledger: LedgerClient,
                 poll_seconds: Optional[float] = None,
                 max_backoff_seconds: Optional[float] = None):
        self.engine = engine
        self.ledger = ledger
        self.poll_seconds = poll_seconds or settings.indexer_poll_seconds
        self.max_backoff_seconds = max_backoff_seconds or settings.indexer_max_backoff_seconds
        self.failures = 0
        self._task: Optional[asyncio.Task] = None
        self._stopping: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _sync_once(self) -> SyncResult:
        with Session(self.engine) as session:
            return ReconcilerService(session, self.ledger).sync()

    def _mark_stopped(self):
        with Session(self.engine) as session:
            ReconcilerService(session, self.ledger).mark_stopped()

    def _backoff(self) -> float:
        return min(self.poll_seconds * (2 ** (self.failures - 1)), self.max_backoff_seconds)

    async def run(self):
        while not self._stopping.is_set():
            try:
                result = await asyncio.to_thread(self._sync_once)
                self.failures = 0
                delay = self.poll_seconds
                if result.events_seen:
                    logger.info(
                        f"Indexer tick mirrored {result.applied} of {result.events_seen} events")
            except Exception as e:
                self.failures += 1
                delay = self._backoff()
                logger.error(
                    f"Indexer tick failed ({self.failures} in a row), retrying in {delay:.1f}s: {e}")

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

    def start(self):
        if self.running:
            logger.warning("Indexer worker already running")
            return

        self._stopping = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self.run())
        logger.info(
            f"Indexer worker started for {self.ledger.contract_address} "
            f"(poll every {self.poll_seconds}s)")

    async def stop(self):
        if self._task is None:
            return

        # The tick in flight finishes before the loop exits
        self._stopping.set()
        try:
            await self._task
        finally:
            self._task = None
            await asyncio.to_thread(self._mark_stopped)
