import secrets
import threading
import time
from collections import deque
from datetime import datetime
from typing import Deque, Dict, List, Optional

from app.core.errors import (
    DuplicateLock, LedgerRejected, LedgerTimeout, LedgerUnavailable, SignerRejected
)
from app.ledger.base import LedgerClient, LedgerRecord, LockEvent, LockReceipt


class InMemoryLedger(LedgerClient):
    """
    Process-local registry with the same contract as the on-chain one.
    Used for local development and tests. Outcomes of the next submissions
    can be scripted with `fail_next(...)`.
    """

    OUTCOMES = {
        "decline": SignerRejected,
        "timeout": LedgerTimeout,
        "reject": LedgerRejected,
        "unavailable": LedgerUnavailable,
    }

    def __init__(self, chain_id: int = 1337, contract_address: str = "0x" + "0" * 40):
        self.chain_id = chain_id
        self.contract_address = contract_address
        self._lock = threading.Lock()
        self._records: Dict[str, LedgerRecord] = {}
        self._events: List[LockEvent] = []
        self._block = 0
        self._scripted: Deque[str] = deque()
        self.submissions = 0

    def fail_next(self, outcome: str, times: int = 1):
        if outcome not in self.OUTCOMES:
            raise ValueError(f"Unknown outcome '{outcome}'")
        with self._lock:
            self._scripted.extend([outcome] * times)

    def submit_lock(self, shipment_hash, batch_id, number_of_containers, quantity_per_container):
        with self._lock:
            self.submissions += 1
            if self._scripted:
                raise self.OUTCOMES[self._scripted.popleft()]()

            if shipment_hash in self._records:
                raise DuplicateLock("Shipment already exists", shipment_hash=shipment_hash)
            if number_of_containers < 1:
                raise LedgerRejected("Number of containers must be greater than 0")
            if quantity_per_container < 1:
                raise LedgerRejected("Quantity per container must be greater than 0")

            self._block += 1
            now = int(time.time())
            tx_ref = "0x" + secrets.token_hex(32)
            self._records[shipment_hash] = LedgerRecord(
                shipment_hash=shipment_hash,
                owner="0x" + "0" * 40,
                batch_id=batch_id,
                number_of_containers=number_of_containers,
                quantity_per_container=quantity_per_container,
                created_at=datetime.utcfromtimestamp(now),
                status="READY_FOR_DISPATCH",
            )
            self._events.append(LockEvent(
                shipment_hash=shipment_hash,
                supplier="0x" + "0" * 40,
                batch_id=batch_id,
                number_of_containers=number_of_containers,
                quantity_per_container=quantity_per_container,
                timestamp=now,
                tx_ref=tx_ref,
                block_ref=self._block,
            ))
            return LockReceipt(shipment_hash=shipment_hash, tx_ref=tx_ref, block_ref=self._block)

    def record_external_lock(self, event: LockEvent):
        """Simulates a lock sent to the contract by another client."""
        with self._lock:
            self._block = max(self._block + 1, event.block_ref)
            self._records[event.shipment_hash] = LedgerRecord(
                shipment_hash=event.shipment_hash,
                owner=event.supplier,
                batch_id=event.batch_id,
                number_of_containers=event.number_of_containers,
                quantity_per_container=event.quantity_per_container,
                created_at=datetime.utcfromtimestamp(event.timestamp),
                status="READY_FOR_DISPATCH",
            )
            self._events.append(event)

    def exists(self, shipment_hash):
        with self._lock:
            return shipment_hash in self._records

    def get_record(self, shipment_hash) -> Optional[LedgerRecord]:
        with self._lock:
            return self._records.get(shipment_hash)

    def get_lock_events(self, from_block, to_block):
        with self._lock:
            return [e for e in self._events if from_block <= e.block_ref <= to_block]

    def current_block(self):
        with self._lock:
            return self._block
