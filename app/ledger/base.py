from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional


@dataclass(frozen=True)
class LockReceipt:
    shipment_hash: str
    tx_ref: str
    block_ref: int


@dataclass(frozen=True)
class LedgerRecord:
    shipment_hash: str
    owner: str
    batch_id: str
    number_of_containers: int
    quantity_per_container: int
    created_at: Optional[datetime]
    status: str


@dataclass(frozen=True)
class LockEvent:
    """A `ShipmentLocked` event as emitted by the registry contract."""
    shipment_hash: str
    supplier: str
    batch_id: str
    number_of_containers: int
    quantity_per_container: int
    timestamp: int
    tx_ref: str
    block_ref: int


# Status enum of the registry contract, by ordinal.
LEDGER_STATUS = {
    0: "CREATED",
    1: "READY_FOR_DISPATCH",
    2: "IN_TRANSIT",
    3: "AT_WAREHOUSE",
    4: "DELIVERED",
}


class LedgerClient(ABC):
    """
    The contract surface of the shipment registry.

    `submit_lock` blocks until the transaction is included and raises one of
    SignerRejected, DuplicateLock, LedgerRejected, LedgerTimeout or
    LedgerUnavailable otherwise.
    """

    chain_id: int = 0
    contract_address: str = ""

    @abstractmethod
    def submit_lock(self, shipment_hash: str, batch_id: str,
                    number_of_containers: int, quantity_per_container: int) -> LockReceipt:
        ...

    @abstractmethod
    def exists(self, shipment_hash: str) -> bool:
        ...

    @abstractmethod
    def get_record(self, shipment_hash: str) -> Optional[LedgerRecord]:
        ...

    @abstractmethod
    def get_lock_events(self, from_block: int, to_block: int) -> List[LockEvent]:
        ...

    @abstractmethod
    def current_block(self) -> int:
        ...
