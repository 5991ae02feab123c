from datetime import datetime
from typing import List, Optional

from eth_account import Account
from loguru import logger
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from app.core.errors import (
    DuplicateLock, LedgerRejected, LedgerTimeout, LedgerUnavailable, SignerRejected
)
from app.ledger.base import LEDGER_STATUS, LedgerClient, LedgerRecord, LockEvent, LockReceipt


# SentinelShipmentRegistry: only the members this service calls.
REGISTRY_ABI = [
    {
        "inputs": [
            {"internalType": "string", "name": "shipmentHash", "type": "string"},
            {"internalType": "string", "name": "batchId", "type": "string"},
            {"internalType": "uint256", "name": "numberOfContainers", "type": "uint256"},
            {"internalType": "uint256", "name": "quantityPerContainer", "type": "uint256"}
        ],
        "name": "confirmAndLockShipment",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [{"internalType": "string", "name": "shipmentHash", "type": "string"}],
        "name": "shipmentExists",
        "outputs": [{"internalType": "bool", "name": "exists", "type": "bool"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [{"internalType": "string", "name": "shipmentHash", "type": "string"}],
        "name": "getShipment",
        "outputs": [
            {"internalType": "address", "name": "supplier", "type": "address"},
            {"internalType": "string", "name": "batchId", "type": "string"},
            {"internalType": "uint256", "name": "numberOfContainers", "type": "uint256"},
            {"internalType": "uint256", "name": "quantityPerContainer", "type": "uint256"},
            {"internalType": "uint256", "name": "createdAt", "type": "uint256"},
            {"internalType": "uint8", "name": "status", "type": "uint8"}
        ],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": False, "internalType": "string", "name": "shipmentHash", "type": "string"},
            {"indexed": True, "internalType": "address", "name": "supplier", "type": "address"},
            {"indexed": False, "internalType": "string", "name": "batchId", "type": "string"},
            {"indexed": False, "internalType": "uint256", "name": "numberOfContainers", "type": "uint256"},
            {"indexed": False, "internalType": "uint256", "name": "quantityPerContainer", "type": "uint256"},
            {"indexed": False, "internalType": "uint256", "name": "timestamp", "type": "uint256"}
        ],
        "name": "ShipmentLocked",
        "type": "event"
    }
]


class Web3LedgerClient(LedgerClient):
    """
    Talks to the registry contract over JSON-RPC and signs lock
    transactions with a wallet-held key.
    """

    def __init__(self, rpc_url: str, contract_address: str, private_key: str,
                 chain_id: int, timeout_seconds: int = 120):
        if not contract_address:
            raise LedgerUnavailable("Ledger contract address not configured.")

        self.web3 = Web3(Web3.HTTPProvider(
            rpc_url, request_kwargs={"timeout": timeout_seconds}))
        self.chain_id = chain_id
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.contract = self.web3.eth.contract(
            address=self.contract_address, abi=REGISTRY_ABI)
        self.account = Account.from_key(private_key) if private_key else None
        self.timeout_seconds = timeout_seconds

    def _sign(self, tx: dict):
        try:
            return self.account.sign_transaction(tx)
        except (ValueError, TypeError) as e:
            raise SignerRejected(f"Signer refused the transaction: {e}")

    def submit_lock(self, shipment_hash, batch_id, number_of_containers, quantity_per_container):
        if self.account is None:
            raise SignerRejected("No signing wallet is configured for this service.")

        fn = self.contract.functions.confirmAndLockShipment(
            shipment_hash, batch_id, number_of_containers, quantity_per_container)
        try:
            tx = fn.build_transaction({
                "from": self.account.address,
                "chainId": self.chain_id,
                "nonce": self.web3.eth.get_transaction_count(
                    self.account.address, "pending"),
            })
            signed = self._sign(tx)
            tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
            receipt = self.web3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.timeout_seconds)
        except ContractLogicError as e:
            message = str(e)
            if "already exists" in message.lower():
                raise DuplicateLock("Shipment already exists on the ledger.",
                                    shipment_hash=shipment_hash)
            raise LedgerRejected(message)
        except TimeExhausted:
            raise LedgerTimeout(shipment_hash=shipment_hash)
        except (OSError, Web3Exception) as e:
            logger.error(f"Ledger submission failed for {shipment_hash}: {e}")
            raise LedgerUnavailable(str(e))

        if receipt["status"] != 1:
            raise LedgerRejected("Lock transaction reverted.",
                                 tx_ref=receipt["transactionHash"].to_0x_hex())

        return LockReceipt(
            shipment_hash=shipment_hash,
            tx_ref=receipt["transactionHash"].to_0x_hex(),
            block_ref=int(receipt["blockNumber"]),
        )

    def exists(self, shipment_hash):
        try:
            return bool(self.contract.functions.shipmentExists(shipment_hash).call())
        except (OSError, Web3Exception) as e:
            raise LedgerUnavailable(str(e))

    def get_record(self, shipment_hash) -> Optional[LedgerRecord]:
        try:
            supplier, batch_id, count, qty, created_at, status = (
                self.contract.functions.getShipment(shipment_hash).call())
        except ContractLogicError as e:
            if "does not exist" in str(e).lower():
                return None
            raise LedgerRejected(str(e))
        except (OSError, Web3Exception) as e:
            raise LedgerUnavailable(str(e))

        return LedgerRecord(
            shipment_hash=shipment_hash,
            owner=supplier.lower(),
            batch_id=batch_id,
            number_of_containers=int(count),
            quantity_per_container=int(qty),
            created_at=datetime.utcfromtimestamp(int(created_at)) if created_at else None,
            status=LEDGER_STATUS.get(int(status), "UNKNOWN"),
        )

    def get_lock_events(self, from_block, to_block) -> List[LockEvent]:
        try:
            logs = self.contract.events.ShipmentLocked.get_logs(
                from_block=from_block, to_block=to_block)
        except (OSError, Web3Exception) as e:
            raise LedgerUnavailable(str(e))

        return [
            LockEvent(
                shipment_hash=log["args"]["shipmentHash"],
                supplier=log["args"]["supplier"].lower(),
                batch_id=log["args"]["batchId"],
                number_of_containers=int(log["args"]["numberOfContainers"]),
                quantity_per_container=int(log["args"]["quantityPerContainer"]),
                timestamp=int(log["args"]["timestamp"]),
                tx_ref=log["transactionHash"].to_0x_hex(),
                block_ref=int(log["blockNumber"]),
            )
            for log in logs
        ]

    def current_block(self):
        try:
            return int(self.web3.eth.block_number)
        except (OSError, Web3Exception) as e:
            raise LedgerUnavailable(str(e))
