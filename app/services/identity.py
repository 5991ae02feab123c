"""
Identifier derivation for shipments and containers.

Identifiers combine a SHA-256 prefix over the business fields with a
millisecond timestamp and 32 bits from `secrets`, so two drafts for the same
batch and wallet never collide, even when created in the same millisecond.
"""
import hashlib
import re
import secrets
import time
from typing import Optional

from app.core.errors import InvalidInput

WALLET_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")


def is_valid_wallet(address: Optional[str]) -> bool:
    return bool(address) and bool(WALLET_PATTERN.match(address.strip()))


def normalize_wallet(address: Optional[str], field: str = "wallet_address") -> str:
    if not is_valid_wallet(address):
        raise InvalidInput(f"'{address}' is not a valid wallet address.", field=field)
    return address.strip().lower()


def _to_base36(value: int) -> str:
    digits = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


def _digest(*parts: str, length: int) -> str:
    joined = "|".join(parts).encode("utf-8")
    return hashlib.sha256(joined).hexdigest()[:length].upper()


def derive_shipment_id(batch_id: str, wallet_address: str, timestamp: Optional[int] = None) -> str:
    """
    Derives a shipment hash from the batch, the supplier wallet and a
    millisecond timestamp (defaults to now).
    Example: 'SHP-9F3A21C4-MF0Q2K1Z-1A2B3C4D'
    """
    if not batch_id or not batch_id.strip():
        raise InvalidInput("Batch ID is required.", field="batch_id")
    wallet = normalize_wallet(wallet_address)
    ts = int(timestamp if timestamp is not None else time.time() * 1000)

    digest = _digest(batch_id.strip(), wallet, str(ts), length=8)
    salt = secrets.token_hex(4).upper()
    return f"SHP-{digest}-{_to_base36(ts)}-{salt}"


def derive_container_id(shipment_hash: str, sequence_salt: int) -> str:
    """
    Derives a container id bound to its shipment and sequence number.
    Example: 'CNT-4E1F0A-001-9C8B7A6D'
    """
    if not shipment_hash or not shipment_hash.strip():
        raise InvalidInput("Shipment hash is required.", field="shipment_hash")
    if sequence_salt < 1:
        raise InvalidInput("Container sequence must be at least 1.", field="sequence_salt")

    digest = _digest(shipment_hash.strip(), str(sequence_salt), length=6)
    salt = secrets.token_hex(4).upper()
    return f"CNT-{digest}-{sequence_salt:03d}-{salt}"
