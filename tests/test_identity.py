import re

import pytest

from app.core.errors import InvalidInput
from app.services.identity import (
    derive_shipment_id, derive_container_id, is_valid_wallet, normalize_wallet
)
from tests.factories import SUPPLIER_WALLET

SHIPMENT_ID = re.compile(r"^SHP-[0-9A-F]{8}-[0-9A-Z]+-[0-9A-F]{8}$")
CONTAINER_ID = re.compile(r"^CNT-[0-9A-F]{6}-\d{3,}-[0-9A-F]{8}$")


def test_shipment_id_format():
    shipment_id = derive_shipment_id("BATCH-2026-044", SUPPLIER_WALLET, 1_760_000_000_000)
    assert SHIPMENT_ID.match(shipment_id)


def test_same_inputs_same_millisecond_never_collide():
    ids = {derive_shipment_id("BATCH-1", SUPPLIER_WALLET, 1_760_000_000_000) for _ in range(200)}
    assert len(ids) == 200


def test_shipment_id_digest_depends_on_business_fields():
    a = derive_shipment_id("BATCH-1", SUPPLIER_WALLET, 1_760_000_000_000)
    b = derive_shipment_id("BATCH-2", SUPPLIER_WALLET, 1_760_000_000_000)
    assert a.split("-")[1] != b.split("-")[1]


def test_wallet_case_does_not_change_digest():
    a = derive_shipment_id("BATCH-1", SUPPLIER_WALLET.upper().replace("0X", "0x"), 5)
    b = derive_shipment_id("BATCH-1", SUPPLIER_WALLET, 5)
    assert a.split("-")[1] == b.split("-")[1]


@pytest.mark.parametrize("batch_id", ["", "   ", None])
def test_empty_batch_rejected(batch_id):
    with pytest.raises(InvalidInput):
        derive_shipment_id(batch_id, SUPPLIER_WALLET)


@pytest.mark.parametrize("wallet", ["", "0x123", "not-a-wallet", "0x" + "g" * 40, None])
def test_malformed_wallet_rejected(wallet):
    with pytest.raises(InvalidInput):
        derive_shipment_id("BATCH-1", wallet)


def test_container_id_format_and_uniqueness():
    ids = [derive_container_id("SHP-ABCDEF01-XYZ-00000000", n) for n in range(1, 51)]
    assert all(CONTAINER_ID.match(i) for i in ids)
    assert len(set(ids)) == 50
    assert ids[6].split("-")[2] == "007"


def test_container_id_rejects_bad_input():
    with pytest.raises(InvalidInput):
        derive_container_id("", 1)
    with pytest.raises(InvalidInput):
        derive_container_id("SHP-1", 0)


def test_wallet_helpers():
    assert is_valid_wallet("  " + SUPPLIER_WALLET + " ")
    assert not is_valid_wallet(None)
    assert normalize_wallet("0x" + "AB" * 20) == "0x" + "ab" * 20
