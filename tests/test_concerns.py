import pytest

from app.core.errors import (
    InvalidInput, InvalidTransition, MissingResolution, RoleNotPermitted, ShipmentNotLocked
)
from app.db.schema import ConcernStatus, ConcernType, ConcernSeverity, ShipmentStatus
from app.models.concern import ConcernCreate
from app.services.concern import ConcernService
from app.services.shipment import ShipmentService
from tests.factories import SUPPLIER, OTHER_SUPPLIER, TRANSPORTER, WAREHOUSE, ADMIN


def raise_one(session, shipment_hash, actor=TRANSPORTER, **kwargs):
    data = ConcernCreate(description=kwargs.pop("description", "Pallet crushed"), **kwargs)
    return ConcernService(session).raise_concern(actor, shipment_hash, data)


def test_raise_concern(session, locked):
    concern = raise_one(session, locked.shipment_hash, type=ConcernType.DAMAGE,
                        severity=ConcernSeverity.HIGH)

    assert concern.status == ConcernStatus.OPEN
    assert concern.raised_by == TRANSPORTER.wallet
    assert concern.concern_id.startswith("CNC-")
    assert ShipmentService(session).get_shipment(locked.shipment_hash).open_concerns == 1


def test_draft_shipments_take_no_concerns(session, draft):
    with pytest.raises(ShipmentNotLocked):
        raise_one(session, draft.shipment_hash)


def test_container_must_belong_to_shipment(session, locked):
    with pytest.raises(InvalidInput):
        raise_one(session, locked.shipment_hash, container_id="CNT-000000-001-00000000")


def test_acknowledge_then_resolve(session, locked):
    service = ConcernService(session)
    concern = raise_one(session, locked.shipment_hash)

    acknowledged = service.acknowledge_concern(SUPPLIER, concern.concern_id)
    assert acknowledged.status == ConcernStatus.ACKNOWLEDGED
    assert acknowledged.acknowledged_by == SUPPLIER.wallet

    resolved = service.resolve_concern(SUPPLIER, concern.concern_id, "Re-packed at hub")
    assert resolved.status == ConcernStatus.RESOLVED
    assert resolved.resolution == "Re-packed at hub"


@pytest.mark.parametrize("resolution", [None, "", "   "])
def test_resolution_is_mandatory(session, locked, resolution):
    service = ConcernService(session)
    concern = raise_one(session, locked.shipment_hash)
    service.acknowledge_concern(SUPPLIER, concern.concern_id)

    with pytest.raises(MissingResolution):
        service.resolve_concern(SUPPLIER, concern.concern_id, resolution)


def test_open_concern_cannot_skip_acknowledgement(session, locked):
    concern = raise_one(session, locked.shipment_hash)

    with pytest.raises(InvalidTransition):
        ConcernService(session).resolve_concern(SUPPLIER, concern.concern_id, "Fixed")


def test_resolved_concern_cannot_be_acknowledged(session, locked):
    service = ConcernService(session)
    concern = raise_one(session, locked.shipment_hash)
    service.acknowledge_concern(SUPPLIER, concern.concern_id)
    service.resolve_concern(SUPPLIER, concern.concern_id, "Fixed")

    with pytest.raises(InvalidTransition):
        service.acknowledge_concern(SUPPLIER, concern.concern_id)


@pytest.mark.parametrize("actor", [TRANSPORTER, OTHER_SUPPLIER])
def test_only_supplier_or_admin_acknowledges(session, locked, actor):
    concern = raise_one(session, locked.shipment_hash)

    with pytest.raises(RoleNotPermitted):
        ConcernService(session).acknowledge_concern(actor, concern.concern_id)

    assert ConcernService(session).acknowledge_concern(ADMIN, concern.concern_id).status == \
        ConcernStatus.ACKNOWLEDGED


def test_escalation_from_open_and_acknowledged(session, locked):
    service = ConcernService(session)
    open_one = raise_one(session, locked.shipment_hash)
    acked = raise_one(session, locked.shipment_hash, actor=WAREHOUSE)
    service.acknowledge_concern(SUPPLIER, acked.concern_id)

    # The reporter may escalate their own concern
    first = service.escalate_concern(TRANSPORTER, open_one.concern_id, "No response in 24h")
    second = service.escalate_concern(SUPPLIER, acked.concern_id)

    assert first.status == ConcernStatus.ESCALATED
    assert first.escalation_note == "No response in 24h"
    assert second.status == ConcernStatus.ESCALATED

    with pytest.raises(InvalidTransition):
        service.escalate_concern(SUPPLIER, acked.concern_id)


def test_parked_shipment_restored_when_concerns_close(session, locked):
    service = ConcernService(session)
    concern = raise_one(session, locked.shipment_hash)

    parked = ShipmentService(session).update_status(
        SUPPLIER, locked.shipment_hash, ShipmentStatus.CONCERN_RAISED)
    assert parked.status == ShipmentStatus.CONCERN_RAISED

    service.acknowledge_concern(SUPPLIER, concern.concern_id)
    service.resolve_concern(SUPPLIER, concern.concern_id, "Insurance claim filed")

    restored = ShipmentService(session).get_shipment(locked.shipment_hash)
    assert restored.status == ShipmentStatus.READY_FOR_DISPATCH


def test_listing(session, locked):
    service = ConcernService(session)
    first = raise_one(session, locked.shipment_hash)
    raise_one(session, locked.shipment_hash, actor=WAREHOUSE)
    service.acknowledge_concern(SUPPLIER, first.concern_id)
    service.resolve_concern(SUPPLIER, first.concern_id, "Done")

    assert len(service.list_concerns(locked.shipment_hash)) == 2
    assert len(service.list_concerns(locked.shipment_hash, ConcernStatus.OPEN)) == 1
    assert len(service.list_open_for_supplier(SUPPLIER.wallet)) == 1
    assert service.list_open_for_supplier(OTHER_SUPPLIER.wallet) == []
