import pytest
from sqlmodel import select

from app.db.schema import (
    ActorRole, Container, ContainerStatus, RejectionReason, ScanLog, ScanResult, ShipmentStatus
)
from app.services.scan import ScanService, check_transition, Rejection
from app.services.shipment import ShipmentService
from tests.factories import (
    SUPPLIER, TRANSPORTER, WAREHOUSE, RETAILER, TRANSPORTER_WALLET, WAREHOUSE_WALLET,
    RETAILER_WALLET, SUPPLIER_WALLET, draft_payload
)


def container_ids(session, shipment_hash):
    return [c.container_id for c in session.exec(
        select(Container).where(Container.shipment_hash == shipment_hash)
        .order_by(Container.container_number)
    ).all()]


def scan(session, container_id, actor, location="Dock 4"):
    return ScanService(session).verify_scan(container_id, actor.role, actor.wallet, location)


def shipment_status(session, shipment_hash):
    return ShipmentService(session).get_shipment(shipment_hash).status


def test_shp_a1_scenario(session, locked):
    ids = container_ids(session, locked.shipment_hash)
    assert locked.status == ShipmentStatus.READY_FOR_DISPATCH
    assert len(ids) == 3

    first = scan(session, ids[0], TRANSPORTER)
    second = scan(session, ids[1], TRANSPORTER)
    assert first.result == ScanResult.VERIFIED
    assert second.container.status == ContainerStatus.IN_TRANSIT
    assert not second.shipment_status_changed
    assert shipment_status(session, locked.shipment_hash) == ShipmentStatus.READY_FOR_DISPATCH

    third = scan(session, ids[2], TRANSPORTER)
    assert third.shipment_status_changed
    assert third.shipment.status == ShipmentStatus.IN_TRANSIT

    # Warehouse follows transit
    at_warehouse = scan(session, ids[0], WAREHOUSE)
    assert at_warehouse.result == ScanResult.VERIFIED
    assert at_warehouse.container.status == ContainerStatus.AT_WAREHOUSE
    assert at_warehouse.shipment.status == ShipmentStatus.IN_TRANSIT

    # A retailer cannot take over the warehouse step
    refused = scan(session, ids[1], RETAILER)
    assert refused.result == ScanResult.REJECTED
    assert refused.reason == RejectionReason.ROLE_NOT_PERMITTED


def test_full_journey_to_delivery_closes_the_shipment(session, locked):
    ids = container_ids(session, locked.shipment_hash)
    for actor in (TRANSPORTER, WAREHOUSE, RETAILER):
        for container_id in ids:
            assert scan(session, container_id, actor).result == ScanResult.VERIFIED

    assert shipment_status(session, locked.shipment_hash) == ShipmentStatus.DELIVERED

    closed = scan(session, ids[0], RETAILER)
    assert closed.reason == RejectionReason.SHIPMENT_CLOSED


def test_container_status_never_goes_backward(session, locked):
    container_id = container_ids(session, locked.shipment_hash)[0]
    scan(session, container_id, TRANSPORTER)
    scan(session, container_id, WAREHOUSE)

    again = scan(session, container_id, TRANSPORTER)
    assert again.result == ScanResult.REJECTED
    assert again.reason == RejectionReason.INVALID_TRANSITION
    assert again.previous_container_status == ContainerStatus.AT_WAREHOUSE

    row = session.exec(select(Container).where(Container.container_id == container_id)).one()
    assert row.status == ContainerStatus.AT_WAREHOUSE


def test_last_scan_recorded(session, locked):
    container_id = container_ids(session, locked.shipment_hash)[0]
    result = scan(session, container_id, TRANSPORTER, location="  Port of Rotterdam ")

    assert result.container.last_scan.location == "Port of Rotterdam"
    assert result.container.last_scan.actor_wallet == TRANSPORTER_WALLET
    assert result.container.last_scan.actor_role == ActorRole.TRANSPORTER


@pytest.mark.parametrize("payload,reason", [
    ("", RejectionReason.INVALID_QR_FORMAT),
    ("{\"containerId\": \"x\"}", RejectionReason.INVALID_QR_FORMAT),
    ("CNT-000000-001-DEADBEEF", RejectionReason.UNKNOWN_CONTAINER),
])
def test_bad_payloads_rejected_and_logged(session, locked, payload, reason):
    result = ScanService(session).verify_scan(
        payload, ActorRole.TRANSPORTER, TRANSPORTER_WALLET)

    assert result.result == ScanResult.REJECTED
    assert result.reason == reason

    log = session.exec(select(ScanLog).where(ScanLog.scan_id == result.scan_id)).one()
    assert log.rejection_reason == reason


def test_unlocked_shipment_cannot_be_scanned(session):
    from app.services.provenance import build_containers

    draft = ShipmentService(session).create_draft(SUPPLIER, draft_payload(batch_id="DRAFT-1"))
    containers = build_containers(draft.shipment_hash, 3, 40)
    for c in containers:
        session.add(c)
    session.commit()

    result = scan(session, containers[0].container_id, TRANSPORTER)
    assert result.reason == RejectionReason.SHIPMENT_NOT_LOCKED


def test_supplier_cannot_scan(session, locked):
    container_id = container_ids(session, locked.shipment_hash)[0]
    result = ScanService(session).verify_scan(
        container_id, ActorRole.SUPPLIER, SUPPLIER_WALLET)
    assert result.reason == RejectionReason.ROLE_NOT_PERMITTED


def test_every_scan_is_logged(session, locked):
    ids = container_ids(session, locked.shipment_hash)
    scan(session, ids[0], TRANSPORTER)
    scan(session, ids[0], TRANSPORTER)
    scan(session, ids[1], WAREHOUSE)

    history = ScanService(session).scan_history(locked.shipment_hash)
    assert [h.result for h in history] == [
        ScanResult.VERIFIED, ScanResult.REJECTED, ScanResult.REJECTED]
    assert history[0].previous_status == ContainerStatus.LOCKED
    assert history[0].new_status == ContainerStatus.IN_TRANSIT

    assert len(ScanService(session).container_history(ids[0])) == 2


def test_concerns_do_not_block_progress_by_default(session, locked):
    from app.models.concern import ConcernCreate
    from app.services.concern import ConcernService

    ConcernService(session).raise_concern(
        TRANSPORTER, locked.shipment_hash, ConcernCreate(description="Seal scratched"))

    ids = container_ids(session, locked.shipment_hash)
    for actor in (TRANSPORTER, WAREHOUSE):
        for container_id in ids:
            scan(session, container_id, actor)

    assert shipment_status(session, locked.shipment_hash) == ShipmentStatus.AT_WAREHOUSE


def test_policy_flag_withholds_warehouse_arrival(session, locked, monkeypatch):
    from app.models.concern import ConcernCreate
    from app.services.concern import ConcernService

    monkeypatch.setattr("app.services.scan.settings.concerns_block_progress", True)
    ConcernService(session).raise_concern(
        WAREHOUSE, locked.shipment_hash, ConcernCreate(description="Temperature log gap"))

    ids = container_ids(session, locked.shipment_hash)
    for actor in (TRANSPORTER, WAREHOUSE):
        for container_id in ids:
            assert scan(session, container_id, actor).result == ScanResult.VERIFIED

    assert shipment_status(session, locked.shipment_hash) == ShipmentStatus.IN_TRANSIT


@pytest.mark.parametrize("role,current,expected", [
    (ActorRole.TRANSPORTER, ContainerStatus.CREATED, ContainerStatus.IN_TRANSIT),
    (ActorRole.TRANSPORTER, ContainerStatus.LOCKED, ContainerStatus.IN_TRANSIT),
    (ActorRole.WAREHOUSE, ContainerStatus.IN_TRANSIT, ContainerStatus.AT_WAREHOUSE),
    (ActorRole.WAREHOUSE, ContainerStatus.AT_WAREHOUSE, ContainerStatus.DELIVERED),
    (ActorRole.RETAILER, ContainerStatus.AT_WAREHOUSE, ContainerStatus.DELIVERED),
])
def test_allowed_transitions(role, current, expected):
    assert check_transition(role, current) == expected


@pytest.mark.parametrize("role,current,reason", [
    (ActorRole.WAREHOUSE, ContainerStatus.LOCKED, RejectionReason.ROLE_NOT_PERMITTED),
    (ActorRole.RETAILER, ContainerStatus.IN_TRANSIT, RejectionReason.ROLE_NOT_PERMITTED),
    (ActorRole.ADMIN, ContainerStatus.LOCKED, RejectionReason.ROLE_NOT_PERMITTED),
    (ActorRole.TRANSPORTER, ContainerStatus.IN_TRANSIT, RejectionReason.INVALID_TRANSITION),
    (ActorRole.WAREHOUSE, ContainerStatus.DELIVERED, RejectionReason.INVALID_TRANSITION),
])
def test_refused_transitions(role, current, reason):
    with pytest.raises(Rejection) as exc:
        check_transition(role, current)
    assert exc.value.reason == reason
