import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from app.core.errors import (
    InvalidInput, InvalidTransition, RoleNotPermitted, ShipmentNotLocked
)
from app.db.schema import Container, ContainerStatus, Shipment, ShipmentStatus, ActorRole
from app.models.concern import ConcernCreate
from app.models.shipment import AssignmentIn, AssignmentUpdate
from app.services.concern import ConcernService
from app.services.shipment import ShipmentService
from tests.factories import (
    SUPPLIER, OTHER_SUPPLIER, TRANSPORTER, WAREHOUSE, RETAILER, ADMIN,
    SUPPLIER_WALLET, TRANSPORTER_WALLET, draft_payload
)

PDF = b"%PDF-1.4\n% bill of lading\n"


def move_containers(session, shipment_hash, status):
    for container in session.exec(
            select(Container).where(Container.shipment_hash == shipment_hash)).all():
        container.status = status
        session.add(container)
    session.commit()


# --- Drafts ---

def test_create_draft(session):
    shipment = ShipmentService(session).create_draft(SUPPLIER, draft_payload())

    assert shipment.shipment_hash.startswith("SHP-")
    assert shipment.status == ShipmentStatus.CREATED
    assert shipment.total_quantity == 120
    assert shipment.supplier_wallet == SUPPLIER_WALLET
    assert shipment.assigned_transporter.wallet_address == TRANSPORTER_WALLET
    assert shipment.ledger_tx_ref is None


def test_same_batch_gets_distinct_hashes(session):
    service = ShipmentService(session)
    first = service.create_draft(SUPPLIER, draft_payload())
    second = service.create_draft(SUPPLIER, draft_payload())
    assert first.shipment_hash != second.shipment_hash


@pytest.mark.parametrize("actor", [TRANSPORTER, RETAILER, ADMIN])
def test_only_suppliers_create_drafts(session, actor):
    with pytest.raises(RoleNotPermitted):
        ShipmentService(session).create_draft(actor, draft_payload())


def test_assignment_wallet_is_validated(session):
    data = draft_payload(assigned=False)
    data.transporter = AssignmentIn(wallet_address="not-a-wallet")

    with pytest.raises(InvalidInput):
        ShipmentService(session).create_draft(SUPPLIER, data)


def test_assignments_editable_until_locked(session, ledger):
    service = ShipmentService(session)
    draft = service.create_draft(SUPPLIER, draft_payload(assigned=False))

    updated = service.update_assignments(SUPPLIER, draft.shipment_hash, AssignmentUpdate(
        transporter=AssignmentIn(wallet_address=TRANSPORTER_WALLET.upper().replace("0X", "0x"))))
    assert updated.assigned_transporter.wallet_address == TRANSPORTER_WALLET
    assert updated.assigned_warehouse is None

    with pytest.raises(RoleNotPermitted):
        service.update_assignments(OTHER_SUPPLIER, draft.shipment_hash, AssignmentUpdate())


def test_assignments_frozen_after_lock(session, locked):
    with pytest.raises(InvalidTransition):
        ShipmentService(session).update_assignments(
            SUPPLIER, locked.shipment_hash,
            AssignmentUpdate(warehouse=AssignmentIn(wallet_address=TRANSPORTER_WALLET)))


# --- Status override ---

def test_ready_for_dispatch_only_by_locking(session, draft):
    with pytest.raises(InvalidTransition):
        ShipmentService(session).update_status(
            SUPPLIER, draft.shipment_hash, ShipmentStatus.READY_FOR_DISPATCH)


def test_override_requires_lock(session, draft):
    with pytest.raises(ShipmentNotLocked):
        ShipmentService(session).update_status(
            SUPPLIER, draft.shipment_hash, ShipmentStatus.IN_TRANSIT)


def test_override_requires_every_container(session, locked):
    with pytest.raises(InvalidTransition) as exc:
        ShipmentService(session).update_status(
            SUPPLIER, locked.shipment_hash, ShipmentStatus.IN_TRANSIT)
    assert sorted(exc.value.context["lagging_containers"]) == [1, 2, 3]


def test_override_forward_only(session, locked):
    service = ShipmentService(session)
    move_containers(session, locked.shipment_hash, ContainerStatus.IN_TRANSIT)

    moved = service.update_status(ADMIN, locked.shipment_hash, ShipmentStatus.IN_TRANSIT)
    assert moved.status == ShipmentStatus.IN_TRANSIT

    with pytest.raises(InvalidTransition):
        service.update_status(ADMIN, locked.shipment_hash, ShipmentStatus.IN_TRANSIT)


def test_override_restricted_to_owner(session, locked):
    with pytest.raises(RoleNotPermitted):
        ShipmentService(session).update_status(
            TRANSPORTER, locked.shipment_hash, ShipmentStatus.IN_TRANSIT)


def test_parking_requires_open_concern(session, locked):
    with pytest.raises(InvalidTransition):
        ShipmentService(session).update_status(
            SUPPLIER, locked.shipment_hash, ShipmentStatus.CONCERN_RAISED)


def test_override_while_parked_moves_the_saved_status(session, locked):
    service = ShipmentService(session)
    ConcernService(session).raise_concern(
        WAREHOUSE, locked.shipment_hash, ConcernCreate(description="Seal number mismatch"))
    service.update_status(SUPPLIER, locked.shipment_hash, ShipmentStatus.CONCERN_RAISED)

    with pytest.raises(InvalidTransition):
        service.update_status(SUPPLIER, locked.shipment_hash, ShipmentStatus.CONCERN_RAISED)

    move_containers(session, locked.shipment_hash, ContainerStatus.IN_TRANSIT)
    service.update_status(SUPPLIER, locked.shipment_hash, ShipmentStatus.IN_TRANSIT)

    row = session.exec(
        select(Shipment).where(Shipment.shipment_hash == locked.shipment_hash)).one()
    assert row.status == ShipmentStatus.CONCERN_RAISED
    assert row.status_before_concern == ShipmentStatus.IN_TRANSIT


# --- Listing ---

def test_list_by_role(session):
    service = ShipmentService(session)
    service.create_draft(SUPPLIER, draft_payload(batch_id="B-1"))
    service.create_draft(SUPPLIER, draft_payload(batch_id="B-2", assigned=False))
    service.create_draft(OTHER_SUPPLIER, draft_payload(batch_id="B-3"))

    own = service.list_shipments(role=ActorRole.SUPPLIER, wallet=SUPPLIER_WALLET)
    assert own.pagination.total == 2
    assert {s.batch_id for s in own.data} == {"B-1", "B-2"}

    assigned = service.list_shipments(role=ActorRole.TRANSPORTER, wallet=TRANSPORTER_WALLET)
    assert {s.batch_id for s in assigned.data} == {"B-1", "B-3"}

    # Nothing has reached a warehouse yet
    assert service.list_shipments(role=ActorRole.RETAILER).pagination.total == 0
    assert service.list_shipments().pagination.total == 3


def test_list_pagination(session):
    service = ShipmentService(session)
    for i in range(5):
        service.create_draft(SUPPLIER, draft_payload(batch_id=f"P-{i}"))

    first = service.list_shipments(page=1, limit=2)
    last = service.list_shipments(page=3, limit=2)

    assert first.pagination.total == 5
    assert first.pagination.total_pages == 3
    assert len(first.data) == 2
    assert len(last.data) == 1

    with pytest.raises(InvalidInput):
        service.list_shipments(limit=101)
    with pytest.raises(InvalidInput):
        service.list_shipments(page=0)


def test_summary(session, locked):
    service = ShipmentService(session)
    service.create_draft(SUPPLIER, draft_payload(batch_id="B-2", containers=2, quantity=10))
    service.create_draft(OTHER_SUPPLIER, draft_payload(batch_id="B-3"))

    summary = service.summary(role=ActorRole.SUPPLIER, wallet=SUPPLIER_WALLET)
    assert summary.total_shipments == 2
    assert summary.total_containers == 5
    assert summary.total_quantity == 140
    assert summary.by_status["READY_FOR_DISPATCH"] == 1
    assert summary.by_status["CREATED"] == 1


# --- Documents ---

def test_attach_and_remove_document(session, draft, blob_store):
    service = ShipmentService(session, blob_store)
    document = service.attach_document(
        TRANSPORTER, draft.shipment_hash, "bol.pdf", PDF, "application/pdf")

    stored = blob_store.root / document.url.rsplit("/", 1)[1]
    assert document.url.startswith("http://testserver/static/documents/")
    assert document.size_bytes == len(PDF)
    assert stored.read_bytes() == PDF
    assert len(service.get_shipment(draft.shipment_hash).supporting_documents) == 1

    # Neither uploader nor owner
    with pytest.raises(RoleNotPermitted):
        service.remove_document(WAREHOUSE, draft.shipment_hash, document.id)

    service.remove_document(SUPPLIER, draft.shipment_hash, document.id)
    assert not stored.exists()
    assert service.list_documents(draft.shipment_hash) == []


def failing_commit():
    raise OperationalError("COMMIT", {}, Exception("disk I/O error"))


def test_attach_discards_blob_when_row_is_not_recorded(session, draft, blob_store, monkeypatch):
    service = ShipmentService(session, blob_store)
    monkeypatch.setattr(session, "commit", failing_commit)

    with pytest.raises(OperationalError):
        service.attach_document(
            TRANSPORTER, draft.shipment_hash, "bol.pdf", PDF, "application/pdf")

    monkeypatch.undo()
    assert list(blob_store.root.iterdir()) == []
    assert service.list_documents(draft.shipment_hash) == []


def test_remove_keeps_blob_when_row_is_not_deleted(session, draft, blob_store, monkeypatch):
    service = ShipmentService(session, blob_store)
    document = service.attach_document(
        TRANSPORTER, draft.shipment_hash, "bol.pdf", PDF, "application/pdf")
    stored = blob_store.root / document.url.rsplit("/", 1)[1]

    monkeypatch.setattr(session, "commit", failing_commit)
    with pytest.raises(OperationalError):
        service.remove_document(SUPPLIER, draft.shipment_hash, document.id)

    monkeypatch.undo()
    session.rollback()
    assert stored.read_bytes() == PDF
    assert [d.id for d in service.list_documents(draft.shipment_hash)] == [document.id]


def test_document_rules(session, draft, blob_store):
    service = ShipmentService(session, blob_store)

    with pytest.raises(RoleNotPermitted):
        service.attach_document(
            OTHER_SUPPLIER, draft.shipment_hash, "bol.pdf", PDF, "application/pdf")
    with pytest.raises(InvalidInput):
        service.attach_document(
            SUPPLIER, draft.shipment_hash, "run.sh", b"#!/bin/sh", "application/x-sh")
    with pytest.raises(InvalidInput):
        service.attach_document(
            SUPPLIER, draft.shipment_hash, "empty.pdf", b"", "application/pdf")
