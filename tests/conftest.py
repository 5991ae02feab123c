"""
Shared fixtures: an in-memory store, an in-memory ledger, actors and an API
client wired to both through dependency overrides.
"""
import os
import tempfile

# Settings are read at import time
os.environ["SECRET_KEY"] = "test-secret-key-for-sentinel-shipments-0001"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LEDGER_BACKEND"] = "memory"
os.environ["STATIC_DIR"] = tempfile.mkdtemp(prefix="sentinel-static-")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.core.dependencies import get_blob_store, get_ledger
from app.db import schema  # noqa: F401
from app.db.core import get_session
from app.ledger.memory import InMemoryLedger
from app.main import app
from app.models.actor import Actor
from app.services.actor import ActorService
from app.services.lock import LockService
from app.services.shipment import ShipmentService
from app.utils.file_storage import LocalBlobStore
from tests.factories import SUPPLIER, draft_payload


# ====================
# Store & ledger
# ====================


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def file_engine(tmp_path):
    """A file-backed store that threads and background workers can share."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'shipments.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def ledger():
    return InMemoryLedger()


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(root=tmp_path / "documents", public_url="http://testserver")


# ====================
# Domain helpers
# ====================


@pytest.fixture
def draft(session):
    """A fully assigned SHP-A1 draft with three containers."""
    return ShipmentService(session).create_draft(SUPPLIER, draft_payload())


@pytest.fixture
def locked(session, ledger, draft):
    """The SHP-A1 draft after a successful lock."""
    LockService(session, ledger).lock_shipment(SUPPLIER, draft.shipment_hash)
    return ShipmentService(session).get_shipment(draft.shipment_hash)


# ====================
# HTTP Client
# ====================


@pytest.fixture
def client(session, ledger, blob_store):
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_blob_store] = lambda: blob_store

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    """Returns bearer headers for an actor: auth(SUPPLIER)."""
    service = ActorService()

    def _headers(actor: Actor):
        token = service.create_access_token(actor.wallet, actor.role)
        return {"Authorization": f"Bearer {token}"}

    return _headers
