from functools import lru_cache

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session

from app.core.config import settings
from app.db.core import get_session
from app.db.schema import ActorRole
from app.ledger.base import LedgerClient
from app.models.actor import Actor
from app.utils.file_storage import BlobStore, LocalBlobStore

from app.services.actor import ActorService
from app.services.shipment import ShipmentService
from app.services.container import ContainerService
from app.services.scan import ScanService
from app.services.concern import ConcernService
from app.services.reconciler import ReconcilerService
from app.services.lock import LockService

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")


@lru_cache
def get_ledger() -> LedgerClient:
    """One ledger client per process, chosen by `ledger_backend`."""
    if settings.ledger_backend == "memory":
        from app.ledger.memory import InMemoryLedger
        return InMemoryLedger(chain_id=settings.ledger_chain_id)

    from app.ledger.web3_client import Web3LedgerClient
    return Web3LedgerClient(
        rpc_url=settings.ledger_rpc_url,
        contract_address=settings.ledger_contract_address,
        private_key=settings.ledger_private_key,
        chain_id=settings.ledger_chain_id,
        timeout_seconds=settings.ledger_timeout_seconds,
    )


@lru_cache
def get_blob_store() -> BlobStore:
    return LocalBlobStore()


def get_actor_service() -> ActorService:
    return ActorService()


def get_shipment_service(
    session: Session = Depends(get_session),
    blob_store: BlobStore = Depends(get_blob_store)
) -> ShipmentService:
    return ShipmentService(session=session, blob_store=blob_store)


def get_container_service(session: Session = Depends(get_session)) -> ContainerService:
    return ContainerService(session=session)


def get_scan_service(session: Session = Depends(get_session)) -> ScanService:
    return ScanService(session=session)


def get_concern_service(session: Session = Depends(get_session)) -> ConcernService:
    return ConcernService(session=session)


def get_reconciler_service(
    session: Session = Depends(get_session),
    ledger: LedgerClient = Depends(get_ledger)
) -> ReconcilerService:
    return ReconcilerService(session=session, ledger=ledger)


def get_lock_service(
    session: Session = Depends(get_session),
    ledger: LedgerClient = Depends(get_ledger)
) -> LockService:
    return LockService(session=session, ledger=ledger)


def get_current_actor(
    token: str = Depends(oauth2_scheme),
    service: ActorService = Depends(get_actor_service)
) -> Actor:
    """
    Validates the bearer token and returns the wallet and role it carries.
    This is the gatekeeper for protected routes.
    """
    actor = service.verify_access_token(token)
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor


def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.role != ActorRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required."
        )
    return actor
