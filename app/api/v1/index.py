from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, text
from loguru import logger

from app.core.config import settings
from app.core.dependencies import get_ledger
from app.core.errors import ShipmentError
from app.db.core import get_session
from app.ledger.base import LedgerClient

router = APIRouter()


@router.get("/", status_code=status.HTTP_200_OK)
def index():
    return {"status": "API is running", "service": settings.app_name}


@router.get(
    "/readiness",
    status_code=status.HTTP_200_OK,
    summary="Readiness Probe",
    description=(
        "503 when the shipment store is down. An unreachable ledger is reported "
        "but does not fail the probe: reads and scans keep working without it."
    )
)
def readiness_check(
    session: Session = Depends(get_session),
    ledger: LedgerClient = Depends(get_ledger)
):
    try:
        session.exec(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Shipment store readiness check failed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Shipment store not ready"
        )

    try:
        block = ledger.current_block()
        ledger_state = "online"
    except ShipmentError as e:
        logger.warning(f"Ledger not reachable during readiness check: {e}")
        block = None
        ledger_state = "unreachable"

    return {
        "status": "ready",
        "database": "online",
        "ledger": ledger_state,
        "ledger_backend": settings.ledger_backend,
        "current_block": block,
    }
