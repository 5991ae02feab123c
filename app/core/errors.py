"""
Domain errors raised by the services.

Every error is an HTTPException so routers can let them propagate untouched.
The `detail` payload always carries a machine-readable `code` next to the
human message, e.g. {"code": "DUPLICATE_LOCK", "message": "..."}.
"""
from typing import Optional
from fastapi import HTTPException, status


class ShipmentError(HTTPException):
    """Base class for every error surfaced by the shipment core."""
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "SHIPMENT_ERROR"
    default_message: str = "Shipment operation failed."
    retryable: bool = False

    def __init__(self, message: Optional[str] = None, **context):
        self.message = message or self.default_message
        self.context = context
        detail = {"code": self.code, "message": self.message}
        if context:
            detail["context"] = context
        super().__init__(status_code=self.status_code, detail=detail)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


# ---------------------------------------------------------------------------
# Validation errors (never retried automatically)
# ---------------------------------------------------------------------------

class InvalidInput(ShipmentError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_INPUT"
    default_message = "Malformed input."


class InvalidContainerSpec(ShipmentError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_CONTAINER_SPEC"
    default_message = "Container count and quantity per container must both be at least 1."


class IncompleteAssignment(ShipmentError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INCOMPLETE_ASSIGNMENT"
    default_message = "Shipment must be in CREATED status with a transporter and a warehouse assigned."


class MissingResolution(ShipmentError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "MISSING_RESOLUTION"
    default_message = "A resolution is required to resolve a concern."


class NotFound(ShipmentError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_message = "Resource not found."


# ---------------------------------------------------------------------------
# Conflict errors (caller should re-fetch state, not retry)
# ---------------------------------------------------------------------------

class DuplicateLock(ShipmentError):
    status_code = status.HTTP_409_CONFLICT
    code = "DUPLICATE_LOCK"
    default_message = "This shipment is already locked on the ledger."


class ContainerSetExists(ShipmentError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONTAINER_SET_EXISTS"
    default_message = "Containers already exist for this shipment."


# ---------------------------------------------------------------------------
# Transition errors (no state mutation happened)
# ---------------------------------------------------------------------------

class UnknownContainer(ShipmentError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "UNKNOWN_CONTAINER"
    default_message = "The scanned QR does not match any container."


class ShipmentClosed(ShipmentError):
    status_code = status.HTTP_409_CONFLICT
    code = "SHIPMENT_CLOSED"
    default_message = "The shipment is closed and cannot be scanned."


class ShipmentNotLocked(ShipmentError):
    status_code = status.HTTP_409_CONFLICT
    code = "SHIPMENT_NOT_LOCKED"
    default_message = "The shipment has not been locked on the ledger yet."


class InvalidTransition(ShipmentError):
    status_code = status.HTTP_409_CONFLICT
    code = "INVALID_TRANSITION"
    default_message = "The requested status transition is not allowed."


class RoleNotPermitted(ShipmentError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "ROLE_NOT_PERMITTED"
    default_message = "Your role is not permitted to perform this action."


# ---------------------------------------------------------------------------
# Ledger outcomes
# ---------------------------------------------------------------------------

class SignerRejected(ShipmentError):
    """The wallet holder declined to sign. A cancellation, not a fault."""
    status_code = status.HTTP_409_CONFLICT
    code = "SIGNER_REJECTED"
    default_message = "The lock transaction was declined by the signer."


class LedgerRejected(ShipmentError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "LEDGER_REJECTED"
    default_message = "The ledger rejected the lock transaction."


class LedgerTimeout(ShipmentError):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    code = "LEDGER_TIMEOUT"
    default_message = "Timed out waiting for the ledger to confirm the transaction."
    retryable = True


class LedgerUnavailable(ShipmentError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "LEDGER_UNAVAILABLE"
    default_message = "The ledger endpoint is not reachable."
    retryable = True


class StoreUnavailable(ShipmentError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "STORE_UNAVAILABLE"
    default_message = "The shipment store is temporarily unavailable."
    retryable = True
