"""
Helpers shared by the API route modules.
"""

from typing import Optional
from uuid import UUID

from fastapi import Header
from fastapi.responses import JSONResponse
import structlog

from models.idempotency import IdempotentOutcome
from exceptions import AppError, InvalidUUIDError

logger = structlog.get_logger(__name__)

REPLAYED_HEADER = "Idempotency-Replayed"


def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


def validate_uuid(value: str, field: str = "id") -> str:
    """
    Raises:
        InvalidUUIDError: value is not a UUID
    """
    try:
        UUID(value)
    except (ValueError, TypeError, AttributeError):
        raise InvalidUUIDError(field, str(value))
    return value


def idempotency_key(
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    x_idempotency_key: Optional[str] = Header(None, alias="X-Idempotency-Key")
) -> Optional[str]:
    """Idempotency-Key header, falling back to X-Idempotency-Key."""
    key = (idempotency_key or x_idempotency_key or "").strip()
    return key or None


def outcome_response(outcome: IdempotentOutcome) -> JSONResponse:
    """JSON response for an idempotent execution, flagging replays."""
    headers = {REPLAYED_HEADER: "true"} if outcome.replayed else None
    return JSONResponse(
        status_code=outcome.status_code,
        content=outcome.body,
        headers=headers
    )
