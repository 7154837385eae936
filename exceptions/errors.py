"""
Custom exception classes for the application.

Every error that can reach an API caller derives from AppError and
renders to the standard error body via to_dict().
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "SNAPSHOT_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Invalid input (400)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=400,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource or request (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External platform failure (502)."""

    def __init__(
        self,
        service: str,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.service = service
        super().__init__(
            code=code or f"{service.upper()}_ERROR",
            message=message,
            status_code=502,
            details={"service": service, **(details or {})}
        )


class ConfigurationError(AppError):
    """Integration is not configured (500)."""

    def __init__(self, service: str, message: str):
        super().__init__(
            code=f"{service.upper()}_NOT_CONFIGURED",
            message=message,
            status_code=500,
            details={"service": service}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# INPUT ERRORS
# ===================

class InvalidUUIDError(ValidationError):
    """Path or body identifier is not a UUID."""

    def __init__(self, field: str, value: str):
        super().__init__(
            code="INVALID_ID",
            message=f"Invalid {field} format",
            details={"field": field, "provided": value}
        )


# ===================
# NOT FOUND ERRORS
# ===================

class CatalogProductNotFoundError(NotFoundError):
    """Imported Shopify product not found."""

    def __init__(self, product_id: str):
        super().__init__(
            resource="Product",
            identifier=product_id,
            code="PRODUCT_NOT_FOUND"
        )


class InventoryItemNotFoundError(NotFoundError):
    """Inventory item not found."""

    def __init__(self, item_id: str):
        super().__init__(
            resource="Inventory item",
            identifier=item_id,
            code="INVENTORY_ITEM_NOT_FOUND"
        )


class SnapshotNotFoundError(NotFoundError):
    """Snapshot missing or owned by another product."""

    def __init__(self, snapshot_id: str):
        super().__init__(
            resource="Snapshot",
            identifier=snapshot_id,
            code="SNAPSHOT_NOT_FOUND"
        )


# ===================
# IDEMPOTENCY ERRORS
# ===================

class IdempotencyConflictError(ConflictError):
    """Idempotency key reused with a different payload."""

    def __init__(self, endpoint: str):
        super().__init__(
            code="IDEMPOTENCY_CONFLICT",
            message="Idempotency key reused with different request body",
            details={"endpoint": endpoint}
        )


class IdempotencyInProgressError(ConflictError):
    """Another request holding the same key is still running."""

    def __init__(self, endpoint: str):
        super().__init__(
            code="IDEMPOTENCY_IN_PROGRESS",
            message="A request with this idempotency key is already in progress",
            details={"endpoint": endpoint, "hint": "Retry later with the same key"}
        )


# ===================
# PLATFORM ERRORS
# ===================

class TransientNetworkError(ExternalServiceError):
    """Retryable platform failure (timeout, reset, 429, 5xx)."""

    def __init__(
        self,
        service: str,
        message: str,
        status_code: Optional[int] = None
    ):
        self.upstream_status = status_code
        super().__init__(
            service=service,
            message=message,
            code=f"{service.upper()}_UNAVAILABLE",
            details={"upstream_status": status_code}
        )


class UpstreamBusinessError(ExternalServiceError):
    """Platform rejected the request (userErrors, 4xx). Never retried."""

    def __init__(
        self,
        service: str,
        messages: list[str],
        status_code: Optional[int] = None
    ):
        self.messages = messages
        self.upstream_status = status_code
        super().__init__(
            service=service,
            message=", ".join(messages) or f"{service} rejected the request",
            code=f"{service.upper()}_REJECTED",
            details={"errors": messages, "upstream_status": status_code}
        )


class ContentGenerationError(ExternalServiceError):
    """Copywriter returned nothing usable."""

    def __init__(self, message: str):
        super().__init__(
            service="copywriter",
            message=message,
            code="CONTENT_GENERATION_FAILED"
        )
