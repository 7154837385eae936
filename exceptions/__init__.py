"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,
    ConfigurationError,
    DatabaseError,

    # Input
    InvalidUUIDError,

    # Not found
    CatalogProductNotFoundError,
    InventoryItemNotFoundError,
    SnapshotNotFoundError,

    # Idempotency
    IdempotencyConflictError,
    IdempotencyInProgressError,

    # Platforms
    TransientNetworkError,
    UpstreamBusinessError,
    ContentGenerationError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",
    "ConfigurationError",
    "DatabaseError",

    # Input
    "InvalidUUIDError",

    # Not found
    "CatalogProductNotFoundError",
    "InventoryItemNotFoundError",
    "SnapshotNotFoundError",

    # Idempotency
    "IdempotencyConflictError",
    "IdempotencyInProgressError",

    # Platforms
    "TransientNetworkError",
    "UpstreamBusinessError",
    "ContentGenerationError",
]
