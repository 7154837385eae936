"""
Business logic services.

Each service handles one domain area. Services receive their store
client and platform clients in the constructor (see routes/deps.py).
"""

from services.idempotency_service import IdempotencyService, build_request_hash
from services.inventory_service import InventoryService
from services.audit_service import AuditService
from services.matching_service import MatchingService
from services.snapshot_service import SnapshotService
from services.catalog_service import CatalogService
from services.publish_service import PublishService, log_sync_event

__all__ = [
    "IdempotencyService",
    "build_request_hash",
    "InventoryService",
    "AuditService",
    "MatchingService",
    "SnapshotService",
    "CatalogService",
    "PublishService",
    "log_sync_event",
]
