"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    RecordSchema,
    TimestampMixin,
)
from models.idempotency import (
    IdempotencyState,
    IdempotencyRecord,
    Acquired,
    Replay,
    InProgress,
    Conflict,
    AcquireResult,
    IdempotentOutcome,
)
from models.inventory import (
    ListingType,
    ConditionGrade,
    SyncStatus,
    InventoryRecord,
    InventoryItemSummary,
    PublishRequest,
)
from models.catalog import (
    ShopifyProductStatus,
    EnrichmentStatus,
    SnapshotType,
    CatalogVariant,
    CatalogEntry,
    SnapshotData,
    Snapshot,
    SnapshotSummary,
    LinkRequest,
    SyncFields,
    ContentSyncRequest,
    ImportRequest,
    SnapshotCreateRequest,
    RollbackRequest,
    ImportResult,
    RollbackResponse,
    ContentSyncResponse,
    GeneratedContent,
    EnrichResponse,
)
from models.matching import (
    MatchType,
    MatchDetails,
    MatchSuggestion,
    MatchSuggestionsResponse,
    AutoMatchResult,
)
from models.sync import (
    Platform,
    PUBLISH_ORDER,
    PlatformResult,
    SyncResult,
    SyncEventType,
    SyncEvent,
)

__all__ = [
    # Base
    "BaseSchema",
    "RecordSchema",
    "TimestampMixin",

    # Idempotency
    "IdempotencyState",
    "IdempotencyRecord",
    "Acquired",
    "Replay",
    "InProgress",
    "Conflict",
    "AcquireResult",
    "IdempotentOutcome",

    # Inventory
    "ListingType",
    "ConditionGrade",
    "SyncStatus",
    "InventoryRecord",
    "InventoryItemSummary",
    "PublishRequest",

    # Catalog
    "ShopifyProductStatus",
    "EnrichmentStatus",
    "SnapshotType",
    "CatalogVariant",
    "CatalogEntry",
    "SnapshotData",
    "Snapshot",
    "SnapshotSummary",
    "LinkRequest",
    "SyncFields",
    "ContentSyncRequest",
    "ImportRequest",
    "SnapshotCreateRequest",
    "RollbackRequest",
    "ImportResult",
    "RollbackResponse",
    "ContentSyncResponse",
    "GeneratedContent",
    "EnrichResponse",

    # Matching
    "MatchType",
    "MatchDetails",
    "MatchSuggestion",
    "MatchSuggestionsResponse",
    "AutoMatchResult",

    # Sync
    "Platform",
    "PUBLISH_ORDER",
    "PlatformResult",
    "SyncResult",
    "SyncEventType",
    "SyncEvent",
]
