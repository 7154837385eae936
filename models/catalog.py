"""
Catalog schemas: products imported from Shopify and their snapshots.
"""

from pydantic import Field, ConfigDict
from typing import Any, Optional
from enum import Enum
from datetime import datetime

from models.base import BaseSchema, RecordSchema, TimestampMixin


class ShopifyProductStatus(str, Enum):
    """Product status on Shopify."""
    ACTIVE = "active"
    DRAFT = "draft"
    ARCHIVED = "archived"


class EnrichmentStatus(str, Enum):
    """Where a product is in the enrich -> sync workflow."""
    PENDING = "pending"
    ENRICHED = "enriched"
    SYNCED = "synced"


class SnapshotType(str, Enum):
    """Why a snapshot was taken."""
    ORIGINAL = "original"
    BEFORE_SYNC = "before_sync"
    MANUAL = "manual"


class CatalogVariant(RecordSchema):
    """Variant as stored in the variants JSONB column (Shopify field names)."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[str] = None
    title: Optional[str] = None
    sku: Optional[str] = None
    price: Optional[str] = None
    compare_at_price: Optional[str] = Field(None, alias="compareAtPrice")
    inventory_quantity: Optional[int] = Field(None, alias="inventoryQuantity")
    barcode: Optional[str] = None


class CatalogEntry(RecordSchema, TimestampMixin):
    """Row of shopify_products."""

    id: str
    shopify_id: str
    shopify_variant_id: Optional[str] = None
    handle: Optional[str] = None

    # Original content from Shopify
    title: str
    description_html: Optional[str] = None
    vendor: Optional[str] = None
    product_type: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    status: ShopifyProductStatus = ShopifyProductStatus.ACTIVE

    images: list[dict[str, Any]] = Field(default_factory=list)
    variants: list[CatalogVariant] = Field(default_factory=list)
    metafields: dict[str, Any] = Field(default_factory=dict)

    # Enriched content, kept apart from the original
    enriched_title: Optional[str] = None
    enriched_description_html: Optional[str] = None
    enriched_meta_description: Optional[str] = None

    linked_inventory_id: Optional[str] = None
    enrichment_status: EnrichmentStatus = EnrichmentStatus.PENDING

    shopify_created_at: Optional[datetime] = None
    shopify_updated_at: Optional[datetime] = None
    last_imported_at: Optional[datetime] = None
    last_synced_at: Optional[datetime] = None


class SnapshotData(RecordSchema):
    """Mutable fields of a catalog entry captured at a point in time."""

    title: str
    description_html: Optional[str] = None
    vendor: Optional[str] = None
    product_type: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    status: ShopifyProductStatus = ShopifyProductStatus.ACTIVE
    images: list[dict[str, Any]] = Field(default_factory=list)
    variants: list[CatalogVariant] = Field(default_factory=list)
    metafields: dict[str, Any] = Field(default_factory=dict)
    enriched_title: Optional[str] = None
    enriched_description_html: Optional[str] = None
    enriched_meta_description: Optional[str] = None

    @property
    def has_enriched_content(self) -> bool:
        return bool(self.enriched_title or self.enriched_description_html)

    def to_row(self) -> dict[str, Any]:
        """Column values for the shopify_products table."""
        return self.model_dump(mode="json", by_alias=True)


class Snapshot(RecordSchema):
    """Row of shopify_product_snapshots."""

    id: str
    shopify_product_id: str
    snapshot_type: SnapshotType
    note: Optional[str] = None
    data: SnapshotData
    created_at: Optional[datetime] = None


class SnapshotSummary(RecordSchema):
    """Snapshot listing entry (no captured data)."""

    id: str
    snapshot_type: SnapshotType
    note: Optional[str] = None
    created_at: Optional[datetime] = None


# ===================
# REQUESTS
# ===================

class LinkRequest(BaseSchema):
    """Link a catalog product to an inventory item."""

    inventory_item_id: str = Field(..., description="Inventory item UUID")


class SyncFields(BaseSchema):
    """Which enriched fields to push."""

    title: bool = False
    description: bool = False
    meta_description: bool = False


class ContentSyncRequest(BaseSchema):
    """Body of POST /api/catalog/{id}/sync."""

    fields: SyncFields
    create_snapshot: bool = True


class ImportRequest(BaseSchema):
    """Body of POST /api/catalog/import."""

    status: Optional[str] = Field(
        default="active",
        description="Shopify product status to import; null imports every status"
    )
    limit: Optional[int] = Field(None, ge=1, description="Stop after this many products")


class SnapshotCreateRequest(BaseSchema):
    """Body of POST /api/catalog/{id}/snapshots."""

    note: Optional[str] = Field(None, max_length=500)


class RollbackRequest(BaseSchema):
    """Body of POST /api/catalog/{id}/rollback."""

    snapshot_id: str = Field(..., description="Snapshot UUID")
    sync_to_shopify: bool = False


# ===================
# RESPONSES
# ===================

class ImportResult(BaseSchema):
    """Outcome of a catalog import run."""

    total: int = 0
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)


class RollbackResponse(BaseSchema):
    success: bool = True
    product: CatalogEntry
    restored_from: Snapshot
    shopify_synced: bool = False


class ContentSyncResponse(BaseSchema):
    success: bool = True
    product: CatalogEntry
    snapshot_id: Optional[str] = None
    shopify_updated: bool = True
    pushed_fields: list[str] = Field(default_factory=list)


class GeneratedContent(BaseSchema):
    """Copywriter output."""

    title: str
    description_html: str
    meta_description: Optional[str] = None


class EnrichResponse(BaseSchema):
    success: bool = True
    product: CatalogEntry
    content: GeneratedContent
