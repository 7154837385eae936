"""
Inventory item schemas.

An inventory item is the internally tracked record that gets published
to Shopify, HubSpot and Notion.
"""

from pydantic import Field
from typing import Any, Optional
from enum import Enum
from decimal import Decimal
from datetime import datetime

from models.base import BaseSchema, RecordSchema, TimestampMixin


class ListingType(str, Enum):
    """How the item was acquired."""
    NEW = "new"
    TRADE_IN = "trade_in"
    EX_DEMO = "ex_demo"


class ConditionGrade(str, Enum):
    """Condition of pre-owned items."""
    MINT = "mint"
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class SyncStatus(str, Enum):
    """Publish state of an inventory item."""
    PENDING = "pending"
    SYNCING = "syncing"
    SYNCED = "synced"
    ERROR = "error"


class InventoryRecord(RecordSchema, TimestampMixin):
    """Row of inventory_items."""

    id: str
    listing_type: ListingType
    brand: str
    model: str
    serial_number: Optional[str] = None
    sku: Optional[str] = None

    # Pricing (AUD)
    rrp_aud: Optional[Decimal] = None
    cost_price: Optional[Decimal] = None
    sale_price: Decimal

    condition_grade: Optional[ConditionGrade] = None
    condition_report: Optional[str] = None

    image_urls: list[str] = Field(default_factory=list)

    # Generated content
    title: Optional[str] = None
    description_html: Optional[str] = None
    meta_description: Optional[str] = None
    specifications: dict[str, Any] = Field(default_factory=dict)

    # External ids
    shopify_product_id: Optional[str] = None
    shopify_variant_id: Optional[str] = None
    hubspot_deal_id: Optional[str] = None
    notion_page_id: Optional[str] = None

    sync_status: SyncStatus = SyncStatus.PENDING
    last_synced_at: Optional[datetime] = None
    sync_error: Optional[str] = None

    is_archived: bool = False

    @property
    def is_pre_owned(self) -> bool:
        return self.listing_type != ListingType.NEW

    @property
    def display_name(self) -> str:
        return f"{self.brand} {self.model}"


class InventoryItemSummary(RecordSchema):
    """Subset of an inventory item shown in match suggestions."""

    id: str
    brand: str
    model: str
    sku: Optional[str] = None
    rrp_aud: Optional[Decimal] = None
    sale_price: Optional[Decimal] = None


class PublishRequest(BaseSchema):
    """
    Body of POST /api/inventory/{id}/publish.

    publish_live is accepted but ignored: new products are created as
    drafts and the status of existing ones is managed in Shopify admin.
    """

    publish_live: bool = Field(
        default=False,
        description="Request live status (ignored, logged)"
    )
    concurrent: bool = Field(
        default=False,
        description="Call platforms concurrently instead of in order"
    )
