"""
Publish results and progress events.
"""

from pydantic import Field
from typing import Optional
from enum import Enum
from datetime import datetime, timezone

from models.base import BaseSchema


class Platform(str, Enum):
    """External platforms, in publish order."""
    SHOPIFY = "shopify"
    HUBSPOT = "hubspot"
    NOTION = "notion"

    @property
    def label(self) -> str:
        return PLATFORM_LABELS[self]


PLATFORM_LABELS = {
    Platform.SHOPIFY: "Shopify",
    Platform.HUBSPOT: "HubSpot",
    Platform.NOTION: "Notion",
}

PUBLISH_ORDER = (Platform.SHOPIFY, Platform.HUBSPOT, Platform.NOTION)


class PlatformResult(BaseSchema):
    """Outcome of publishing to one platform."""

    success: bool
    external_id: Optional[str] = Field(
        None,
        description="Shopify product id, HubSpot deal id or Notion page id"
    )
    secondary_id: Optional[str] = Field(
        None,
        description="Shopify primary variant id"
    )
    url: Optional[str] = None
    error: Optional[str] = None


class SyncResult(BaseSchema):
    """
    Outcome of one publish attempt.

    success is True only when every attempted platform succeeded.
    Platforms that were not applicable are absent from `platforms`.
    """

    success: bool = True
    platforms: dict[Platform, PlatformResult] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)

    def result_for(self, platform: Platform) -> Optional[PlatformResult]:
        return self.platforms.get(platform)


class SyncEventType(str, Enum):
    SYNC_STARTED = "sync_started"
    PLATFORM_STARTED = "platform_started"
    PLATFORM_COMPLETED = "platform_completed"
    SYNC_COMPLETED = "sync_completed"


class SyncEvent(BaseSchema):
    """Progress notification emitted by the publish orchestrator."""

    type: SyncEventType
    item_id: str
    platform: Optional[Platform] = None
    result: Optional[PlatformResult] = None
    success: Optional[bool] = None
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
