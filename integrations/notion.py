"""
Notion client: one page per published item in the inventory database.

Property names must match the columns of the Notion database.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
import structlog
from pydantic import BaseModel, ConfigDict

from config.settings import Settings
from models.inventory import InventoryRecord, ListingType
from models.sync import PlatformResult
from exceptions import ConfigurationError, UpstreamBusinessError
from integrations.http import request_json
from utils.retry import RetryPolicy, retry_with_policy

logger = structlog.get_logger(__name__)

SERVICE = "notion"

PAGES_URL = "https://api.notion.com/v1/pages"

TYPE_LABELS = {
    ListingType.NEW: "New",
    ListingType.TRADE_IN: "Trade-In",
    ListingType.EX_DEMO: "Ex-Demo",
}


class PageResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    url: Optional[str] = None


def _text(content: str) -> list[dict[str, Any]]:
    return [{"text": {"content": content}}]


def build_properties(record: InventoryRecord, now: Optional[datetime] = None) -> dict[str, Any]:
    now = now or datetime.now(timezone.utc)

    properties: dict[str, Any] = {
        "Name": {"title": _text(record.display_name)},
        "Brand": {"select": {"name": record.brand}},
        "Model": {"rich_text": _text(record.model)},
        "Type": {"select": {"name": TYPE_LABELS[record.listing_type]}},
        "Serial Number": {"rich_text": _text(record.serial_number or "N/A")},
        "RRP": {"number": float(record.rrp_aud) if record.rrp_aud is not None else 0},
        "Sale Price": {"number": float(record.sale_price)},
        "Status": {"select": {"name": "Listed"}},
        "Shopify ID": {"rich_text": _text(record.shopify_product_id or "")},
        "Created": {"date": {"start": now.isoformat()}},
    }
    if record.condition_grade:
        properties["Condition"] = {"select": {"name": record.condition_grade.value.capitalize()}}
    return properties


class NotionClient:

    def __init__(
        self,
        http: httpx.AsyncClient,
        settings: Settings,
        retry_policy: Optional[RetryPolicy] = None,
        sleep=asyncio.sleep
    ):
        self.http = http
        self.api_key = settings.notion_api_key
        self.database_id = settings.notion_inventory_database_id
        self.version = settings.notion_version
        self.timeout = settings.http_timeout_seconds
        self.retry_policy = retry_policy or RetryPolicy.from_settings(settings)
        self.sleep = sleep

    async def publish(self, record: InventoryRecord, publish_live: bool = False) -> PlatformResult:
        """
        Add the item to the inventory database.

        Raises:
            ConfigurationError: API key or database id missing
        """
        if not (self.api_key and self.database_id):
            raise ConfigurationError(SERVICE, "Notion credentials not configured")

        payload = {
            "parent": {"database_id": self.database_id},
            "properties": build_properties(record),
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Notion-Version": self.version,
        }

        async def create():
            return await request_json(
                self.http,
                SERVICE,
                "POST",
                PAGES_URL,
                headers=headers,
                json=payload,
                timeout=self.timeout
            )

        body = await retry_with_policy(create, self.retry_policy, "notion.create_page", sleep=self.sleep)
        try:
            page = PageResponse.model_validate(body)
        except ValueError as e:
            raise UpstreamBusinessError(SERVICE, ["Notion page response had no id"]) from e

        logger.info("notion_page_created", item_id=record.id, page_id=page.id)
        return PlatformResult(success=True, external_id=page.id, url=page.url)
