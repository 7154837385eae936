"""
HubSpot CRM client: one intake deal per pre-owned inventory item.
"""

import asyncio
from typing import Optional

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

SERVICE = "hubspot"

TOKEN_URL = "https://api.hubapi.com/oauth/v1/token"
DEALS_URL = "https://api.hubapi.com/crm/v3/objects/deals"


class TokenResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    access_token: str


class DealResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str


def deal_name(record: InventoryRecord) -> str:
    prefix = "Trade-In" if record.listing_type == ListingType.TRADE_IN else "Ex-Demo"
    return f"{prefix}: {record.display_name}"


class HubSpotClient:
    """Creates deals in the inventory intake pipeline."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        settings: Settings,
        retry_policy: Optional[RetryPolicy] = None,
        sleep=asyncio.sleep
    ):
        self.http = http
        self.static_token = settings.hubspot_access_token
        self.client_id = settings.hubspot_client_id
        self.client_secret = settings.hubspot_client_secret
        self.pipeline_id = settings.hubspot_pipeline_id
        self.stage_id = settings.hubspot_intake_stage_id
        self.portal_id = settings.hubspot_portal_id
        self.timeout = settings.http_timeout_seconds
        self.retry_policy = retry_policy or RetryPolicy.from_settings(settings)
        self.sleep = sleep

    async def get_access_token(self) -> str:
        """
        Static private-app token, else a client-credentials exchange.

        Raises:
            ConfigurationError: Neither is configured
        """
        if self.static_token:
            return self.static_token

        if not (self.client_id and self.client_secret):
            raise ConfigurationError(
                SERVICE,
                "HubSpot credentials not configured. Set HUBSPOT_ACCESS_TOKEN or HUBSPOT_CLIENT_ID and HUBSPOT_CLIENT_SECRET"
            )

        async def exchange():
            return await request_json(
                self.http,
                SERVICE,
                "POST",
                TOKEN_URL,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
                timeout=self.timeout
            )

        body = await retry_with_policy(exchange, self.retry_policy, "hubspot.oauth", sleep=self.sleep)
        try:
            return TokenResponse.model_validate(body).access_token
        except ValueError as e:
            raise UpstreamBusinessError(SERVICE, ["HubSpot OAuth response had no access token"]) from e

    async def publish(self, record: InventoryRecord, publish_live: bool = False) -> PlatformResult:
        """Create the intake deal for a trade-in or ex-demo item."""
        token = await self.get_access_token()

        properties = {
            "dealname": deal_name(record),
            "pipeline": self.pipeline_id,
            "dealstage": self.stage_id,
            "amount": str(record.sale_price),
            "cht_brand": record.brand,
            "cht_model": record.model,
            "cht_serial_number": record.serial_number or "",
            "cht_condition_grade": record.condition_grade.value if record.condition_grade else "",
            "cht_condition_report": record.condition_report or "",
            "cht_rrp": str(record.rrp_aud) if record.rrp_aud is not None else "",
            "cht_listing_type": record.listing_type.value,
        }

        async def create():
            return await request_json(
                self.http,
                SERVICE,
                "POST",
                DEALS_URL,
                headers={"Authorization": f"Bearer {token}"},
                json={"properties": properties},
                timeout=self.timeout
            )

        body = await retry_with_policy(create, self.retry_policy, "hubspot.create_deal", sleep=self.sleep)
        try:
            deal = DealResponse.model_validate(body)
        except ValueError as e:
            raise UpstreamBusinessError(SERVICE, ["HubSpot deal response had no id"]) from e

        logger.info("hubspot_deal_created", item_id=record.id, deal_id=deal.id)
        return PlatformResult(
            success=True,
            external_id=deal.id,
            url=f"https://app.hubspot.com/contacts/{self.portal_id}/deal/{deal.id}" if self.portal_id else None
        )
