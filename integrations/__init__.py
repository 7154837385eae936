"""
External platform clients (Shopify, HubSpot, Notion) and the AI copywriter.
"""

from integrations.shopify import ShopifyClient, ShopifyCredentials
from integrations.hubspot import HubSpotClient
from integrations.notion import NotionClient
from integrations.copywriter import Copywriter, CopywriterInput

__all__ = [
    "ShopifyClient",
    "ShopifyCredentials",
    "HubSpotClient",
    "NotionClient",
    "Copywriter",
    "CopywriterInput",
]
