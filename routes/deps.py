"""
FastAPI dependency providers.

The store client, the shared HTTP client and the copywriter live on
app.state (created by the lifespan in main.py). Everything else is built
per request from those. Tests swap any provider through
app.dependency_overrides.
"""

from fastapi import Depends, Request
import httpx
from supabase import Client

from config.settings import Settings, get_settings
from integrations.copywriter import Copywriter
from integrations.hubspot import HubSpotClient
from integrations.notion import NotionClient
from integrations.shopify import ShopifyClient
from models.sync import Platform
from services.audit_service import AuditService
from services.catalog_service import CatalogService
from services.idempotency_service import IdempotencyService
from services.inventory_service import InventoryService
from services.matching_service import MatchingService
from services.publish_service import PublishService, log_sync_event
from services.snapshot_service import SnapshotService


def get_app_settings() -> Settings:
    return get_settings()


def get_db(request: Request) -> Client:
    return request.app.state.db


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_copywriter(request: Request) -> Copywriter:
    return request.app.state.copywriter


# ===================
# PLATFORM CLIENTS
# ===================

def get_shopify_client(
    http: httpx.AsyncClient = Depends(get_http_client),
    db: Client = Depends(get_db),
    settings: Settings = Depends(get_app_settings)
) -> ShopifyClient:
    return ShopifyClient(http, settings, db=db)


def get_hubspot_client(
    http: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings)
) -> HubSpotClient:
    return HubSpotClient(http, settings)


def get_notion_client(
    http: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings)
) -> NotionClient:
    return NotionClient(http, settings)


# ===================
# SERVICES
# ===================

def get_idempotency_service(
    db: Client = Depends(get_db),
    settings: Settings = Depends(get_app_settings)
) -> IdempotencyService:
    return IdempotencyService(db, lock_seconds=settings.idempotency_lock_seconds)


def get_inventory_service(db: Client = Depends(get_db)) -> InventoryService:
    return InventoryService(db)


def get_audit_service(db: Client = Depends(get_db)) -> AuditService:
    return AuditService(db)


def get_matching_service(
    db: Client = Depends(get_db),
    settings: Settings = Depends(get_app_settings)
) -> MatchingService:
    return MatchingService(db, settings)


def get_snapshot_service(
    db: Client = Depends(get_db),
    shopify: ShopifyClient = Depends(get_shopify_client)
) -> SnapshotService:
    return SnapshotService(db, shopify)


def get_catalog_service(
    db: Client = Depends(get_db),
    snapshots: SnapshotService = Depends(get_snapshot_service),
    shopify: ShopifyClient = Depends(get_shopify_client),
    copywriter: Copywriter = Depends(get_copywriter),
    inventory: InventoryService = Depends(get_inventory_service)
) -> CatalogService:
    return CatalogService(db, snapshots, shopify=shopify, copywriter=copywriter, inventory=inventory)


def get_publish_service(
    shopify: ShopifyClient = Depends(get_shopify_client),
    hubspot: HubSpotClient = Depends(get_hubspot_client),
    notion: NotionClient = Depends(get_notion_client),
    settings: Settings = Depends(get_app_settings)
) -> PublishService:
    service = PublishService(
        {
            Platform.SHOPIFY: shopify,
            Platform.HUBSPOT: hubspot,
            Platform.NOTION: notion,
        },
        platform_timeout=settings.platform_timeout_seconds
    )
    service.subscribe(log_sync_event)
    return service
