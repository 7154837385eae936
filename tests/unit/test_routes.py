"""
API route tests.

The app is driven through TestClient without entering its lifespan;
store, settings and HTTP client come from dependency overrides.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from main import app
from models.sync import Platform, PlatformResult
from services.publish_service import PublishService
from routes.deps import (
    get_app_settings,
    get_copywriter,
    get_db,
    get_http_client,
    get_publish_service,
)
from tests.factories import CatalogEntryFactory, InventoryFactory


# ===================
# FIXTURES
# ===================

def fake_publisher(external_id: str) -> MagicMock:
    publisher = MagicMock()
    publisher.publish = AsyncMock(return_value=PlatformResult(success=True, external_id=external_id))
    return publisher


@pytest.fixture
def publishers():
    return {
        Platform.SHOPIFY: fake_publisher("7001"),
        Platform.HUBSPOT: fake_publisher("15001"),
        Platform.NOTION: fake_publisher("page-123"),
    }


@pytest.fixture
def client(mock_supabase, settings, transport, publishers):
    copywriter = MagicMock()
    copywriter.is_configured = False

    app.dependency_overrides[get_db] = lambda: mock_supabase
    app.dependency_overrides[get_app_settings] = lambda: settings
    app.dependency_overrides[get_http_client] = lambda: transport.client()
    app.dependency_overrides[get_copywriter] = lambda: copywriter
    app.dependency_overrides[get_publish_service] = lambda: PublishService(publishers)

    yield TestClient(app)

    app.dependency_overrides.clear()


# ===================
# HEALTH
# ===================

class TestHealth:

    def test_without_database(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "degraded"
        assert body["database"]["status"] == "unavailable"
        assert set(body["integrations"]) == {"shopify", "hubspot", "notion", "copywriter"}


# ===================
# INVENTORY
# ===================

class TestInventoryRoutes:

    def test_get_item(self, client, mock_supabase):
        item = InventoryFactory.create(model="HD 600")
        mock_supabase.set_table_data("inventory_items", [item])

        response = client.get(f"/api/inventory/{item['id']}")

        assert response.status_code == 200
        assert response.json()["model"] == "HD 600"

    def test_invalid_id(self, client):
        response = client.get("/api/inventory/not-a-uuid")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_ID"

    def test_item_not_found(self, client):
        response = client.get("/api/inventory/00000000-0000-0000-0000-000000000000")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "INVENTORY_ITEM_NOT_FOUND"


class TestPublishRoute:

    def test_publish_records_external_ids(self, client, mock_supabase, publishers):
        item = InventoryFactory.create()
        mock_supabase.set_table_data("inventory_items", [item])

        response = client.post(f"/api/inventory/{item['id']}/publish", json={})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["item"]["sync_status"] == "synced"
        assert body["item"]["shopify_product_id"] == "7001"
        assert body["item"]["hubspot_deal_id"] == "15001"
        assert body["item"]["notion_page_id"] == "page-123"
        assert len(mock_supabase.rows("audit_log")) == 1

    def test_partial_failure_still_returns_200(self, client, mock_supabase, publishers):
        item = InventoryFactory.create()
        mock_supabase.set_table_data("inventory_items", [item])
        publishers[Platform.NOTION].publish.side_effect = RuntimeError("Notion is down")

        response = client.post(f"/api/inventory/{item['id']}/publish")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["result"]["errors"] == ["Notion: Notion is down"]
        assert body["item"]["sync_status"] == "error"
        assert body["item"]["shopify_product_id"] == "7001"

    def test_failed_write_back_leaves_item_in_error(self, client, mock_supabase, publishers):
        item = InventoryFactory.create()
        mock_supabase.set_table_data("inventory_items", [item])
        mock_supabase.fail_once("inventory_items", "update", RuntimeError("connection reset"), after=1)

        response = client.post(f"/api/inventory/{item['id']}/publish", json={})

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "DATABASE_ERROR"

        row = mock_supabase.rows("inventory_items")[0]
        assert row["sync_status"] == "error"
        assert row["sync_error"] == "Database update failed: connection reset"

        audit_rows = mock_supabase.rows("audit_log")
        assert [r["action"] for r in audit_rows] == ["sync_failed"]
        assert audit_rows[0]["entity_id"] == item["id"]
        assert "connection reset" in audit_rows[0]["summary"]

    def test_same_key_replays_without_publishing_again(self, client, mock_supabase, publishers):
        item = InventoryFactory.create()
        mock_supabase.set_table_data("inventory_items", [item])
        headers = {"Idempotency-Key": "publish-1"}

        first = client.post(f"/api/inventory/{item['id']}/publish", json={}, headers=headers)
        second = client.post(f"/api/inventory/{item['id']}/publish", json={}, headers=headers)

        assert first.status_code == second.status_code == 200
        assert second.json() == first.json()
        assert "Idempotency-Replayed" not in first.headers
        assert second.headers["Idempotency-Replayed"] == "true"
        assert publishers[Platform.SHOPIFY].publish.await_count == 1

    def test_legacy_header_name(self, client, mock_supabase, publishers):
        item = InventoryFactory.create()
        mock_supabase.set_table_data("inventory_items", [item])
        headers = {"X-Idempotency-Key": "publish-legacy"}

        client.post(f"/api/inventory/{item['id']}/publish", headers=headers)
        second = client.post(f"/api/inventory/{item['id']}/publish", headers=headers)

        assert second.headers["Idempotency-Replayed"] == "true"
        assert publishers[Platform.SHOPIFY].publish.await_count == 1

    def test_same_key_different_body_conflicts(self, client, mock_supabase, publishers):
        item = InventoryFactory.create()
        mock_supabase.set_table_data("inventory_items", [item])
        headers = {"Idempotency-Key": "publish-2"}

        client.post(f"/api/inventory/{item['id']}/publish", json={}, headers=headers)
        response = client.post(
            f"/api/inventory/{item['id']}/publish",
            json={"publish_live": True},
            headers=headers
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "IDEMPOTENCY_CONFLICT"
        assert publishers[Platform.SHOPIFY].publish.await_count == 1

    def test_missing_item_is_replayed_as_404(self, client, publishers):
        url = "/api/inventory/00000000-0000-0000-0000-000000000000/publish"
        headers = {"Idempotency-Key": "publish-3"}

        first = client.post(url, headers=headers)
        second = client.post(url, headers=headers)

        assert first.status_code == second.status_code == 404
        assert second.headers["Idempotency-Replayed"] == "true"
        publishers[Platform.SHOPIFY].publish.assert_not_awaited()


# ===================
# CATALOG: IMPORT
# ===================

class TestImportRoute:

    def test_imports_products(self, client, mock_supabase, transport):
        transport.queue(200, {"data": {"products": {
            "pageInfo": {"hasNextPage": False, "endCursor": None},
            "edges": [{"node": {
                "id": "gid://shopify/Product/7001",
                "title": "Sennheiser HD 600",
                "status": "ACTIVE",
                "updatedAt": "2025-03-01T12:00:00Z",
            }}],
        }}})

        response = client.post("/api/catalog/import", json={"limit": 10})

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "total": 1,
            "imported": 1,
            "updated": 0,
            "skipped": 0,
            "errors": [],
        }
        assert mock_supabase.rows("shopify_products")[0]["shopify_id"] == "gid://shopify/Product/7001"
        assert mock_supabase.rows("shopify_product_snapshots")[0]["snapshot_type"] == "original"

    def test_invalid_limit(self, client):
        response = client.post("/api/catalog/import", json={"limit": 0})

        assert response.status_code == 422


# ===================
# CATALOG: MATCHING
# ===================

class TestMatchRoutes:

    def test_suggestions_and_current_link(self, client, mock_supabase):
        item = InventoryFactory.create(sku="SEN-HD600")
        entry = CatalogEntryFactory.create(sku="SEN-HD600", linked_inventory_id=item["id"])
        mock_supabase.set_table_data("inventory_items", [item])
        mock_supabase.set_table_data("shopify_products", [entry])

        response = client.get(f"/api/catalog/{entry['id']}/match")

        assert response.status_code == 200
        body = response.json()
        assert body["suggestions"][0]["match_type"] == "sku_exact"
        assert body["suggestions"][0]["confidence"] == 100
        assert body["current_link"]["id"] == item["id"]

    def test_entry_not_found(self, client):
        response = client.get("/api/catalog/00000000-0000-0000-0000-000000000000/match")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "PRODUCT_NOT_FOUND"

    def test_link_and_unlink(self, client, mock_supabase):
        item = InventoryFactory.create()
        entry = CatalogEntryFactory.create()
        mock_supabase.set_table_data("inventory_items", [item])
        mock_supabase.set_table_data("shopify_products", [entry])

        linked = client.post(f"/api/catalog/{entry['id']}/match", json={"inventory_item_id": item["id"]})
        assert linked.status_code == 200
        assert linked.json()["linked_inventory_id"] == item["id"]
        assert mock_supabase.rows("shopify_products")[0]["linked_inventory_id"] == item["id"]

        unlinked = client.delete(f"/api/catalog/{entry['id']}/match")
        assert unlinked.status_code == 200
        assert mock_supabase.rows("shopify_products")[0]["linked_inventory_id"] is None

    def test_link_to_missing_item(self, client, mock_supabase):
        entry = CatalogEntryFactory.create()
        mock_supabase.set_table_data("shopify_products", [entry])

        response = client.post(
            f"/api/catalog/{entry['id']}/match",
            json={"inventory_item_id": "00000000-0000-0000-0000-000000000000"}
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "INVENTORY_ITEM_NOT_FOUND"
        assert mock_supabase.rows("shopify_products")[0]["linked_inventory_id"] is None

    def test_auto_match(self, client, mock_supabase):
        item = InventoryFactory.create(sku="SEN-HD600")
        matched = CatalogEntryFactory.create(sku="SEN-HD600")
        unmatched = CatalogEntryFactory.create(title="Unknown Widget", vendor="Nobody")
        mock_supabase.set_table_data("inventory_items", [item])
        mock_supabase.set_table_data("shopify_products", [matched, unmatched])

        response = client.post("/api/catalog/auto-match")

        assert response.status_code == 200
        assert response.json() == {"matched": 1, "skipped": 1, "errors": []}


# ===================
# CATALOG: SNAPSHOTS
# ===================

class TestSnapshotRoutes:

    def test_create_and_list(self, client, mock_supabase):
        entry = CatalogEntryFactory.create()
        mock_supabase.set_table_data("shopify_products", [entry])

        created = client.post(f"/api/catalog/{entry['id']}/snapshots", json={"note": "Before cleanup"})

        assert created.status_code == 201
        assert created.json()["snapshot_type"] == "manual"
        assert created.json()["data"]["title"] == entry["title"]

        listed = client.get(f"/api/catalog/{entry['id']}/snapshots")
        assert listed.status_code == 200
        snapshots = listed.json()["snapshots"]
        assert [s["note"] for s in snapshots] == ["Before cleanup"]
        assert "data" not in snapshots[0]

    def test_create_without_body(self, client, mock_supabase):
        entry = CatalogEntryFactory.create()
        mock_supabase.set_table_data("shopify_products", [entry])

        response = client.post(f"/api/catalog/{entry['id']}/snapshots")

        assert response.status_code == 201
        assert response.json()["note"] is None

    def test_rollback(self, client, mock_supabase):
        entry = CatalogEntryFactory.create(title="Sennheiser HD 600")
        mock_supabase.set_table_data("shopify_products", [entry])
        snapshot_id = client.post(f"/api/catalog/{entry['id']}/snapshots").json()["id"]
        (
            mock_supabase.table("shopify_products")
            .update({"title": "Edited title", "enrichment_status": "synced"})
            .eq("id", entry["id"])
            .execute()
        )

        response = client.post(f"/api/catalog/{entry['id']}/rollback", json={"snapshot_id": snapshot_id})

        assert response.status_code == 200
        body = response.json()
        assert body["product"]["title"] == "Sennheiser HD 600"
        assert body["product"]["enrichment_status"] == "pending"
        assert body["restored_from"]["id"] == snapshot_id
        assert body["shopify_synced"] is False

    def test_rollback_invalid_snapshot_id(self, client, mock_supabase):
        entry = CatalogEntryFactory.create()
        mock_supabase.set_table_data("shopify_products", [entry])

        response = client.post(f"/api/catalog/{entry['id']}/rollback", json={"snapshot_id": "nope"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_ID"

    def test_enrich_without_copywriter(self, client, mock_supabase):
        entry = CatalogEntryFactory.create()
        mock_supabase.set_table_data("shopify_products", [entry])

        response = client.post(f"/api/catalog/{entry['id']}/enrich")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "ANTHROPIC_NOT_CONFIGURED"
