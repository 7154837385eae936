"""
Unit tests for the Shopify GraphQL client.

HTTP is served by httpx.MockTransport; requests are inspected as sent.
"""

import asyncio
import json

import pytest

from integrations.shopify import (
    ShopifyClient,
    build_description,
    build_tags,
    default_sku,
    product_gid,
    variant_gid,
)
from models.inventory import InventoryRecord
from exceptions import ConfigurationError, TransientNetworkError, UpstreamBusinessError
from tests.factories import InventoryFactory


# ===================
# FIXTURES
# ===================

def product_response(mutation: str, product_id: str = "7001", variant_id: str = "9001", user_errors=None) -> dict:
    return {
        "data": {
            mutation: {
                "product": {
                    "id": f"gid://shopify/Product/{product_id}",
                    "legacyResourceId": product_id,
                    "updatedAt": "2025-03-01T12:00:00Z",
                    "variants": {"edges": [{"node": {
                        "id": f"gid://shopify/ProductVariant/{variant_id}",
                        "legacyResourceId": variant_id,
                    }}]},
                },
                "userErrors": user_errors or [],
            }
        }
    }


def variants_response(user_errors=None) -> dict:
    return {"data": {"productVariantsBulkUpdate": {
        "productVariants": [{"id": "gid://shopify/ProductVariant/9001", "legacyResourceId": "9001"}],
        "userErrors": user_errors or [],
    }}}


def sent(request) -> dict:
    return json.loads(request.content)


@pytest.fixture
def shopify(transport, settings, mock_supabase, fast_retry, no_sleep):
    return ShopifyClient(transport.client(), settings, db=mock_supabase, retry_policy=fast_retry, sleep=no_sleep)


@pytest.fixture
def record():
    return InventoryRecord(**InventoryFactory.create(
        brand="Sennheiser",
        model="HD 600",
        listing_type="trade_in",
        condition_grade="excellent",
        sale_price="449.00",
        rrp_aud="699.00",
    ))


# ===================
# HELPERS
# ===================

class TestHelpers:

    def test_gids(self):
        assert product_gid("7001") == "gid://shopify/Product/7001"
        assert product_gid("gid://shopify/Product/7001") == "gid://shopify/Product/7001"
        assert variant_gid("9001") == "gid://shopify/ProductVariant/9001"

    def test_default_sku(self, record):
        assert default_sku(record) == "SENNHEISER-HD-600"

    def test_tags_for_trade_in(self, record):
        assert build_tags(record) == ["sennheiser", "pre-owned", "trade-in", "condition-excellent"]

    def test_tags_for_new(self):
        new = InventoryRecord(**InventoryFactory.create(listing_type="new", condition_grade=None))
        assert build_tags(new) == ["sennheiser"]

    def test_description_escapes_text(self):
        item = InventoryRecord(**InventoryFactory.create(
            listing_type="ex_demo",
            model="HD <600>",
            condition_report="Minor scuff & box wear",
        ))
        html = build_description(item)

        assert "former demonstration unit" in html
        assert "HD &lt;600&gt;" in html
        assert "Minor scuff &amp; box wear" in html


# ===================
# CREDENTIALS
# ===================

class TestCredentials:

    def test_static_token_first(self, shopify):
        credentials = shopify.resolve_credentials()
        assert credentials.access_token == "shpat_test_token"
        assert credentials.store_domain == "test-store.myshopify.com"

    def test_stored_token_fallback(self, transport, settings, mock_supabase):
        mock_supabase.set_table_data("oauth_tokens", [
            {"provider": "shopify", "shop": "test-store.myshopify.com", "access_token": "shpca_stored"}
        ])
        client = ShopifyClient(
            transport.client(),
            settings.model_copy(update={"shopify_admin_access_token": None}),
            db=mock_supabase
        )

        assert client.resolve_credentials().access_token == "shpca_stored"

    def test_no_token_anywhere(self, transport, settings, mock_supabase):
        client = ShopifyClient(
            transport.client(),
            settings.model_copy(update={"shopify_admin_access_token": None}),
            db=mock_supabase
        )

        with pytest.raises(ConfigurationError) as exc_info:
            client.resolve_credentials()

        assert exc_info.value.code == "SHOPIFY_NOT_CONFIGURED"
        assert client.is_configured() is False

    def test_missing_domain(self, transport, settings):
        client = ShopifyClient(transport.client(), settings.model_copy(update={"shopify_store_domain": None}))

        with pytest.raises(ConfigurationError):
            client.resolve_credentials()

    def test_unconfigured_publish_makes_no_request(self, transport, settings, record):
        client = ShopifyClient(transport.client(), settings.model_copy(update={"shopify_store_domain": None}))

        with pytest.raises(ConfigurationError):
            asyncio.run(client.publish(record))

        assert transport.requests == []


# ===================
# PUBLISH
# ===================

class TestPublishCreate:

    def test_creates_draft_product_then_prices_variant(self, shopify, transport, record):
        transport.queue(200, product_response("productCreate"))
        transport.queue(200, variants_response())

        result = asyncio.run(shopify.publish(record))

        assert result.success is True
        assert result.external_id == "7001"
        assert result.secondary_id == "9001"
        assert result.url == "https://test-store.myshopify.com/admin/products/7001"

        create, variants = transport.requests
        assert str(create.url) == "https://test-store.myshopify.com/admin/api/2025-01/graphql.json"
        assert create.headers["X-Shopify-Access-Token"] == "shpat_test_token"
        product_input = sent(create)["variables"]["product"]
        assert "ProductCreateInput!" in sent(create)["query"]
        assert product_input["status"] == "DRAFT"
        assert product_input["title"] == "Sennheiser HD 600"
        assert product_input["productType"] == "Pre-Owned"
        assert "variants" not in product_input

        variant = sent(variants)["variables"]["variants"][0]
        assert sent(variants)["variables"]["productId"] == "gid://shopify/Product/7001"
        assert variant["id"] == "gid://shopify/ProductVariant/9001"
        assert variant["price"] == "449.00"
        assert variant["compareAtPrice"] == "699.00"
        assert variant["inventoryItem"] == {"sku": "SENNHEISER-HD-600", "tracked": True}
        assert variant["inventoryPolicy"] == "DENY"

    def test_publish_live_ignored_on_create(self, shopify, transport, record):
        transport.queue(200, product_response("productCreate"))
        transport.queue(200, variants_response())

        asyncio.run(shopify.publish(record, publish_live=True))

        assert sent(transport.requests[0])["variables"]["product"]["status"] == "DRAFT"

    def test_variant_failure_after_create_keeps_product_id(self, shopify, transport, record):
        transport.queue(200, product_response("productCreate"))
        transport.queue(200, variants_response(user_errors=[{"field": ["price"], "message": "Price must be positive"}]))

        result = asyncio.run(shopify.publish(record))

        assert result.success is False
        assert result.external_id == "7001"
        assert result.secondary_id == "9001"
        assert result.error == "Draft product 7001 created but variant update failed: Price must be positive"
        assert len(transport.requests) == 2

    def test_create_without_default_variant(self, shopify, transport, record):
        response = product_response("productCreate")
        response["data"]["productCreate"]["product"]["variants"] = {"edges": []}
        transport.queue(200, response)

        result = asyncio.run(shopify.publish(record))

        assert result.success is False
        assert result.external_id == "7001"
        assert result.secondary_id is None
        assert len(transport.requests) == 1

    def test_user_errors_are_not_retried(self, shopify, transport, record):
        transport.queue(200, product_response(
            "productCreate",
            user_errors=[{"field": ["title"], "message": "Title can't be blank"}]
        ))

        with pytest.raises(UpstreamBusinessError) as exc_info:
            asyncio.run(shopify.publish(record))

        assert exc_info.value.messages == ["Title can't be blank"]
        assert len(transport.requests) == 1

    def test_top_level_errors(self, shopify, transport, record):
        transport.queue(200, {"errors": [{"message": "Throttled"}]})

        with pytest.raises(UpstreamBusinessError) as exc_info:
            asyncio.run(shopify.publish(record))

        assert exc_info.value.messages == ["Throttled"]

    def test_server_errors_are_retried(self, shopify, transport, record, sleeps):
        transport.queue(503, {"errors": "Service unavailable"})
        transport.queue(502, None)
        transport.queue(200, product_response("productCreate"))
        transport.queue(200, variants_response())

        result = asyncio.run(shopify.publish(record))

        assert result.external_id == "7001"
        assert len(transport.requests) == 4
        assert len(sleeps) == 2

    def test_retries_exhausted(self, shopify, transport, record):
        for _ in range(4):
            transport.queue(500, {"errors": "Internal error"})

        with pytest.raises(TransientNetworkError):
            asyncio.run(shopify.publish(record))

        assert len(transport.requests) == 4

    def test_unauthorized_is_fatal(self, shopify, transport, record):
        transport.queue(401, {"errors": "[API] Invalid API key or access token"})

        with pytest.raises(UpstreamBusinessError):
            asyncio.run(shopify.publish(record))

        assert len(transport.requests) == 1


class TestPublishUpdate:

    def test_updates_product_then_variant(self, shopify, transport):
        record = InventoryRecord(**InventoryFactory.create(
            shopify_product_id="7001",
            shopify_variant_id="9001",
            sku="SEN-HD600-TI",
        ))
        transport.queue(200, product_response("productUpdate"))
        transport.queue(200, variants_response())

        result = asyncio.run(shopify.publish(record))

        assert result.external_id == "7001"
        assert result.secondary_id == "9001"

        update, variants = (sent(r) for r in transport.requests)
        assert "ProductUpdateInput!" in update["query"]
        assert update["variables"]["product"]["id"] == "gid://shopify/Product/7001"
        assert "productVariantsBulkUpdate" in variants["query"]
        assert variants["variables"]["productId"] == "gid://shopify/Product/7001"
        assert variants["variables"]["variants"][0]["id"] == "gid://shopify/ProductVariant/9001"
        assert variants["variables"]["variants"][0]["inventoryItem"] == {"sku": "SEN-HD600-TI"}

    def test_publish_live_leaves_status_alone(self, shopify, transport):
        record = InventoryRecord(**InventoryFactory.create(shopify_product_id="7001", shopify_variant_id="9001"))
        transport.queue(200, product_response("productUpdate"))
        transport.queue(200, variants_response())

        asyncio.run(shopify.publish(record, publish_live=True))

        update, variants = (sent(r) for r in transport.requests)
        assert "status" not in update["variables"]["product"]
        assert "status" not in variants["variables"]["variants"][0]

    def test_variant_user_errors(self, shopify, transport):
        record = InventoryRecord(**InventoryFactory.create(shopify_product_id="7001", shopify_variant_id="9001"))
        transport.queue(200, product_response("productUpdate"))
        transport.queue(200, variants_response(user_errors=[{"field": ["price"], "message": "Price must be positive"}]))

        with pytest.raises(UpstreamBusinessError) as exc_info:
            asyncio.run(shopify.publish(record))

        assert exc_info.value.messages == ["Price must be positive"]


# ===================
# CATALOG CONTENT
# ===================

class TestUpdateProductContent:

    def test_only_given_fields_are_sent(self, shopify, transport):
        transport.queue(200, product_response("productUpdate"))

        product = asyncio.run(shopify.update_product_content("gid://shopify/Product/7001", title="New title"))

        product_input = sent(transport.requests[0])["variables"]["product"]
        assert product_input == {"id": "gid://shopify/Product/7001", "title": "New title"}
        assert product.updated_at == "2025-03-01T12:00:00Z"

    def test_title_and_description(self, shopify, transport):
        transport.queue(200, product_response("productUpdate"))

        asyncio.run(shopify.update_product_content("7001", title="T", description_html="<p>D</p>"))

        product_input = sent(transport.requests[0])["variables"]["product"]
        assert product_input["descriptionHtml"] == "<p>D</p>"
        assert product_input["id"] == "gid://shopify/Product/7001"


# ===================
# CATALOG IMPORT
# ===================

def products_page(ids: list[int], has_next_page: bool = False, end_cursor=None) -> dict:
    return {"data": {"products": {
        "pageInfo": {"hasNextPage": has_next_page, "endCursor": end_cursor},
        "edges": [{"node": {"id": f"gid://shopify/Product/{n}", "title": f"Product {n}"}} for n in ids],
    }}}


class TestListProducts:

    def test_follows_cursor_until_last_page(self, shopify, transport):
        transport.queue(200, products_page([1, 2], has_next_page=True, end_cursor="cursor-1"))
        transport.queue(200, products_page([3]))

        products = asyncio.run(shopify.list_products(page_size=2))

        assert [p["id"] for p in products] == [
            "gid://shopify/Product/1",
            "gid://shopify/Product/2",
            "gid://shopify/Product/3",
        ]
        first, second = (sent(r)["variables"] for r in transport.requests)
        assert first == {"first": 2, "after": None, "query": "status:active"}
        assert second == {"first": 2, "after": "cursor-1", "query": "status:active"}

    def test_limit_shrinks_last_request(self, shopify, transport):
        transport.queue(200, products_page([1, 2], has_next_page=True, end_cursor="cursor-1"))
        transport.queue(200, products_page([3], has_next_page=True, end_cursor="cursor-2"))

        products = asyncio.run(shopify.list_products(status=None, limit=3, page_size=2))

        assert len(products) == 3
        assert len(transport.requests) == 2
        second = sent(transport.requests[1])["variables"]
        assert second["first"] == 1
        assert second["query"] is None

    def test_zero_limit_makes_no_request(self, shopify, transport):
        assert asyncio.run(shopify.list_products(limit=0)) == []
        assert transport.requests == []

    def test_query_errors(self, shopify, transport):
        transport.queue(200, {"errors": [{"message": "Field 'products' doesn't accept argument 'foo'"}]})

        with pytest.raises(UpstreamBusinessError):
            asyncio.run(shopify.list_products())
