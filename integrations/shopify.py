"""
Shopify Admin GraphQL client.

Publishes inventory items as products, pushes catalog content and pages
through the store's products for the catalog import.
New products are always created as DRAFT; going live is a manual step
in Shopify admin.

Every response is checked twice: top-level `errors` (query problems,
throttling) and the mutation's `userErrors` (validation). Both surface
as UpstreamBusinessError with Shopify's messages verbatim.
"""

import asyncio
from dataclasses import dataclass
from html import escape
from typing import Any, Optional

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field
from supabase import Client

from config.settings import Settings
from models.inventory import InventoryRecord, ListingType
from models.sync import PlatformResult
from exceptions import ConfigurationError, ExternalServiceError, UpstreamBusinessError
from integrations.http import request_json
from utils.retry import RetryPolicy, retry_with_policy

logger = structlog.get_logger(__name__)

SERVICE = "shopify"


# ===================
# GRAPHQL DOCUMENTS
# ===================

PRODUCT_FIELDS = """
    id
    legacyResourceId
    updatedAt
    variants(first: 1) {
      edges {
        node {
          id
          legacyResourceId
        }
      }
    }
"""

# 2024-04+ schema: products are created with a default variant; price and
# SKU are set on it afterwards with productVariantsBulkUpdate.
CREATE_PRODUCT_MUTATION = """
mutation productCreate($product: ProductCreateInput!) {
  productCreate(product: $product) {
    product {%s}
    userErrors { field message }
  }
}
""" % PRODUCT_FIELDS

UPDATE_PRODUCT_MUTATION = """
mutation productUpdate($product: ProductUpdateInput!) {
  productUpdate(product: $product) {
    product {%s}
    userErrors { field message }
  }
}
""" % PRODUCT_FIELDS

UPDATE_VARIANTS_MUTATION = """
mutation productVariantsBulkUpdate($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
  productVariantsBulkUpdate(productId: $productId, variants: $variants) {
    productVariants { id legacyResourceId }
    userErrors { field message }
  }
}
"""

FETCH_PRODUCTS_QUERY = """
query fetchProducts($first: Int!, $after: String, $query: String) {
  products(first: $first, after: $after, query: $query) {
    pageInfo { hasNextPage endCursor }
    edges {
      node {
        id
        handle
        title
        descriptionHtml
        vendor
        productType
        tags
        status
        createdAt
        updatedAt
        images(first: 20) { edges { node { id url altText width height } } }
        variants(first: 100) {
          edges { node { id title sku price compareAtPrice inventoryQuantity barcode } }
        }
        metafields(first: 20) { edges { node { namespace key value type } } }
      }
    }
  }
}
"""


# ===================
# RESPONSE SHAPES
# ===================

class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class GraphQLError(_Wire):
    message: str


class GraphQLResponse(_Wire):
    data: Optional[dict[str, Any]] = None
    errors: list[GraphQLError] = Field(default_factory=list)


class UserError(_Wire):
    field: Optional[list[str]] = None
    message: str


class VariantNode(_Wire):
    id: Optional[str] = None
    legacy_resource_id: Optional[str] = Field(None, alias="legacyResourceId")


class VariantEdge(_Wire):
    node: VariantNode


class VariantConnection(_Wire):
    edges: list[VariantEdge] = Field(default_factory=list)


class ProductNode(_Wire):
    id: Optional[str] = None
    legacy_resource_id: Optional[str] = Field(None, alias="legacyResourceId")
    updated_at: Optional[str] = Field(None, alias="updatedAt")
    variants: VariantConnection = Field(default_factory=VariantConnection)

    @property
    def primary_variant_id(self) -> Optional[str]:
        if not self.variants.edges:
            return None
        return self.variants.edges[0].node.legacy_resource_id


class ProductPayload(_Wire):
    product: Optional[ProductNode] = None
    user_errors: list[UserError] = Field(default_factory=list, alias="userErrors")


class VariantsPayload(_Wire):
    user_errors: list[UserError] = Field(default_factory=list, alias="userErrors")


class PageInfo(_Wire):
    has_next_page: bool = Field(False, alias="hasNextPage")
    end_cursor: Optional[str] = Field(None, alias="endCursor")


class ProductEdge(_Wire):
    node: dict[str, Any]


class ProductsPage(_Wire):
    """One page of the products connection; nodes stay raw for the importer."""

    edges: list[ProductEdge] = Field(default_factory=list)
    page_info: PageInfo = Field(default_factory=PageInfo, alias="pageInfo")


# ===================
# HELPERS
# ===================

@dataclass(frozen=True)
class ShopifyCredentials:
    store_domain: str
    access_token: str


def product_gid(product_id: str) -> str:
    """Numeric id -> GraphQL global id. GIDs pass through."""
    if product_id.startswith("gid://"):
        return product_id
    return f"gid://shopify/Product/{product_id}"


def variant_gid(variant_id: str) -> str:
    if variant_id.startswith("gid://"):
        return variant_id
    return f"gid://shopify/ProductVariant/{variant_id}"


def default_sku(record: InventoryRecord) -> str:
    """e.g. "Sennheiser HD 600" -> "SENNHEISER-HD-600"."""
    return "-".join(f"{record.brand}-{record.model}".upper().split())


def build_tags(record: InventoryRecord) -> list[str]:
    tags = [record.brand.lower()]
    if record.listing_type == ListingType.TRADE_IN:
        tags += ["pre-owned", "trade-in"]
    elif record.listing_type == ListingType.EX_DEMO:
        tags += ["pre-owned", "ex-demo"]
    if record.condition_grade:
        tags.append(f"condition-{record.condition_grade.value}")
    return tags


def build_metafields(record: InventoryRecord, namespace: str) -> list[dict[str, str]]:
    def field(key: str, value: str, field_type: str = "single_line_text_field") -> dict[str, str]:
        return {"namespace": namespace, "key": key, "value": value, "type": field_type}

    metafields = [
        field("listing_type", record.listing_type.value),
        field("model_number", record.model),
    ]
    if record.serial_number:
        metafields.append(field("serial_number", record.serial_number))
    if record.condition_grade:
        metafields.append(field("condition_grade", record.condition_grade.value))
    if record.condition_report:
        metafields.append(field("condition_report", record.condition_report, "multi_line_text_field"))
    return metafields


def build_description(record: InventoryRecord) -> str:
    """Fallback product description for items without generated copy."""
    parts = ['<div class="product-description">']

    if record.is_pre_owned:
        origin = (
            "customer trade-in"
            if record.listing_type == ListingType.TRADE_IN
            else "former demonstration unit"
        )
        parts.append('<div class="preowned-notice">')
        parts.append("<strong>Pre-Owned Item</strong>")
        parts.append(f"<p>This is a {origin}.</p>")
        if record.condition_grade:
            grade = record.condition_grade.value.capitalize()
            parts.append(f"<p>Condition: <strong>{grade}</strong></p>")
        parts.append("</div>")

    parts.append("<h3>Product Details</h3>")
    parts.append("<ul>")
    parts.append(f"<li><strong>Brand:</strong> {escape(record.brand)}</li>")
    parts.append(f"<li><strong>Model:</strong> {escape(record.model)}</li>")
    if record.serial_number:
        parts.append(f"<li><strong>Serial Number:</strong> {escape(record.serial_number)}</li>")
    parts.append("</ul>")

    if record.condition_report:
        parts.append("<h3>Condition Notes</h3>")
        parts.append(f"<p>{escape(record.condition_report)}</p>")

    parts.append("</div>")
    return "\n".join(parts)


def _raise_user_errors(mutation: str, user_errors: list[UserError]) -> None:
    if user_errors:
        messages = [e.message for e in user_errors]
        logger.warning("shopify_user_errors", mutation=mutation, errors=messages)
        raise UpstreamBusinessError(SERVICE, messages)


# ===================
# CLIENT
# ===================

class ShopifyClient:
    """
    Admin GraphQL client bound to one store.

    Credentials: static admin token from settings, else the stored OAuth
    token for the store, else ConfigurationError before any network call.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        settings: Settings,
        db: Optional[Client] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep=asyncio.sleep
    ):
        self.http = http
        self.db = db
        self.store_domain = settings.shopify_store_domain
        self.static_token = settings.shopify_admin_access_token
        self.api_version = settings.shopify_api_version
        self.metafield_namespace = settings.shopify_metafield_namespace
        self.timeout = settings.http_timeout_seconds
        self.retry_policy = retry_policy or RetryPolicy.from_settings(settings)
        self.sleep = sleep

    # ===================
    # CREDENTIALS
    # ===================

    def resolve_credentials(self) -> ShopifyCredentials:
        """
        Raises:
            ConfigurationError: No store domain, or no token anywhere
        """
        if not self.store_domain:
            raise ConfigurationError(SERVICE, "Shopify store domain is not configured")

        if self.static_token:
            return ShopifyCredentials(self.store_domain, self.static_token)

        token = self._stored_token()
        if not token:
            raise ConfigurationError(
                SERVICE,
                "Shopify credentials not configured. Connect Shopify or set SHOPIFY_ADMIN_ACCESS_TOKEN"
            )
        return ShopifyCredentials(self.store_domain, token)

    def _stored_token(self) -> Optional[str]:
        if self.db is None:
            return None

        try:
            result = (
                self.db.table("oauth_tokens")
                .select("access_token")
                .eq("provider", SERVICE)
                .eq("shop", self.store_domain)
                .maybe_single()
                .execute()
            )
        except Exception as e:
            logger.error("shopify_token_lookup_failed", shop=self.store_domain, error=str(e))
            return None

        row = result.data if result is not None else None
        return row.get("access_token") if row else None

    def is_configured(self) -> bool:
        try:
            self.resolve_credentials()
            return True
        except ConfigurationError:
            return False

    # ===================
    # TRANSPORT
    # ===================

    async def graphql(
        self,
        query: str,
        variables: dict[str, Any],
        operation: str,
        credentials: Optional[ShopifyCredentials] = None
    ) -> dict[str, Any]:
        """
        Run one GraphQL document with retry.

        Returns:
            The `data` object

        Raises:
            UpstreamBusinessError: Top-level GraphQL errors
            TransientNetworkError: Retries exhausted
        """
        credentials = credentials or self.resolve_credentials()
        url = f"https://{credentials.store_domain}/admin/api/{self.api_version}/graphql.json"
        headers = {
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": credentials.access_token,
        }

        async def send():
            return await request_json(
                self.http,
                SERVICE,
                "POST",
                url,
                headers=headers,
                json={"query": query, "variables": variables},
                timeout=self.timeout
            )

        body = await retry_with_policy(send, self.retry_policy, f"shopify.{operation}", sleep=self.sleep)
        response = GraphQLResponse.model_validate(body)

        if response.errors:
            messages = [e.message for e in response.errors]
            logger.warning("shopify_graphql_errors", operation=operation, errors=messages)
            raise UpstreamBusinessError(SERVICE, messages)

        return response.data or {}

    async def _product_mutation(
        self,
        mutation: str,
        document: str,
        product_input: dict[str, Any],
        credentials: ShopifyCredentials
    ) -> ProductNode:
        data = await self.graphql(document, {"product": product_input}, mutation, credentials)
        payload = ProductPayload.model_validate(data.get(mutation) or {})
        _raise_user_errors(mutation, payload.user_errors)

        if payload.product is None or not (payload.product.legacy_resource_id or payload.product.id):
            raise UpstreamBusinessError(SERVICE, [f"Shopify {mutation} returned no product"])
        return payload.product

    # ===================
    # INVENTORY PUBLISH
    # ===================

    async def publish(self, record: InventoryRecord, publish_live: bool = False) -> PlatformResult:
        """
        Create or update the Shopify product for an inventory item.

        Without a shopify_product_id a DRAFT product is created and its
        default variant priced. With one, the product is updated and then
        its primary variant. Product status is never changed on update;
        going live happens in Shopify admin, so publish_live is ignored.

        If the variant step fails right after a create, the result is a
        failure that still carries the new ids, so the next publish
        updates that product instead of creating another one.
        """
        credentials = self.resolve_credentials()

        if publish_live:
            logger.info(
                "publish_live_ignored",
                item_id=record.id,
                reason="product status is managed in Shopify admin"
            )

        product_input: dict[str, Any] = {
            "title": record.title or record.display_name,
            "descriptionHtml": record.description_html or build_description(record),
            "vendor": record.brand,
            "productType": "Pre-Owned" if record.is_pre_owned else "New",
            "tags": build_tags(record),
            "metafields": build_metafields(record, self.metafield_namespace),
        }
        variant_fields: dict[str, Any] = {
            "price": str(record.sale_price),
            "compareAtPrice": str(record.rrp_aud) if record.rrp_aud else None,
            "inventoryItem": {"sku": record.sku or default_sku(record)},
        }

        if not record.shopify_product_id:
            product = await self._product_mutation(
                "productCreate",
                CREATE_PRODUCT_MUTATION,
                {**product_input, "status": "DRAFT"},
                credentials
            )
            product_id = product.legacy_resource_id or product.id
            variant_id = product.primary_variant_id
            logger.info("shopify_product_created", item_id=record.id, product_id=product_id)

            try:
                if not variant_id:
                    raise UpstreamBusinessError(SERVICE, ["Shopify productCreate returned no variant"])
                await self._update_primary_variant(
                    product.id or product_gid(product_id),
                    variant_id,
                    {
                        **variant_fields,
                        "inventoryItem": {**variant_fields["inventoryItem"], "tracked": True},
                        "inventoryPolicy": "DENY",
                    },
                    credentials
                )
            except ExternalServiceError as e:
                logger.warning(
                    "shopify_variant_setup_failed",
                    item_id=record.id,
                    product_id=product_id,
                    error=e.message
                )
                return PlatformResult(
                    success=False,
                    external_id=product_id,
                    secondary_id=variant_id,
                    url=f"https://{credentials.store_domain}/admin/products/{product_id}",
                    error=f"Draft product {product_id} created but variant update failed: {e.message}"
                )
        else:
            product = await self._product_mutation(
                "productUpdate",
                UPDATE_PRODUCT_MUTATION,
                {"id": product_gid(record.shopify_product_id), **product_input},
                credentials
            )
            product_id = product.legacy_resource_id or record.shopify_product_id
            variant_id = record.shopify_variant_id or product.primary_variant_id

            if variant_id:
                await self._update_primary_variant(
                    product.id or product_gid(record.shopify_product_id),
                    variant_id,
                    variant_fields,
                    credentials
                )
            logger.info("shopify_product_updated", item_id=record.id, product_id=product_id)

        return PlatformResult(
            success=True,
            external_id=product_id,
            secondary_id=variant_id,
            url=f"https://{credentials.store_domain}/admin/products/{product_id}"
        )

    async def _update_primary_variant(
        self,
        product_id: str,
        variant_id: str,
        fields: dict[str, Any],
        credentials: ShopifyCredentials
    ) -> None:
        data = await self.graphql(
            UPDATE_VARIANTS_MUTATION,
            {
                "productId": product_gid(product_id),
                "variants": [{"id": variant_gid(variant_id), **fields}],
            },
            "productVariantsBulkUpdate",
            credentials
        )
        payload = VariantsPayload.model_validate(data.get("productVariantsBulkUpdate") or {})
        _raise_user_errors("productVariantsBulkUpdate", payload.user_errors)

    # ===================
    # CATALOG CONTENT
    # ===================

    async def update_product_content(
        self,
        shopify_id: str,
        title: Optional[str] = None,
        description_html: Optional[str] = None
    ) -> ProductNode:
        """
        Push title and/or description of an existing product.

        Args:
            shopify_id: Product GID (or numeric id)
            title: New title, omitted when None
            description_html: New description, omitted when None
        """
        credentials = self.resolve_credentials()

        product_input: dict[str, Any] = {"id": product_gid(shopify_id)}
        if title is not None:
            product_input["title"] = title
        if description_html is not None:
            product_input["descriptionHtml"] = description_html

        product = await self._product_mutation(
            "productUpdate",
            UPDATE_PRODUCT_MUTATION,
            product_input,
            credentials
        )
        logger.info("shopify_content_pushed", shopify_id=shopify_id, fields=sorted(product_input))
        return product

    # ===================
    # CATALOG IMPORT
    # ===================

    async def list_products(
        self,
        status: Optional[str] = "active",
        limit: Optional[int] = None,
        page_size: int = 50
    ) -> list[dict[str, Any]]:
        """
        Page through the store's products.

        Args:
            status: Shopify status filter; None fetches every status
            limit: Stop after this many products, None for all
            page_size: Products per request (Shopify caps this at 250)

        Returns:
            Raw product nodes in Shopify field names
        """
        credentials = self.resolve_credentials()
        query = f"status:{status}" if status else None

        products: list[dict[str, Any]] = []
        cursor = None

        while limit is None or len(products) < limit:
            first = page_size if limit is None else min(page_size, limit - len(products))
            data = await self.graphql(
                FETCH_PRODUCTS_QUERY,
                {"first": first, "after": cursor, "query": query},
                "products",
                credentials
            )
            page = ProductsPage.model_validate(data.get("products") or {})
            products.extend(edge.node for edge in page.edges)

            if not page.page_info.has_next_page or not page.edges:
                break
            cursor = page.page_info.end_cursor

        if limit is not None:
            products = products[:limit]

        logger.info("shopify_products_listed", count=len(products), status=status)
        return products
