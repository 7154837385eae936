"""
Catalog entry service: Shopify import, lookups, AI enrichment and pushing enriched
content to Shopify.

Enriched content is stored next to the original Shopify content and only
replaces it once it has been pushed.
"""

import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import structlog
from supabase import Client

from models.catalog import (
    CatalogEntry,
    ContentSyncRequest,
    ContentSyncResponse,
    EnrichmentStatus,
    EnrichResponse,
    ImportResult,
    SnapshotType,
)
from exceptions import (
    CatalogProductNotFoundError,
    ConfigurationError,
    DatabaseError,
    ValidationError,
)
from integrations.copywriter import Copywriter, CopywriterInput
from integrations.shopify import ShopifyClient
from services.inventory_service import InventoryService
from services.snapshot_service import SnapshotService

logger = structlog.get_logger(__name__)

_TAGS = re.compile(r"<[^>]*>")
_SPACES = re.compile(r"\s+")


def strip_html(html: Optional[str]) -> str:
    if not html:
        return ""
    return _SPACES.sub(" ", _TAGS.sub(" ", html)).strip()


def _nodes(connection: Optional[dict[str, Any]]) -> list[dict[str, Any]]:
    return [edge["node"] for edge in (connection or {}).get("edges", [])]


def catalog_row(product: dict[str, Any]) -> dict[str, Any]:
    """Shopify product node -> shopify_products column values."""
    variants = _nodes(product.get("variants"))
    metafields = {
        f"{field['namespace']}.{field['key']}": field
        for field in _nodes(product.get("metafields"))
    }

    return {
        "shopify_id": product["id"],
        "shopify_variant_id": variants[0]["id"] if variants else None,
        "handle": product.get("handle"),
        "title": product.get("title") or "",
        "description_html": product.get("descriptionHtml") or None,
        "vendor": product.get("vendor") or None,
        "product_type": product.get("productType") or None,
        "tags": product.get("tags") or [],
        "status": (product.get("status") or "ACTIVE").lower(),
        "images": _nodes(product.get("images")),
        "variants": variants,
        "metafields": metafields,
        "shopify_created_at": product.get("createdAt"),
        "shopify_updated_at": product.get("updatedAt"),
    }


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _not_newer(incoming: Optional[str], stored: Optional[str]) -> bool:
    """True when both timestamps are known and Shopify's hasn't moved past ours."""
    incoming_at, stored_at = _parse_timestamp(incoming), _parse_timestamp(stored)
    return incoming_at is not None and stored_at is not None and incoming_at <= stored_at


class CatalogService:
    """
    Catalog business logic.

    Handles the Shopify import into shopify_products, entry reads and the
    enrich -> sync workflow.
    """

    def __init__(
        self,
        db: Client,
        snapshots: SnapshotService,
        shopify: Optional[ShopifyClient] = None,
        copywriter: Optional[Copywriter] = None,
        inventory: Optional[InventoryService] = None
    ):
        self.db = db
        self.table = "shopify_products"
        self.snapshots = snapshots
        self.shopify = shopify
        self.copywriter = copywriter
        self.inventory = inventory or InventoryService(db)

    # ===================
    # READ OPERATIONS
    # ===================

    def get_entry(self, entry_id: str) -> CatalogEntry:
        """
        Raises:
            CatalogProductNotFoundError: If the entry doesn't exist
        """
        logger.debug("getting_catalog_entry", catalog_id=entry_id)

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", entry_id)
                .maybe_single()
                .execute()
            )
        except Exception as e:
            logger.error("get_catalog_entry_failed", catalog_id=entry_id, error=str(e))
            raise DatabaseError("select", str(e))

        row = result.data if result is not None else None
        if not row:
            raise CatalogProductNotFoundError(entry_id)
        return CatalogEntry(**row)

    def _update(self, entry_id: str, data: dict[str, Any]) -> CatalogEntry:
        try:
            result = (
                self.db.table(self.table)
                .update(data)
                .eq("id", entry_id)
                .execute()
            )
        except Exception as e:
            logger.error("update_catalog_entry_failed", catalog_id=entry_id, error=str(e))
            raise DatabaseError("update", str(e))

        if not result.data:
            raise CatalogProductNotFoundError(entry_id)
        return CatalogEntry(**result.data[0])

    # ===================
    # IMPORT
    # ===================

    async def import_from_shopify(
        self,
        status: Optional[str] = "active",
        limit: Optional[int] = None
    ) -> ImportResult:
        """
        Upsert Shopify products into shopify_products, keyed on shopify_id.

        New rows get an `original` snapshot of their imported content.
        Existing rows whose Shopify updatedAt hasn't moved are skipped; the
        others have their Shopify fields refreshed while enrichment and
        link columns are left alone. Per-product failures are collected in
        `errors` and the run continues.

        Raises:
            ConfigurationError: Shopify not configured
            UpstreamBusinessError / TransientNetworkError: Listing failed
        """
        if self.shopify is None:
            raise ConfigurationError("shopify", "Shopify is not configured")

        products = await self.shopify.list_products(status=status, limit=limit)
        result = ImportResult(total=len(products))

        for product in products:
            try:
                outcome = self._import_product(catalog_row(product))
            except Exception as e:
                logger.error("catalog_import_failed", shopify_id=product.get("id"), error=str(e))
                result.errors.append(f"{product.get('id')}: {e}")
                continue

            if outcome == "imported":
                result.imported += 1
            elif outcome == "updated":
                result.updated += 1
            else:
                result.skipped += 1

        logger.info(
            "catalog_import_complete",
            total=result.total,
            imported=result.imported,
            updated=result.updated,
            skipped=result.skipped,
            errors=len(result.errors)
        )
        return result

    def _import_product(self, row: dict[str, Any]) -> str:
        try:
            existing = (
                self.db.table(self.table)
                .select("id, shopify_updated_at")
                .eq("shopify_id", row["shopify_id"])
                .maybe_single()
                .execute()
            )
        except Exception as e:
            raise DatabaseError("select", str(e))

        now = datetime.now(timezone.utc).isoformat()
        current = existing.data if existing is not None else None

        if current:
            if _not_newer(row["shopify_updated_at"], current.get("shopify_updated_at")):
                return "skipped"
            self._update(current["id"], {**row, "last_imported_at": now})
            return "updated"

        try:
            inserted = self.db.table(self.table).insert({**row, "last_imported_at": now}).execute()
        except Exception as e:
            raise DatabaseError("insert", str(e))

        entry = CatalogEntry(**inserted.data[0])
        self.snapshots.safe_create_snapshot(entry, SnapshotType.ORIGINAL, note="Initial import from Shopify")
        logger.debug("catalog_entry_imported", catalog_id=entry.id, shopify_id=entry.shopify_id)
        return "imported"

    # ===================
    # ENRICHMENT
    # ===================

    async def enrich(self, entry_id: str) -> EnrichResponse:
        """
        Generate enriched title, description and meta description.

        The linked inventory item, when there is one, contributes RRP and
        specifications to the copywriter input.

        Raises:
            ConfigurationError: Copywriter not configured
            CatalogProductNotFoundError: Entry doesn't exist
            ContentGenerationError: Copywriter failed
        """
        if self.copywriter is None or not self.copywriter.is_configured:
            raise ConfigurationError("anthropic", "AI service not configured")

        entry = self.get_entry(entry_id)
        content = await self.copywriter.generate(self._copywriter_input(entry))

        updated = self._update(entry_id, {
            "enriched_title": content.title,
            "enriched_description_html": content.description_html,
            "enriched_meta_description": content.meta_description,
            "enrichment_status": EnrichmentStatus.ENRICHED.value,
        })

        logger.info("catalog_entry_enriched", catalog_id=entry_id)
        return EnrichResponse(success=True, product=updated, content=content)

    def _copywriter_input(self, entry: CatalogEntry) -> CopywriterInput:
        title_words = entry.title.split()
        brand = entry.vendor or (title_words[0] if title_words else "") or "Unknown"
        model_number = (
            entry.product_type
            or entry.title.replace(brand, "", 1).strip()
            or entry.handle
            or "Product"
        )

        specifications: dict[str, Any] = {}
        rrp: Optional[Decimal] = None

        if entry.linked_inventory_id:
            linked = self.inventory.find_by_id(entry.linked_inventory_id)
            if linked is not None:
                specifications = {key: str(value) for key, value in linked.specifications.items()}
                rrp = linked.rrp_aud

        if rrp is None and entry.variants and entry.variants[0].compare_at_price:
            try:
                rrp = Decimal(entry.variants[0].compare_at_price)
            except InvalidOperation:
                rrp = None

        return CopywriterInput(
            brand=brand,
            model_number=model_number,
            source_title=entry.title,
            source_description=strip_html(entry.description_html),
            specifications=specifications,
            rrp_aud=rrp,
            image_count=len(entry.images)
        )

    # ===================
    # CONTENT SYNC
    # ===================

    async def sync_enriched_content(
        self,
        entry_id: str,
        request: ContentSyncRequest
    ) -> ContentSyncResponse:
        """
        Push selected enriched fields to Shopify.

        A before_sync snapshot is taken first (unless disabled) so the push
        can be rolled back. Once Shopify accepts the update, the pushed
        values become the entry's original content and it is marked synced.

        Raises:
            ConfigurationError: Shopify not configured
            ValidationError: Nothing selected, not enriched, or nothing to push
            CatalogProductNotFoundError: Entry doesn't exist
            UpstreamBusinessError: Shopify rejected the update
        """
        if self.shopify is None:
            raise ConfigurationError("shopify", "Shopify is not configured")
        self.shopify.resolve_credentials()

        fields = request.fields
        if not (fields.title or fields.description or fields.meta_description):
            raise ValidationError(
                "At least one field must be selected to sync",
                code="NO_FIELDS_SELECTED"
            )

        entry = self.get_entry(entry_id)

        if entry.enrichment_status != EnrichmentStatus.ENRICHED:
            raise ValidationError(
                "Product has not been enriched yet",
                code="NOT_ENRICHED",
                details={"enrichment_status": entry.enrichment_status.value}
            )

        if fields.meta_description:
            raise ValidationError(
                "Meta description sync is not supported yet",
                code="META_DESCRIPTION_UNSUPPORTED",
                details={"hint": "Sync title and/or description"}
            )

        title = entry.enriched_title if fields.title and entry.enriched_title else None
        description = (
            entry.enriched_description_html
            if fields.description and entry.enriched_description_html
            else None
        )
        pushed_fields = [
            name for name, value in (("title", title), ("description", description))
            if value is not None
        ]
        if not pushed_fields:
            raise ValidationError(
                "No syncable enriched content found for selected fields",
                code="NO_ENRICHED_CONTENT"
            )

        snapshot_id = None
        if request.create_snapshot:
            snapshot = self.snapshots.safe_create_snapshot(
                entry,
                SnapshotType.BEFORE_SYNC,
                note=f"Before sync: {', '.join(pushed_fields)}"
            )
            snapshot_id = snapshot.id if snapshot else None

        product = await self.shopify.update_product_content(
            entry.shopify_id,
            title=title,
            description_html=description
        )

        local: dict[str, Any] = {
            "enrichment_status": EnrichmentStatus.SYNCED.value,
            "last_synced_at": datetime.now(timezone.utc).isoformat(),
        }
        if title is not None:
            local["title"] = title
        if description is not None:
            local["description_html"] = description
        if product.updated_at:
            local["shopify_updated_at"] = product.updated_at

        # Shopify already has the content; a failed local write is not fatal
        try:
            updated = self._update(entry_id, local)
        except DatabaseError as e:
            logger.error("local_sync_update_failed", catalog_id=entry_id, error=e.message)
            updated = entry

        logger.info(
            "enriched_content_synced",
            catalog_id=entry_id,
            pushed_fields=pushed_fields,
            snapshot_id=snapshot_id
        )
        return ContentSyncResponse(
            success=True,
            product=updated,
            snapshot_id=snapshot_id,
            shopify_updated=True,
            pushed_fields=pushed_fields
        )
