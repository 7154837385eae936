"""
Inventory item reads and sync bookkeeping.

The publish orchestrator never writes to the store itself; the route
calls mark_syncing() before a publish and record_sync_result() after it.
"""

from datetime import datetime, timezone
from typing import Optional

import structlog
from supabase import Client

from models.inventory import InventoryRecord, InventoryItemSummary, SyncStatus
from models.sync import Platform, SyncResult
from exceptions import InventoryItemNotFoundError, DatabaseError

logger = structlog.get_logger(__name__)

SUMMARY_COLUMNS = "id, brand, model, sku, rrp_aud, sale_price"


class InventoryService:
    """
    Inventory item business logic.

    Handles lookups and the sync status columns of inventory_items.
    """

    def __init__(self, db: Client):
        self.db = db
        self.table = "inventory_items"

    # ===================
    # READ OPERATIONS
    # ===================

    def get_by_id(self, item_id: str) -> InventoryRecord:
        """
        Get a single inventory item by ID.

        Raises:
            InventoryItemNotFoundError: If the item doesn't exist
        """
        record = self.find_by_id(item_id)
        if record is None:
            raise InventoryItemNotFoundError(item_id)
        return record

    def find_by_id(self, item_id: str) -> Optional[InventoryRecord]:
        """Get an inventory item, or None if it doesn't exist."""
        logger.debug("getting_inventory_item", item_id=item_id)

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", item_id)
                .maybe_single()
                .execute()
            )
        except Exception as e:
            logger.error("get_inventory_item_failed", item_id=item_id, error=str(e))
            raise DatabaseError("select", str(e))

        row = result.data if result is not None else None
        return InventoryRecord(**row) if row else None

    def get_summary(self, item_id: str) -> Optional[InventoryItemSummary]:
        """Columns shown next to a catalog entry (current link)."""
        try:
            result = (
                self.db.table(self.table)
                .select(SUMMARY_COLUMNS)
                .eq("id", item_id)
                .maybe_single()
                .execute()
            )
        except Exception as e:
            logger.error("get_inventory_summary_failed", item_id=item_id, error=str(e))
            raise DatabaseError("select", str(e))

        row = result.data if result is not None else None
        return InventoryItemSummary(**row) if row else None

    # ===================
    # SYNC BOOKKEEPING
    # ===================

    def mark_syncing(self, item_id: str) -> None:
        """Flag an item as being published."""
        try:
            self.db.table(self.table).update({
                "sync_status": SyncStatus.SYNCING.value
            }).eq("id", item_id).execute()
        except Exception as e:
            logger.error("mark_syncing_failed", item_id=item_id, error=str(e))
            raise DatabaseError("update", str(e))

    def mark_sync_failed(self, item_id: str, error: str) -> bool:
        """
        Move an item out of 'syncing' after a publish blew up.

        Best effort: a failed write is logged and reported as False.
        """
        try:
            self.db.table(self.table).update({
                "sync_status": SyncStatus.ERROR.value,
                "sync_error": error,
            }).eq("id", item_id).execute()
        except Exception as e:
            logger.error("mark_sync_failed_failed", item_id=item_id, error=str(e))
            return False

        logger.warning("item_sync_failed", item_id=item_id, error=error)
        return True

    def record_sync_result(self, item_id: str, result: SyncResult) -> InventoryRecord:
        """
        Write the outcome of a publish back to the item.

        External ids returned by successful platforms are stored so the
        next publish updates instead of creating. A failed Shopify result
        that still carries a product id (draft created, variant step
        failed) is stored too. Ids are never cleared.

        Args:
            item_id: Inventory item UUID
            result: Publish outcome

        Returns:
            Updated InventoryRecord
        """
        data = {
            "sync_status": (SyncStatus.SYNCED if result.success else SyncStatus.ERROR).value,
            "last_synced_at": datetime.now(timezone.utc).isoformat(),
            "sync_error": "; ".join(result.errors) if result.errors else None,
        }

        shopify = result.result_for(Platform.SHOPIFY)
        if shopify and shopify.external_id:
            data["shopify_product_id"] = shopify.external_id
            if shopify.secondary_id:
                data["shopify_variant_id"] = shopify.secondary_id

        hubspot = result.result_for(Platform.HUBSPOT)
        if hubspot and hubspot.success and hubspot.external_id:
            data["hubspot_deal_id"] = hubspot.external_id

        notion = result.result_for(Platform.NOTION)
        if notion and notion.success and notion.external_id:
            data["notion_page_id"] = notion.external_id

        logger.info(
            "recording_sync_result",
            item_id=item_id,
            sync_status=data["sync_status"],
            error_count=len(result.errors)
        )

        try:
            updated = (
                self.db.table(self.table)
                .update(data)
                .eq("id", item_id)
                .execute()
            )
        except Exception as e:
            logger.error("record_sync_result_failed", item_id=item_id, error=str(e))
            raise DatabaseError("update", str(e))

        if not updated.data:
            raise InventoryItemNotFoundError(item_id)

        return InventoryRecord(**updated.data[0])
