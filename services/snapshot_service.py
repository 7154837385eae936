"""
Snapshot / rollback for catalog entries.

A snapshot is an immutable copy of the mutable fields of a catalog entry.
Rollback writes every captured field back in a single update, so a
partially restored entry is never observable.
"""

from datetime import datetime, timezone
from typing import Optional

import structlog
from supabase import Client

from models.catalog import (
    CatalogEntry,
    EnrichmentStatus,
    RollbackResponse,
    Snapshot,
    SnapshotData,
    SnapshotSummary,
    SnapshotType,
)
from exceptions import (
    CatalogProductNotFoundError,
    DatabaseError,
    SnapshotNotFoundError,
)
from integrations.shopify import ShopifyClient

logger = structlog.get_logger(__name__)


def capture(entry: CatalogEntry) -> SnapshotData:
    """Copy the snapshot-able fields of an entry."""
    return SnapshotData(**{name: getattr(entry, name) for name in SnapshotData.model_fields})


class SnapshotService:
    """
    Snapshot business logic.

    Snapshots are append-only: there is no update or delete.
    """

    def __init__(self, db: Client, shopify: Optional[ShopifyClient] = None):
        self.db = db
        self.shopify = shopify
        self.table = "shopify_product_snapshots"
        self.catalog_table = "shopify_products"

    # ===================
    # CREATE / LIST
    # ===================

    def create_snapshot(
        self,
        entry: CatalogEntry,
        snapshot_type: SnapshotType = SnapshotType.MANUAL,
        note: Optional[str] = None
    ) -> Snapshot:
        """
        Capture the current state of a catalog entry.

        Raises:
            DatabaseError: Insert failed
        """
        row = {
            "shopify_product_id": entry.id,
            "snapshot_type": snapshot_type.value,
            "note": note,
            "data": capture(entry).to_row(),
        }

        try:
            result = self.db.table(self.table).insert(row).execute()
        except Exception as e:
            logger.error(
                "create_snapshot_failed",
                catalog_id=entry.id,
                snapshot_type=snapshot_type.value,
                error=str(e)
            )
            raise DatabaseError("insert", str(e))

        if not result.data:
            raise DatabaseError("insert", "No snapshot returned")

        snapshot = Snapshot(**result.data[0])
        logger.info(
            "snapshot_created",
            catalog_id=entry.id,
            snapshot_id=snapshot.id,
            snapshot_type=snapshot_type.value
        )
        return snapshot

    def safe_create_snapshot(
        self,
        entry: CatalogEntry,
        snapshot_type: SnapshotType,
        note: Optional[str] = None
    ) -> Optional[Snapshot]:
        """create_snapshot for callers where the snapshot is a safety net, not a requirement."""
        try:
            return self.create_snapshot(entry, snapshot_type, note)
        except DatabaseError as e:
            logger.warning(
                "snapshot_create_failed",
                catalog_id=entry.id,
                snapshot_type=snapshot_type.value,
                error=e.message
            )
            return None

    def list_snapshots(self, owner_id: str) -> list[SnapshotSummary]:
        """Snapshots of one entry, newest first."""
        try:
            result = (
                self.db.table(self.table)
                .select("id, snapshot_type, note, created_at")
                .eq("shopify_product_id", owner_id)
                .order("created_at", desc=True)
                .execute()
            )
        except Exception as e:
            logger.error("list_snapshots_failed", catalog_id=owner_id, error=str(e))
            raise DatabaseError("select", str(e))

        return [SnapshotSummary(**row) for row in result.data or []]

    def get_snapshot(self, owner_id: str, snapshot_id: str) -> Snapshot:
        """
        Raises:
            SnapshotNotFoundError: Missing, or owned by another entry
        """
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", snapshot_id)
                .eq("shopify_product_id", owner_id)
                .maybe_single()
                .execute()
            )
        except Exception as e:
            logger.error("get_snapshot_failed", snapshot_id=snapshot_id, error=str(e))
            raise DatabaseError("select", str(e))

        row = result.data if result is not None else None
        if not row:
            raise SnapshotNotFoundError(snapshot_id)
        return Snapshot(**row)

    # ===================
    # ROLLBACK
    # ===================

    async def rollback(
        self,
        owner_id: str,
        snapshot_id: str,
        push_to_shopify: bool = False
    ) -> RollbackResponse:
        """
        Restore a catalog entry to a snapshot.

        Identity fields (id, shopify_id, handle, linked_inventory_id) are
        never touched. The Shopify push is best-effort: its failure leaves
        the local restore in place and reports shopify_synced=False.

        Args:
            owner_id: Catalog entry UUID
            snapshot_id: Snapshot UUID (must belong to owner_id)
            push_to_shopify: Also push title/description to Shopify

        Raises:
            CatalogProductNotFoundError: Entry doesn't exist
            SnapshotNotFoundError: Snapshot missing or foreign
        """
        entry = self._get_owner(owner_id)
        snapshot = self.get_snapshot(owner_id, snapshot_id)
        data = snapshot.data

        status = EnrichmentStatus.ENRICHED if data.has_enriched_content else EnrichmentStatus.PENDING
        update = {**data.to_row(), "enrichment_status": status.value}

        restored = self._update_owner(owner_id, update, "rollback")
        logger.info(
            "snapshot_restored",
            catalog_id=owner_id,
            snapshot_id=snapshot_id,
            enrichment_status=status.value
        )

        shopify_synced = False
        if push_to_shopify:
            pushed = await self._push_restored(entry, data)
            if pushed is not None:
                restored, shopify_synced = pushed, True

        return RollbackResponse(
            success=True,
            product=restored,
            restored_from=snapshot,
            shopify_synced=shopify_synced
        )

    async def _push_restored(self, entry: CatalogEntry, data: SnapshotData) -> Optional[CatalogEntry]:
        if self.shopify is None or not self.shopify.is_configured():
            logger.warning("rollback_shopify_push_skipped", catalog_id=entry.id, reason="shopify not configured")
            return None

        try:
            await self.shopify.update_product_content(
                entry.shopify_id,
                title=data.title,
                description_html=data.description_html
            )
            return self._update_owner(entry.id, {
                "last_synced_at": datetime.now(timezone.utc).isoformat(),
                "enrichment_status": EnrichmentStatus.SYNCED.value,
            }, "rollback_sync")
        except Exception as e:
            logger.error("rollback_shopify_push_failed", catalog_id=entry.id, error=str(e))
            return None

    # ===================
    # OWNER ROW
    # ===================

    def _get_owner(self, owner_id: str) -> CatalogEntry:
        try:
            result = (
                self.db.table(self.catalog_table)
                .select("*")
                .eq("id", owner_id)
                .maybe_single()
                .execute()
            )
        except Exception as e:
            logger.error("get_catalog_entry_failed", catalog_id=owner_id, error=str(e))
            raise DatabaseError("select", str(e))

        row = result.data if result is not None else None
        if not row:
            raise CatalogProductNotFoundError(owner_id)
        return CatalogEntry(**row)

    def _update_owner(self, owner_id: str, data: dict, operation: str) -> CatalogEntry:
        try:
            result = (
                self.db.table(self.catalog_table)
                .update(data)
                .eq("id", owner_id)
                .execute()
            )
        except Exception as e:
            logger.error(f"{operation}_update_failed", catalog_id=owner_id, error=str(e))
            raise DatabaseError("update", str(e))

        if not result.data:
            raise CatalogProductNotFoundError(owner_id)
        return CatalogEntry(**result.data[0])
