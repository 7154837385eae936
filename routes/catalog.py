"""
Catalog API routes: Shopify import, matching, enrichment, content sync
and snapshots.

Import, enrich and sync honour the Idempotency-Key header.
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
import structlog

from models.catalog import (
    ContentSyncRequest,
    ImportRequest,
    LinkRequest,
    RollbackRequest,
    RollbackResponse,
    SnapshotCreateRequest,
    SnapshotSummary,
    SnapshotType,
    Snapshot,
)
from models.matching import AutoMatchResult, MatchSuggestionsResponse
from services.catalog_service import CatalogService
from services.idempotency_service import IdempotencyService
from services.inventory_service import InventoryService
from services.matching_service import MatchingService
from services.snapshot_service import SnapshotService
from exceptions import InventoryItemNotFoundError
from routes.common import handle_error, idempotency_key, outcome_response, validate_uuid
from routes.deps import (
    get_catalog_service,
    get_idempotency_service,
    get_inventory_service,
    get_matching_service,
    get_snapshot_service,
)

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===================
# IMPORT
# ===================

@router.post("/import")
async def import_catalog(
    data: Optional[ImportRequest] = Body(None),
    key: Optional[str] = Depends(idempotency_key),
    catalog: CatalogService = Depends(get_catalog_service),
    idempotency: IdempotencyService = Depends(get_idempotency_service)
) -> JSONResponse:
    """
    Import products from Shopify (active only by default).

    New products get an original snapshot; unchanged ones are skipped.
    """
    request = data or ImportRequest()

    try:
        async def run():
            result = await catalog.import_from_shopify(status=request.status, limit=request.limit)
            return 200, {"success": True, **result.model_dump(mode="json")}

        outcome = await idempotency.execute(
            "/api/catalog/import",
            key,
            request.model_dump(mode="json"),
            run
        )
        return outcome_response(outcome)
    except Exception as e:
        return handle_error(e)


# ===================
# MATCHING
# ===================

@router.post("/auto-match", response_model=AutoMatchResult)
async def auto_match(matching: MatchingService = Depends(get_matching_service)):
    """
    Link every unlinked catalog entry with a high-confidence match.

    Per-entry failures are reported in `errors`; the batch always completes.
    """
    try:
        return matching.auto_match_all()
    except Exception as e:
        return handle_error(e)


@router.get("/{entry_id}/match", response_model=MatchSuggestionsResponse)
async def get_match_suggestions(
    entry_id: str,
    catalog: CatalogService = Depends(get_catalog_service),
    matching: MatchingService = Depends(get_matching_service),
    inventory: InventoryService = Depends(get_inventory_service)
):
    """Ranked inventory suggestions plus the current link, if any."""
    try:
        validate_uuid(entry_id)
        entry = catalog.get_entry(entry_id)

        current_link = None
        if entry.linked_inventory_id:
            current_link = inventory.get_summary(entry.linked_inventory_id)

        return MatchSuggestionsResponse(
            suggestions=matching.find_matches(entry),
            current_link=current_link
        )
    except Exception as e:
        return handle_error(e)


@router.post("/{entry_id}/match")
async def link_product(
    entry_id: str,
    data: LinkRequest,
    catalog: CatalogService = Depends(get_catalog_service),
    matching: MatchingService = Depends(get_matching_service),
    inventory: InventoryService = Depends(get_inventory_service)
):
    """Link a catalog entry to an inventory item (both must exist)."""
    try:
        validate_uuid(entry_id)
        validate_uuid(data.inventory_item_id, "inventory_item_id")

        catalog.get_entry(entry_id)
        if inventory.find_by_id(data.inventory_item_id) is None:
            raise InventoryItemNotFoundError(data.inventory_item_id)

        matching.link_product(entry_id, data.inventory_item_id)
        return {"success": True, "linked_inventory_id": data.inventory_item_id}
    except Exception as e:
        return handle_error(e)


@router.delete("/{entry_id}/match")
async def unlink_product(
    entry_id: str,
    catalog: CatalogService = Depends(get_catalog_service),
    matching: MatchingService = Depends(get_matching_service)
):
    """Remove a catalog entry's inventory link."""
    try:
        validate_uuid(entry_id)
        catalog.get_entry(entry_id)
        matching.unlink_product(entry_id)
        return {"success": True, "linked_inventory_id": None}
    except Exception as e:
        return handle_error(e)


# ===================
# ENRICHMENT / SYNC
# ===================

@router.post("/{entry_id}/enrich")
async def enrich_entry(
    entry_id: str,
    key: Optional[str] = Depends(idempotency_key),
    catalog: CatalogService = Depends(get_catalog_service),
    idempotency: IdempotencyService = Depends(get_idempotency_service)
) -> JSONResponse:
    """Generate enriched title, description and meta description."""
    try:
        validate_uuid(entry_id)

        async def run():
            response = await catalog.enrich(entry_id)
            return 200, response.model_dump(mode="json")

        outcome = await idempotency.execute(
            f"/api/catalog/{entry_id}/enrich",
            key,
            {"id": entry_id},
            run
        )
        return outcome_response(outcome)
    except Exception as e:
        return handle_error(e)


@router.post("/{entry_id}/sync")
async def sync_entry(
    entry_id: str,
    data: ContentSyncRequest,
    key: Optional[str] = Depends(idempotency_key),
    catalog: CatalogService = Depends(get_catalog_service),
    idempotency: IdempotencyService = Depends(get_idempotency_service)
) -> JSONResponse:
    """
    Push selected enriched fields to Shopify.

    A before_sync snapshot is taken unless create_snapshot is false.
    """
    try:
        validate_uuid(entry_id)

        async def run():
            response = await catalog.sync_enriched_content(entry_id, data)
            return 200, response.model_dump(mode="json")

        outcome = await idempotency.execute(
            f"/api/catalog/{entry_id}/sync",
            key,
            data.model_dump(mode="json"),
            run
        )
        return outcome_response(outcome)
    except Exception as e:
        return handle_error(e)


# ===================
# SNAPSHOTS
# ===================

@router.get("/{entry_id}/snapshots")
async def list_snapshots(
    entry_id: str,
    catalog: CatalogService = Depends(get_catalog_service),
    snapshots: SnapshotService = Depends(get_snapshot_service)
):
    """Snapshots of a catalog entry, newest first."""
    try:
        validate_uuid(entry_id)
        catalog.get_entry(entry_id)
        items: list[SnapshotSummary] = snapshots.list_snapshots(entry_id)
        return {"snapshots": [item.model_dump(mode="json") for item in items]}
    except Exception as e:
        return handle_error(e)


@router.post("/{entry_id}/snapshots", response_model=Snapshot, status_code=201)
async def create_snapshot(
    entry_id: str,
    data: Optional[SnapshotCreateRequest] = Body(None),
    catalog: CatalogService = Depends(get_catalog_service),
    snapshots: SnapshotService = Depends(get_snapshot_service)
):
    """Take a manual snapshot of the current state."""
    try:
        validate_uuid(entry_id)
        entry = catalog.get_entry(entry_id)
        return snapshots.create_snapshot(
            entry,
            SnapshotType.MANUAL,
            note=data.note if data else None
        )
    except Exception as e:
        return handle_error(e)


@router.post("/{entry_id}/rollback", response_model=RollbackResponse)
async def rollback_entry(
    entry_id: str,
    data: RollbackRequest,
    snapshots: SnapshotService = Depends(get_snapshot_service)
):
    """Restore a catalog entry from one of its snapshots."""
    try:
        validate_uuid(entry_id)
        validate_uuid(data.snapshot_id, "snapshot_id")
        return await snapshots.rollback(
            entry_id,
            data.snapshot_id,
            push_to_shopify=data.sync_to_shopify
        )
    except Exception as e:
        return handle_error(e)
