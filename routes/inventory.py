"""
Inventory API routes: item lookup and multi-platform publish.

Publish honours the Idempotency-Key header.
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
import structlog

from models.inventory import InventoryRecord, PublishRequest
from services.audit_service import AuditService
from services.idempotency_service import IdempotencyService
from services.inventory_service import InventoryService
from services.publish_service import PublishService
from routes.common import handle_error, idempotency_key, outcome_response, validate_uuid
from routes.deps import (
    get_audit_service,
    get_idempotency_service,
    get_inventory_service,
    get_publish_service,
)

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/{item_id}", response_model=InventoryRecord)
async def get_item(
    item_id: str,
    inventory: InventoryService = Depends(get_inventory_service)
):
    """Get a single inventory item."""
    try:
        validate_uuid(item_id)
        return inventory.get_by_id(item_id)
    except Exception as e:
        return handle_error(e)


@router.post("/{item_id}/publish")
async def publish_item(
    item_id: str,
    data: Optional[PublishRequest] = Body(None),
    key: Optional[str] = Depends(idempotency_key),
    inventory: InventoryService = Depends(get_inventory_service),
    publisher: PublishService = Depends(get_publish_service),
    audit: AuditService = Depends(get_audit_service),
    idempotency: IdempotencyService = Depends(get_idempotency_service)
) -> JSONResponse:
    """
    Publish an item to Shopify, HubSpot (pre-owned only) and Notion.

    Partial failure still returns 200 with success=false and the
    per-platform errors; the item's sync_status reflects the outcome.
    """
    request = data or PublishRequest()

    try:
        validate_uuid(item_id)

        async def run():
            record = inventory.get_by_id(item_id)
            inventory.mark_syncing(item_id)

            try:
                result = await publisher.publish(
                    record,
                    publish_live=request.publish_live,
                    concurrent=request.concurrent
                )
                updated = inventory.record_sync_result(item_id, result)
            except Exception as e:
                logger.error("publish_aborted", item_id=item_id, error=str(e))
                inventory.mark_sync_failed(item_id, str(e))
                audit.log(
                    entity_type="inventory_item",
                    entity_id=item_id,
                    action="sync_failed",
                    summary=f"Publish of {record.display_name} failed: {e}",
                    metadata={"error": str(e)}
                )
                raise

            audit.log_sync(record, result)

            return 200, {
                "success": result.success,
                "result": result.model_dump(mode="json"),
                "item": updated.model_dump(mode="json"),
            }

        outcome = await idempotency.execute(
            f"/api/inventory/{item_id}/publish",
            key,
            request.model_dump(mode="json"),
            run
        )
        return outcome_response(outcome)
    except Exception as e:
        return handle_error(e)
