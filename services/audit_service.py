"""
Append-only audit trail for publish attempts.

Audit writes never fail the operation they describe.
"""

from typing import Any, Optional

import structlog
from supabase import Client

from models.inventory import InventoryRecord
from models.sync import SyncResult

logger = structlog.get_logger(__name__)


class AuditService:

    def __init__(self, db: Client):
        self.db = db
        self.table = "audit_log"

    def log(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        summary: str,
        metadata: Optional[dict[str, Any]] = None
    ) -> bool:
        """Insert an audit row. Returns False (and logs) if the write failed."""
        try:
            self.db.table(self.table).insert({
                "entity_type": entity_type,
                "entity_id": entity_id,
                "action": action,
                "summary": summary,
                "metadata": metadata or {}
            }).execute()
            return True
        except Exception as e:
            logger.warning(
                "audit_log_failed",
                entity_type=entity_type,
                entity_id=entity_id,
                action=action,
                error=str(e)
            )
            return False

    def log_sync(self, record: InventoryRecord, result: SyncResult) -> bool:
        """Record one publish attempt of an inventory item."""
        action = "sync_completed" if result.success else "sync_failed"
        platforms = [platform.value for platform in result.platforms]

        if result.success:
            summary = f"Published {record.display_name} to {', '.join(platforms)}"
        else:
            summary = f"Publish of {record.display_name} failed: {'; '.join(result.errors)}"

        return self.log(
            entity_type="inventory_item",
            entity_id=record.id,
            action=action,
            summary=summary,
            metadata={
                "platforms": {
                    platform.value: outcome.model_dump(mode="json")
                    for platform, outcome in result.platforms.items()
                },
                "errors": result.errors
            }
        )
