"""
Publish orchestrator: pushes one inventory item to Shopify, HubSpot and
Notion.

Platforms run in a fixed order (Shopify, HubSpot, Notion). HubSpot only
applies to pre-owned items. A platform failure is recorded as
"{Platform}: {message}" and never stops the remaining platforms; the
overall result is successful only if every attempted platform succeeded.

Progress is reported to synchronous listeners as SyncEvents:

    service.subscribe(log_sync_event)
    result = await service.publish(record)
"""

import asyncio
from typing import Awaitable, Callable, Optional, Protocol

import structlog

from models.inventory import InventoryRecord
from models.sync import (
    PUBLISH_ORDER,
    Platform,
    PlatformResult,
    SyncEvent,
    SyncEventType,
    SyncResult,
)
from exceptions import ConfigurationError

logger = structlog.get_logger(__name__)

DEFAULT_PLATFORM_TIMEOUT = 60.0


class PlatformPublisher(Protocol):
    def publish(self, record: InventoryRecord, publish_live: bool = False) -> Awaitable[PlatformResult]:
        ...


SyncListener = Callable[[SyncEvent], None]


def log_sync_event(event: SyncEvent) -> None:
    """Default listener: one structured log line per event."""
    logger.info(
        event.type.value,
        item_id=event.item_id,
        platform=event.platform.value if event.platform else None,
        success=event.result.success if event.result else event.success,
        sync_message=event.message
    )


class PublishService:
    """
    Publish orchestration.

    Holds no store handle: persisting the outcome is the caller's job
    (InventoryService.record_sync_result).
    """

    def __init__(
        self,
        publishers: dict[Platform, Optional[PlatformPublisher]],
        platform_timeout: float = DEFAULT_PLATFORM_TIMEOUT
    ):
        self.publishers = publishers
        self.platform_timeout = platform_timeout
        self._listeners: list[SyncListener] = []

    # ===================
    # LISTENERS
    # ===================

    def subscribe(self, listener: SyncListener) -> Callable[[], None]:
        """Register a listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: SyncEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(
                    "sync_listener_failed",
                    listener=getattr(listener, "__name__", repr(listener)),
                    event_type=event.type.value,
                    error=str(e)
                )

    # ===================
    # PUBLISH
    # ===================

    @staticmethod
    def applicable_platforms(record: InventoryRecord) -> list[Platform]:
        """Platforms for this item, in publish order."""
        return [
            platform for platform in PUBLISH_ORDER
            if platform != Platform.HUBSPOT or record.is_pre_owned
        ]

    async def publish(
        self,
        record: InventoryRecord,
        publish_live: bool = False,
        concurrent: bool = False
    ) -> SyncResult:
        """
        Publish an item to every applicable platform.

        Never raises for platform failures; they are reported in the result.

        Args:
            record: Inventory item to publish
            publish_live: Passed to each publisher; Shopify logs and ignores it
            concurrent: Call platforms at the same time instead of in order

        Returns:
            SyncResult with one entry per attempted platform
        """
        platforms = self.applicable_platforms(record)
        logger.info(
            "publish_started",
            item_id=record.id,
            platforms=[p.value for p in platforms],
            concurrent=concurrent
        )
        self._emit(SyncEvent(
            type=SyncEventType.SYNC_STARTED,
            item_id=record.id,
            message=f"Publishing {record.display_name}"
        ))

        result = SyncResult()

        if concurrent:
            for platform in platforms:
                self._emit_platform_started(record, platform)

            outcomes = await asyncio.gather(*(
                self._run_platform(platform, record, publish_live)
                for platform in platforms
            ))

            for platform, outcome in zip(platforms, outcomes):
                self._record(result, platform, outcome)
                self._emit_platform_completed(record, platform, outcome)
        else:
            for platform in platforms:
                self._emit_platform_started(record, platform)
                outcome = await self._run_platform(platform, record, publish_live)
                self._record(result, platform, outcome)
                self._emit_platform_completed(record, platform, outcome)

        result.success = not result.errors

        logger.info(
            "publish_complete",
            item_id=record.id,
            success=result.success,
            errors=result.errors
        )
        self._emit(SyncEvent(
            type=SyncEventType.SYNC_COMPLETED,
            item_id=record.id,
            success=result.success,
            message="Publish complete" if result.success else "; ".join(result.errors)
        ))
        return result

    async def _run_platform(
        self,
        platform: Platform,
        record: InventoryRecord,
        publish_live: bool
    ) -> PlatformResult:
        publisher = self.publishers.get(platform)

        try:
            if publisher is None:
                raise ConfigurationError(platform.value, f"{platform.label} is not configured")
            return await asyncio.wait_for(
                publisher.publish(record, publish_live),
                timeout=self.platform_timeout
            )
        except asyncio.TimeoutError:
            message = f"Timed out after {self.platform_timeout:g}s"
        except Exception as e:
            message = str(e) or type(e).__name__

        logger.warning(
            "platform_publish_failed",
            item_id=record.id,
            platform=platform.value,
            error=message
        )
        return PlatformResult(success=False, error=message)

    @staticmethod
    def _record(result: SyncResult, platform: Platform, outcome: PlatformResult) -> None:
        result.platforms[platform] = outcome
        if not outcome.success:
            result.errors.append(f"{platform.label}: {outcome.error}")

    def _emit_platform_started(self, record: InventoryRecord, platform: Platform) -> None:
        self._emit(SyncEvent(
            type=SyncEventType.PLATFORM_STARTED,
            item_id=record.id,
            platform=platform,
            message=f"Publishing to {platform.label}"
        ))

    def _emit_platform_completed(
        self,
        record: InventoryRecord,
        platform: Platform,
        outcome: PlatformResult
    ) -> None:
        self._emit(SyncEvent(
            type=SyncEventType.PLATFORM_COMPLETED,
            item_id=record.id,
            platform=platform,
            result=outcome,
            success=outcome.success,
            message=(
                f"{platform.label} published"
                if outcome.success
                else f"{platform.label} failed: {outcome.error}"
            )
        ))
