"""
Idempotency guard for state-changing endpoints.

One row per (endpoint, idempotency key) in api_idempotency_keys. The
unique index on that pair is what serializes concurrent first requests;
there are no in-process locks.

Known risk: a takeover after lock expiry has no fencing token, so a slow
original holder can still finish after a new holder took over. This is
tolerable because creates only happen when no external id is known yet
and updates-by-id are naturally idempotent.
"""

import hashlib
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

import structlog
from postgrest.exceptions import APIError
from supabase import Client

from models.idempotency import (
    AcquireResult,
    Acquired,
    Conflict,
    IdempotencyRecord,
    IdempotencyState,
    IdempotentOutcome,
    InProgress,
    Replay,
)
from exceptions import (
    AppError,
    DatabaseError,
    IdempotencyConflictError,
    IdempotencyInProgressError,
)

logger = structlog.get_logger(__name__)

UNIQUE_VIOLATION = "23505"

DEFAULT_LOCK_SECONDS = 300

INTERNAL_ERROR_BODY = {
    "error": {
        "code": "INTERNAL_ERROR",
        "message": "An unexpected error occurred"
    }
}

Handler = Callable[[], Awaitable[tuple[int, Any]]]


def canonical_json(payload: Any) -> str:
    """Key-order independent JSON encoding (keys sorted at every level)."""
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str
    )


def build_request_hash(payload: Any) -> str:
    """SHA-256 of the canonical JSON of a request payload."""
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class IdempotencyService:
    """
    Acquire / finalize idempotency keys.

    acquire() never raises for expected outcomes; it returns one of
    Acquired, Replay, InProgress or Conflict.
    """

    def __init__(
        self,
        db: Client,
        lock_seconds: int = DEFAULT_LOCK_SECONDS,
        clock: Callable[[], datetime] = utc_now
    ):
        self.db = db
        self.table = "api_idempotency_keys"
        self.lock_seconds = lock_seconds
        self.clock = clock

    # ===================
    # ACQUIRE / FINALIZE
    # ===================

    def acquire(
        self,
        endpoint: str,
        idempotency_key: str,
        request_hash: str,
        lock_seconds: Optional[int] = None
    ) -> AcquireResult:
        """
        Claim a key for one execution.

        Args:
            endpoint: Logical endpoint (keys are scoped per endpoint)
            idempotency_key: Client-supplied key
            request_hash: build_request_hash() of the payload
            lock_seconds: Lock duration (defaults to the service setting)

        Returns:
            Acquired(record_id) | Replay(status, body) | InProgress | Conflict
        """
        now = self.clock()
        if lock_seconds is None:
            lock_seconds = self.lock_seconds
        locked_until = now + timedelta(seconds=lock_seconds)

        existing = self._find(endpoint, idempotency_key)
        if existing is not None:
            return self._resolve_existing(existing, request_hash, now, locked_until)

        try:
            result = (
                self.db.table(self.table)
                .insert({
                    "endpoint": endpoint,
                    "idempotency_key": idempotency_key,
                    "request_hash": request_hash,
                    "state": IdempotencyState.IN_PROGRESS.value,
                    "locked_until": locked_until.isoformat()
                })
                .execute()
            )
        except APIError as e:
            if e.code != UNIQUE_VIOLATION:
                logger.error("idempotency_insert_failed", endpoint=endpoint, error=str(e))
                raise DatabaseError("insert", str(e))

            # Lost the race for the first insert: follow the winner's record
            logger.info("idempotency_insert_race_lost", endpoint=endpoint)
            winner = self._find(endpoint, idempotency_key)
            if winner is None:
                return InProgress()
            return self._resolve_existing(winner, request_hash, now, locked_until)

        if not result.data:
            return InProgress()

        record_id = result.data[0]["id"]
        logger.info("idempotency_acquired", endpoint=endpoint, record_id=record_id)
        return Acquired(record_id=record_id)

    def finalize(
        self,
        record_id: str,
        status_code: int,
        response_body: Any,
        failed: bool = False
    ) -> None:
        """
        Store the response for replay and release the lock.

        Must run on every exit path after acquire() returned Acquired.
        """
        state = IdempotencyState.FAILED if failed else IdempotencyState.COMPLETED

        try:
            self.db.table(self.table).update({
                "state": state.value,
                "status_code": status_code,
                "response_body": response_body,
                "locked_until": self.clock().isoformat()
            }).eq("id", record_id).execute()

        except Exception as e:
            logger.error(
                "idempotency_finalize_failed",
                record_id=record_id,
                error=str(e)
            )
            raise DatabaseError("update", str(e))

        logger.info(
            "idempotency_finalized",
            record_id=record_id,
            state=state.value,
            status_code=status_code
        )

    # ===================
    # EXECUTION WRAPPER
    # ===================

    async def execute(
        self,
        endpoint: str,
        idempotency_key: Optional[str],
        payload: Any,
        handler: Handler
    ) -> IdempotentOutcome:
        """
        Run handler under an idempotency key.

        Without a key the handler simply runs. With a key:
        Conflict and InProgress raise 409 errors, Replay returns the stored
        response without running the handler, Acquired runs the handler and
        finalizes the record whatever happens.

        AppErrors raised by the handler become their error body. Statuses
        >= 500 and unexpected exceptions are recorded as failed, so a retry
        with the same key can take the record over. Unexpected exceptions
        are re-raised after finalization.
        """
        if not idempotency_key:
            try:
                status_code, body = await handler()
            except AppError as e:
                status_code, body = e.status_code, e.to_dict()
            return IdempotentOutcome(status_code=status_code, body=body)

        outcome = self.acquire(endpoint, idempotency_key, build_request_hash(payload))

        if isinstance(outcome, Conflict):
            raise IdempotencyConflictError(endpoint)
        if isinstance(outcome, InProgress):
            raise IdempotencyInProgressError(endpoint)
        if isinstance(outcome, Replay):
            logger.info("idempotency_replayed", endpoint=endpoint, status_code=outcome.status_code)
            return IdempotentOutcome(
                status_code=outcome.status_code,
                body=outcome.response_body,
                replayed=True
            )

        status_code, body, failed = 500, INTERNAL_ERROR_BODY, True
        try:
            status_code, body = await handler()
            failed = status_code >= 500
        except AppError as e:
            status_code, body, failed = e.status_code, e.to_dict(), e.status_code >= 500
        finally:
            self._finalize_after_run(outcome.record_id, status_code, body, failed)

        return IdempotentOutcome(status_code=status_code, body=body)

    # ===================
    # INTERNALS
    # ===================

    def _find(self, endpoint: str, idempotency_key: str) -> Optional[IdempotencyRecord]:
        try:
            result = (
                self.db.table(self.table)
                .select("id, endpoint, idempotency_key, request_hash, state, status_code, response_body, locked_until")
                .eq("endpoint", endpoint)
                .eq("idempotency_key", idempotency_key)
                .maybe_single()
                .execute()
            )
        except Exception as e:
            logger.error("idempotency_lookup_failed", endpoint=endpoint, error=str(e))
            raise DatabaseError("select", str(e))

        row = result.data if result is not None else None
        if not row:
            return None
        return IdempotencyRecord(**row, locked_until_raw=row["locked_until"])

    def _resolve_existing(
        self,
        existing: IdempotencyRecord,
        request_hash: str,
        now: datetime,
        locked_until: datetime
    ) -> AcquireResult:
        if existing.request_hash != request_hash:
            logger.warning(
                "idempotency_conflict",
                endpoint=existing.endpoint,
                record_id=existing.id
            )
            return Conflict()

        if existing.state == IdempotencyState.COMPLETED:
            return Replay(
                status_code=existing.status_code or 200,
                response_body=existing.response_body
            )

        if existing.state == IdempotencyState.IN_PROGRESS and existing.locked_until > now:
            return InProgress()

        return self._take_over(existing, locked_until)

    def _take_over(self, existing: IdempotencyRecord, locked_until: datetime) -> AcquireResult:
        """
        Re-lock an expired or failed record.

        Conditional on the state and lock we read, so two concurrent
        takeovers cannot both win.
        """
        try:
            result = (
                self.db.table(self.table)
                .update({
                    "state": IdempotencyState.IN_PROGRESS.value,
                    "locked_until": locked_until.isoformat()
                })
                .eq("id", existing.id)
                .eq("state", existing.state.value)
                .eq("locked_until", existing.locked_until_raw)
                .execute()
            )
        except Exception as e:
            logger.warning("idempotency_takeover_failed", record_id=existing.id, error=str(e))
            return InProgress()

        if not result.data:
            logger.info("idempotency_takeover_lost", record_id=existing.id)
            return InProgress()

        logger.warning(
            "idempotency_taken_over",
            record_id=existing.id,
            previous_state=existing.state.value
        )
        return Acquired(record_id=existing.id)

    def _finalize_after_run(self, record_id: str, status_code: int, body: Any, failed: bool) -> None:
        # The lock still expires on its own if this write fails
        try:
            self.finalize(record_id, status_code, body, failed=failed)
        except DatabaseError:
            logger.error("idempotency_lock_left_to_expire", record_id=record_id)
