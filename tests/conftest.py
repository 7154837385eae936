"""
Shared test fixtures.

The Supabase mock is a small in-memory store implementing the subset of
the query builder the services use, including unique constraints that
fail the way Postgres does (APIError code 23505).
"""

import os
import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

import copy
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional
from uuid import uuid4

import httpx
import pytest
from postgrest.exceptions import APIError

from config.settings import Settings
from utils.retry import RetryPolicy


# ===================
# MOCK SUPABASE CLIENT
# ===================

UNIQUE_CONSTRAINTS = {
    "api_idempotency_keys": [("endpoint", "idempotency_key")],
    "oauth_tokens": [("provider", "shop")],
    "shopify_products": [("shopify_id",)],
}

BASE_TIME = datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)


class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: Any = None, count: Optional[int] = None):
        self.data = data
        self.count = count


class MockSupabaseQuery:
    """Chainable query against one in-memory table."""

    def __init__(self, client: "MockSupabaseClient", table: str):
        self._client = client
        self._table = table
        self._op = "select"
        self._payload: Any = None
        self._columns: Optional[list[str]] = None
        self._filters: list[Callable[[dict], bool]] = []
        self._order: list[tuple[str, bool]] = []
        self._limit: Optional[int] = None
        self._single = False
        self._maybe_single = False

    # ---- operations ----

    def select(self, columns: str = "*", count: Optional[str] = None):
        if self._op == "select" and columns.strip() != "*":
            self._columns = [c.strip() for c in columns.split(",")]
        return self

    def insert(self, data):
        self._op, self._payload = "insert", data
        return self

    def update(self, data: dict):
        self._op, self._payload = "update", data
        return self

    def delete(self):
        self._op = "delete"
        return self

    # ---- filters ----

    def eq(self, column: str, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column: str, value):
        self._filters.append(lambda row: row.get(column) != value)
        return self

    def is_(self, column: str, value):
        if value in ("null", None):
            self._filters.append(lambda row: row.get(column) is None)
        else:
            self._filters.append(lambda row: row.get(column) is value)
        return self

    def ilike(self, column: str, pattern: str):
        regex = re.compile(
            "^" + ".*".join(re.escape(part) for part in pattern.split("%")) + "$",
            re.IGNORECASE | re.DOTALL
        )
        self._filters.append(lambda row: bool(regex.match(str(row.get(column) or ""))))
        return self

    def in_(self, column: str, values):
        values = list(values)
        self._filters.append(lambda row: row.get(column) in values)
        return self

    # ---- modifiers ----

    def order(self, column: str, desc: bool = False):
        self._order.append((column, desc))
        return self

    def limit(self, count: int):
        self._limit = count
        return self

    def single(self):
        self._single = True
        return self

    def maybe_single(self):
        self._maybe_single = True
        return self

    # ---- execution ----

    def _matches(self, row: dict) -> bool:
        return all(f(row) for f in self._filters)

    def _project(self, row: dict) -> dict:
        row = copy.deepcopy(row)
        if self._columns is None:
            return row
        return {c: row.get(c) for c in self._columns}

    def execute(self):
        self._client._run_hooks(self._table, self._op)
        failure = self._client._take_failure(self._table, self._op)
        if failure is not None:
            raise failure

        rows = self._client._rows(self._table)

        if self._op == "insert":
            return MockSupabaseResponse(data=self._client._insert(self._table, self._payload))

        if self._op == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(copy.deepcopy(self._payload))
                    row["updated_at"] = self._client.now().isoformat()
                    updated.append(copy.deepcopy(row))
            return MockSupabaseResponse(data=updated)

        if self._op == "delete":
            removed = [row for row in rows if self._matches(row)]
            rows[:] = [row for row in rows if not self._matches(row)]
            return MockSupabaseResponse(data=copy.deepcopy(removed))

        selected = [row for row in rows if self._matches(row)]
        for column, desc in reversed(self._order):
            selected.sort(
                key=lambda row: (row.get(column) is None, row.get(column) or ""),
                reverse=desc
            )
        if self._limit is not None:
            selected = selected[:self._limit]
        data = [self._project(row) for row in selected]

        if self._single:
            if len(data) != 1:
                raise APIError({
                    "code": "PGRST116",
                    "message": "JSON object requested, multiple (or no) rows returned",
                    "details": f"The result contains {len(data)} rows",
                    "hint": None,
                })
            return MockSupabaseResponse(data=data[0], count=1)

        if self._maybe_single:
            if not data:
                return None
            return MockSupabaseResponse(data=data[0], count=1)

        return MockSupabaseResponse(data=data, count=len(data))


class MockSupabaseClient:
    """
    In-memory Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("inventory_items", [InventoryFactory.create()])
            mock_supabase.set_failure("audit_log", "insert", RuntimeError("down"))
    """

    def __init__(self):
        self._tables: dict[str, list[dict]] = {}
        self._failures: dict[tuple[str, str], Exception] = {}
        self._hooks: dict[tuple[str, str], list[Callable]] = {}
        self._one_shot: dict[tuple[str, str], list] = {}
        self._tick = 0

    def now(self) -> datetime:
        self._tick += 1
        return BASE_TIME + timedelta(seconds=self._tick)

    def set_table_data(self, table_name: str, data: list):
        """Replace the contents of a table."""
        self._tables[table_name] = copy.deepcopy(data)

    def rows(self, table_name: str) -> list[dict]:
        """Current contents of a table (copies)."""
        return copy.deepcopy(self._tables.get(table_name, []))

    def set_failure(self, table_name: str, op: str, error: Exception):
        """Make every `op` on `table_name` raise `error`."""
        self._failures[(table_name, op)] = error

    def fail_once(self, table_name: str, op: str, error: Exception, after: int = 0):
        """Make a single `op` on `table_name` raise `error`, skipping `after` calls first."""
        self._one_shot[(table_name, op)] = [after, error]

    def before_next(self, table_name: str, op: str, hook: Callable[["MockSupabaseClient"], None]):
        """Run `hook` once right before the next `op` on `table_name`."""
        self._hooks.setdefault((table_name, op), []).append(hook)

    def table(self, name: str) -> MockSupabaseQuery:
        return MockSupabaseQuery(self, name)

    # ---- internals ----

    def _rows(self, table_name: str) -> list[dict]:
        return self._tables.setdefault(table_name, [])

    def _take_failure(self, table_name: str, op: str) -> Optional[Exception]:
        pending = self._one_shot.get((table_name, op))
        if pending is not None:
            if pending[0] == 0:
                del self._one_shot[(table_name, op)]
                return pending[1]
            pending[0] -= 1
        return self._failures.get((table_name, op))

    def _run_hooks(self, table_name: str, op: str):
        hooks = self._hooks.pop((table_name, op), [])
        for hook in hooks:
            hook(self)

    def _insert(self, table_name: str, data) -> list[dict]:
        rows = self._rows(table_name)
        new_rows = data if isinstance(data, list) else [data]
        inserted = []

        for item in new_rows:
            row = copy.deepcopy(item)
            for columns in UNIQUE_CONSTRAINTS.get(table_name, []):
                key = tuple(row.get(c) for c in columns)
                if any(tuple(existing.get(c) for c in columns) == key for existing in rows):
                    raise APIError({
                        "code": "23505",
                        "message": f'duplicate key value violates unique constraint "{table_name}_{"_".join(columns)}_key"',
                        "details": f"Key ({', '.join(columns)}) already exists.",
                        "hint": None,
                    })

            now = self.now().isoformat()
            row.setdefault("id", str(uuid4()))
            row.setdefault("created_at", now)
            row.setdefault("updated_at", now)
            rows.append(row)
            inserted.append(copy.deepcopy(row))

        return inserted


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """Fresh in-memory store per test."""
    return MockSupabaseClient()


@pytest.fixture
def settings() -> Settings:
    """Settings with every platform configured and zero retry delay."""
    return Settings(
        _env_file=None,
        supabase_url="https://test-project.supabase.co",
        supabase_key="test-anon-key",
        shopify_store_domain="test-store.myshopify.com",
        shopify_admin_access_token="shpat_test_token",
        hubspot_access_token="pat-test-token",
        hubspot_client_id=None,
        hubspot_client_secret=None,
        hubspot_portal_id="4455667",
        anthropic_api_key=None,
        notion_api_key="secret_test_notion",
        notion_inventory_database_id="notion-db-123",
        sync_retry_initial_delay=0,
        sync_retry_max_delay=0,
    )


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Retry policy without waits."""
    return RetryPolicy(retries=3, initial_delay=0, max_delay=0, backoff_factor=2.0)


@pytest.fixture
def sleeps() -> list[float]:
    """Delays requested through the `no_sleep` fixture."""
    return []


@pytest.fixture
def no_sleep(sleeps):
    """Awaitable sleep that records the delay and returns immediately."""

    async def sleep(delay: float) -> None:
        sleeps.append(delay)

    return sleep


class RecordingTransport:
    """
    httpx MockTransport that records requests and replays queued responses.

    Usage:
        transport = RecordingTransport()
        transport.queue(200, {"id": "123"})
        client = transport.client()
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self._responses: list[Any] = []

    def queue(self, status_code: int = 200, json: Any = None, exc: Optional[Exception] = None):
        self._responses.append(exc if exc is not None else (status_code, json))
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._responses:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")

        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        status_code, body = item
        return httpx.Response(status_code, json=body)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()
