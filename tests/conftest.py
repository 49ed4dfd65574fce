"""Shared fixtures and test doubles for opsdash tests."""

from __future__ import annotations

import asyncio
import fnmatch
from datetime import datetime, timedelta, timezone

import pytest
from redis.exceptions import ResponseError

from opsdash.config import load_config
from opsdash.storage import MemoryStateStore
from opsdash.types import LogRecord, OpsDashConfig, RowQueryError, RowResult

TEST_TOKEN = "test-proxy-token"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeKeyValueStore:
    """In-memory stand-in for ``redis.asyncio.Redis`` (string and hash keys only)."""

    def __init__(self, strings: dict | None = None, hashes: dict | None = None, error: Exception | None = None):
        self.strings = dict(strings or {})
        self.hashes = dict(hashes or {})
        self.error = error
        self.closed = False
        self.calls: list[tuple[str, str]] = []

    async def keys(self, pattern: str) -> list[str]:
        self.calls.append(("keys", pattern))
        if self.error is not None:
            raise self.error
        every = list(self.strings) + list(self.hashes)
        return [k for k in every if fnmatch.fnmatchcase(k, pattern)]

    async def get(self, key: str):
        self.calls.append(("get", key))
        if key in self.hashes:
            raise ResponseError("WRONGTYPE Operation against a key holding the wrong kind of value")
        return self.strings.get(key)

    async def hgetall(self, key: str) -> dict:
        self.calls.append(("hgetall", key))
        if key in self.strings:
            raise ResponseError("WRONGTYPE Operation against a key holding the wrong kind of value")
        return dict(self.hashes.get(key, {}))

    async def aclose(self) -> None:
        self.closed = True


class FakeLogSource:
    """LogSource double. Set ``gate`` to hold fetches until the test releases them."""

    def __init__(self, payload: dict | None = None, error: Exception | None = None):
        self.payload = payload if payload is not None else {}
        self.error = error
        self.gate: asyncio.Event | None = None
        self.calls: list[str] = []

    async def fetch_folder(self, folder: str) -> dict:
        self.calls.append(folder)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.payload


class MockLLMProvider:
    """Returns canned text and records every call."""

    def __init__(self, responses: list[str] | None = None, error: Exception | None = None):
        self.responses = list(responses or [])
        self.error = error
        self.calls: list[dict] = []

    def complete(self, system: str, user: str, max_tokens: int) -> str:
        self.calls.append({"system": system, "user": user, "max_tokens": max_tokens})
        if self.error is not None:
            raise self.error
        if self.responses:
            return self.responses.pop(0)
        return '{"errors": [], "severity": "low"}'


def _as_dt(value):
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value)
        except ValueError:
            return value
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    return value


class FakeRowSource:
    """Evaluates RowQuery objects against in-memory tables."""

    def __init__(self, tables: dict[str, list[dict]] | None = None, fail_tables: set[str] | None = None):
        self.tables = tables or {}
        self.fail_tables = set(fail_tables or ())
        self.queries: list = []

    async def execute(self, query) -> RowResult:
        self.queries.append(query)
        if query.table in self.fail_tables:
            raise RowQueryError(f"{query.table}: HTTP 500", status_code=500)

        rows = list(self.tables.get(query.table, []))
        for column, op, value in query.filters:
            if op == "eq":
                rows = [r for r in rows if r.get(column) == value]
            elif op == "gte":
                rows = [r for r in rows if _as_dt(r.get(column)) >= _as_dt(value)]
            elif op == "lte":
                rows = [r for r in rows if _as_dt(r.get(column)) <= _as_dt(value)]
        if query.order is not None:
            column, desc = query.order
            rows.sort(key=lambda r: _as_dt(r.get(column)), reverse=desc)

        count = len(rows) if query.count else None
        if query.range_value is not None:
            start, end = query.range_value
            rows = rows[start:end + 1]
        if query.limit_value is not None:
            rows = rows[:query.limit_value]
        if query.head:
            rows = []
        return RowResult(rows=rows, count=count)


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(now) -> FakeClock:
    return FakeClock(now)


@pytest.fixture
def state_store() -> MemoryStateStore:
    return MemoryStateStore()


@pytest.fixture
def sample_config(monkeypatch) -> OpsDashConfig:
    monkeypatch.setenv("OPSDASH_PROXY_TOKEN", TEST_TOKEN)
    return load_config(config_dict={
        "proxy": {"rate_limit": "100/minute"},
        "state": {"backend": "memory"},
        "auth": {"username": "ops", "password": "s3cret"},
        "analysis": {"provider": "mock"},
    })


@pytest.fixture
def nested_payload() -> dict:
    """Folder payload as the proxy returns it for ``error``."""
    return {
        "error": {
            "1700000000": {
                "email": {
                    "abc": {"message": "SMTP timeout", "queue": "outbound", "timestamp": 1700000000},
                },
            },
            "1700000500": {
                "locking": {
                    "def": {"error": "lock expired", "category": "locking", "timestamp": 1700000500},
                },
            },
        },
    }


def make_log(
    id: str,
    ts: datetime,
    message: str = "boom",
    category: str | None = "general",
    type: str | None = "error",
) -> LogRecord:
    return LogRecord(id=id, timestamp=ts, message=message, category=category, type=type)
