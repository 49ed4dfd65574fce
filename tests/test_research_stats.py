"""Tests for ResearchStatsCache."""

from __future__ import annotations

import pytest

from conftest import FakeRowSource
from opsdash.core.research_stats import STORAGE_KEY, ResearchStatsCache
from opsdash.types import RowQueryError


def _tables(contacts: int, researched: int, websites: int = 0, linkedin: int = 0, companies: int = 0) -> dict:
    contact_rows = [{"id": i, "researched": i < researched} for i in range(contacts)]
    return {
        "contacts": contact_rows,
        "websites": [{"id": i} for i in range(websites)],
        "linkedin_profiles": [{"id": i} for i in range(linkedin)],
        "company_profiles": [{"id": i} for i in range(companies)],
    }


class TestFetchStats:
    @pytest.mark.asyncio
    async def test_first_fetch_has_zero_deltas(self, state_store, clock):
        rows = FakeRowSource(_tables(10, 4, websites=3, linkedin=2, companies=1))
        cache = ResearchStatsCache(rows, state_store, clock=clock)
        stats = await cache.fetch_stats()

        assert stats.contacts.total == 10
        assert stats.contacts.researched == 4
        assert stats.websites.total == 3
        assert stats.linkedin_profiles.total == 2
        assert stats.company_profiles.total == 1
        assert stats.contacts.new_since_last_fetch == 0
        assert stats.last_fetch_time == clock.now
        assert cache.previous is None

    @pytest.mark.asyncio
    async def test_queries_are_head_counts(self, state_store, clock):
        rows = FakeRowSource(_tables(1, 1))
        await ResearchStatsCache(rows, state_store, clock=clock).fetch_stats()
        assert len(rows.queries) == 5
        assert all(q.head and q.count == "exact" for q in rows.queries)
        researched = [q for q in rows.queries if q.filters]
        assert researched[0].filters == [("researched", "eq", True)]

    @pytest.mark.asyncio
    async def test_deltas_against_previous(self, state_store, clock):
        rows = FakeRowSource(_tables(10, 4, websites=3))
        cache = ResearchStatsCache(rows, state_store, clock=clock)
        await cache.fetch_stats()

        rows.tables = _tables(15, 5, websites=3)
        stats = await cache.fetch_stats()
        assert stats.contacts.new_since_last_fetch == 5
        assert stats.contacts.new_researched_since_last_fetch == 1
        assert stats.websites.new_since_last_fetch == 0
        assert cache.previous.contacts.total == 10

    @pytest.mark.asyncio
    async def test_shrinking_totals_clamp_to_zero(self, state_store, clock):
        rows = FakeRowSource(_tables(100, 0))
        cache = ResearchStatsCache(rows, state_store, clock=clock)
        await cache.fetch_stats()
        rows.tables = _tables(90, 0)
        stats = await cache.fetch_stats()
        assert stats.contacts.total == 90
        assert stats.contacts.new_since_last_fetch == 0

    @pytest.mark.asyncio
    async def test_failure_propagates(self, state_store, clock):
        rows = FakeRowSource(_tables(1, 0), fail_tables={"websites"})
        cache = ResearchStatsCache(rows, state_store, clock=clock)
        with pytest.raises(RowQueryError):
            await cache.fetch_stats()
        assert cache.current is None


class TestPersistence:
    @pytest.mark.asyncio
    async def test_snapshots_reload(self, state_store, clock):
        rows = FakeRowSource(_tables(3, 1))
        cache = ResearchStatsCache(rows, state_store, clock=clock)
        await cache.fetch_stats()
        await cache.fetch_stats()

        raw = state_store.get(STORAGE_KEY)
        assert raw["currentStats"]["contacts"]["total"] == 3
        assert raw["previousStats"]["contacts"]["researched"] == 1

        reloaded = ResearchStatsCache(rows, state_store, clock=clock)
        assert reloaded.current.contacts.total == 3
        assert reloaded.previous is not None

        rows.tables = _tables(7, 1)
        stats = await reloaded.fetch_stats()
        assert stats.contacts.new_since_last_fetch == 4

    @pytest.mark.asyncio
    async def test_clear_cache(self, state_store, clock):
        cache = ResearchStatsCache(FakeRowSource(_tables(1, 0)), state_store, clock=clock)
        await cache.fetch_stats()
        cache.clear_cache()
        assert cache.current is None
        assert state_store.get(STORAGE_KEY) is None
