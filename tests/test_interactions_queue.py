"""Tests for interaction paging and queue grouping."""

from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import FakeRowSource
from opsdash.core.entity_cache import EntityCache
from opsdash.core.interactions import (
    DATE_RANGE_OPTIONS,
    build_interactions_query,
    date_range_for,
    default_filters,
    fetch_interactions,
    section_title,
)
from opsdash.core.queue import fetch_queue, group_queue_by_user, group_to_dict, queue_stats
from opsdash.types import InteractionFilters


@pytest.fixture
def interactions(now) -> list[dict]:
    rows = []
    for i in range(120):
        rows.append({
            "id": i,
            "type": "email" if i % 2 == 0 else "linkedin",
            "action": "cold-email" if i % 4 == 0 else "followup-email",
            "org_id": "o1" if i < 100 else "o2",
            "user_id": "u1" if i % 3 == 0 else "u2",
            "created_at": (now - timedelta(minutes=i)).isoformat(),
        })
    return rows


class TestBuildQuery:
    def test_type_section(self):
        query = build_interactions_query("email")
        assert ("type", "eq", "email") in query.filters

    def test_action_section(self):
        query = build_interactions_query("send-linkedin-message")
        assert query.filters == [("action", "eq", "send-linkedin-message")]

    @pytest.mark.parametrize("section", ["interactions", "settings"])
    def test_unfiltered_sections(self, section):
        assert build_interactions_query(section).filters == []

    def test_filters_order_and_range(self, now):
        tr = date_range_for("week", now)
        query = build_interactions_query(
            "interactions", InteractionFilters(org_id="o1", user_id="u2", date_range=tr), page=3, page_size=50,
        )
        assert query.filters == [
            ("created_at", "gte", tr.start),
            ("created_at", "lte", tr.end),
            ("org_id", "eq", "o1"),
            ("user_id", "eq", "u2"),
        ]
        assert query.order == ("created_at", True)
        assert query.range_value == (100, 149)
        assert query.count == "exact"


class TestDateRanges:
    def test_every_preset(self, now):
        for option in DATE_RANGE_OPTIONS:
            tr = date_range_for(option["value"], now)
            assert tr.end == now
            assert tr.end - tr.start == option["delta"]

    def test_default_is_last_day(self, now):
        assert default_filters(now).date_range.start == now - timedelta(days=1)

    def test_unknown(self, now):
        with pytest.raises(ValueError):
            date_range_for("decade", now)

    def test_section_titles(self):
        assert section_title("cold-email") == "Cold Emails"
        assert section_title("nope") == "Interactions"


class TestFetchInteractions:
    @pytest.mark.asyncio
    async def test_first_page_newest_first(self, interactions):
        rows = FakeRowSource({"interactions": interactions})
        page = await fetch_interactions(rows, "interactions")
        assert page.total_count == 120
        assert page.total_pages == 3
        assert [r["id"] for r in page.items[:3]] == [0, 1, 2]
        assert len(page.items) == 50

    @pytest.mark.asyncio
    async def test_last_page_partial(self, interactions):
        rows = FakeRowSource({"interactions": interactions})
        page = await fetch_interactions(rows, "interactions", page=3)
        assert [r["id"] for r in page.items] == list(range(100, 120))

    @pytest.mark.asyncio
    async def test_section_and_org_filters(self, interactions):
        rows = FakeRowSource({"interactions": interactions})
        page = await fetch_interactions(rows, "email", InteractionFilters(org_id="o2"))
        assert page.total_count == 10
        assert all(r["type"] == "email" and r["org_id"] == "o2" for r in page.items)

    @pytest.mark.asyncio
    async def test_date_range(self, interactions, now):
        rows = FakeRowSource({"interactions": interactions})
        page = await fetch_interactions(rows, "interactions", default_filters(now), page_size=500)
        assert page.total_count == 120

        page = await fetch_interactions(rows, "interactions", InteractionFilters(date_range=date_range_for("hour", now)))
        assert page.total_count == 61


class TestQueue:
    ITEMS = [
        {"id": 1, "user_id": "u1", "status": "active", "created_at": "2026-03-02T10:00:00+00:00"},
        {"id": 2, "user_id": "u2", "status": "pending", "created_at": "2026-03-02T11:00:00+00:00"},
        {"id": 3, "user_id": "u2", "status": "completed", "created_at": "2026-03-02T09:00:00+00:00"},
        {"id": 4, "user_id": "u2", "status": None, "created_at": "2026-03-02T08:00:00+00:00"},
        {"id": 5, "user_id": "ghost", "status": "weird", "created_at": "2026-03-02T07:00:00+00:00"},
    ]

    @pytest.mark.asyncio
    async def test_fetch_queue_newest_first(self):
        rows = FakeRowSource({"queues": list(self.ITEMS)})
        items = await fetch_queue(rows)
        assert [i["id"] for i in items] == [2, 1, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_grouping_with_entities(self, clock):
        entities = EntityCache(FakeRowSource({
            "users": [{"id": "u2", "name": "Ben", "email": "ben@acme.test"}],
        }), clock=clock)
        await entities.initialize()

        groups = group_queue_by_user(self.ITEMS, entities)
        assert [g.user_id for g in groups][0] == "u2"
        ben = groups[0]
        assert ben.user_name == "Ben"
        assert ben.user_email == "ben@acme.test"
        assert (ben.stats.pending, ben.stats.active, ben.stats.completed, ben.stats.total) == (2, 0, 1, 3)

        ghost = next(g for g in groups if g.user_id == "ghost")
        assert ghost.user_name == "ghost"
        assert ghost.user_email == ""
        assert ghost.stats.pending == 1

    def test_stats_and_dict(self, now):
        stats = queue_stats(self.ITEMS, now=now)
        assert stats.total == 5
        assert set(stats.by_user) == {"u1", "u2", "ghost"}
        assert stats.last_fetch_time == now

        as_dict = group_to_dict(stats.by_user["u1"])
        assert as_dict["userId"] == "u1"
        assert as_dict["stats"] == {"pending": 0, "active": 1, "completed": 0, "total": 1}
