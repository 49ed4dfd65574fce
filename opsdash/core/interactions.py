"""Paged interaction queries for the dashboard's section views."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from ..rows import RowQuery
from ..types import InteractionFilters, InteractionPage, RowSource, TimeRange

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50

# Sections whose name is an interaction ``type``; every other section
# name (except "interactions" itself) is an ``action``.
TYPE_SECTIONS = ("email", "linkedin", "call")

SECTION_TITLES = {
    "interactions": "All Interactions",
    "email": "Email Interactions",
    "linkedin": "LinkedIn Interactions",
    "call": "Call Interactions",
    "cold-email": "Cold Emails",
    "followup-email": "Follow-up Emails",
    "send-linkedin-connection-req": "LinkedIn Connection Requests",
    "send-linkedin-message": "LinkedIn Messages",
    "view-linkedin-profile": "LinkedIn Profile Views",
    "comment-on-linkedin-post": "LinkedIn Post Comments",
    "send-linkedin-connection-req-with-note": "LinkedIn Connection Requests with Note",
    "settings": "Settings",
    "queues": "Queues",
    "research": "Research Analytics",
    "redis-logs": "Redis Logs",
    "log-insights": "Log Insights",
}

DATE_RANGE_OPTIONS: list[dict] = [
    {"label": "Last 1 hour", "value": "hour", "delta": timedelta(hours=1)},
    {"label": "Last 8 hours", "value": "8hours", "delta": timedelta(hours=8)},
    {"label": "Last 24 hours", "value": "day", "delta": timedelta(days=1)},
    {"label": "Last 3 days", "value": "3days", "delta": timedelta(days=3)},
    {"label": "Last 7 days", "value": "week", "delta": timedelta(days=7)},
    {"label": "Last 14 days", "value": "2weeks", "delta": timedelta(days=14)},
    {"label": "Last 30 days", "value": "month", "delta": timedelta(days=30)},
    {"label": "Last 3 months", "value": "3months", "delta": timedelta(days=90)},
    {"label": "Last 6 months", "value": "6months", "delta": timedelta(days=180)},
    {"label": "Last 1 year", "value": "year", "delta": timedelta(days=365)},
]


def section_title(section: str) -> str:
    return SECTION_TITLES.get(section, "Interactions")


def date_range_for(preset: str, now: datetime) -> TimeRange:
    for option in DATE_RANGE_OPTIONS:
        if option["value"] == preset:
            return TimeRange(start=now - option["delta"], end=now)
    raise ValueError(f"Unknown date range: {preset}")


def default_filters(now: datetime) -> InteractionFilters:
    """The dashboard opens on the last 24 hours."""
    return InteractionFilters(date_range=date_range_for("day", now))


def build_interactions_query(
    section: str,
    filters: InteractionFilters | None = None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> RowQuery:
    filters = filters or InteractionFilters()
    page = max(1, page)
    query = RowQuery("interactions").select("*", count="exact")

    if section in TYPE_SECTIONS:
        query.eq("type", section)
    elif section not in ("interactions", "settings"):
        query.eq("action", section)

    if filters.date_range is not None:
        query.gte("created_at", filters.date_range.start).lte("created_at", filters.date_range.end)
    if filters.org_id:
        query.eq("org_id", filters.org_id)
    if filters.user_id:
        query.eq("user_id", filters.user_id)

    start = (page - 1) * page_size
    return query.order_by("created_at", desc=True).range(start, start + page_size - 1)


async def fetch_interactions(
    rows: RowSource,
    section: str = "interactions",
    filters: InteractionFilters | None = None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> InteractionPage:
    """One page of interactions, newest first, with the exact total count."""
    query = build_interactions_query(section, filters, page, page_size)
    result = await rows.execute(query)
    logger.debug("Fetched %d interactions for section %r page %d", len(result.rows), section, page)
    return InteractionPage(
        items=result.rows,
        page=max(1, page),
        page_size=page_size,
        total_count=result.count if result.count is not None else len(result.rows),
    )
