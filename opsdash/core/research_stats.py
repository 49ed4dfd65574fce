"""Research Stats Cache: aggregate row counts with deltas since the previous poll."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable

from ..rows import RowQuery
from ..types import (
    ContactStats,
    CountStats,
    ResearchStats,
    RowSource,
    StateStore,
)

logger = logging.getLogger(__name__)

STORAGE_KEY = "researchStatsCache"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _count_query(table: str) -> RowQuery:
    return RowQuery(table).select("*", count="exact", head=True)


class ResearchStatsCache:
    """Keeps the two most recent ResearchStats snapshots.

    No staleness window: every ``fetch_stats()`` hits the row source. The
    dashboard decides the polling cadence.
    """

    def __init__(
        self,
        rows: RowSource,
        store: StateStore,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._rows = rows
        self._store = store
        self._clock = clock
        self.previous: ResearchStats | None = None
        self.current: ResearchStats | None = None
        self._load()

    def _load(self) -> None:
        raw = self._store.get(STORAGE_KEY)
        if not raw:
            return
        try:
            if raw.get("previousStats"):
                self.previous = ResearchStats.from_dict(raw["previousStats"])
            if raw.get("currentStats"):
                self.current = ResearchStats.from_dict(raw["currentStats"])
        except (AttributeError, TypeError, ValueError) as e:
            logger.error("Error parsing saved research stats: %s", e)
            self.clear_cache()

    def _save(self) -> None:
        self._store.set(STORAGE_KEY, {
            "previousStats": self.previous.to_dict() if self.previous else None,
            "currentStats": self.current.to_dict() if self.current else None,
        })

    async def fetch_stats(self, force_refresh: bool = False) -> ResearchStats:
        """Run the five count queries and return a new snapshot.

        ``force_refresh`` is accepted for call-site symmetry with the other
        caches; there is no staleness window to bypass.
        """
        if self.current is not None:
            self.previous = self.current

        try:
            contacts, researched, websites, linkedin, companies = await asyncio.gather(
                self._rows.execute(_count_query("contacts")),
                self._rows.execute(_count_query("contacts").eq("researched", True)),
                self._rows.execute(_count_query("websites")),
                self._rows.execute(_count_query("linkedin_profiles")),
                self._rows.execute(_count_query("company_profiles")),
            )
        except Exception as e:
            logger.error("Error fetching research stats: %s", e)
            raise

        stats = ResearchStats(
            contacts=ContactStats(total=contacts.count or 0, researched=researched.count or 0),
            websites=CountStats(total=websites.count or 0),
            linkedin_profiles=CountStats(total=linkedin.count or 0),
            company_profiles=CountStats(total=companies.count or 0),
            last_fetch_time=self._clock(),
        )

        prev = self.previous
        if prev is not None:
            stats.contacts.new_since_last_fetch = max(0, stats.contacts.total - prev.contacts.total)
            stats.contacts.new_researched_since_last_fetch = max(
                0, stats.contacts.researched - prev.contacts.researched,
            )
            stats.websites.new_since_last_fetch = max(0, stats.websites.total - prev.websites.total)
            stats.linkedin_profiles.new_since_last_fetch = max(
                0, stats.linkedin_profiles.total - prev.linkedin_profiles.total,
            )
            stats.company_profiles.new_since_last_fetch = max(
                0, stats.company_profiles.total - prev.company_profiles.total,
            )

        self.current = stats
        self._save()
        return stats

    def clear_cache(self) -> None:
        self.previous = None
        self.current = None
        self._store.remove(STORAGE_KEY)
