"""Client-side log cache: time-boxed memoization of the proxy's folder payload.

Runs on a single asyncio event loop. ``is_fetching`` is an advisory flag set
before the first ``await`` of a fetch, which is enough to keep one fetch in
flight on one loop; it is not a lock and must not be shared across threads.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from ..types import (
    LogCacheState,
    LogFetchError,
    LogFilters,
    LogRecord,
    LogSource,
    LogStats,
    StateStore,
)
from .log_filters import calculate_stats, filter_logs, sort_logs
from .normalizer import normalize_payload

logger = logging.getLogger(__name__)

STORAGE_KEY = "redisLogsCache"
DEFAULT_CACHE_DURATION = timedelta(hours=2)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LogCacheManager:
    """Caches normalized error logs, persists them, and refreshes them in the background."""

    def __init__(
        self,
        source: LogSource,
        store: StateStore,
        *,
        cache_duration: timedelta = DEFAULT_CACHE_DURATION,
        default_folder: str = "error",
        clock: Callable[[], datetime] = _utcnow,
        auto_refresh: bool = True,
    ) -> None:
        self._source = source
        self._store = store
        self.cache_duration = cache_duration
        self.default_folder = default_folder
        self._clock = clock
        self.auto_refresh = auto_refresh

        self._state = LogCacheState()
        self._init_task: asyncio.Task | None = None
        self._refresh_task: asyncio.Task | None = None
        self._pending_refresh_delay: float | None = None
        self._load()

    # -- persistence --

    def _load(self) -> None:
        raw = self._store.get(STORAGE_KEY)
        if not raw:
            return
        try:
            self._state = LogCacheState.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Error loading log cache snapshot: %s", e)
            self._state = LogCacheState()
            return

        if self._state.last_fetch_time is not None:
            age = (self._clock() - self._state.last_fetch_time).total_seconds()
            self._pending_refresh_delay = max(0.0, self.cache_duration.total_seconds() - age)
            logger.info(
                "Loaded %d cached logs (age %.0fs), next refresh in %.0fs",
                len(self._state.logs), age, self._pending_refresh_delay,
            )

    def _save(self) -> None:
        self._store.set(STORAGE_KEY, self._state.to_dict())

    # -- state --

    @property
    def state(self) -> LogCacheState:
        return self._state

    def is_cache_valid(self) -> bool:
        if self._state.last_fetch_time is None:
            return False
        return self._clock() - self._state.last_fetch_time < self.cache_duration

    def is_initialized(self) -> bool:
        return self._state.is_initialized

    def is_fetching(self) -> bool:
        return self._state.is_fetching

    def has_cached_data(self) -> bool:
        return bool(self._state.logs)

    def _snapshot(self) -> tuple[list[LogRecord], LogStats]:
        stats = self._state.stats or calculate_stats(self._state.logs, self._state.last_fetch_time)
        return self._state.logs, stats

    # -- lifecycle --

    def start(self) -> None:
        """Arm the refresh timer restored from a persisted snapshot. Needs a running loop."""
        if self._pending_refresh_delay is not None:
            delay = self._pending_refresh_delay
            self._pending_refresh_delay = None
            self._schedule_refresh(delay)

    async def initialize(self) -> None:
        """Idempotent warm-up. Concurrent callers share one in-flight run."""
        if self._state.is_initialized:
            return
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._initialize_internal())
        await asyncio.shield(self._init_task)

    async def _initialize_internal(self) -> None:
        self.start()
        if not self.is_cache_valid() and not self._state.is_fetching:
            try:
                await self.fetch_logs(self.default_folder, force_refresh=True)
            except Exception as e:
                logger.error("Error initializing log cache: %s", e)
        self._state.is_initialized = True

    def close(self) -> None:
        self._cancel_refresh()

    def clear_cache(self) -> None:
        self._cancel_refresh()
        self._pending_refresh_delay = None
        self._state = LogCacheState()
        self._init_task = None
        self._store.remove(STORAGE_KEY)

    # -- fetching --

    async def fetch_logs(
        self, folder: str | None = None, force_refresh: bool = False,
    ) -> tuple[list[LogRecord], LogStats]:
        """Return cached logs, or fetch, normalize, persist and return fresh ones.

        A fetch already in flight is never queued behind: the caller gets the
        current (possibly stale) snapshot. When the source fails, cached logs
        are returned if there are any, otherwise LogFetchError is raised.
        """
        folder = folder or self.default_folder

        if self.is_cache_valid() and not force_refresh:
            return self._snapshot()

        if self._state.is_fetching:
            logger.debug("Fetch for %r already in flight, returning current snapshot", folder)
            return self._snapshot()

        self._state.is_fetching = True
        try:
            data = await self._source.fetch_folder(folder)
            fetched_at = self._clock()
            logs = sort_logs(normalize_payload(data, folder, fetched_at))
        except Exception as e:
            logger.error("Error fetching logs for folder %r: %s", folder, e)
            if self._state.logs:
                return self._snapshot()
            if isinstance(e, LogFetchError):
                raise
            raise LogFetchError(f"Failed to fetch logs: {e}") from e
        finally:
            self._state.is_fetching = False

        self._state = LogCacheState(
            logs=logs,
            stats=calculate_stats(logs, fetched_at),
            last_fetch_time=fetched_at,
            is_fetching=False,
            is_initialized=self._state.is_initialized,
        )
        logger.info("Fetched %d logs from folder %r", len(logs), folder)

        self._save()
        self._schedule_refresh(self.cache_duration.total_seconds())
        return self._snapshot()

    def get_filtered_logs(self, filters: LogFilters | None = None) -> tuple[list[LogRecord], LogStats]:
        logs = filter_logs(self._state.logs, filters)
        return logs, calculate_stats(logs, self._state.last_fetch_time)

    # -- background refresh --

    def _cancel_refresh(self) -> None:
        task = self._refresh_task
        self._refresh_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    def _schedule_refresh(self, delay: float) -> None:
        if not self.auto_refresh:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._pending_refresh_delay = delay
            return
        self._cancel_refresh()
        self._refresh_task = loop.create_task(self._refresh_after(delay))

    async def _refresh_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            await self.fetch_logs(self.default_folder, force_refresh=True)
        except Exception as e:
            logger.warning("Background log refresh failed: %s", e)
        # a successful fetch already re-armed the timer
        if self._refresh_task is asyncio.current_task():
            self._refresh_task = None
            self._schedule_refresh(self.cache_duration.total_seconds())
