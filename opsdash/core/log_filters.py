"""Pure filter, stats and pagination helpers over an in-memory log list.

Linear scans only. Expected cardinality is hundreds to low thousands of
records, so no index structures are kept.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from ..types import LogFilters, LogPage, LogRecord, LogStats, TimeRange

DEFAULT_PAGE_SIZE = 42

TIME_RANGE_OPTIONS: list[dict] = [
    {"label": "Last 30 minutes", "value": "30min", "minutes": 30},
    {"label": "Last 1 hour", "value": "1hour", "minutes": 60},
    {"label": "Last 3 hours", "value": "3hours", "minutes": 180},
    {"label": "Last 8 hours", "value": "8hours", "minutes": 480},
    {"label": "Last 16 hours", "value": "16hours", "minutes": 960},
    {"label": "Last 24 hours", "value": "1day", "minutes": 1440},
    {"label": "Last 2 days", "value": "2days", "minutes": 2880},
    {"label": "Last 3 days", "value": "3days", "minutes": 4320},
    {"label": "Last 7 days", "value": "7days", "minutes": 10080},
]

LOG_FOLDERS: list[dict] = [
    {"id": "error", "name": "Error Logs", "description": "System and application error logs"},
    {"id": "errors", "name": "Errors Folder", "description": "Legacy error logs"},
    {"id": "account", "name": "Account Logs", "description": "Account-related operations and events"},
    {"id": "queue", "name": "Queue Logs", "description": "Queue processing and job logs"},
    {"id": "bull", "name": "Bull Logs", "description": "Bull queue system logs"},
]

CATEGORIES = ("email", "general", "locking", "contact", "job", "queue")

LOG_TYPES = ("error", "warning", "info", "contact", "email", "queue", "job", "system")


def time_range_for(preset: str, now: datetime) -> TimeRange:
    """Resolve a TIME_RANGE_OPTIONS value (e.g. ``"3hours"``) ending at *now*."""
    for option in TIME_RANGE_OPTIONS:
        if option["value"] == preset:
            return TimeRange(start=now - timedelta(minutes=option["minutes"]), end=now)
    raise ValueError(f"Unknown time range: {preset}")


def sort_logs(logs: list[LogRecord]) -> list[LogRecord]:
    """Newest first. Stable, so equal timestamps keep source order."""
    return sorted(logs, key=lambda log: log.timestamp, reverse=True)


def filter_logs(logs: list[LogRecord], filters: LogFilters | None = None) -> list[LogRecord]:
    """Apply time range (inclusive), then category, then type."""
    filters = filters or LogFilters()
    result = list(logs)
    if filters.time_range is not None:
        result = [log for log in result if filters.time_range.contains(log.timestamp)]
    if filters.category:
        result = [log for log in result if log.category == filters.category]
    if filters.type:
        result = [log for log in result if log.type == filters.type]
    return result


def calculate_stats(logs: list[LogRecord], last_fetch_time: datetime | None = None) -> LogStats:
    stats = LogStats(total=len(logs), last_fetch_time=last_fetch_time)
    for log in logs:
        if log.category:
            stats.by_category[log.category] = stats.by_category.get(log.category, 0) + 1
        if log.type:
            stats.by_type[log.type] = stats.by_type.get(log.type, 0) + 1
        stats.by_level[log.level] = stats.by_level.get(log.level, 0) + 1
    return stats


def paginate(logs: list[LogRecord], page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> LogPage:
    if page_size < 1:
        raise ValueError("page_size must be >= 1")
    total = len(logs)
    total_pages = -(-total // page_size)
    page = max(1, page)
    start = (page - 1) * page_size
    return LogPage(
        items=logs[start:start + page_size],
        page=page,
        page_size=page_size,
        total=total,
        total_pages=total_pages,
    )
