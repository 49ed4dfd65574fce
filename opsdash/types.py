"""All dataclasses, Protocols, and exceptions for opsdash."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Protocol, runtime_checkable

LogLevel = Literal["error", "warn", "info"]
Severity = Literal["critical", "high", "medium", "low"]

LOG_LEVELS = ("error", "warn", "info")


def _dt_to_str(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt is not None else None


def _str_to_dt(s: str | None) -> datetime | None:
    if not s:
        return None
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class OpsDashError(Exception):
    """Base class for every error raised by opsdash."""


class ConfigError(OpsDashError):
    pass


class LogFetchError(OpsDashError):
    """The log source could not be reached or returned an unusable payload."""


class CacheBusyError(OpsDashError):
    """Raised when re-entrant work is requested while one run is in flight."""


class AnalysisBusyError(CacheBusyError):
    def __init__(self, message: str = "Analysis already in progress") -> None:
        super().__init__(message)


class LogAnalysisError(OpsDashError):
    pass


class RowQueryError(OpsDashError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LLMProviderError(OpsDashError):
    def __init__(self, message: str, provider: str, status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Logs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LogRecord:
    """One error log entry. ``id`` is the colon-joined source key path."""
    id: str
    timestamp: datetime
    message: str
    category: str | None = None
    level: str = "error"
    type: str | None = None
    metadata: dict | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": _dt_to_str(self.timestamp),
            "level": self.level,
            "message": self.message,
            "metadata": self.metadata,
            "category": self.category,
            "type": self.type,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> LogRecord:
        return cls(
            id=raw["id"],
            timestamp=_str_to_dt(raw.get("timestamp")) or datetime.now(timezone.utc),
            message=raw.get("message", ""),
            category=raw.get("category"),
            level=raw.get("level", "error"),
            type=raw.get("type"),
            metadata=raw.get("metadata"),
        )


@dataclass
class LogStats:
    total: int = 0
    by_category: dict[str, int] = field(default_factory=dict)
    by_type: dict[str, int] = field(default_factory=dict)
    by_level: dict[str, int] = field(default_factory=dict)
    last_fetch_time: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "byCategory": dict(self.by_category),
            "byType": dict(self.by_type),
            "byLevel": dict(self.by_level),
            "lastFetchTime": _dt_to_str(self.last_fetch_time),
        }

    @classmethod
    def from_dict(cls, raw: dict) -> LogStats:
        return cls(
            total=raw.get("total", 0),
            by_category=dict(raw.get("byCategory", {})),
            by_type=dict(raw.get("byType", {})),
            by_level=dict(raw.get("byLevel", {})),
            last_fetch_time=_str_to_dt(raw.get("lastFetchTime")),
        )


@dataclass(frozen=True)
class TimeRange:
    start: datetime
    end: datetime

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts <= self.end


@dataclass
class LogFilters:
    time_range: TimeRange | None = None
    category: str | None = None
    type: str | None = None


@dataclass
class LogPage:
    items: list[LogRecord]
    page: int
    page_size: int
    total: int
    total_pages: int


@dataclass
class LogCacheState:
    """Snapshot of the client log cache. Persisted as one JSON document."""
    logs: list[LogRecord] = field(default_factory=list)
    stats: LogStats | None = None
    last_fetch_time: datetime | None = None
    is_fetching: bool = False
    is_initialized: bool = False

    def to_dict(self) -> dict:
        return {
            "logs": [log.to_dict() for log in self.logs],
            "stats": self.stats.to_dict() if self.stats else None,
            "lastFetchTime": _dt_to_str(self.last_fetch_time),
            "isFetching": self.is_fetching,
            "isInitialized": self.is_initialized,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> LogCacheState:
        # in-flight flags never survive a reload
        return cls(
            logs=[LogRecord.from_dict(r) for r in raw.get("logs", [])],
            stats=LogStats.from_dict(raw["stats"]) if raw.get("stats") else None,
            last_fetch_time=_str_to_dt(raw.get("lastFetchTime")),
        )


# ---------------------------------------------------------------------------
# Log analysis
# ---------------------------------------------------------------------------

@dataclass
class ErrorDetail:
    summary: str = ""
    root_cause: str = ""
    source_location: str = ""
    suggested_fix: str = ""
    severity: str = "medium"

    def to_dict(self) -> dict:
        return {
            "summary": self.summary,
            "rootCause": self.root_cause,
            "sourceLocation": self.source_location,
            "suggestedFix": self.suggested_fix,
            "severity": self.severity,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> ErrorDetail:
        return cls(
            summary=raw.get("summary", ""),
            root_cause=raw.get("rootCause", ""),
            source_location=raw.get("sourceLocation", ""),
            suggested_fix=raw.get("suggestedFix", ""),
            severity=raw.get("severity", "medium"),
        )


@dataclass
class LogAnalysis:
    """Model-generated summary of one category's errors.

    Only shape-coerced, never schema-validated: whatever severity strings
    the model returns are carried through as-is.
    """
    errors: list[ErrorDetail] = field(default_factory=list)
    severity: str = "medium"

    def to_dict(self) -> dict:
        return {
            "errors": [e.to_dict() for e in self.errors],
            "severity": self.severity,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> LogAnalysis:
        errors = raw.get("errors") or []
        return cls(
            errors=[ErrorDetail.from_dict(e) for e in errors if isinstance(e, dict)],
            severity=raw.get("severity", "medium"),
        )


@dataclass
class CachedAnalysis:
    analysis: LogAnalysis
    timestamp: datetime


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OrgInfo:
    id: str
    name: str


@dataclass(frozen=True)
class UserInfo:
    id: str
    name: str
    email: str
    org_id: str | None = None


@dataclass(frozen=True)
class AgentInfo:
    id: str
    name: str
    type: str


# ---------------------------------------------------------------------------
# Research stats
# ---------------------------------------------------------------------------

@dataclass
class CountStats:
    total: int = 0
    new_since_last_fetch: int = 0


@dataclass
class ContactStats:
    total: int = 0
    researched: int = 0
    new_since_last_fetch: int = 0
    new_researched_since_last_fetch: int = 0


@dataclass
class ResearchStats:
    contacts: ContactStats = field(default_factory=ContactStats)
    websites: CountStats = field(default_factory=CountStats)
    linkedin_profiles: CountStats = field(default_factory=CountStats)
    company_profiles: CountStats = field(default_factory=CountStats)
    last_fetch_time: datetime | None = None

    def to_dict(self) -> dict:
        def _count(c: CountStats) -> dict:
            return {"total": c.total, "newSinceLastFetch": c.new_since_last_fetch}

        return {
            "contacts": {
                "total": self.contacts.total,
                "researched": self.contacts.researched,
                "newSinceLastFetch": self.contacts.new_since_last_fetch,
                "newResearchedSinceLastFetch": self.contacts.new_researched_since_last_fetch,
            },
            "websites": _count(self.websites),
            "linkedinProfiles": _count(self.linkedin_profiles),
            "companyProfiles": _count(self.company_profiles),
            "lastFetchTime": _dt_to_str(self.last_fetch_time),
        }

    @classmethod
    def from_dict(cls, raw: dict) -> ResearchStats:
        def _count(r: dict | None) -> CountStats:
            r = r or {}
            return CountStats(total=r.get("total", 0), new_since_last_fetch=r.get("newSinceLastFetch", 0))

        contacts = raw.get("contacts") or {}
        return cls(
            contacts=ContactStats(
                total=contacts.get("total", 0),
                researched=contacts.get("researched", 0),
                new_since_last_fetch=contacts.get("newSinceLastFetch", 0),
                new_researched_since_last_fetch=contacts.get("newResearchedSinceLastFetch", 0),
            ),
            websites=_count(raw.get("websites")),
            linkedin_profiles=_count(raw.get("linkedinProfiles")),
            company_profiles=_count(raw.get("companyProfiles")),
            last_fetch_time=_str_to_dt(raw.get("lastFetchTime")),
        )


# ---------------------------------------------------------------------------
# Interactions & queue
# ---------------------------------------------------------------------------

@dataclass
class InteractionFilters:
    org_id: str | None = None
    user_id: str | None = None
    date_range: TimeRange | None = None


@dataclass
class InteractionPage:
    items: list[dict]
    page: int
    page_size: int
    total_count: int

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return -(-self.total_count // self.page_size)


@dataclass
class QueueCounts:
    pending: int = 0
    active: int = 0
    completed: int = 0
    total: int = 0

    def add(self, status: str | None) -> None:
        self.total += 1
        if status == "active":
            self.active += 1
        elif status == "completed":
            self.completed += 1
        else:
            self.pending += 1


@dataclass
class QueueUserGroup:
    user_id: str
    user_name: str
    user_email: str
    items: list[dict] = field(default_factory=list)
    stats: QueueCounts = field(default_factory=QueueCounts)


@dataclass
class QueueStats:
    total: int = 0
    by_user: dict[str, QueueUserGroup] = field(default_factory=dict)
    last_fetch_time: datetime | None = None


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------

@runtime_checkable
class LLMProvider(Protocol):
    def complete(self, system: str, user: str, max_tokens: int) -> str: ...


@runtime_checkable
class StateStore(Protocol):
    """Key/value persistence for cache snapshots (the local-storage seam)."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...


@runtime_checkable
class LogSource(Protocol):
    async def fetch_folder(self, folder: str) -> dict: ...


@dataclass
class RowResult:
    rows: list[dict] = field(default_factory=list)
    count: int | None = None


@runtime_checkable
class RowSource(Protocol):
    async def execute(self, query: Any) -> RowResult: ...


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class KeyValueConfig:
    url: str = ""
    url_env: str = "OPSDASH_REDIS_URL"
    socket_timeout: float = 10.0


@dataclass
class ProxyConfig:
    host: str = "127.0.0.1"
    port: int = 3001
    api_token: str = ""
    api_token_env: str = "OPSDASH_PROXY_TOKEN"
    rate_limit: str = "100/minute"
    error_prefixes: list[str] = field(default_factory=lambda: ["error", "errors"])


@dataclass
class LogSourceConfig:
    api_url: str = "http://127.0.0.1:3001/api/redis-logs"
    api_key: str = ""
    api_key_env: str = "OPSDASH_LOG_API_KEY"
    default_folder: str = "error"
    cache_duration_seconds: int = 2 * 60 * 60
    timeout: float = 30.0


@dataclass
class RowsConfig:
    url: str = ""
    url_env: str = "OPSDASH_ROWS_URL"
    api_key: str = ""
    api_key_env: str = "OPSDASH_ROWS_KEY"
    timeout: float = 30.0


@dataclass
class AnalysisConfig:
    provider: str = "gemini"
    max_tokens: int = 2048
    cache_duration_seconds: int = 2 * 60 * 60
    categories: list[str] = field(default_factory=lambda: ["general", "email", "locking", "database"])


@dataclass
class StateConfig:
    backend: str = "filesystem"  # "filesystem", "sqlite", "memory"
    root: str = ".opsdash/state"
    sqlite_path: str = ".opsdash/state.db"


@dataclass
class AuthConfig:
    username: str = ""
    username_env: str = "OPSDASH_DASHBOARD_USER"
    password: str = ""
    password_env: str = "OPSDASH_DASHBOARD_PASSWORD"


@dataclass
class EntityCacheConfig:
    cache_duration_seconds: int = 60 * 60
    fetch_limit: int = 1000


@dataclass
class DashboardConfig:
    host: str = "127.0.0.1"
    port: int = 8080
    interactions_page_size: int = 50
    logs_page_size: int = 42
    research_poll_seconds: int = 300
    queue_poll_seconds: int = 30
    insights_poll_seconds: int = 30


@dataclass
class OpsDashConfig:
    version: str = "1.0"
    key_value: KeyValueConfig = field(default_factory=KeyValueConfig)
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    log_source: LogSourceConfig = field(default_factory=LogSourceConfig)
    rows: RowsConfig = field(default_factory=RowsConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    state: StateConfig = field(default_factory=StateConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    entity_cache: EntityCacheConfig = field(default_factory=EntityCacheConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    providers: dict[str, dict] = field(default_factory=dict)
