"""Dashboard composition root: wires caches and clients into a FastAPI app.

All long-lived objects (row client, caches, analyzer, auth) are built once
in ``build_services()`` and handed to ``create_dashboard_app()``. Tests pass
their own ``DashboardServices`` with doubles.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Awaitable, Callable

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..config import resolve_secret
from ..core.auth import DashboardAuth
from ..core.entity_cache import EntityCache
from ..core.interactions import (
    DATE_RANGE_OPTIONS,
    SECTION_TITLES,
    date_range_for,
    fetch_interactions,
    section_title,
)
from ..core.log_analyzer import LogAnalyzer
from ..core.log_cache import LogCacheManager
from ..core.log_filters import (
    CATEGORIES,
    LOG_FOLDERS,
    LOG_TYPES,
    TIME_RANGE_OPTIONS,
    paginate,
    time_range_for,
)
from ..core.log_source import HttpLogSource
from ..core.queue import fetch_queue, group_to_dict, queue_stats
from ..core.research_stats import ResearchStatsCache
from ..providers import build_provider
from ..proxy.kv import StoreFactory, store_factory_for
from ..proxy.server import create_router, install_proxy_handlers
from ..rows import PostgrestClient
from ..storage import build_state_store
from ..types import (
    CacheBusyError,
    ConfigError,
    InteractionFilters,
    LLMProviderError,
    LogAnalysisError,
    LogFetchError,
    LogFilters,
    OpsDashConfig,
    RowQueryError,
    RowSource,
    TimeRange,
)
from .html import get_dashboard_html

logger = logging.getLogger(__name__)


class NotAuthenticatedError(Exception):
    pass


@dataclass
class DashboardServices:
    rows: RowSource
    entities: EntityCache
    research: ResearchStatsCache
    log_cache: LogCacheManager
    auth: DashboardAuth
    analyzer: LogAnalyzer | None = None
    store_factory: StoreFactory | None = None
    closers: list[Callable[[], Awaitable[None]]] = field(default_factory=list)


def build_services(config: OpsDashConfig) -> DashboardServices:
    """Construct the production object graph from config."""
    state_store = build_state_store(config.state)

    rows_url = resolve_secret(config.rows.url, config.rows.url_env)
    if not rows_url:
        raise ConfigError(f"No relational store URL configured. Set {config.rows.url_env} or rows.url.")
    rows = PostgrestClient(
        rows_url,
        resolve_secret(config.rows.api_key, config.rows.api_key_env),
        timeout=config.rows.timeout,
    )

    source = HttpLogSource(
        config.log_source.api_url,
        resolve_secret(config.log_source.api_key, config.log_source.api_key_env),
        timeout=config.log_source.timeout,
    )
    log_cache = LogCacheManager(
        source,
        state_store,
        cache_duration=timedelta(seconds=config.log_source.cache_duration_seconds),
        default_folder=config.log_source.default_folder,
    )

    analyzer = None
    provider_name = config.analysis.provider
    try:
        provider = build_provider(provider_name, config.providers.get(provider_name, {}))
        analyzer = LogAnalyzer(
            provider,
            state_store,
            cache_duration=timedelta(seconds=config.analysis.cache_duration_seconds),
            max_tokens=config.analysis.max_tokens,
        )
    except LLMProviderError as e:
        logger.warning("Log insights disabled: %s", e)

    return DashboardServices(
        rows=rows,
        entities=EntityCache(
            rows,
            cache_duration=timedelta(seconds=config.entity_cache.cache_duration_seconds),
            fetch_limit=config.entity_cache.fetch_limit,
        ),
        research=ResearchStatsCache(rows, state_store),
        log_cache=log_cache,
        auth=DashboardAuth(
            resolve_secret(config.auth.username, config.auth.username_env),
            resolve_secret(config.auth.password, config.auth.password_env),
            state_store,
        ),
        analyzer=analyzer,
        store_factory=store_factory_for(config.key_value),
        closers=[rows.aclose, source.aclose],
    )


def _parse_datetime(value: str, name: str) -> datetime:
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        raise ValueError(f"Invalid {name}: {value!r}") from None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _interaction_range(range_value: str | None, start: str | None, end: str | None, now: datetime) -> TimeRange:
    if start or end:
        return TimeRange(
            start=_parse_datetime(start, "start") if start else datetime.min.replace(tzinfo=timezone.utc),
            end=_parse_datetime(end, "end") if end else now,
        )
    return date_range_for(range_value or "day", now)


def create_dashboard_app(
    config: OpsDashConfig,
    *,
    services: DashboardServices | None = None,
) -> FastAPI:
    services = services or build_services(config)
    dash = config.dashboard

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
        await services.entities.initialize()
        await services.log_cache.initialize()
        logger.info("Dashboard ready on %s:%d", dash.host, dash.port)
        yield
        services.log_cache.close()
        for close in services.closers:
            try:
                await close()
            except Exception as e:
                logger.warning("Error closing client: %s", e)

    app = FastAPI(title="opsdash", lifespan=lifespan)
    app.state.services = services

    limiter = Limiter(key_func=get_remote_address)
    install_proxy_handlers(app, limiter)
    app.include_router(
        create_router(config.proxy, services.store_factory or store_factory_for(config.key_value), limiter=limiter),
        prefix="/proxy",
    )

    # ---- error mapping ----

    @app.exception_handler(NotAuthenticatedError)
    async def _not_authenticated(request: Request, exc: NotAuthenticatedError):
        return JSONResponse(status_code=401, content={"error": "Not authenticated"})

    @app.exception_handler(CacheBusyError)
    async def _busy(request: Request, exc: CacheBusyError):
        return JSONResponse(status_code=409, content={"error": str(exc)})

    async def _upstream(request: Request, exc: Exception):
        logger.error("Upstream failure on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=502, content={"error": str(exc)})

    for exc_type in (LogFetchError, RowQueryError, LogAnalysisError, LLMProviderError):
        app.add_exception_handler(exc_type, _upstream)

    @app.exception_handler(ValueError)
    async def _bad_request(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    def require_session() -> None:
        if not services.auth.is_authenticated():
            raise NotAuthenticatedError()

    authed = [Depends(require_session)]

    # ---- session ----

    @app.post("/api/login")
    async def login(request: Request):
        try:
            body = await request.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        ok = services.auth.login(str(body.get("username", "")), str(body.get("password", "")))
        if not ok:
            return JSONResponse(status_code=401, content={"error": "Invalid credentials"})
        await services.entities.initialize()
        return {"authenticated": True}

    @app.post("/api/logout")
    async def logout():
        services.auth.logout()
        services.entities.clear()
        return {"authenticated": False}

    @app.get("/api/session")
    async def session():
        return {"authenticated": services.auth.is_authenticated()}

    @app.get("/api/config", dependencies=authed)
    async def dashboard_config():
        return {
            "sectionTitles": SECTION_TITLES,
            "dateRangeOptions": [{"label": o["label"], "value": o["value"]} for o in DATE_RANGE_OPTIONS],
            "timeRangeOptions": [{"label": o["label"], "value": o["value"]} for o in TIME_RANGE_OPTIONS],
            "logFolders": LOG_FOLDERS,
            "logCategories": list(CATEGORIES),
            "logTypes": list(LOG_TYPES),
            "insightCategories": config.analysis.categories,
            "pollSeconds": {
                "research": dash.research_poll_seconds,
                "queue": dash.queue_poll_seconds,
                "insights": dash.insights_poll_seconds,
            },
        }

    # ---- interactions, queue, research, entities ----

    @app.get("/api/interactions", dependencies=authed)
    async def interactions(
        section: str = "interactions",
        org_id: str | None = None,
        user_id: str | None = None,
        range_value: str | None = Query(None, alias="range"),
        start: str | None = None,
        end: str | None = None,
        page: int = Query(1, ge=1),
    ):
        now = datetime.now(timezone.utc)
        filters = InteractionFilters(
            org_id=org_id or None,
            user_id=user_id or None,
            date_range=_interaction_range(range_value, start, end, now),
        )
        result = await fetch_interactions(
            services.rows, section, filters, page, dash.interactions_page_size,
        )
        return {
            "title": section_title(section),
            "items": result.items,
            "page": result.page,
            "pageSize": result.page_size,
            "totalCount": result.total_count,
            "totalPages": result.total_pages,
        }

    @app.get("/api/queue", dependencies=authed)
    async def queue():
        await services.entities.initialize()
        items = await fetch_queue(services.rows)
        stats = queue_stats(items, services.entities)
        groups = sorted(stats.by_user.values(), key=lambda g: g.stats.total, reverse=True)
        return {
            "total": stats.total,
            "lastFetchTime": stats.last_fetch_time.isoformat(),
            "groups": [group_to_dict(g) for g in groups],
        }

    @app.get("/api/research", dependencies=authed)
    async def research(refresh: bool = False):
        if refresh or services.research.current is None:
            await services.research.fetch_stats(force_refresh=refresh)
        previous = services.research.previous
        return {
            "current": services.research.current.to_dict(),
            "previous": previous.to_dict() if previous else None,
        }

    @app.get("/api/entities", dependencies=authed)
    async def entities(org_id: str | None = None):
        await services.entities.initialize()
        cache = services.entities
        users = cache.users_by_org(org_id) if org_id else cache.all_users()
        return {
            "organizations": [{"id": o.id, "name": o.name} for o in cache.all_orgs().values()],
            "users": [
                {"id": u.id, "name": u.name, "email": u.email, "org_id": u.org_id}
                for u in users.values()
            ],
            "agents": [{"id": a.id, "name": a.name, "type": a.type} for a in cache.all_agents().values()],
        }

    # ---- logs & insights ----

    @app.get("/api/logs", dependencies=authed)
    async def logs(
        range_value: str | None = Query(None, alias="range"),
        category: str | None = None,
        log_type: str | None = Query(None, alias="type"),
        page: int = Query(1, ge=1),
    ):
        cache = services.log_cache
        await cache.initialize()
        await cache.fetch_logs()
        filters = LogFilters(
            time_range=time_range_for(range_value, datetime.now(timezone.utc)) if range_value else None,
            category=category or None,
            type=log_type or None,
        )
        filtered, stats = cache.get_filtered_logs(filters)
        log_page = paginate(filtered, page, dash.logs_page_size)
        return {
            "items": [log.to_dict() for log in log_page.items],
            "page": log_page.page,
            "pageSize": log_page.page_size,
            "total": log_page.total,
            "totalPages": log_page.total_pages,
            "stats": stats.to_dict(),
            "isFetching": cache.is_fetching(),
        }

    @app.post("/api/logs/refresh", dependencies=authed)
    async def refresh_logs(folder: str | None = None):
        logs, stats = await services.log_cache.fetch_logs(folder, force_refresh=True)
        return {"total": len(logs), "stats": stats.to_dict()}

    @app.get("/api/insights", dependencies=authed)
    async def insights(category: str | None = None):
        analyzer = services.analyzer
        if analyzer is None:
            return JSONResponse(status_code=503, content={"error": "Log insights are not configured"})
        logs, _ = await services.log_cache.fetch_logs()
        categories = [category] if category else list(config.analysis.categories)
        results = await analyzer.analyze_by_category(logs, categories)
        return {
            "insights": {cat: analysis.to_dict() for cat, analysis in results.items()},
            "isAnalyzing": analyzer.is_analyzing(),
        }

    # ---- page ----

    @app.get("/")
    async def index():
        return HTMLResponse(get_dashboard_html())

    return app
