"""CLI: opsdash proxy, dashboard, logs, insights, research, cache clear, config validate."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timedelta, timezone

from ..config import load_config, resolve_secret, validate_config
from ..core import auth, log_analyzer, log_cache, research_stats
from ..core.log_analyzer import LogAnalyzer
from ..core.log_cache import LogCacheManager
from ..core.log_filters import paginate, time_range_for
from ..core.log_source import HttpLogSource
from ..core.research_stats import ResearchStatsCache
from ..providers import build_provider
from ..rows import PostgrestClient
from ..storage import build_state_store
from ..types import ConfigError, LogFilters, OpsDashError

STATE_KEYS = (
    log_cache.STORAGE_KEY,
    log_analyzer.STORAGE_KEY,
    research_stats.STORAGE_KEY,
    auth.STORAGE_KEY,
)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _install_access_filter() -> None:
    class _SuppressPollingAccess(logging.Filter):
        """Hide repetitive successful GET /api/* polling lines."""
        def filter(self, record: logging.LogRecord) -> bool:
            msg = record.getMessage()
            if "GET /api/" in msg and " 200" in msg:
                return False
            return True

    logging.getLogger("uvicorn.access").addFilter(_SuppressPollingAccess())


def _build_log_cache(config) -> tuple[LogCacheManager, HttpLogSource]:
    source = HttpLogSource(
        config.log_source.api_url,
        resolve_secret(config.log_source.api_key, config.log_source.api_key_env),
        timeout=config.log_source.timeout,
    )
    cache = LogCacheManager(
        source,
        build_state_store(config.state),
        cache_duration=timedelta(seconds=config.log_source.cache_duration_seconds),
        default_folder=config.log_source.default_folder,
        auto_refresh=False,
    )
    return cache, source


def _print_logs(logs) -> None:
    print(f"{'Timestamp':<26} {'Category':<12} {'Type':<10} Message")
    print("-" * 100)
    for log in logs:
        message = log.message.replace("\n", " ")
        if len(message) > 50:
            message = message[:47] + "..."
        print(f"{log.timestamp.isoformat()[:25]:<26} {(log.category or '-'):<12} {(log.type or '-'):<10} {message}")


def cmd_proxy(args):
    """Serve the log fetch proxy."""
    import uvicorn

    from ..proxy import create_app

    config = load_config(args.config)
    _install_access_filter()
    host = args.host or config.proxy.host
    port = args.port or config.proxy.port
    app = create_app(config)
    print(f"opsdash log proxy on {host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="info", timeout_graceful_shutdown=2)


def cmd_dashboard(args):
    """Serve the dashboard (with the proxy mounted under /proxy)."""
    import uvicorn

    from ..dashboard import create_dashboard_app

    config = load_config(args.config)
    _install_access_filter()
    host = args.host or config.dashboard.host
    port = args.port or config.dashboard.port
    try:
        app = create_dashboard_app(config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    print(f"opsdash dashboard on http://{host}:{port}/")
    uvicorn.run(app, host=host, port=port, log_level="info", timeout_graceful_shutdown=2)


def cmd_logs(args):
    """Fetch (or reuse cached) error logs and print one page."""
    config = load_config(args.config)

    async def _run():
        cache, source = _build_log_cache(config)
        try:
            await cache.fetch_logs(args.folder, force_refresh=args.refresh)
            filters = LogFilters(
                time_range=time_range_for(args.range, datetime.now(timezone.utc)) if args.range else None,
                category=args.category,
                type=args.type,
            )
            logs, stats = cache.get_filtered_logs(filters)
            return paginate(logs, args.page, config.dashboard.logs_page_size), stats
        finally:
            cache.close()
            await source.aclose()

    try:
        page, stats = asyncio.run(_run())
    except (OpsDashError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    fetched = stats.last_fetch_time.isoformat() if stats.last_fetch_time else "never"
    print(f"{page.total} logs (page {page.page}/{max(page.total_pages, 1)}, fetched {fetched})")
    for name, counts in (("category", stats.by_category), ("type", stats.by_type)):
        if counts:
            print(f"  by {name}: " + ", ".join(f"{k}={v}" for k, v in sorted(counts.items())))
    print()
    _print_logs(page.items)


def cmd_insights(args):
    """Analyze cached logs per category with the configured text model."""
    config = load_config(args.config)
    categories = [args.category] if args.category else config.analysis.categories

    async def _run():
        cache, source = _build_log_cache(config)
        try:
            logs, _ = await cache.fetch_logs()
        finally:
            cache.close()
            await source.aclose()
        name = config.analysis.provider
        analyzer = LogAnalyzer(
            build_provider(name, config.providers.get(name, {})),
            build_state_store(config.state),
            cache_duration=timedelta(seconds=config.analysis.cache_duration_seconds),
            max_tokens=config.analysis.max_tokens,
        )
        return await analyzer.analyze_by_category(logs, categories)

    try:
        results = asyncio.run(_run())
    except OpsDashError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if not results:
        print("No logs to analyze.")
        return
    for category, analysis in results.items():
        print(f"[{category}] overall severity: {analysis.severity}")
        for err in analysis.errors:
            print(f"  - ({err.severity}) {err.summary}")
            if err.root_cause:
                print(f"      cause: {err.root_cause}")
            if err.source_location:
                print(f"      where: {err.source_location}")
            if err.suggested_fix:
                print(f"      fix:   {err.suggested_fix}")
        print()


def cmd_research(args):
    """Fetch research counts and show deltas since the previous run."""
    config = load_config(args.config)
    url = resolve_secret(config.rows.url, config.rows.url_env)
    if not url:
        print(f"Error: set {config.rows.url_env} or rows.url", file=sys.stderr)
        sys.exit(1)

    async def _run():
        rows = PostgrestClient(url, resolve_secret(config.rows.api_key, config.rows.api_key_env),
                               timeout=config.rows.timeout)
        try:
            return await ResearchStatsCache(rows, build_state_store(config.state)).fetch_stats(force_refresh=True)
        finally:
            await rows.aclose()

    try:
        stats = asyncio.run(_run())
    except OpsDashError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    c = stats.contacts
    print(f"{'Table':<20} {'Total':>10} {'New':>8}")
    print("-" * 40)
    print(f"{'contacts':<20} {c.total:>10,} {c.new_since_last_fetch:>8,}")
    print(f"{'  researched':<20} {c.researched:>10,} {c.new_researched_since_last_fetch:>8,}")
    for name, count in (
        ("websites", stats.websites),
        ("linkedin_profiles", stats.linkedin_profiles),
        ("company_profiles", stats.company_profiles),
    ):
        print(f"{name:<20} {count.total:>10,} {count.new_since_last_fetch:>8,}")


def cmd_cache_clear(args):
    """Remove every persisted cache snapshot and the login flag."""
    config = load_config(args.config)
    store = build_state_store(config.state)
    for key in STATE_KEYS:
        store.remove(key)
    print(f"Cleared {len(STATE_KEYS)} state keys ({config.state.backend})")


def cmd_config_validate(args):
    """Validate config file."""
    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    errors = validate_config(config)
    if errors:
        print("Config validation errors:")
        for err in errors:
            print(f"  - {err}")
        sys.exit(1)
    else:
        print("Config is valid.")
        print(f"  Proxy: {config.proxy.host}:{config.proxy.port} (rate {config.proxy.rate_limit})")
        print(f"  Log source: {config.log_source.api_url}")
        print(f"  Analysis provider: {config.analysis.provider}")
        print(f"  State: {config.state.backend}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="opsdash",
        description="Operations dashboard for interactions, queues and error logs",
    )
    parser.add_argument("--config", "-c", help="Path to config file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command")

    proxy_parser = subparsers.add_parser("proxy", help="Serve the log fetch proxy")
    proxy_parser.add_argument("--host", default=None)
    proxy_parser.add_argument("--port", "-p", type=int, default=None)

    dashboard_parser = subparsers.add_parser("dashboard", help="Serve the dashboard")
    dashboard_parser.add_argument("--host", default=None)
    dashboard_parser.add_argument("--port", "-p", type=int, default=None)

    logs_parser = subparsers.add_parser("logs", help="Show cached error logs")
    logs_parser.add_argument("--folder", "-f", default=None, help="Log folder (default from config)")
    logs_parser.add_argument("--range", "-r", default=None, help="Time range preset, e.g. 3hours, 1day")
    logs_parser.add_argument("--category", default=None)
    logs_parser.add_argument("--type", default=None)
    logs_parser.add_argument("--page", type=int, default=1)
    logs_parser.add_argument("--refresh", action="store_true", help="Bypass the cache")

    insights_parser = subparsers.add_parser("insights", help="Summarize error logs per category")
    insights_parser.add_argument("--category", default=None)

    subparsers.add_parser("research", help="Show research table counts")

    cache_parser = subparsers.add_parser("cache", help="Cache operations")
    cache_sub = cache_parser.add_subparsers(dest="cache_command")
    cache_sub.add_parser("clear", help="Remove persisted cache state")

    config_parser = subparsers.add_parser("config", help="Config operations")
    config_sub = config_parser.add_subparsers(dest="config_command")
    config_sub.add_parser("validate", help="Validate config file")

    return parser


def main(argv: list[str] | None = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    _configure_logging(args.verbose)

    if args.command == "proxy":
        cmd_proxy(args)
    elif args.command == "dashboard":
        cmd_dashboard(args)
    elif args.command == "logs":
        cmd_logs(args)
    elif args.command == "insights":
        cmd_insights(args)
    elif args.command == "research":
        cmd_research(args)
    elif args.command == "cache":
        if args.cache_command == "clear":
            cmd_cache_clear(args)
        else:
            print("Usage: opsdash cache clear")
            sys.exit(1)
    elif args.command == "config":
        if args.config_command == "validate":
            cmd_config_validate(args)
        else:
            print("Usage: opsdash config validate")
            sys.exit(1)


if __name__ == "__main__":
    main()
