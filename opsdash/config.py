"""Configuration loading, validation, and defaults."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import yaml
from limits import parse as parse_rate_limit

from .types import (
    AnalysisConfig,
    AuthConfig,
    DashboardConfig,
    EntityCacheConfig,
    KeyValueConfig,
    LogSourceConfig,
    OpsDashConfig,
    ProxyConfig,
    RowsConfig,
    StateConfig,
)

CONFIG_FILENAMES = [
    "opsdash.yaml",
    "opsdash.yml",
    "opsdash.json",
]

STATE_BACKENDS = ("filesystem", "sqlite", "memory")
PROVIDER_TYPES = ("anthropic", "generic_openai", "gemini")


def resolve_secret(value: str, env_name: str) -> str:
    """Return an explicit config value, else the named environment variable."""
    if value:
        return value
    return os.environ.get(env_name, "") if env_name else ""


def _discover_config() -> Path | None:
    """Search CWD then parent dirs up to home for a config file."""
    cwd = Path.cwd()
    home = Path.home()
    search = cwd
    while True:
        for name in CONFIG_FILENAMES:
            candidate = search / name
            if candidate.is_file():
                return candidate
        if search == home or search == search.parent:
            break
        search = search.parent
    return None


def _build_config(raw: dict[str, Any]) -> OpsDashConfig:
    """Build an OpsDashConfig from a raw dict."""
    kv_raw = raw.get("key_value", {})
    key_value = KeyValueConfig(
        url=kv_raw.get("url", ""),
        url_env=kv_raw.get("url_env", "OPSDASH_REDIS_URL"),
        socket_timeout=kv_raw.get("socket_timeout", 10.0),
    )

    proxy_raw = raw.get("proxy", {})
    proxy = ProxyConfig(
        host=proxy_raw.get("host", "127.0.0.1"),
        port=proxy_raw.get("port", 3001),
        api_token=proxy_raw.get("api_token", ""),
        api_token_env=proxy_raw.get("api_token_env", "OPSDASH_PROXY_TOKEN"),
        rate_limit=proxy_raw.get("rate_limit", "100/minute"),
        error_prefixes=proxy_raw.get("error_prefixes", ["error", "errors"]),
    )

    # Log source (the proxy endpoint the client cache talks to)
    source_raw = raw.get("log_source", {})
    log_source = LogSourceConfig(
        api_url=source_raw.get("api_url", f"http://{proxy.host}:{proxy.port}/api/redis-logs"),
        api_key=source_raw.get("api_key", ""),
        api_key_env=source_raw.get("api_key_env", "OPSDASH_LOG_API_KEY"),
        default_folder=source_raw.get("default_folder", "error"),
        cache_duration_seconds=source_raw.get("cache_duration_seconds", 2 * 60 * 60),
        timeout=source_raw.get("timeout", 30.0),
    )

    rows_raw = raw.get("rows", {})
    rows = RowsConfig(
        url=rows_raw.get("url", ""),
        url_env=rows_raw.get("url_env", "OPSDASH_ROWS_URL"),
        api_key=rows_raw.get("api_key", ""),
        api_key_env=rows_raw.get("api_key_env", "OPSDASH_ROWS_KEY"),
        timeout=rows_raw.get("timeout", 30.0),
    )

    analysis_raw = raw.get("analysis", {})
    analysis = AnalysisConfig(
        provider=analysis_raw.get("provider", "gemini"),
        max_tokens=analysis_raw.get("max_tokens", 2048),
        cache_duration_seconds=analysis_raw.get("cache_duration_seconds", 2 * 60 * 60),
        categories=analysis_raw.get("categories", ["general", "email", "locking", "database"]),
    )

    state_raw = raw.get("state", {})
    state = StateConfig(
        backend=state_raw.get("backend", "filesystem"),
        root=state_raw.get("root", ".opsdash/state"),
        sqlite_path=state_raw.get("sqlite_path", ".opsdash/state.db"),
    )

    auth_raw = raw.get("auth", {})
    auth = AuthConfig(
        username=auth_raw.get("username", ""),
        username_env=auth_raw.get("username_env", "OPSDASH_DASHBOARD_USER"),
        password=auth_raw.get("password", ""),
        password_env=auth_raw.get("password_env", "OPSDASH_DASHBOARD_PASSWORD"),
    )

    entity_raw = raw.get("entity_cache", {})
    entity_cache = EntityCacheConfig(
        cache_duration_seconds=entity_raw.get("cache_duration_seconds", 60 * 60),
        fetch_limit=entity_raw.get("fetch_limit", 1000),
    )

    dash_raw = raw.get("dashboard", {})
    dashboard = DashboardConfig(
        host=dash_raw.get("host", "127.0.0.1"),
        port=dash_raw.get("port", 8080),
        interactions_page_size=dash_raw.get("interactions_page_size", 50),
        logs_page_size=dash_raw.get("logs_page_size", 42),
        research_poll_seconds=dash_raw.get("research_poll_seconds", 300),
        queue_poll_seconds=dash_raw.get("queue_poll_seconds", 30),
        insights_poll_seconds=dash_raw.get("insights_poll_seconds", 30),
    )

    return OpsDashConfig(
        version=raw.get("version", "1.0"),
        key_value=key_value,
        proxy=proxy,
        log_source=log_source,
        rows=rows,
        analysis=analysis,
        state=state,
        auth=auth,
        entity_cache=entity_cache,
        dashboard=dashboard,
        providers=raw.get("providers", {}),
    )


def validate_config(config: OpsDashConfig) -> list[str]:
    """Validate a config. Returns list of error strings (empty = valid)."""
    errors: list[str] = []

    if config.state.backend not in STATE_BACKENDS:
        errors.append(
            f"state.backend must be one of {', '.join(STATE_BACKENDS)} "
            f"(got '{config.state.backend}')"
        )

    try:
        parse_rate_limit(config.proxy.rate_limit)
    except ValueError:
        errors.append(f"proxy.rate_limit is not a valid rate: '{config.proxy.rate_limit}'")

    if not config.proxy.error_prefixes:
        errors.append("proxy.error_prefixes must not be empty")

    if config.log_source.cache_duration_seconds <= 0:
        errors.append("log_source.cache_duration_seconds must be > 0")
    if config.analysis.cache_duration_seconds <= 0:
        errors.append("analysis.cache_duration_seconds must be > 0")
    if config.entity_cache.fetch_limit < 1:
        errors.append("entity_cache.fetch_limit must be >= 1")
    if config.dashboard.logs_page_size < 1 or config.dashboard.interactions_page_size < 1:
        errors.append("dashboard page sizes must be >= 1")

    if config.providers and config.analysis.provider not in config.providers:
        errors.append(
            f"Analysis provider '{config.analysis.provider}' "
            f"not found in providers section"
        )
    for name, pconf in config.providers.items():
        ptype = pconf.get("type", name)
        if ptype not in PROVIDER_TYPES:
            errors.append(f"Provider '{name}' has unknown type '{ptype}'")

    return errors


def load_config(
    config_path: str | Path | None = None,
    config_dict: dict | None = None,
) -> OpsDashConfig:
    """Load config from dict, explicit path, or auto-discover."""
    if config_dict is not None:
        return _build_config(config_dict)

    if config_path is not None:
        path = Path(config_path)
    else:
        path = _discover_config()

    if path is None:
        return _build_config({})

    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    text = path.read_text()
    if path.suffix == ".json":
        raw = json.loads(text)
    else:
        raw = yaml.safe_load(text) or {}

    return _build_config(raw)
