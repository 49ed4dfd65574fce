"""Event-dict handler for function hosts (API-gateway style events).

``handler(event, context)`` takes ``{httpMethod, path, headers,
queryStringParameters, body}`` and returns ``{statusCode, headers, body}``.
Routing mirrors the FastAPI variant: GET with ``keyPattern`` reads a
pattern, GET without it returns the flat error logs, POST ``{folder}``
returns one folder's nested values.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from limits import parse as parse_rate_limit
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from ..config import load_config, resolve_secret
from ..types import OpsDashConfig
from .core import fetch_error_logs, fetch_folder, fetch_pattern
from .kv import StoreFactory, redact, store_factory_for
from .server import CORS_HEADERS, RATE_LIMITED_BODY, UNAUTHORIZED_BODY, check_bearer

logger = logging.getLogger(__name__)

RESPONSE_HEADERS = {**CORS_HEADERS, "Content-Type": "application/json"}


def _response(status: int, body: Any | None = None) -> dict:
    return {
        "statusCode": status,
        "headers": dict(RESPONSE_HEADERS),
        "body": json.dumps(body) if body is not None else "",
    }


def _header(headers: dict, name: str) -> str | None:
    for key, value in (headers or {}).items():
        if key.lower() == name:
            return value
    return None


def _client_id(headers: dict) -> str:
    forwarded = _header(headers, "x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return _header(headers, "client-ip") or _header(headers, "x-real-ip") or "anonymous"


class ServerlessProxy:
    """Holds the limiter storage so it survives across warm invocations."""

    def __init__(self, config: OpsDashConfig, store_factory: StoreFactory | None = None) -> None:
        self.config = config
        self.token = resolve_secret(config.proxy.api_token, config.proxy.api_token_env)
        self.store_factory = store_factory or store_factory_for(config.key_value)
        self.rate = parse_rate_limit(config.proxy.rate_limit)
        self.limiter = MovingWindowRateLimiter(MemoryStorage())

    def __call__(self, event: dict, context: Any = None) -> dict:
        return asyncio.run(self.handle(event))

    async def handle(self, event: dict) -> dict:
        method = (event.get("httpMethod") or "GET").upper()
        headers = event.get("headers") or {}

        if method == "OPTIONS":
            return _response(204)

        if not check_bearer(_header(headers, "authorization"), self.token):
            return _response(403, UNAUTHORIZED_BODY)

        if not self.limiter.hit(self.rate, "serverless", _client_id(headers)):
            return _response(429, RATE_LIMITED_BODY)

        if method == "GET":
            params = event.get("queryStringParameters") or {}
            key_pattern = params.get("keyPattern")
            if "keyPattern" in params and not key_pattern:
                return _response(400, {"error": "Key pattern is required"})
            if key_pattern:
                return await self._with_store(lambda store: fetch_pattern(store, key_pattern))
            prefixes = tuple(self.config.proxy.error_prefixes)
            return await self._with_store(lambda store: fetch_error_logs(store, prefixes))

        if method == "POST":
            try:
                body = json.loads(event.get("body") or "null")
            except ValueError:
                body = None
            folder = body.get("folder") if isinstance(body, dict) else None
            if not folder or not isinstance(folder, str):
                return _response(400, {"error": "Folder is required"})
            return await self._with_store(lambda store: fetch_folder(store, folder))

        return _response(405, {"error": "Method not allowed"})

    async def _with_store(self, operation) -> dict:
        store = None
        try:
            store = self.store_factory()
            return _response(200, await operation(store))
        except Exception as e:
            details = redact(str(e)) or type(e).__name__
            logger.error("Error fetching key-value data: %s", details)
            return _response(500, {"error": "Failed to fetch data", "details": details})
        finally:
            if store is not None:
                await store.aclose()


_default: ServerlessProxy | None = None


def handler(event: dict, context: Any = None) -> dict:
    """Entry point for function hosts. Config comes from file discovery and env."""
    global _default
    if _default is None:
        _default = ServerlessProxy(load_config())
    return _default(event, context)
