"""Key-value store access for the log fetch proxy (``redis.asyncio``)."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Protocol

import redis.asyncio as aioredis
from redis.exceptions import ResponseError

from ..config import resolve_secret
from ..types import ConfigError, KeyValueConfig

logger = logging.getLogger(__name__)

_URL_CREDENTIALS = re.compile(r"(\b[a-z][a-z0-9+.-]*://)[^@\s/]+@", re.IGNORECASE)
_SECRET_PARAMS = re.compile(r"\b(password|passwd|token|secret|api[_-]?key)=([^\s&,;]+)", re.IGNORECASE)


class KeyValueStore(Protocol):
    """The subset of the ``redis.asyncio.Redis`` API the proxy uses."""

    async def keys(self, pattern: str) -> list[str]: ...

    async def get(self, key: str) -> str | None: ...

    async def hgetall(self, key: str) -> dict[str, str]: ...

    async def aclose(self) -> None: ...


StoreFactory = Callable[[], KeyValueStore]


def redact(text: str) -> str:
    """Mask credentials in connection URLs and ``key=value`` secrets."""
    text = _URL_CREDENTIALS.sub(r"\1***@", text)
    return _SECRET_PARAMS.sub(r"\1=***", text)


def open_store(config: KeyValueConfig) -> KeyValueStore:
    url = resolve_secret(config.url, config.url_env)
    if not url:
        raise ConfigError(f"No key-value store URL configured. Set {config.url_env} or key_value.url.")
    return aioredis.from_url(
        url,
        decode_responses=True,
        socket_timeout=config.socket_timeout,
        socket_connect_timeout=config.socket_timeout,
    )


def store_factory_for(config: KeyValueConfig) -> StoreFactory:
    """A factory that opens a fresh connection per request."""
    return lambda: open_store(config)


async def read_key(store: KeyValueStore, key: str) -> tuple[Any, str] | None:
    """Read *key* as a string, falling back to a hash.

    Returns ``(value, "string")`` or ``(mapping, "hash")``, or None when the
    key holds neither (an empty string and an empty hash count as absent).
    """
    try:
        value = await store.get(key)
    except ResponseError:
        # WRONGTYPE: not a string key
        value = None
    if value:
        return value, "string"
    if value == "":
        return None

    mapping = await store.hgetall(key)
    if mapping:
        return dict(mapping), "hash"
    return None


def decode_json(text: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (TypeError, ValueError):
        return False, text
