"""Store reads shared by every hosting variant of the log fetch proxy.

Each function takes an open store and returns a JSON-ready dict. Opening
and closing the connection is the caller's job.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any

from ..core.log_filters import sort_logs
from ..core.normalizer import message_text, parse_timestamp
from ..types import LogRecord
from .kv import KeyValueStore, decode_json, read_key

logger = logging.getLogger(__name__)

DEFAULT_ERROR_PREFIXES = ("error", "errors")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _metadata(pattern: str, keys: list[str], matched: int) -> dict:
    return {
        "pattern": pattern,
        "totalKeys": len(keys),
        "matchedValues": matched,
        "timestamp": _now().isoformat(),
    }


async def _read_all(store: KeyValueStore, keys: list[str]) -> list[tuple[Any, str] | None]:
    return await asyncio.gather(*(read_key(store, key) for key in keys))


async def fetch_pattern(store: KeyValueStore, pattern: str) -> dict:
    """Every key matching *pattern* with its decoded value.

    String values that are not JSON pass through as text.
    """
    keys = await store.keys(pattern)
    results = await _read_all(store, keys)

    values = []
    for key, result in zip(keys, results):
        if result is None:
            continue
        value, kind = result
        if kind == "string":
            ok, value = decode_json(value)
            if not ok:
                logger.warning("Value for key %s is not JSON, passing through as text", key)
        if value is None:
            continue
        values.append({
            "key": key,
            "value": value,
            "type": "string" if isinstance(value, str) else "hash",
        })

    return {"keys": keys, "values": values, "metadata": _metadata(pattern, keys, len(values))}


def _record_from_key(key: str, prefix: str, value: Any, now: datetime) -> LogRecord:
    parts = key.split(":")
    timestamp = now
    if len(parts) > 1 and parts[1].isascii() and parts[1].isdigit():
        timestamp = parse_timestamp(parts[1], now)

    if isinstance(value, dict):
        message = message_text(value) or json.dumps(value, sort_keys=True, default=str)
        metadata = value
    elif isinstance(value, str):
        message, metadata = value, None
    else:
        message, metadata = json.dumps(value, default=str), None

    return LogRecord(
        id=key,
        timestamp=timestamp,
        level="error",
        message=message,
        metadata=metadata,
        category=parts[2] if len(parts) > 2 and parts[2] else None,
        type=prefix,
    )


async def fetch_error_logs(store: KeyValueStore, prefixes=DEFAULT_ERROR_PREFIXES) -> dict:
    """Flat LogRecords for every ``<prefix>:*`` key, newest first.

    Key layout is ``<prefix>:<epoch>:<category>:<id>``; missing or
    non-numeric segments fall back to now / no category. Values that are not
    JSON are dropped.
    """
    now = _now()
    key_lists = await asyncio.gather(*(store.keys(f"{prefix}:*") for prefix in prefixes))

    logs: list[LogRecord] = []
    for prefix, keys in zip(prefixes, key_lists):
        results = await _read_all(store, keys)
        for key, result in zip(keys, results):
            if result is None:
                continue
            value, kind = result
            if kind == "string":
                ok, value = decode_json(value)
                if not ok:
                    logger.warning("Dropping non-JSON log value at %s", key)
                    continue
            logs.append(_record_from_key(key, prefix, value, now))

    return {"logs": [log.to_dict() for log in sort_logs(logs)]}


def _insert_path(tree: dict, parts: list[str], value: Any) -> bool:
    node = tree
    for part in parts[:-1]:
        child = node.get(part)
        if child is None:
            child = node[part] = {}
        elif not isinstance(child, dict) or "message" in child or "error" in child:
            return False
        node = child
    if parts[-1] in node:
        return False
    node[parts[-1]] = value
    return True


async def fetch_folder(store: KeyValueStore, folder: str) -> dict:
    """All ``<folder>:*`` values nested along their colon-separated key paths."""
    pattern = f"{folder}:*"
    keys = await store.keys(pattern)
    results = await _read_all(store, keys)

    data: dict = {}
    matched = 0
    for key, result in zip(keys, results):
        if result is None:
            continue
        value, kind = result
        if kind == "string":
            _, value = decode_json(value)
        if _insert_path(data, key.split(":"), value):
            matched += 1
        else:
            logger.warning("Key %s collides with another key's path, skipped", key)

    return {"keys": keys, "data": data, "metadata": _metadata(pattern, keys, matched)}
