"""Flatten nested key-value payloads into LogRecords."""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any

from ..types import LOG_LEVELS, LogRecord

logger = logging.getLogger(__name__)

# Epoch values above this are milliseconds (year 5138 in seconds).
_MS_THRESHOLD = 100_000_000_000

_EPOCH_TEXT = re.compile(r"-?\d+", re.ASCII)


def parse_timestamp(value: Any, default: datetime) -> datetime:
    """Best-effort conversion of ISO strings and epoch numbers to aware datetimes."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if _EPOCH_TEXT.fullmatch(text):
            value = int(text)
        else:
            try:
                dt = datetime.fromisoformat(text)
            except ValueError:
                return default
            return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if abs(value) >= _MS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return default
    return default


def message_text(entry: dict) -> str:
    """The text a record is identified by: ``message``, else ``error``."""
    raw = entry.get("message") or entry.get("error")
    if raw is None:
        return ""
    if isinstance(raw, dict):
        inner = raw.get("message")
        if isinstance(inner, str):
            return inner
        return json.dumps(raw, sort_keys=True, default=str)
    return raw if isinstance(raw, str) else str(raw)


def is_log_node(value: Any) -> bool:
    return isinstance(value, dict) and ("message" in value or "error" in value)


def normalize_payload(data: Any, folder: str, now: datetime | None = None) -> list[LogRecord]:
    """Walk *data* depth-first and emit one LogRecord per log-shaped node.

    A mapping holding ``message`` or ``error`` is a record and is not
    descended into. Records repeating an earlier message are dropped, so the
    first one met in traversal order wins. Everything else that is a mapping
    is recursed into with its key appended to the colon-joined path.
    """
    now = now or datetime.now(timezone.utc)
    records: list[LogRecord] = []
    seen: set[str] = set()

    def _walk(node: dict, prefix: str) -> None:
        for key, value in node.items():
            full_key = f"{prefix}:{key}" if prefix else str(key)
            if not isinstance(value, dict):
                continue
            if not is_log_node(value):
                _walk(value, full_key)
                continue

            message = message_text(value)
            if message in seen:
                continue
            seen.add(message)

            level = value.get("level")
            records.append(LogRecord(
                id=full_key,
                timestamp=parse_timestamp(value.get("timestamp"), now),
                level=level if level in LOG_LEVELS else "error",
                message=message,
                metadata=dict(value),
                category=value.get("category") or folder,
                type=value.get("type") or "error",
            ))

    if isinstance(data, dict):
        _walk(data, "")
    else:
        logger.warning("Log payload for folder %r is %s, expected a mapping", folder, type(data).__name__)
    return records
