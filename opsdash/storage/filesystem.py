"""FilesystemStateStore: one JSON document per key under a root directory."""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def _key_to_filename(key: str) -> str:
    return _UNSAFE_CHARS.sub("_", key) + ".json"


class FilesystemStateStore:
    """Persists cache snapshots as ``<root>/<key>.json``.

    Writes go to a temp file in the same directory and are moved into place,
    so a reader never sees a half-written snapshot. Concurrent writers are
    not coordinated: the last rename wins.
    """

    def __init__(self, root: str | Path = ".opsdash/state") -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.root / _key_to_filename(key)

    def get(self, key: str) -> Any | None:
        path = self._path(key)
        if not path.is_file():
            return None
        try:
            return json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable state file %s: %s", path, e)
            return None

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        tmp = None
        try:
            fd, tmp = tempfile.mkstemp(dir=self.root, prefix=".tmp-", suffix=".json")
            with os.fdopen(fd, "w") as f:
                json.dump(value, f, default=str)
            os.replace(tmp, path)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Error saving state %r to %s: %s", key, path, e)
            if tmp is not None:
                Path(tmp).unlink(missing_ok=True)

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def keys(self) -> list[str]:
        return sorted(p.stem for p in self.root.glob("*.json"))
