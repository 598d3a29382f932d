"""Run-state store.

Small key-value state persisted between runs in a local JSON file. The
coordinator records the last successful export per unit so each unit
result can report when that unit was last exported in full.

File format:
    {
      "<key>": {"value": "...", "updated_at": "<ISO UTC>"},
      ...
    }

Writes are atomic (temp file + os.replace). A missing or unreadable file
behaves as an empty store; a failed write is logged and reported as False.
"""

import json
import logging
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

LAST_SUCCESSFUL_EXPORT = "last_successful_export"


def unit_key(unit_id: str, name: str = LAST_SUCCESSFUL_EXPORT) -> str:
    return f"{name}:{unit_id}"


class RunStateStore:
    """JSON-file key-value store for run state."""

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._data: Optional[dict[str, dict[str, Any]]] = None

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, dict[str, Any]]:
        if self._data is not None:
            return self._data
        self._data = {}
        if not self._path.exists():
            logger.debug("No run-state file found", extra={"target": str(self._path)})
            return self._data
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
            if isinstance(data, dict):
                self._data = {k: v for k, v in data.items() if isinstance(v, dict)}
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(
                "Failed to load run state, starting fresh",
                extra={"target": str(self._path), "error": str(e)},
            )
        return self._data

    def get(self, key: str) -> Optional[str]:
        entry = self._load().get(key)
        return entry.get("value") if entry else None

    def put(self, key: str, value: str) -> bool:
        data = self._load()
        data[key] = {"value": value, "updated_at": datetime.now(UTC).isoformat()}
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self._path.with_suffix(".tmp")
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(temp_path, self._path)
        except OSError as e:
            logger.error(
                "Failed to save run state",
                extra={"target": str(self._path), "error": str(e)},
            )
            return False
        return True


__all__ = ["LAST_SUCCESSFUL_EXPORT", "RunStateStore", "unit_key"]
