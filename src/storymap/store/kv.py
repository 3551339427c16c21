"""JSON file key-value store for view state."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any

from storymap.graph.errors import StoreIOError

logger = logging.getLogger(__name__)


class JsonFileKeyValueStore:
    """One JSON file per key under ``directory``."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]+", "_", key).strip("_") or "default"
        return self.directory / f"{safe}.json"

    async def load(self, key: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._load, key)

    async def save(self, key: str, value: dict[str, Any]) -> None:
        await asyncio.to_thread(self._save, key, value)

    def _load(self, key: str) -> dict[str, Any] | None:
        path = self.path_for(key)
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StoreIOError(f"Cannot read view state {path.name}: {e}") from e
        return data if isinstance(data, dict) else None

    def _save(self, key: str, value: dict[str, Any]) -> None:
        path = self.path_for(key)
        tmp = path.with_suffix(".json.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(value, indent=2, sort_keys=True), encoding="utf-8")
            tmp.replace(path)
        except OSError as e:
            raise StoreIOError(f"Cannot write view state {path.name}: {e}") from e
        logger.debug("Saved view state %s", path)
