"""Key-value persistence and project settings."""

from __future__ import annotations

import asyncio
import json
import os
import pathlib
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .errors import KeyweaverError


class KeyValueStore(ABC):
    """Asynchronous store of named JSON-compatible values."""

    @abstractmethod
    async def get(self, name: str, default: Any = None) -> Any:
        """Return the stored value or ``default``."""

    @abstractmethod
    async def set(self, name: str, value: Any) -> None:
        """Store a value under ``name``."""

    @abstractmethod
    async def delete(self, name: str) -> None:
        """Remove ``name`` if present."""


class MemoryKeyValueStore(KeyValueStore):
    """Store kept in a dictionary; counts writes for inspection."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self.values: Dict[str, Any] = dict(initial or {})
        self.writes = 0

    async def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)

    async def set(self, name: str, value: Any) -> None:
        self.writes += 1
        self.values[name] = value

    async def delete(self, name: str) -> None:
        if name in self.values:
            self.writes += 1
            del self.values[name]


class JsonFileKeyValueStore(KeyValueStore):
    """Store persisted as one JSON object in a file.

    Every write rewrites the whole file through a temporary file and an
    atomic rename.
    """

    def __init__(self, path: pathlib.Path) -> None:
        self.path = path

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as exc:
            raise KeyweaverError(f"State file {self.path} could not be read: {exc}") from exc
        if not isinstance(data, dict):
            raise KeyweaverError(f"State file {self.path} must contain a JSON object.")
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, ensure_ascii=False, indent=2, sort_keys=True)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    async def get(self, name: str, default: Any = None) -> Any:
        data = await asyncio.to_thread(self._read)
        return data.get(name, default)

    async def set(self, name: str, value: Any) -> None:
        data = await asyncio.to_thread(self._read)
        data[name] = value
        await asyncio.to_thread(self._write, data)

    async def delete(self, name: str) -> None:
        data = await asyncio.to_thread(self._read)
        if name in data:
            del data[name]
            await asyncio.to_thread(self._write, data)


@dataclass
class ProjectSettings:
    """Connection details for the remote translation store."""

    project_id: str = ""
    api_key: str = ""
    version: str = "latest"
    base_language: str = "en"
    default_namespace: str = "common"

    def to_message(self) -> Dict[str, str]:
        return {
            "project_id": self.project_id,
            "api_key": self.api_key,
            "version": self.version,
            "base_language": self.base_language,
            "default_namespace": self.default_namespace,
        }


SETTINGS_KEYS = {
    "project_id": "locize.projectId",
    "api_key": "locize.apiKey",
    "version": "locize.version",
    "base_language": "locize.baseLanguage",
    "default_namespace": "locize.defaultNamespace",
}


class SettingsStore:
    """Reads and writes :class:`ProjectSettings` field by field."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    async def load(self, defaults: Optional[ProjectSettings] = None) -> ProjectSettings:
        base = defaults or ProjectSettings()
        values: Dict[str, str] = {}
        for field_name, storage_key in SETTINGS_KEYS.items():
            stored = await self.store.get(storage_key)
            values[field_name] = stored or getattr(base, field_name)
        return ProjectSettings(**values)

    async def save(self, settings: ProjectSettings) -> None:
        for field_name, storage_key in SETTINGS_KEYS.items():
            await self.store.set(storage_key, getattr(settings, field_name))
