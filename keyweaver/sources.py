"""Translation source abstractions."""

from __future__ import annotations

import json
import pathlib
import sys
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

import httpx
import yaml

from .errors import ConfigurationError, TranslationSourceError
from .storage import ProjectSettings
from .structures import TranslationMap
from .sync import flatten_translations


class TranslationSource(ABC):
    """Abstract adapter for places translations come from."""

    @abstractmethod
    async def fetch(self, language: str, namespace: str) -> TranslationMap:
        """Return the flat translation map for a language and namespace."""


class FileTranslationSource(TranslationSource):
    """Reads a JSON or YAML file of (possibly nested) translations."""

    def __init__(self, path: pathlib.Path) -> None:
        self.path = path

    def _load(self) -> Any:
        suffix = self.path.suffix.lower()
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise TranslationSourceError(
                f"Translation file {self.path} could not be read: {exc}"
            ) from exc
        try:
            if suffix == ".json":
                return json.loads(raw)
            if suffix in {".yaml", ".yml"}:
                return yaml.safe_load(raw)
        except (json.JSONDecodeError, yaml.YAMLError) as exc:
            raise TranslationSourceError(
                f"Translation file {self.path} is not valid: {exc}"
            ) from exc
        raise TranslationSourceError(
            "Translation files must be .json, .yaml or .yml."
        )

    async def fetch(self, language: str, namespace: str) -> TranslationMap:
        data = self._load()
        if data is None:
            return {}
        if not isinstance(data, Mapping):
            raise TranslationSourceError(
                f"Translation file {self.path} must contain a mapping at the root."
            )
        # A file holding exactly one namespace branch is read relative to it.
        if namespace and list(data.keys()) == [namespace] and isinstance(data[namespace], Mapping):
            data = data[namespace]
        return flatten_translations(data)


class LocizeTranslationSource(TranslationSource):
    """Reads and writes translations through the Locize REST API."""

    BASE_URL = "https://api.locize.app"
    TIMEOUT = 30.0

    def __init__(
        self,
        settings: ProjectSettings,
        *,
        client: Optional[httpx.AsyncClient] = None,
        debug: bool = False,
    ) -> None:
        if not settings.project_id:
            raise ConfigurationError(
                "Locize configuration missing. Set LOCIZE_PROJECT_ID or save a project id."
            )
        self.settings = settings
        self.client = client
        self.debug = debug

    def _url(self, *parts: str) -> str:
        return "/".join([self.BASE_URL, *parts])

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        self._log_debug("source.request", {"method": method, "url": url})
        try:
            if self.client is not None:
                response = await self.client.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self.TIMEOUT) as client:
                    response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise TranslationSourceError(
                f"Translation store temporarily unavailable — {exc}"
            ) from exc
        self._log_debug(
            "source.response",
            {"status": response.status_code, "body": response.text[:2000]},
        )
        return response

    async def fetch(self, language: str, namespace: str) -> TranslationMap:
        url = self._url(
            self.settings.project_id,
            self.settings.version,
            language,
            namespace,
        )
        response = await self._request("GET", url)
        if response.status_code == 404:
            return {}
        if response.is_error:
            raise TranslationSourceError(
                f"Fetching {language}/{namespace} failed with status {response.status_code}."
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise TranslationSourceError(
                f"Translation store returned invalid JSON: {exc}"
            ) from exc
        if not isinstance(payload, Mapping):
            raise TranslationSourceError(
                "Translation store response malformed: expected an object."
            )
        return flatten_translations(payload)

    async def upload(
        self,
        language: str,
        namespace: str,
        mapping: Mapping[str, str],
    ) -> None:
        """Create or update keys in the store; requires the write key."""

        if not self.settings.api_key:
            raise ConfigurationError(
                "Uploading requires a write key. Set LOCIZE_API_KEY or save an api key."
            )
        if not mapping:
            return
        url = self._url(
            "update",
            self.settings.project_id,
            self.settings.version,
            language,
            namespace,
        )
        response = await self._request(
            "POST",
            url,
            json=dict(mapping),
            headers={"Authorization": f"Bearer {self.settings.api_key}"},
        )
        if response.is_error:
            raise TranslationSourceError(
                f"Uploading {language}/{namespace} failed with status {response.status_code}."
            )

    def _log_debug(self, label: str, payload: Any) -> None:
        """Emit structured debug information when enabled."""

        if not self.debug:
            return
        try:
            message = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            message = repr(payload)
        print(f"[keyweaver][debug] {label}:\n{message}", file=sys.stderr)


def build_source(
    name: str,
    settings: ProjectSettings,
    *,
    debug: bool = False,
) -> TranslationSource:
    """Factory to create sources: ``locize`` or a path to a translation file."""

    normalized = name.strip()
    if normalized.lower() in {"locize", "remote"}:
        return LocizeTranslationSource(settings, debug=debug)
    path = pathlib.Path(normalized).expanduser()
    if not path.exists():
        raise ConfigurationError(f"Unknown translation source '{name}'.")
    return FileTranslationSource(path)
