"""Prepper-backed configuration loader for Keyweaver."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping, Sequence

from dotenv import dotenv_values
from prepper import (
    Field,
    IoError,
    SchemaError,
    SchemaModel,
    ValidationError,
    model_validator,
)
from prepper.config import ConfigInstance
from prepper.loaders import _parse_file, _path_to_source, discover_file_paths
from prepper.merge import merge_layer
from prepper.provenance import ProvenanceRecorder

from .errors import ConfigurationError
from .slugs import slugify
from .storage import ProjectSettings

APP_NAME = "Keyweaver"
DEFAULT_NAMESPACE = "common"


class KeyweaverConfig(SchemaModel):
    """Schema describing all supported configuration options."""

    KEYWEAVER_STATE_FILE: str = Field(
        default=".keyweaver-state.json",
        description="JSON file holding selection state and saved settings.",
    )
    KEYWEAVER_DEFAULT_NAMESPACE: str = Field(
        default=DEFAULT_NAMESPACE,
        description="Namespace used for new keys when none is given.",
    )
    KEYWEAVER_DEBUG: bool = Field(default=False)
    LOCIZE_PROJECT_ID: str | None = Field(default=None)
    LOCIZE_API_KEY: str | None = Field(default=None, secret=True)
    LOCIZE_VERSION: str = Field(default="latest")
    LOCIZE_BASE_LANGUAGE: str = Field(default="en")

    @model_validator(mode="before")
    def _normalise_namespace(data: Any) -> Any:
        if isinstance(data, dict):
            raw_value = data.get("KEYWEAVER_DEFAULT_NAMESPACE")
            if isinstance(raw_value, str):
                data["KEYWEAVER_DEFAULT_NAMESPACE"] = slugify(raw_value) or DEFAULT_NAMESPACE
        return data


@lru_cache(maxsize=1)
def _load_config_instance(app_dir: Path | None = None) -> ConfigInstance:
    """Load configuration layers once and cache the immutable instance."""

    base_dir = app_dir or Path.cwd()
    try:
        provenance = ProvenanceRecorder()
        combined = _load_discovered_yaml(app_dir=base_dir, provenance=provenance)
        _merge_env_sources(
            combined,
            provenance=provenance,
            app_dir=base_dir,
            schema=KeyweaverConfig,
        )

        model = KeyweaverConfig.validate(combined, provenance=provenance)
        _validate_locize_settings(model)

        return ConfigInstance(
            model=model,
            provenance=provenance,
            env_prefix=None,
            schema_cls=KeyweaverConfig,
        )
    except IoError as exc:
        raise ConfigurationError(
            f"Configuration files could not be read: {exc}"
        ) from exc
    except SchemaError as exc:
        raise ConfigurationError(f"Configuration schema error: {exc}") from exc
    except ValidationError as exc:
        issues = _format_validation_errors(exc.to_dict())
        raise ConfigurationError(issues) from exc


def _load_discovered_yaml(
    *,
    app_dir: Path,
    provenance: ProvenanceRecorder,
) -> dict[str, Any]:
    """Load YAML configuration files using Prepper's discovery rules."""

    result: dict[str, Any] = {}
    discovered = discover_file_paths(
        APP_NAME,
        "yaml",
        app_dir=app_dir,
        extra_paths=None,
    )
    for path, label in discovered:
        parsed = _parse_file(path, "yaml")
        if not isinstance(parsed, Mapping):
            raise IoError(
                f"Invalid configuration file {path}: expected a mapping at the root."
            )
        source = _path_to_source(label, "yaml", path)
        merge_layer(result, parsed, provenance=provenance, source=source, layer="file")
    return result


def _merge_env_sources(
    target: dict[str, Any],
    *,
    provenance: ProvenanceRecorder,
    app_dir: Path,
    schema: type[SchemaModel],
) -> None:
    """Merge .env and process environment variables into the target mapping."""

    allowed = set(schema.__field_infos__.keys())

    def merge_values(values: Mapping[str, str], *, source_prefix: str) -> None:
        for key, value in sorted(values.items()):
            if value is None:
                continue
            if key not in allowed:
                continue
            merge_layer(
                target,
                {key: value},
                provenance=provenance,
                source=f"env:{source_prefix}:{key}",
                layer="env",
            )

    dotenv_path = app_dir / ".env"
    if dotenv_path.exists():
        dotenv_content = dotenv_values(dotenv_path)
        merge_values(
            {k: v for k, v in dotenv_content.items() if v is not None},
            source_prefix=".env",
        )

    merge_values(
        {k: v for k, v in os.environ.items() if isinstance(v, str)},
        source_prefix="process",
    )


def _validate_locize_settings(settings: KeyweaverConfig) -> None:
    errors: list[str] = []

    if settings.LOCIZE_API_KEY and not settings.LOCIZE_PROJECT_ID:
        errors.append(
            "LOCIZE_PROJECT_ID is required when LOCIZE_API_KEY is set."
        )
    if not settings.LOCIZE_VERSION.strip():
        errors.append("LOCIZE_VERSION must not be empty.")
    if not settings.LOCIZE_BASE_LANGUAGE.strip():
        errors.append("LOCIZE_BASE_LANGUAGE must not be empty.")

    if errors:
        bullet_list = "\n".join(f"- {message}" for message in errors)
        raise ConfigurationError(
            "Configuration validation errors detected:\n" + bullet_list
        )


def _format_validation_errors(entries: Sequence[dict[str, Any]]) -> str:
    details: list[str] = []
    for entry in entries:
        path = entry.get("path") or []
        if isinstance(path, (list, tuple)):
            location = ".".join(str(part) for part in path if part not in {None, ""})
        else:
            location = str(path)
        message = str(entry.get("message") or entry.get("msg") or "Invalid value")
        source = entry.get("source")
        origin = f" (source: {source})" if source else ""
        prefix = f"{location}: " if location else ""
        details.append(f"- {prefix}{message}{origin}")
    return "Configuration validation errors detected:\n" + "\n".join(details)


def get_config(app_dir: Path | None = None) -> ConfigInstance:
    """Return the immutable configuration instance."""

    return _load_config_instance(app_dir=app_dir)


def get_settings(app_dir: Path | None = None) -> KeyweaverConfig:
    """Return the validated schema model for typed access."""

    return get_config(app_dir=app_dir).model()


def project_settings(config: KeyweaverConfig) -> ProjectSettings:
    """Defaults for the translation store connection, taken from configuration."""

    return ProjectSettings(
        project_id=config.LOCIZE_PROJECT_ID or "",
        api_key=config.LOCIZE_API_KEY or "",
        version=config.LOCIZE_VERSION,
        base_language=config.LOCIZE_BASE_LANGUAGE,
        default_namespace=config.KEYWEAVER_DEFAULT_NAMESPACE,
    )
