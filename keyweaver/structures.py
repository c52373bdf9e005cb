"""Core data structures for Keyweaver."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

KEY_SEPARATOR = "."

PLUGIN_KEY_KEY = "keyweaver:key"
PLUGIN_ORIG_NAME_KEY = "keyweaver:origName"

TranslationMap = Dict[str, str]


def split_key(key: str) -> tuple[str, str]:
    """Split a key into namespace and local key at the first separator."""

    namespace, sep, local = key.partition(KEY_SEPARATOR)
    if not sep:
        return "", key
    return namespace, local


def join_key(namespace: str, local_key: str) -> str:
    if not namespace:
        return local_key
    return f"{namespace}{KEY_SEPARATOR}{local_key}"


@dataclass(frozen=True)
class FontRef:
    """Identity of a font that must be available before text changes."""

    family: str
    style: str = "Regular"


@dataclass(frozen=True)
class ReusedKey:
    """A key that was already stored on the element."""

    key: str

    def split(self) -> tuple[str, str]:
        return split_key(self.key)


@dataclass(frozen=True)
class GeneratedKey:
    """A key derived during the current scan."""

    key: str

    def split(self) -> tuple[str, str]:
        return split_key(self.key)


KeyOutcome = Union[ReusedKey, GeneratedKey]


@dataclass
class ScanItem:
    """Represents one text element and the key assigned to it."""

    element_id: str
    name: str
    original_name: str
    text: str
    key: str
    namespace: str
    local_key: str
    existing: bool
    selected: bool = True

    def to_message(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_message(cls, payload: Mapping[str, Any]) -> "ScanItem":
        key = str(payload.get("key") or "")
        namespace, local_key = split_key(key)
        return cls(
            element_id=str(payload["element_id"]),
            name=str(payload.get("name") or ""),
            original_name=str(payload.get("original_name") or ""),
            text=str(payload.get("text") or ""),
            key=key,
            namespace=str(payload.get("namespace", namespace)),
            local_key=str(payload.get("local_key", local_key)),
            existing=bool(payload.get("existing", False)),
            selected=payload.get("selected", True) is not False,
        )


@dataclass
class ScanResult:
    """Result of a scan request; empty input carries a warning instead of failing."""

    items: List[ScanItem] = field(default_factory=list)
    warning: Optional[str] = None


@dataclass(frozen=True)
class SelectionChange:
    element_id: str
    selected: bool
