"""Writing keys and translations back onto document elements."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .documents import DocumentElement, DocumentProvider
from .errors import ErrorCategory, MutationRejectedError
from .hierarchy import working_text_elements
from .policy import ErrorPolicy
from .structures import (
    KEY_SEPARATOR,
    PLUGIN_KEY_KEY,
    PLUGIN_ORIG_NAME_KEY,
    FontRef,
    ScanItem,
    TranslationMap,
    join_key,
)


@dataclass
class SyncReport:
    """Report returned after applying translations."""

    namespace: str
    total_elements: int
    updated_elements: int
    unmatched_elements: int
    skipped_elements: int
    fonts_loaded: int
    error_messages: List[str] = field(default_factory=list)

    def to_message(self) -> Dict[str, Any]:
        return {
            "namespace": self.namespace,
            "total_elements": self.total_elements,
            "updated_elements": self.updated_elements,
            "unmatched_elements": self.unmatched_elements,
            "skipped_elements": self.skipped_elements,
            "fonts_loaded": self.fonts_loaded,
            "error_messages": list(self.error_messages),
        }


def flatten_translations(nested: Mapping[str, Any], prefix: str = "") -> TranslationMap:
    """Flatten nested mappings into dotted keys.

    Scalars are stringified and ``None`` values are dropped.
    """

    flat: TranslationMap = {}
    for key, value in nested.items():
        full_key = f"{prefix}{KEY_SEPARATOR}{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(flatten_translations(value, full_key))
        elif value is None:
            continue
        elif isinstance(value, bool):
            flat[full_key] = "true" if value else "false"
        else:
            flat[full_key] = str(value)
    return flat


def resolve_translation(
    mapping: Mapping[str, str],
    key: str,
    namespace: str,
) -> Optional[str]:
    """Look up a stored key, full key first, then relative to the namespace."""

    if key in mapping:
        return mapping[key]
    prefix = f"{namespace}{KEY_SEPARATOR}"
    if namespace and key.startswith(prefix):
        return mapping.get(key[len(prefix):])
    return None


async def ensure_fonts(
    document: DocumentProvider,
    elements: Iterable[DocumentElement],
) -> List[FontRef]:
    """Load every distinct font used by the elements, all at once."""

    fonts: List[FontRef] = []
    seen = set()
    for element in elements:
        font = element.font
        if font is None or font in seen:
            continue
        seen.add(font)
        fonts.append(font)
    await asyncio.gather(*(document.load_font(font) for font in fonts))
    return fonts


class TranslationSynchronizer:
    """Applies keys, translations and name restores to a document."""

    def __init__(
        self,
        document: DocumentProvider,
        *,
        policy: Optional[ErrorPolicy] = None,
    ) -> None:
        self.document = document
        self.policy = policy or ErrorPolicy()

    def _text_element(self, element_id: str) -> Optional[DocumentElement]:
        element = self.document.get_element(element_id)
        if element is None or not element.is_text:
            self.policy.skip(
                ErrorCategory.MISSING_ELEMENT,
                f"Element {element_id} no longer exists. Skipping it.",
            )
            return None
        return element

    def _rename(self, element: DocumentElement, name: str) -> bool:
        try:
            element.name = name
        except MutationRejectedError as exc:
            self.policy.skip(
                ErrorCategory.MUTATION,
                f"Could not rename element {element.element_id}. Skipping it.",
                str(exc),
            )
            return False
        return True

    def keyed_elements(self) -> List[DocumentElement]:
        return [
            element
            for element in working_text_elements(self.document)
            if element.get_data(PLUGIN_KEY_KEY)
        ]

    def apply_keys(self, items: Sequence[ScanItem]) -> int:
        """Persist keys onto their elements and rename them; returns the count."""

        applied = 0
        for item in items:
            element = self._text_element(item.element_id)
            if element is None:
                continue
            element.set_data(PLUGIN_KEY_KEY, item.key)
            if not element.get_data(PLUGIN_ORIG_NAME_KEY):
                element.set_data(PLUGIN_ORIG_NAME_KEY, item.original_name or element.name)
            self._rename(element, item.key)
            applied += 1
        return applied

    async def apply_translations(
        self,
        mapping: Mapping[str, str],
        namespace: str,
    ) -> SyncReport:
        records_before = len(self.policy.records)
        targets = self.keyed_elements()
        fonts = await ensure_fonts(self.document, targets)

        updated = unmatched = skipped = 0
        for element in targets:
            value = resolve_translation(mapping, element.get_data(PLUGIN_KEY_KEY), namespace)
            if value is None:
                unmatched += 1
                continue
            try:
                element.content = value
            except MutationRejectedError as exc:
                skipped += 1
                self.policy.skip(
                    ErrorCategory.MUTATION,
                    f"Could not update text of element {element.element_id}. Skipping it.",
                    str(exc),
                )
                continue
            updated += 1

        return SyncReport(
            namespace=namespace,
            total_elements=len(targets),
            updated_elements=updated,
            unmatched_elements=unmatched,
            skipped_elements=skipped,
            fonts_loaded=len(fonts),
            error_messages=self.policy.messages(records_before),
        )

    def restore_names(self, element_ids: Iterable[str]) -> int:
        """Rename elements back to their stored original names."""

        restored = 0
        for element_id in element_ids:
            element = self._text_element(element_id)
            if element is None:
                continue
            original = element.get_data(PLUGIN_ORIG_NAME_KEY)
            if original and self._rename(element, original):
                restored += 1
        return restored

    def migrate_bare_keys(self, namespace: str) -> int:
        """Qualify stored keys that lack a namespace; returns the count."""

        if not namespace:
            return 0
        migrated = 0
        for element in self.keyed_elements():
            key = element.get_data(PLUGIN_KEY_KEY)
            if KEY_SEPARATOR in key:
                continue
            qualified = join_key(namespace, key)
            element.set_data(PLUGIN_KEY_KEY, qualified)
            if element.name == key:
                self._rename(element, qualified)
            migrated += 1
        return migrated
