"""Key assignment and namespace discovery."""

from __future__ import annotations

import re
from typing import Iterable, List, Set

from .documents import DocumentElement, DocumentProvider
from .hierarchy import hierarchy_path, working_text_elements
from .slugs import slug_or_fallback
from .structures import (
    PLUGIN_KEY_KEY,
    PLUGIN_ORIG_NAME_KEY,
    GeneratedKey,
    KeyOutcome,
    ReusedKey,
    ScanItem,
    join_key,
    split_key,
)

PLACEHOLDER_NAME_PATTERN = re.compile(r"^text", re.IGNORECASE)
MAX_PATH_DEPTH = 3
CONTENT_PREFIX_LENGTH = 30


def base_name(element: DocumentElement) -> str:
    """Pick the element's own name unless it looks auto-generated."""

    name = element.name
    if name and not PLACEHOLDER_NAME_PATTERN.match(name):
        return name
    return element.content[:CONTENT_PREFIX_LENGTH]


def key_candidate(document: DocumentProvider, element: DocumentElement) -> str:
    """Slug built from the nearest ancestors and the element's base name."""

    parts = hierarchy_path(document, element)[-MAX_PATH_DEPTH:]
    parts.append(base_name(element))
    return slug_or_fallback("_".join(parts))


class KeyAssigner:
    """Assigns keys for one scan.

    The set of used local keys lives as long as the assigner, so every key
    handed out, reused or generated, blocks later candidates in the same
    batch. ``scan`` reserves all stored keys up front, so a generated key
    never collides with a stored one further down the traversal.
    """

    def __init__(self, document: DocumentProvider, namespace: str) -> None:
        self.document = document
        self.namespace = namespace
        self.used: Set[str] = set()

    def reserve(self, local_key: str) -> None:
        self.used.add(local_key)

    def unique_local_key(self, candidate: str) -> str:
        local_key = candidate
        suffix = 1
        while local_key in self.used:
            suffix += 1
            local_key = f"{candidate}_{suffix}"
        return local_key

    def assign(self, element: DocumentElement) -> KeyOutcome:
        stored = element.get_data(PLUGIN_KEY_KEY)
        if stored:
            outcome: KeyOutcome = ReusedKey(stored)
            self.reserve(outcome.split()[1])
            return outcome

        local_key = self.unique_local_key(key_candidate(self.document, element))
        self.reserve(local_key)
        return GeneratedKey(join_key(self.namespace, local_key))

    def reserve_stored(self, elements: Iterable[DocumentElement]) -> None:
        """Reserve every stored key of the batch before anything is generated."""

        for element in elements:
            stored = element.get_data(PLUGIN_KEY_KEY)
            if stored:
                self.reserve(split_key(stored)[1])

    def scan(self, elements: Iterable[DocumentElement]) -> List[ScanItem]:
        elements = list(elements)
        self.reserve_stored(elements)
        items: List[ScanItem] = []
        for element in elements:
            outcome = self.assign(element)
            namespace, local_key = outcome.split()
            items.append(
                ScanItem(
                    element_id=element.element_id,
                    name=element.name,
                    original_name=element.get_data(PLUGIN_ORIG_NAME_KEY) or element.name,
                    text=element.content,
                    key=outcome.key,
                    namespace=namespace,
                    local_key=local_key,
                    existing=isinstance(outcome, ReusedKey),
                )
            )
        return items


def generate_keys(
    document: DocumentProvider,
    elements: Iterable[DocumentElement],
    namespace: str,
) -> List[ScanItem]:
    return KeyAssigner(document, namespace).scan(elements)


def assigned_item(element: DocumentElement) -> ScanItem:
    """Describe an element that already carries a stored key."""

    key = element.get_data(PLUGIN_KEY_KEY)
    namespace, local_key = split_key(key)
    return ScanItem(
        element_id=element.element_id,
        name=element.name,
        original_name=element.get_data(PLUGIN_ORIG_NAME_KEY) or element.name,
        text=element.content,
        key=key,
        namespace=namespace,
        local_key=local_key,
        existing=True,
    )


def collect_namespaces(document: DocumentProvider) -> List[str]:
    """Sorted namespaces of the stored keys in the working set."""

    namespaces: Set[str] = set()
    for element in working_text_elements(document):
        namespace, _ = split_key(element.get_data(PLUGIN_KEY_KEY))
        if namespace:
            namespaces.add(namespace)
    return sorted(namespaces)
