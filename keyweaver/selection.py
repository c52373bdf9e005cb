"""Persisted include/exclude state of scanned elements.

Elements are included by default. Only exclusions are stored, as a mapping
``{element_id: False}``; an entry with any other value is stale and is
purged the next time the map is loaded.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Set, Tuple

from .storage import KeyValueStore
from .structures import SelectionChange

SELECTION_STORAGE_KEY = "keyweaver:selected"


def document_selection_key(document: str) -> str:
    """Storage key for the selection map of one document.

    Element ids only identify shapes within a single file, so a state file
    shared by several documents keeps one map per document.
    """

    return f"{SELECTION_STORAGE_KEY}:{document}"


class SelectionState:
    """Default-included selection with an exception set."""

    def __init__(self, excluded: Iterable[str] = ()) -> None:
        self.excluded: Set[str] = set(excluded)

    def is_selected(self, element_id: str) -> bool:
        return element_id not in self.excluded

    def include(self, element_id: str) -> bool:
        """Return True when the state changed."""

        if element_id in self.excluded:
            self.excluded.discard(element_id)
            return True
        return False

    def exclude(self, element_id: str) -> bool:
        if element_id in self.excluded:
            return False
        self.excluded.add(element_id)
        return True

    def apply(self, change: SelectionChange) -> bool:
        if change.selected:
            return self.include(change.element_id)
        return self.exclude(change.element_id)

    def to_mapping(self) -> Dict[str, bool]:
        return {element_id: False for element_id in sorted(self.excluded)}

    @classmethod
    def from_mapping(cls, raw: Any) -> Tuple["SelectionState", bool]:
        """Build state from a persisted value.

        Returns the state and whether anything had to be purged: entries whose
        value is not literally ``False``, or a payload that is not a mapping
        at all.
        """

        if raw is None:
            return cls(), False
        if not isinstance(raw, dict):
            return cls(), True
        excluded = [str(key) for key, value in raw.items() if value is False]
        return cls(excluded), len(excluded) != len(raw)


class SelectionStore:
    """Keeps :class:`SelectionState` in a key-value store."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        storage_key: str = SELECTION_STORAGE_KEY,
    ) -> None:
        self.store = store
        self.storage_key = storage_key

    async def load(self) -> SelectionState:
        raw = await self.store.get(self.storage_key)
        state, purged = SelectionState.from_mapping(raw)
        if purged:
            await self._save(state)
        return state

    async def _save(self, state: SelectionState) -> None:
        await self.store.set(self.storage_key, state.to_mapping())

    async def get_all(self) -> Dict[str, bool]:
        return (await self.load()).to_mapping()

    async def is_selected(self, element_id: str) -> bool:
        return (await self.load()).is_selected(element_id)

    async def set_one(self, element_id: str, selected: bool) -> None:
        state = await self.load()
        state.apply(SelectionChange(element_id, selected))
        await self._save(state)

    async def set_bulk(self, changes: Iterable[SelectionChange]) -> None:
        changes = list(changes)
        if not changes:
            return
        state = await self.load()
        mutated = False
        for change in changes:
            mutated = state.apply(change) or mutated
        if mutated:
            await self._save(state)
