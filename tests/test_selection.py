import pytest

from keyweaver.selection import SELECTION_STORAGE_KEY, SelectionState, SelectionStore
from keyweaver.storage import MemoryKeyValueStore
from keyweaver.structures import SelectionChange


def _persisted(store):
    return store.values.get(SELECTION_STORAGE_KEY)


def test_state_defaults_to_selected():
    state = SelectionState()
    assert state.is_selected("anything")
    assert state.exclude("a") is True
    assert state.exclude("a") is False
    assert not state.is_selected("a")
    assert state.include("a") is True
    assert state.include("a") is False
    assert state.to_mapping() == {}


def test_from_mapping_purges_everything_but_false():
    state, purged = SelectionState.from_mapping(
        {"a": True, "b": False, "c": "false", "d": 0, "e": None}
    )
    assert purged is True
    assert state.to_mapping() == {"b": False}


def test_from_mapping_of_clean_payload_needs_no_purge():
    state, purged = SelectionState.from_mapping({"b": False})
    assert purged is False
    assert state.excluded == {"b"}


def test_from_mapping_rejects_legacy_list_payload():
    state, purged = SelectionState.from_mapping(["a", "b"])
    assert purged is True
    assert state.to_mapping() == {}


@pytest.mark.asyncio
async def test_get_all_purges_stale_entries_and_rewrites():
    store = MemoryKeyValueStore({SELECTION_STORAGE_KEY: {"a": True, "b": False}})
    selection = SelectionStore(store)

    assert await selection.get_all() == {"b": False}
    assert _persisted(store) == {"b": False}
    assert store.writes == 1


@pytest.mark.asyncio
async def test_get_all_without_stale_entries_does_not_write():
    store = MemoryKeyValueStore({SELECTION_STORAGE_KEY: {"b": False}})
    assert await SelectionStore(store).get_all() == {"b": False}
    assert store.writes == 0


@pytest.mark.asyncio
async def test_set_one_only_persists_exclusions(store):
    selection = SelectionStore(store)

    await selection.set_one("a", False)
    assert _persisted(store) == {"a": False}

    await selection.set_one("a", True)
    assert _persisted(store) == {}
    assert await selection.is_selected("a") is True


@pytest.mark.asyncio
async def test_set_bulk_empty_is_a_no_op():
    store = MemoryKeyValueStore({SELECTION_STORAGE_KEY: {"a": True}})
    await SelectionStore(store).set_bulk([])
    assert store.writes == 0
    assert _persisted(store) == {"a": True}


@pytest.mark.asyncio
async def test_set_bulk_writes_once(store):
    selection = SelectionStore(store)
    await selection.set_bulk(
        [
            SelectionChange("a", False),
            SelectionChange("b", False),
            SelectionChange("c", True),
        ]
    )
    assert store.writes == 1
    assert _persisted(store) == {"a": False, "b": False}


@pytest.mark.asyncio
async def test_set_bulk_without_changes_skips_write():
    store = MemoryKeyValueStore({SELECTION_STORAGE_KEY: {"a": False}})
    await SelectionStore(store).set_bulk(
        [SelectionChange("a", False), SelectionChange("b", True)]
    )
    assert store.writes == 0


@pytest.mark.asyncio
async def test_no_true_entries_survive_any_sequence(store):
    selection = SelectionStore(store)
    await selection.set_one("a", False)
    await selection.set_bulk([SelectionChange("b", False), SelectionChange("a", True)])
    await selection.set_one("c", True)
    await selection.set_bulk([SelectionChange("b", True), SelectionChange("d", False)])

    persisted = _persisted(store)
    assert persisted == {"d": False}
    assert all(value is False for value in persisted.values())
