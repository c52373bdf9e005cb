import pytest

from keyweaver.errors import UnknownMessageError
from keyweaver.selection import SELECTION_STORAGE_KEY
from keyweaver.session import NO_SELECTION_WARNING, NO_TEXT_WARNING, KeyweaverSession
from keyweaver.storage import ProjectSettings
from keyweaver.structures import PLUGIN_KEY_KEY, PLUGIN_ORIG_NAME_KEY


@pytest.fixture
def notes():
    return []


@pytest.fixture
def session(card_document, store, notes):
    return KeyweaverSession(card_document, store, notifier=notes.append)


@pytest.mark.asyncio
async def test_scan_without_selection_warns(session):
    result = await session.scan("common")
    assert result.items == []
    assert result.warning == NO_SELECTION_WARNING


@pytest.mark.asyncio
async def test_scan_selection_without_text_warns(document, store):
    empty = document.add_frame("Empty")
    document.select(empty)
    result = await KeyweaverSession(document, store).scan("common")
    assert result.items == []
    assert result.warning == NO_TEXT_WARNING


@pytest.mark.asyncio
async def test_scan_whole_document_uses_default_namespace(session):
    result = await session.scan(None, whole_document=True)
    assert result.warning is None
    assert [item.key for item in result.items] == [
        "common.page_card_title",
        "common.page_card_title_2",
        "common.page_card_title_3",
    ]


@pytest.mark.asyncio
async def test_scan_merges_selection_state(session, card_document, store):
    card_document.select(card_document.get_element("1:2"))
    await session.set_selected("1:11", False)

    result = await session.scan("common")
    assert [item.selected for item in result.items] == [True, False, True]
    assert store.values[SELECTION_STORAGE_KEY] == {"1:11": False}


@pytest.mark.asyncio
async def test_apply_keys_message_round_trip(session, card_document, notes):
    card_document.select(card_document.get_element("1:1"))
    [scan_reply] = await session.handle({"type": "scan-selection", "namespace": "shop"})
    assert scan_reply["type"] == "scan-result"

    replies = await session.handle({"type": "apply-keys", "items": scan_reply["items"]})

    assert replies == [{"type": "namespaces-result", "namespaces": ["shop"]}]
    assert notes == ["Keys applied and names updated"]
    title = card_document.get_element("1:10")
    assert title.get_data(PLUGIN_KEY_KEY) == "shop.page_card_title"
    assert title.get_data(PLUGIN_ORIG_NAME_KEY) == "Title"
    assert title.name == "shop.page_card_title"

    [rescan] = await session.handle({"type": "scan-selection", "namespace": "other"})
    assert [item["existing"] for item in rescan["items"]] == [True, True, True]
    assert rescan["items"][1]["key"] == "shop.page_card_title_2"


@pytest.mark.asyncio
async def test_get_assigned_filters_by_namespace(document, store):
    for key in ["common.a", "legal.b", "common.c"]:
        document.add_text("T", "x").set_data(PLUGIN_KEY_KEY, key)
    document.add_text("Plain", "y")
    session = KeyweaverSession(document, store)

    assert [item.key for item in await session.get_assigned()] == [
        "common.a",
        "legal.b",
        "common.c",
    ]
    common = await session.get_assigned("common")
    assert [item.local_key for item in common] == ["a", "c"]
    assert all(item.existing for item in common)


@pytest.mark.asyncio
async def test_restore_names_replies_with_refreshed_list(session, card_document, notes):
    card_document.select(card_document.get_element("1:1"))
    result = await session.scan("common")
    await session.apply_keys(result.items)

    replies = await session.handle(
        {"type": "restore-names", "items": [{"element_id": "1:10"}]}
    )

    assert [reply["type"] for reply in replies] == ["assigned-result", "namespaces-result"]
    names = [item["name"] for item in replies[0]["items"]]
    assert names == ["Title", "common.page_card_title_2", "common.page_card_title_3"]
    assert notes[-1] == "Names restored"


@pytest.mark.asyncio
async def test_apply_language_message(session, card_document):
    card_document.get_element("1:10").set_data(PLUGIN_KEY_KEY, "common.hello")
    [reply] = await session.handle(
        {"type": "apply-language", "map": {"hello": "Hallo"}, "namespace": "common"}
    )
    assert reply["type"] == "sync-report"
    assert reply["report"]["updated_elements"] == 1
    assert card_document.get_element("1:10").content == "Hallo"


@pytest.mark.asyncio
async def test_bulk_selection_message(session, store):
    await session.handle(
        {
            "type": "set-selected-bulk",
            "list": [
                {"element_id": "1:10", "selected": False},
                {"element_id": "1:11", "selected": True},
            ],
        }
    )
    assert store.values[SELECTION_STORAGE_KEY] == {"1:10": False}
    await session.handle({"type": "set-selected", "element_id": "1:10", "selected": True})
    assert store.values[SELECTION_STORAGE_KEY] == {}


@pytest.mark.asyncio
async def test_settings_round_trip(session, notes):
    [loaded] = await session.handle({"type": "load-settings"})
    assert loaded["settings"]["version"] == "latest"
    assert loaded["settings"]["base_language"] == "en"

    await session.handle(
        {
            "type": "save-settings",
            "settings": {"project_id": "abc", "api_key": "secret", "version": "production"},
        }
    )
    settings = await session.load_settings()
    assert settings == ProjectSettings(
        project_id="abc",
        api_key="secret",
        version="production",
        base_language="en",
        default_namespace="common",
    )
    assert notes == ["Settings saved"]


@pytest.mark.asyncio
async def test_migrate_keys_message(document, store):
    document.add_text("T", "x").set_data(PLUGIN_KEY_KEY, "greeting")
    session = KeyweaverSession(document, store, notifier=lambda _: None)
    replies = await session.handle({"type": "migrate-keys", "namespace": "common"})
    assert replies == [{"type": "namespaces-result", "namespaces": ["common"]}]


def test_selection_changed_message(session, card_document):
    card_document.select(card_document.get_element("1:10"))
    assert session.selection_changed() == {
        "type": "selection-change",
        "selection_length": 1,
        "namespaces": [],
    }


@pytest.mark.asyncio
async def test_unknown_message_type_raises(session):
    with pytest.raises(UnknownMessageError):
        await session.handle({"type": "teleport"})
