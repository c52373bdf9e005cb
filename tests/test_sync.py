import pytest

from keyweaver.errors import ErrorCategory
from keyweaver.policy import ErrorPolicy
from keyweaver.structures import PLUGIN_KEY_KEY, PLUGIN_ORIG_NAME_KEY, FontRef, ScanItem
from keyweaver.sync import (
    TranslationSynchronizer,
    ensure_fonts,
    flatten_translations,
    resolve_translation,
)

SERIF = FontRef("Georgia", "Regular")
SANS = FontRef("Inter", "Bold")


def _keyed(document, key, text="Hello", **kwargs):
    element = document.add_text("Label", text, **kwargs)
    element.set_data(PLUGIN_KEY_KEY, key)
    return element


def _item(element, key, original_name=""):
    return ScanItem(
        element_id=element.element_id,
        name=element.name,
        original_name=original_name,
        text=element.content,
        key=key,
        namespace=key.partition(".")[0],
        local_key=key.partition(".")[2],
        existing=False,
    )


def test_resolve_prefers_full_key():
    mapping = {"common.greeting": "full", "greeting": "bare"}
    assert resolve_translation(mapping, "common.greeting", "common") == "full"


def test_resolve_falls_back_to_bare_key():
    assert resolve_translation({"greeting": "bare"}, "common.greeting", "common") == "bare"


def test_resolve_without_namespace_does_not_strip():
    assert resolve_translation({"greeting": "bare"}, "common.greeting", "") is None


def test_resolve_with_other_namespace_does_not_strip():
    assert resolve_translation({"greeting": "bare"}, "other.greeting", "common") is None


def test_flatten_translations():
    nested = {
        "card": {"title": "Hi", "body": {"line": "Text"}},
        "count": 3,
        "enabled": True,
        "missing": None,
    }
    assert flatten_translations(nested) == {
        "card.title": "Hi",
        "card.body.line": "Text",
        "count": "3",
        "enabled": "true",
    }


@pytest.mark.asyncio
async def test_bare_key_fallback_applies(document):
    element = _keyed(document, "common.greeting")
    report = await TranslationSynchronizer(document).apply_translations(
        {"greeting": "Hallo"}, "common"
    )
    assert element.content == "Hallo"
    assert report.updated_elements == 1


@pytest.mark.asyncio
async def test_misses_leave_text_alone(document):
    hit = _keyed(document, "common.a")
    miss = _keyed(document, "common.b", text="unchanged")
    plain = document.add_text("Plain", "no key")

    report = await TranslationSynchronizer(document).apply_translations(
        {"common.a": "A"}, "common"
    )
    assert (hit.content, miss.content, plain.content) == ("A", "unchanged", "no key")
    assert report.total_elements == 2
    assert report.unmatched_elements == 1


@pytest.mark.asyncio
async def test_fonts_loaded_once_per_identity_before_changes(document):
    _keyed(document, "common.a", fonts=(SERIF,))
    _keyed(document, "common.b", fonts=(SERIF,))
    _keyed(document, "common.c", fonts=(SANS,))

    report = await TranslationSynchronizer(document).apply_translations(
        {"common.a": "A", "common.b": "B", "common.c": "C"}, "common"
    )
    assert sorted(document.font_requests, key=lambda f: f.family) == [SERIF, SANS]
    assert report.fonts_loaded == 2
    assert report.updated_elements == 3


@pytest.mark.asyncio
async def test_ensure_fonts_skips_mixed_fonts(document):
    mixed = document.add_text("Mixed", "x", fonts=(SERIF, SANS))
    loaded = await ensure_fonts(document, [mixed])
    assert loaded == []
    assert document.font_requests == []


@pytest.mark.asyncio
async def test_rejected_changes_do_not_stop_the_batch(document):
    locked = _keyed(document, "common.locked", text="locked", locked=True)
    mixed = _keyed(document, "common.mixed", text="mixed", fonts=(SERIF, SANS))
    fine = _keyed(document, "common.fine", text="fine")
    policy = ErrorPolicy()

    report = await TranslationSynchronizer(document, policy=policy).apply_translations(
        {"common.locked": "L", "common.mixed": "M", "common.fine": "F"}, "common"
    )
    assert (locked.content, mixed.content, fine.content) == ("locked", "mixed", "F")
    assert report.skipped_elements == 2
    assert report.updated_elements == 1
    assert len(report.error_messages) == 2
    assert policy.count(ErrorCategory.MUTATION) == 2


@pytest.mark.asyncio
async def test_translations_only_touch_the_selection(document):
    frame = document.add_frame("Frame")
    inside = document.add_text("In", "in", frame)
    inside.set_data(PLUGIN_KEY_KEY, "common.in")
    outside = _keyed(document, "common.out", text="out")
    document.select(frame)

    await TranslationSynchronizer(document).apply_translations(
        {"common.in": "IN", "common.out": "OUT"}, "common"
    )
    assert (inside.content, outside.content) == ("IN", "out")


def test_apply_keys_stores_key_original_and_renames(document):
    element = document.add_text("Title", "Hello")
    TranslationSynchronizer(document).apply_keys([_item(element, "common.title", "Title")])

    assert element.get_data(PLUGIN_KEY_KEY) == "common.title"
    assert element.get_data(PLUGIN_ORIG_NAME_KEY) == "Title"
    assert element.name == "common.title"


def test_original_name_is_set_once(document):
    element = document.add_text("Title", "Hello")
    sync = TranslationSynchronizer(document)
    sync.apply_keys([_item(element, "common.title")])
    sync.apply_keys([_item(element, "common.heading", "Something else")])

    assert element.get_data(PLUGIN_ORIG_NAME_KEY) == "Title"
    assert element.get_data(PLUGIN_KEY_KEY) == "common.heading"


def test_apply_keys_skips_missing_and_locked_elements(document):
    gone = document.add_text("Gone", "x")
    locked = document.add_text("Locked", "y", locked=True)
    fine = document.add_text("Fine", "z")
    items = [
        _item(gone, "common.gone"),
        _item(locked, "common.locked"),
        _item(fine, "common.fine"),
    ]
    document.remove(gone)
    policy = ErrorPolicy()

    applied = TranslationSynchronizer(document, policy=policy).apply_keys(items)

    assert applied == 2
    assert locked.get_data(PLUGIN_KEY_KEY) == "common.locked"
    assert locked.name == "Locked"
    assert fine.name == "common.fine"
    assert policy.count(ErrorCategory.MISSING_ELEMENT) == 1
    assert policy.count(ErrorCategory.MUTATION) == 1


def test_restore_only_reverts_the_name(document):
    element = document.add_text("Title", "Hello")
    no_original = document.add_text("Other", "World")
    sync = TranslationSynchronizer(document)
    sync.apply_keys([_item(element, "common.title")])

    restored = sync.restore_names([element.element_id, no_original.element_id, "9:99"])

    assert restored == 1
    assert element.name == "Title"
    assert element.get_data(PLUGIN_KEY_KEY) == "common.title"
    assert element.get_data(PLUGIN_ORIG_NAME_KEY) == "Title"
    assert element.content == "Hello"
    assert no_original.name == "Other"


def test_migrate_bare_keys(document):
    bare = _keyed(document, "greeting")
    bare.name = "greeting"
    qualified = _keyed(document, "legal.terms")

    migrated = TranslationSynchronizer(document).migrate_bare_keys("common")

    assert migrated == 1
    assert bare.get_data(PLUGIN_KEY_KEY) == "common.greeting"
    assert bare.name == "common.greeting"
    assert qualified.get_data(PLUGIN_KEY_KEY) == "legal.terms"
    assert TranslationSynchronizer(document).migrate_bare_keys("common") == 0
