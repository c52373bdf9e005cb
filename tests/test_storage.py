import json

import pytest

from keyweaver.errors import KeyweaverError
from keyweaver.storage import (
    JsonFileKeyValueStore,
    MemoryKeyValueStore,
    ProjectSettings,
    SettingsStore,
)


@pytest.mark.asyncio
async def test_json_store_persists_between_instances(tmp_path):
    path = tmp_path / "state" / "keyweaver.json"
    store = JsonFileKeyValueStore(path)
    assert await store.get("missing", "default") == "default"

    await store.set("keyweaver:selected", {"1:2": False})
    await store.set("locize.version", "latest")

    reopened = JsonFileKeyValueStore(path)
    assert await reopened.get("keyweaver:selected") == {"1:2": False}
    assert json.loads(path.read_text(encoding="utf-8"))["locize.version"] == "latest"

    await reopened.delete("locize.version")
    assert await store.get("locize.version") is None
    assert list(tmp_path.joinpath("state").iterdir()) == [path]


@pytest.mark.asyncio
async def test_json_store_rejects_non_object_file(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(KeyweaverError):
        await JsonFileKeyValueStore(path).get("anything")


@pytest.mark.asyncio
async def test_settings_fall_back_to_defaults():
    store = MemoryKeyValueStore({"locize.projectId": "p-1"})
    defaults = ProjectSettings(version="staging", default_namespace="shop")

    settings = await SettingsStore(store).load(defaults)

    assert settings.project_id == "p-1"
    assert settings.version == "staging"
    assert settings.base_language == "en"
    assert settings.default_namespace == "shop"


@pytest.mark.asyncio
async def test_settings_save_writes_every_field():
    store = MemoryKeyValueStore()
    await SettingsStore(store).save(ProjectSettings(project_id="p", api_key="k"))
    assert store.values == {
        "locize.projectId": "p",
        "locize.apiKey": "k",
        "locize.version": "latest",
        "locize.baseLanguage": "en",
        "locize.defaultNamespace": "common",
    }
