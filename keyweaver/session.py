"""Request handling for a document session.

A session answers the requests an interactive front end sends (scan,
apply keys, apply a language, restore names, toggle selection) and replies
with plain message dictionaries, one request at a time.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from .documents import DocumentProvider
from .errors import UnknownMessageError
from .hierarchy import collect_text_elements, working_text_elements
from .keys import KeyAssigner, assigned_item, collect_namespaces
from .policy import ErrorPolicy
from .selection import SELECTION_STORAGE_KEY, SelectionStore
from .storage import KeyValueStore, ProjectSettings, SettingsStore
from .structures import (
    KEY_SEPARATOR,
    PLUGIN_KEY_KEY,
    ScanItem,
    ScanResult,
    SelectionChange,
    TranslationMap,
)
from .sync import SyncReport, TranslationSynchronizer

Notifier = Callable[[str], None]
Message = Dict[str, Any]

NO_SELECTION_WARNING = "No selection"
NO_TEXT_WARNING = "No text elements found"


class KeyweaverSession:
    """Coordinates key assignment, selection state and synchronisation."""

    def __init__(
        self,
        document: DocumentProvider,
        store: KeyValueStore,
        *,
        policy: Optional[ErrorPolicy] = None,
        notifier: Optional[Notifier] = None,
        defaults: Optional[ProjectSettings] = None,
        selection_key: str = SELECTION_STORAGE_KEY,
    ) -> None:
        self.document = document
        self.policy = policy or ErrorPolicy()
        self.notifier: Notifier = notifier or print
        self.defaults = defaults or ProjectSettings()
        self.selection = SelectionStore(store, storage_key=selection_key)
        self.settings = SettingsStore(store)
        self.synchronizer = TranslationSynchronizer(document, policy=self.policy)

    def notify(self, text: str) -> None:
        if text:
            self.notifier(text)

    # --- Operations -------------------------------------------------------

    async def scan(
        self,
        namespace: Optional[str] = None,
        *,
        whole_document: bool = False,
    ) -> ScanResult:
        """Assign keys to the selection (or the whole page when asked)."""

        namespace = namespace or self.defaults.default_namespace
        roots = self.document.selection()
        if not roots:
            if not whole_document:
                return ScanResult(items=[], warning=NO_SELECTION_WARNING)
            roots = self.document.top_level()
        elements = collect_text_elements(self.document, roots)
        if not elements:
            return ScanResult(items=[], warning=NO_TEXT_WARNING)

        items = KeyAssigner(self.document, namespace).scan(elements)
        state = await self.selection.load()
        for item in items:
            item.selected = state.is_selected(item.element_id)
        return ScanResult(items=items)

    async def apply_keys(self, items: Sequence[ScanItem]) -> List[str]:
        self.synchronizer.apply_keys(items)
        self.notify("Keys applied and names updated")
        return self.get_namespaces()

    async def apply_language(
        self,
        mapping: TranslationMap,
        namespace: str = "",
    ) -> SyncReport:
        report = await self.synchronizer.apply_translations(mapping, namespace)
        self.notify("Language applied")
        return report

    async def get_assigned(self, namespace: str = "") -> List[ScanItem]:
        state = await self.selection.load()
        prefix = f"{namespace}{KEY_SEPARATOR}"
        items: List[ScanItem] = []
        for element in working_text_elements(self.document):
            if not element.get_data(PLUGIN_KEY_KEY):
                continue
            item = assigned_item(element)
            if namespace and not item.key.startswith(prefix):
                continue
            item.selected = state.is_selected(item.element_id)
            items.append(item)
        return items

    async def restore_names(self, element_ids: Iterable[str]) -> List[ScanItem]:
        self.synchronizer.restore_names(element_ids)
        self.notify("Names restored")
        return await self.get_assigned()

    def get_namespaces(self) -> List[str]:
        return collect_namespaces(self.document)

    async def set_selected(self, element_id: str, selected: bool) -> None:
        await self.selection.set_one(element_id, selected)

    async def set_selected_bulk(self, changes: Iterable[SelectionChange]) -> None:
        await self.selection.set_bulk(changes)

    async def migrate_keys(self, namespace: Optional[str] = None) -> int:
        migrated = self.synchronizer.migrate_bare_keys(
            namespace or self.defaults.default_namespace
        )
        if migrated:
            self.notify(f"Migrated {migrated} keys")
        return migrated

    async def load_settings(self) -> ProjectSettings:
        return await self.settings.load(self.defaults)

    async def save_settings(self, settings: ProjectSettings) -> None:
        await self.settings.save(settings)
        self.notify("Settings saved")

    def selection_changed(self) -> Message:
        return {
            "type": "selection-change",
            "selection_length": len(self.document.selection()),
            "namespaces": self.get_namespaces(),
        }

    # --- Message dispatch -------------------------------------------------

    def _namespaces_message(self) -> Message:
        return {"type": "namespaces-result", "namespaces": self.get_namespaces()}

    async def handle(self, message: Mapping[str, Any]) -> List[Message]:
        """Handle one request message and return the reply messages."""

        kind = message.get("type")

        if kind == "load-settings":
            settings = await self.load_settings()
            return [{"type": "settings-loaded", "settings": settings.to_message()}]

        if kind == "save-settings":
            payload = message.get("settings") or {}
            await self.save_settings(
                ProjectSettings(
                    **{
                        key: str(value)
                        for key, value in payload.items()
                        if key in ProjectSettings.__dataclass_fields__
                    }
                )
            )
            return []

        if kind == "scan-selection":
            result = await self.scan(
                message.get("namespace") or None,
                whole_document=bool(message.get("whole_document", False)),
            )
            reply: Message = {
                "type": "scan-result",
                "items": [item.to_message() for item in result.items],
            }
            if result.warning:
                reply["warning"] = result.warning
            return [reply]

        if kind == "apply-keys":
            items = [ScanItem.from_message(item) for item in message.get("items") or []]
            namespaces = await self.apply_keys(items)
            return [{"type": "namespaces-result", "namespaces": namespaces}]

        if kind == "apply-language":
            report = await self.apply_language(
                dict(message.get("map") or {}),
                message.get("namespace") or "",
            )
            return [{"type": "sync-report", "report": report.to_message()}]

        if kind == "get-assigned":
            items = await self.get_assigned(message.get("namespace") or "")
            return [
                {"type": "assigned-result", "items": [item.to_message() for item in items]},
                self._namespaces_message(),
            ]

        if kind == "restore-names":
            element_ids = [
                str(item["element_id"]) for item in message.get("items") or []
            ]
            items = await self.restore_names(element_ids)
            return [
                {"type": "assigned-result", "items": [item.to_message() for item in items]},
                self._namespaces_message(),
            ]

        if kind == "get-namespaces":
            return [self._namespaces_message()]

        if kind == "set-selected":
            await self.set_selected(
                str(message["element_id"]),
                bool(message.get("selected")),
            )
            return []

        if kind == "set-selected-bulk":
            changes = [
                SelectionChange(str(entry["element_id"]), entry.get("selected") is not False)
                for entry in message.get("list") or []
            ]
            await self.set_selected_bulk(changes)
            return []

        if kind == "migrate-keys":
            await self.migrate_keys(message.get("namespace") or None)
            return [self._namespaces_message()]

        if kind == "notify":
            self.notify(str(message.get("message") or ""))
            return []

        raise UnknownMessageError(f"Unknown message type '{kind}'.")
