"""Command line interface for Keyweaver."""

from __future__ import annotations

import argparse
import asyncio
import pathlib
import sys
from typing import Iterable, List, Optional, Sequence

from .configuration import get_settings, project_settings
from .documents import DocumentProvider, MemoryDocument, PptxDocument, open_document
from .errors import (
    ConfigurationError,
    KeyweaverError,
    OverwriteRefusedError,
    TranslationSourceError,
    UnsupportedFileTypeError,
)
from .policy import ErrorPolicy
from .selection import SELECTION_STORAGE_KEY, document_selection_key
from .session import KeyweaverSession
from .slugs import slugify
from .sources import LocizeTranslationSource, build_source
from .storage import JsonFileKeyValueStore, ProjectSettings
from .structures import ScanItem, SelectionChange
from .sync import SyncReport


def _add_document_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("input_file", help="Path to the .pptx file.")
    parser.add_argument(
        "--slide",
        type=int,
        action="append",
        default=[],
        help="Select every shape of a slide (1-based, repeatable).",
    )
    parser.add_argument(
        "--element",
        action="append",
        default=[],
        help="Select an element by id, e.g. 256:4 (repeatable).",
    )


def _add_output_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-o",
        "--output",
        help="Output file path. Defaults to a suffixed copy of the input.",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Allow overwriting the output file if it already exists.",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="keyweaver",
        description=(
            "Assign stable localization keys to presentation text and apply translations."
        ),
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show skipped elements and other progress details.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log complete translation store requests and responses.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", help="Generate keys for text elements.")
    _add_document_arguments(scan)
    scan.add_argument("-n", "--namespace", help="Namespace for new keys.")
    scan.add_argument(
        "--apply",
        action="store_true",
        help="Store the keys of selected items and rename the elements.",
    )
    _add_output_arguments(scan)

    assigned = subparsers.add_parser("assigned", help="List elements with stored keys.")
    _add_document_arguments(assigned)
    assigned.add_argument("-n", "--namespace", default="", help="Only this namespace.")

    namespaces = subparsers.add_parser("namespaces", help="List namespaces in use.")
    _add_document_arguments(namespaces)

    apply_language = subparsers.add_parser(
        "apply-language",
        help="Replace text of keyed elements with translations.",
    )
    _add_document_arguments(apply_language)
    apply_language.add_argument(
        "source",
        help="Translation file (.json/.yaml) or 'locize'.",
    )
    apply_language.add_argument("-l", "--language", help="Language to fetch.")
    apply_language.add_argument("-n", "--namespace", help="Namespace of the keys.")
    _add_output_arguments(apply_language)

    restore = subparsers.add_parser(
        "restore-names",
        help="Rename keyed elements back to their original names.",
    )
    _add_document_arguments(restore)
    _add_output_arguments(restore)

    migrate = subparsers.add_parser(
        "migrate-keys",
        help="Qualify stored keys that have no namespace.",
    )
    _add_document_arguments(migrate)
    migrate.add_argument("-n", "--namespace", help="Namespace to prepend.")
    _add_output_arguments(migrate)

    push = subparsers.add_parser(
        "push",
        help="Upload texts of keyed elements to the translation store.",
    )
    _add_document_arguments(push)
    push.add_argument("-n", "--namespace", help="Namespace to upload.")
    push.add_argument("-l", "--language", help="Language of the texts.")

    select = subparsers.add_parser("select", help="Include or exclude scan items.")
    select.add_argument("input_file", help="Presentation the element ids belong to.")
    select.add_argument("--include", action="append", default=[], help="Element id.")
    select.add_argument("--exclude", action="append", default=[], help="Element id.")

    settings = subparsers.add_parser("settings", help="Show or save project settings.")
    settings.add_argument("--project-id")
    settings.add_argument("--api-key")
    settings.add_argument("--version", dest="project_version")
    settings.add_argument("--base-language")
    settings.add_argument("--default-namespace")
    return parser


def derive_output_path(input_path: pathlib.Path, addition: str) -> pathlib.Path:
    cleaned = slugify(addition).replace("_", "-") or "keyed"
    return input_path.with_name(f"{input_path.stem}_{cleaned}{input_path.suffix}")


def validate_paths(
    input_path: pathlib.Path,
    output_path: pathlib.Path,
    force_overwrite: bool,
) -> None:
    """Validate input/output path combinations and overwrite policy."""

    if not input_path.exists():
        raise FileNotFoundError(
            "Input file not found. Please provide a readable .pptx file."
        )
    if not input_path.is_file():
        raise KeyweaverError("Input path must be a file.")

    if input_path.resolve() == output_path.resolve():
        raise OverwriteRefusedError(
            "The output path matches the input document. Refusing to overwrite the source file."
        )

    if output_path.exists() and not force_overwrite:
        raise OverwriteRefusedError(
            "The output file already exists — rename or use the overwrite flag."
        )


def format_items(items: Sequence[ScanItem]) -> List[str]:
    lines: List[str] = []
    for item in items:
        marker = "x" if item.selected else " "
        origin = "kept" if item.existing else "new"
        text = item.text.replace("\n", " ")
        if len(text) > 40:
            text = text[:37] + "..."
        lines.append(f"[{marker}] {item.element_id:<10} {item.key:<40} {origin:<4} {text}")
    return lines


def print_report(report: SyncReport) -> None:
    """Output a friendly report once translations are applied."""

    print("\nTranslations applied.")
    print(f"  Namespace:       {report.namespace or '(none)'}")
    print(
        "  Elements:        "
        f"{report.updated_elements} updated / {report.total_elements} keyed "
        f"({report.unmatched_elements} without translation, "
        f"{report.skipped_elements} skipped)"
    )
    print(f"  Fonts loaded:    {report.fonts_loaded}")
    if report.error_messages:
        print("  Notes:")
        for message in report.error_messages:
            print(f"    - {message}")


class CommandRunner:
    """Runs one CLI command against a document and the state file."""

    def __init__(
        self,
        args: argparse.Namespace,
        defaults: ProjectSettings,
        state_file: str,
        *,
        debug: bool,
    ) -> None:
        self.args = args
        self.defaults = defaults
        self.store = JsonFileKeyValueStore(pathlib.Path(state_file).expanduser())
        self.policy = ErrorPolicy(verbose=args.verbose)
        self.debug = debug

    def _open(self) -> tuple[pathlib.Path, PptxDocument]:
        input_path = pathlib.Path(self.args.input_file).expanduser().resolve()
        if not input_path.exists():
            raise FileNotFoundError(
                "Input file not found. Please provide a readable .pptx file."
            )
        document = open_document(
            input_path,
            selection=self.args.element,
            slides=self.args.slide,
        )
        return input_path, document

    def _session(
        self,
        document: DocumentProvider,
        input_path: Optional[pathlib.Path] = None,
    ) -> KeyweaverSession:
        selection_key = (
            document_selection_key(str(input_path))
            if input_path is not None
            else SELECTION_STORAGE_KEY
        )
        return KeyweaverSession(
            document,
            self.store,
            policy=self.policy,
            defaults=self.defaults,
            selection_key=selection_key,
        )

    def _save(self, input_path: pathlib.Path, document: PptxDocument, addition: str) -> None:
        output_path = (
            pathlib.Path(self.args.output).expanduser().resolve()
            if self.args.output
            else derive_output_path(input_path, addition)
        )
        validate_paths(input_path, output_path, force_overwrite=self.args.force)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        document.save(output_path)
        print(f"Saved {output_path}")

    async def run(self) -> int:
        handler = getattr(self, "cmd_" + self.args.command.replace("-", "_"))
        return await handler()

    async def cmd_scan(self) -> int:
        input_path, document = self._open()
        session = self._session(document, input_path)
        result = await session.scan(self.args.namespace, whole_document=True)
        if result.warning:
            print(result.warning)
            return 0
        for line in format_items(result.items):
            print(line)
        if self.args.apply:
            selected = [item for item in result.items if item.selected]
            namespaces = await session.apply_keys(selected)
            print(f"Namespaces: {', '.join(namespaces) or '(none)'}")
            self._save(input_path, document, "keyed")
        return 0

    async def cmd_assigned(self) -> int:
        input_path, document = self._open()
        session = self._session(document, input_path)
        items = await session.get_assigned(self.args.namespace)
        for line in format_items(items):
            print(line)
        return 0

    async def cmd_namespaces(self) -> int:
        input_path, document = self._open()
        for namespace in self._session(document, input_path).get_namespaces():
            print(namespace)
        return 0

    async def cmd_apply_language(self) -> int:
        input_path, document = self._open()
        session = self._session(document, input_path)
        settings = await session.load_settings()
        language = self.args.language or settings.base_language
        namespace = self.args.namespace or settings.default_namespace
        source = build_source(self.args.source, settings, debug=self.debug)
        mapping = await source.fetch(language, namespace)
        report = await session.apply_language(mapping, namespace)
        print_report(report)
        self._save(input_path, document, language)
        return 0

    async def cmd_restore_names(self) -> int:
        input_path, document = self._open()
        session = self._session(document, input_path)
        element_ids = [item.element_id for item in await session.get_assigned()]
        await session.restore_names(element_ids)
        self._save(input_path, document, "restored")
        return 0

    async def cmd_migrate_keys(self) -> int:
        input_path, document = self._open()
        migrated = await self._session(document, input_path).migrate_keys(self.args.namespace)
        if not migrated:
            print("No bare keys found.")
            return 0
        self._save(input_path, document, "migrated")
        return 0

    async def cmd_push(self) -> int:
        input_path, document = self._open()
        session = self._session(document, input_path)
        settings = await session.load_settings()
        namespace = self.args.namespace or settings.default_namespace
        language = self.args.language or settings.base_language
        items = [item for item in await session.get_assigned(namespace) if item.selected]
        mapping = {item.local_key: item.text for item in items}
        source = LocizeTranslationSource(settings, debug=self.debug)
        await source.upload(language, namespace, mapping)
        print(f"Uploaded {len(mapping)} keys to {language}/{namespace}.")
        return 0

    async def cmd_select(self) -> int:
        changes = [SelectionChange(element_id, True) for element_id in self.args.include]
        changes += [SelectionChange(element_id, False) for element_id in self.args.exclude]
        input_path = pathlib.Path(self.args.input_file).expanduser().resolve()
        session = self._session(MemoryDocument(), input_path)
        await session.set_selected_bulk(changes)
        excluded = await session.selection.get_all()
        print(f"Excluded elements: {', '.join(excluded) or '(none)'}")
        return 0

    async def cmd_settings(self) -> int:
        session = self._session(MemoryDocument())
        settings = await session.load_settings()
        updates = {
            "project_id": self.args.project_id,
            "api_key": self.args.api_key,
            "version": self.args.project_version,
            "base_language": self.args.base_language,
            "default_namespace": self.args.default_namespace,
        }
        changed = {key: value for key, value in updates.items() if value is not None}
        if changed:
            for key, value in changed.items():
                setattr(settings, key, value)
            await session.save_settings(settings)
        for key, value in settings.to_message().items():
            if key == "api_key" and value:
                value = "*" * 8
            print(f"  {key:<18} {value}")
        return 0


def execute_command(args: argparse.Namespace) -> tuple[int, Optional[str]]:
    """Execute a command and return the exit code and an error message."""

    try:
        config = get_settings()
    except ConfigurationError as exc:
        return 1, str(exc)

    runner = CommandRunner(
        args,
        project_settings(config),
        config.KEYWEAVER_STATE_FILE,
        debug=bool(args.debug or config.KEYWEAVER_DEBUG),
    )
    try:
        return asyncio.run(runner.run()), None
    except FileNotFoundError as exc:
        return 1, str(exc)
    except (
        UnsupportedFileTypeError,
        OverwriteRefusedError,
        ConfigurationError,
        TranslationSourceError,
    ) as exc:
        return 1, str(exc)
    except KeyweaverError as exc:
        return 1, str(exc)
    except KeyboardInterrupt:
        return 2, "Interrupted by user."


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    exit_code, message = execute_command(args)
    if message:
        print(message)
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
