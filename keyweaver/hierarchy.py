"""Traversal helpers over a document provider."""

from __future__ import annotations

from typing import Iterable, List

from .documents import DocumentElement, DocumentProvider


def hierarchy_path(document: DocumentProvider, element: DocumentElement) -> List[str]:
    """Return ancestor names from the page down to the element's parent.

    The page itself is excluded, and so is the element: its own name is used
    separately as the base of a generated key. Unnamed ancestors are skipped.
    """

    path: List[str] = []
    current = document.parent(element)
    while current is not None:
        if current.name:
            path.append(current.name)
        current = document.parent(current)
    path.reverse()
    return path


def collect_text_elements(
    document: DocumentProvider,
    roots: Iterable[DocumentElement],
) -> List[DocumentElement]:
    """Collect text elements below the roots in document order."""

    result: List[DocumentElement] = []

    def traverse(element: DocumentElement) -> None:
        if element.is_text:
            result.append(element)
            return
        for child in document.children(element):
            traverse(child)

    for root in roots:
        traverse(root)
    return result


def working_set(document: DocumentProvider) -> List[DocumentElement]:
    """The selection when non-empty, otherwise the page's top-level content."""

    selection = document.selection()
    if selection:
        return selection
    return document.top_level()


def working_text_elements(document: DocumentProvider) -> List[DocumentElement]:
    return collect_text_elements(document, working_set(document))
