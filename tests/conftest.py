import pytest

from keyweaver.documents import MemoryDocument
from keyweaver.storage import MemoryKeyValueStore


@pytest.fixture
def document():
    return MemoryDocument()


@pytest.fixture
def store():
    return MemoryKeyValueStore()


@pytest.fixture
def card_document(document):
    """Three identically named titles inside Page > Card."""

    page = document.add_frame("Page", element_id="1:1")
    card = document.add_frame("Card", page, element_id="1:2")
    for index in range(3):
        document.add_text("Title", f"Title {index}", card, element_id=f"1:{10 + index}")
    return document
