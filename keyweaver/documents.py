"""Document providers: element trees that carry text and persisted key data."""

from __future__ import annotations

import itertools
import pathlib
from abc import ABC, abstractmethod
from typing import IO, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from .errors import KeyweaverError, MutationRejectedError, UnsupportedFileTypeError
from .structures import FontRef

PLUGIN_DATA_URI = "{7D3F1B62-4A5E-4C0B-9E55-2B7A1C9D6E01}"
PLUGIN_DATA_NS = "urn:keyweaver:plugin-data"


class DocumentElement(ABC):
    """A node of the host document.

    Containers only contribute their names to the hierarchy; text elements
    additionally expose content, font identity and two persisted data slots.
    """

    element_id: str

    @property
    @abstractmethod
    def name(self) -> str:
        """Display name of the element."""

    @name.setter
    @abstractmethod
    def name(self, value: str) -> None:
        ...

    @property
    @abstractmethod
    def is_text(self) -> bool:
        """Whether the element carries text content."""

    @property
    @abstractmethod
    def content(self) -> str:
        """Current text content."""

    @content.setter
    @abstractmethod
    def content(self, value: str) -> None:
        ...

    @property
    @abstractmethod
    def font(self) -> Optional[FontRef]:
        """The element's font, or None when several fonts are mixed."""

    @abstractmethod
    def get_data(self, key: str) -> str:
        """Return a persisted value, or an empty string when unset."""

    @abstractmethod
    def set_data(self, key: str, value: str) -> None:
        """Persist a string value with the document."""


class DocumentProvider(ABC):
    """Common base class for document providers."""

    def __init__(self) -> None:
        self.loaded_fonts: Set[FontRef] = set()

    @abstractmethod
    def top_level(self) -> List[DocumentElement]:
        """Elements directly below the page."""

    @abstractmethod
    def selection(self) -> List[DocumentElement]:
        """Currently selected elements; may be empty."""

    @abstractmethod
    def parent(self, element: DocumentElement) -> Optional[DocumentElement]:
        """The containing element, or None when the page itself contains it."""

    @abstractmethod
    def children(self, element: DocumentElement) -> List[DocumentElement]:
        """Direct children of a container element."""

    @abstractmethod
    def get_element(self, element_id: str) -> Optional[DocumentElement]:
        """Resolve an element by id; None when it no longer exists."""

    @abstractmethod
    async def load_font(self, font: FontRef) -> None:
        """Make a font available for text changes."""


# --- In-memory provider ---------------------------------------------------


class MemoryElement(DocumentElement):
    """Element of a :class:`MemoryDocument`."""

    def __init__(
        self,
        document: "MemoryDocument",
        element_id: str,
        name: str,
        *,
        text: Optional[str] = None,
        fonts: Sequence[FontRef] = (),
        locked: bool = False,
    ) -> None:
        self._document = document
        self.element_id = element_id
        self._name = name
        self._text = text
        self.fonts: Tuple[FontRef, ...] = tuple(fonts)
        self.locked = locked
        self.data: Dict[str, str] = {}

    def __repr__(self) -> str:
        return f"MemoryElement({self.element_id!r}, {self._name!r})"

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, value: str) -> None:
        if self.locked:
            raise MutationRejectedError(f"Element {self.element_id} is locked.")
        self._name = value

    @property
    def is_text(self) -> bool:
        return self._text is not None

    @property
    def content(self) -> str:
        return self._text or ""

    @content.setter
    def content(self, value: str) -> None:
        if not self.is_text:
            raise MutationRejectedError(f"Element {self.element_id} has no text.")
        if self.locked:
            raise MutationRejectedError(f"Element {self.element_id} is locked.")
        missing = [font for font in self.fonts if font not in self._document.loaded_fonts]
        if missing:
            raise MutationRejectedError(
                f"Font {missing[0].family} {missing[0].style} must be loaded "
                f"before changing {self.element_id}."
            )
        self._text = value

    @property
    def font(self) -> Optional[FontRef]:
        if len(set(self.fonts)) == 1:
            return self.fonts[0]
        return None

    def get_data(self, key: str) -> str:
        return self.data.get(key, "")

    def set_data(self, key: str, value: str) -> None:
        self.data[key] = value


class MemoryDocument(DocumentProvider):
    """A document tree held in memory.

    Parent links are kept as an id lookup table, never as references from
    child to parent. Text changes honour the same preconditions a real host
    enforces: locked elements refuse changes and fonts must be loaded first.
    """

    DEFAULT_FONT = FontRef("Inter", "Regular")

    def __init__(self) -> None:
        super().__init__()
        self._elements: Dict[str, MemoryElement] = {}
        self._parents: Dict[str, Optional[str]] = {}
        self._children: Dict[Optional[str], List[str]] = {None: []}
        self._selection: List[str] = []
        self._ids = itertools.count(1)
        self.font_requests: List[FontRef] = []

    def _register(self, element: MemoryElement, parent: Optional[MemoryElement]) -> MemoryElement:
        if element.element_id in self._elements:
            raise KeyweaverError(f"Duplicate element id {element.element_id}.")
        parent_id = parent.element_id if parent is not None else None
        self._elements[element.element_id] = element
        self._parents[element.element_id] = parent_id
        self._children.setdefault(parent_id, []).append(element.element_id)
        self._children.setdefault(element.element_id, [])
        return element

    def _next_id(self, element_id: Optional[str]) -> str:
        return element_id or f"1:{next(self._ids)}"

    def add_frame(
        self,
        name: str,
        parent: Optional[MemoryElement] = None,
        *,
        element_id: Optional[str] = None,
    ) -> MemoryElement:
        element = MemoryElement(self, self._next_id(element_id), name)
        return self._register(element, parent)

    def add_text(
        self,
        name: str,
        text: str,
        parent: Optional[MemoryElement] = None,
        *,
        fonts: Sequence[FontRef] = (DEFAULT_FONT,),
        locked: bool = False,
        element_id: Optional[str] = None,
    ) -> MemoryElement:
        element = MemoryElement(
            self,
            self._next_id(element_id),
            name,
            text=text,
            fonts=fonts,
            locked=locked,
        )
        return self._register(element, parent)

    def remove(self, element: MemoryElement) -> None:
        """Delete an element and its descendants."""

        for child in self.children(element):
            self.remove(child)  # type: ignore[arg-type]
        parent_id = self._parents.pop(element.element_id)
        self._children[parent_id].remove(element.element_id)
        self._children.pop(element.element_id, None)
        self._elements.pop(element.element_id)
        if element.element_id in self._selection:
            self._selection.remove(element.element_id)

    def select(self, *elements: DocumentElement) -> None:
        self._selection = [element.element_id for element in elements]

    def top_level(self) -> List[DocumentElement]:
        return [self._elements[element_id] for element_id in self._children[None]]

    def selection(self) -> List[DocumentElement]:
        return [self._elements[element_id] for element_id in self._selection]

    def parent(self, element: DocumentElement) -> Optional[DocumentElement]:
        parent_id = self._parents.get(element.element_id)
        if parent_id is None:
            return None
        return self._elements.get(parent_id)

    def children(self, element: DocumentElement) -> List[DocumentElement]:
        return [
            self._elements[child_id]
            for child_id in self._children.get(element.element_id, [])
        ]

    def get_element(self, element_id: str) -> Optional[DocumentElement]:
        return self._elements.get(element_id)

    async def load_font(self, font: FontRef) -> None:
        self.font_requests.append(font)
        self.loaded_fonts.add(font)


# --- PowerPoint provider --------------------------------------------------


def _import_pptx():
    try:
        from pptx import Presentation  # type: ignore
    except ImportError as exc:  # pragma: no cover - import guard
        raise KeyweaverError(
            "python-pptx is required to process .pptx files. "
            "Install it with `pip install python-pptx`."
        ) from exc
    return Presentation


def _qn(tag: str) -> str:
    from pptx.oxml.ns import qn  # type: ignore

    return qn(tag)


class PptxElement(DocumentElement):
    """Wraps a python-pptx shape.

    Persisted slots live in the shape's ``p:cNvPr`` extension list under a
    private URI, so they travel with the saved file and PowerPoint ignores
    them.
    """

    def __init__(self, element_id: str, shape) -> None:
        self.element_id = element_id
        self.shape = shape

    def __repr__(self) -> str:
        return f"PptxElement({self.element_id!r}, {self.shape.name!r})"

    @property
    def name(self) -> str:
        return self.shape.name or ""

    @name.setter
    def name(self, value: str) -> None:
        try:
            self.shape.name = value
        except (AttributeError, ValueError) as exc:
            raise MutationRejectedError(
                f"Shape {self.element_id} cannot be renamed: {exc}"
            ) from exc

    @property
    def is_text(self) -> bool:
        # Empty frames still count; a translation may legitimately be "".
        if getattr(self.shape, "shapes", None) is not None:
            return False
        return bool(getattr(self.shape, "has_text_frame", False))

    @property
    def content(self) -> str:
        if not getattr(self.shape, "has_text_frame", False):
            return ""
        return self.shape.text_frame.text

    @content.setter
    def content(self, value: str) -> None:
        if not getattr(self.shape, "has_text_frame", False):
            raise MutationRejectedError(f"Shape {self.element_id} has no text frame.")
        _replace_text(self.shape.text_frame, value)

    @property
    def font(self) -> Optional[FontRef]:
        fonts = {
            FontRef(run.font.name or "", "Bold" if run.font.bold else "Regular")
            for paragraph in self.shape.text_frame.paragraphs
            for run in paragraph.runs
        }
        if len(fonts) == 1:
            return fonts.pop()
        return None

    def _cnvpr(self):
        matches = self.shape._element.xpath("./*[1]/p:cNvPr")
        if not matches:
            raise MutationRejectedError(
                f"Shape {self.element_id} has no non-visual properties."
            )
        return matches[0]

    def _slot_container(self, *, create: bool):
        from lxml import etree  # type: ignore

        cnvpr = self._cnvpr()
        ext_list = cnvpr.find(_qn("a:extLst"))
        if ext_list is None:
            if not create:
                return None
            ext_list = etree.SubElement(cnvpr, _qn("a:extLst"))
        for ext in ext_list.findall(_qn("a:ext")):
            if ext.get("uri") == PLUGIN_DATA_URI:
                return ext
        if not create:
            return None
        ext = etree.SubElement(ext_list, _qn("a:ext"))
        ext.set("uri", PLUGIN_DATA_URI)
        return ext

    def get_data(self, key: str) -> str:
        container = self._slot_container(create=False)
        if container is None:
            return ""
        for slot in container.findall(f"{{{PLUGIN_DATA_NS}}}slot"):
            if slot.get("name") == key:
                return slot.get("value") or ""
        return ""

    def set_data(self, key: str, value: str) -> None:
        from lxml import etree  # type: ignore

        container = self._slot_container(create=True)
        for slot in container.findall(f"{{{PLUGIN_DATA_NS}}}slot"):
            if slot.get("name") == key:
                slot.set("value", value)
                return
        slot = etree.SubElement(
            container,
            f"{{{PLUGIN_DATA_NS}}}slot",
            nsmap={"kw": PLUGIN_DATA_NS},
        )
        slot.set("name", key)
        slot.set("value", value)


def _replace_text(text_frame, value: str) -> None:
    """Replace frame text, keeping the formatting of the first run."""

    paragraphs = list(text_frame.paragraphs)
    runs = list(paragraphs[0].runs) if paragraphs else []
    if not runs or "\n" in value:
        text_frame.text = value
        return

    first = paragraphs[0]
    runs[0].text = value
    for run in runs[1:]:
        run._r.getparent().remove(run._r)
    for line_break in first._p.findall(_qn("a:br")):
        first._p.remove(line_break)
    for paragraph in paragraphs[1:]:
        paragraph._p.getparent().remove(paragraph._p)


class PptxDocument(DocumentProvider):
    """Exposes a PowerPoint presentation as a document tree.

    Slides play the role of pages, group shapes are containers and shapes
    with a text frame are text elements, empty or not. Element ids combine the
    slide id with the shape id, which is only unique per slide.
    """

    def __init__(
        self,
        source: Union[pathlib.Path, str, IO[bytes]],
        *,
        selection: Iterable[str] = (),
        slides: Iterable[int] = (),
    ) -> None:
        super().__init__()
        Presentation = _import_pptx()
        if isinstance(source, pathlib.Path):
            source = str(source)
        self.presentation = Presentation(source)
        self._elements: Dict[str, PptxElement] = {}
        self._parents: Dict[str, Optional[str]] = {}
        self._children: Dict[str, List[str]] = {}
        self._top_level: List[str] = []
        self._slide_top_level: Dict[int, List[str]] = {}
        self._selection: List[str] = []
        self._index()
        self.select_slides(slides)
        self.select(selection, extend=True)

    # --- Internal helpers -------------------------------------------------

    def _index(self) -> None:
        for slide_number, slide in enumerate(self.presentation.slides, start=1):
            top: List[str] = []
            for shape in slide.shapes:
                top.append(self._index_shape(slide.slide_id, shape, parent_id=None))
            self._slide_top_level[slide_number] = top
            self._top_level.extend(top)

    def _index_shape(self, slide_id: int, shape, *, parent_id: Optional[str]) -> str:
        element_id = f"{slide_id}:{shape.shape_id}"
        self._elements[element_id] = PptxElement(element_id, shape)
        self._parents[element_id] = parent_id
        self._children[element_id] = []
        group_shapes = getattr(shape, "shapes", None)
        if group_shapes is not None:
            for child in group_shapes:
                child_id = self._index_shape(slide_id, child, parent_id=element_id)
                self._children[element_id].append(child_id)
        return element_id

    # --- Selection --------------------------------------------------------

    def select_slides(self, slides: Iterable[int]) -> None:
        """Select every top-level shape of the given 1-based slide numbers."""

        selected: List[str] = []
        for number in slides:
            if number not in self._slide_top_level:
                raise KeyweaverError(f"Slide {number} does not exist.")
            selected.extend(self._slide_top_level[number])
        self._selection = selected

    def select(self, element_ids: Iterable[str], *, extend: bool = False) -> None:
        selected = list(self._selection) if extend else []
        for element_id in element_ids:
            if element_id not in self._elements:
                raise KeyweaverError(f"Element {element_id} does not exist.")
            if element_id not in selected:
                selected.append(element_id)
        self._selection = selected

    # --- Provider interface -----------------------------------------------

    def top_level(self) -> List[DocumentElement]:
        return [self._elements[element_id] for element_id in self._top_level]

    def selection(self) -> List[DocumentElement]:
        return [self._elements[element_id] for element_id in self._selection]

    def parent(self, element: DocumentElement) -> Optional[DocumentElement]:
        parent_id = self._parents.get(element.element_id)
        if parent_id is None:
            return None
        return self._elements.get(parent_id)

    def children(self, element: DocumentElement) -> List[DocumentElement]:
        return [
            self._elements[child_id]
            for child_id in self._children.get(element.element_id, [])
        ]

    def get_element(self, element_id: str) -> Optional[DocumentElement]:
        return self._elements.get(element_id)

    async def load_font(self, font: FontRef) -> None:
        # Presentations reference fonts by name; there is nothing to fetch.
        self.loaded_fonts.add(font)

    def save(self, destination: Union[pathlib.Path, str, IO[bytes]]) -> None:
        if isinstance(destination, pathlib.Path):
            destination = str(destination)
        self.presentation.save(destination)


def open_document(
    path: pathlib.Path,
    *,
    selection: Iterable[str] = (),
    slides: Iterable[int] = (),
) -> PptxDocument:
    """Select an appropriate provider for the provided file."""

    suffix = path.suffix.lower()
    if suffix == ".pptx":
        return PptxDocument(path, selection=selection, slides=slides)
    raise UnsupportedFileTypeError(
        "This file type isn’t supported — please use .pptx."
    )
