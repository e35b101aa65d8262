"""DOM-style live ranges over a BeautifulSoup tree.

The parsed ``BeautifulSoup`` object plays the role of the document node,
``Tag`` instances are elements and plain ``NavigableString`` instances are
text nodes.  A ``LiveRange`` holds two boundary points ``(container,
offset)``: character offsets inside text containers, child indexes inside
element containers.

Boundary points are ordered by their child-index path from the document
root with the offset appended, compared lexicographically.  That single
rule gives DOM document order for every combination of text and element
containers, so collapsed/inverted checks and range text extraction never
need a separate tree walk.

Note: ``NavigableString`` is a ``str`` subclass, so ``==`` compares text.
Node identity is always tested with ``is`` in this package.
"""

# Pattern: Functional Core (pure tree helpers, mutation only in split/extract)

from __future__ import annotations

import copy
import logging
from collections.abc import Iterator
from dataclasses import dataclass

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PageElement, PreformattedString

from highlightkeeper.anchoring.marker_constants import HIGHLIGHT_ATTR

logger = logging.getLogger(__name__)

# Containers whose text never renders
NON_RENDERING_TAGS = frozenset(("script", "style", "noscript"))

# Form controls a highlight must never be committed inside
EDITABLE_TAGS = frozenset(("input", "textarea", "select"))


def parse_document(html: str) -> BeautifulSoup:
    """Parse HTML into a mutable document tree."""
    return BeautifulSoup(html, "html.parser")


def document_root(document: BeautifulSoup) -> Tag:
    """Return the element whose text is searched for quotes (``<body>`` if any)."""
    body = document.body
    return body if body is not None else document


def is_text_node(node: object) -> bool:
    """True for text nodes (comments, doctypes and CDATA are not text)."""
    return isinstance(node, NavigableString) and not isinstance(
        node, PreformattedString
    )


def is_marker(node: object) -> bool:
    """True for highlight marker elements."""
    return isinstance(node, Tag) and node.get(HIGHLIGHT_ATTR) is not None


def node_length(node: PageElement) -> int:
    """DOM node length: characters for text, child count for elements."""
    if is_text_node(node):
        return len(node)
    if isinstance(node, Tag):
        return len(node.contents)
    return 0


def clamp_offset(node: PageElement, offset: int) -> int:
    """Clamp *offset* into ``[0, node_length(node)]``."""
    return min(max(offset, 0), node_length(node))


def child_index(node: PageElement) -> int | None:
    """Index of *node* among its parent's children, by identity."""
    parent = node.parent
    if parent is None:
        return None
    for i, child in enumerate(parent.contents):
        if child is node:
            return i
    return None


def document_of(node: PageElement) -> PageElement:
    """Return the topmost ancestor of *node* (the document when attached)."""
    current = node
    while current.parent is not None:
        current = current.parent
    return current


def is_attached(node: PageElement, document: BeautifulSoup) -> bool:
    """True if *node* is *document* or one of its descendants."""
    return document_of(node) is document


def contains(ancestor: PageElement, node: PageElement) -> bool:
    """Inclusive descendant test by identity."""
    if node is ancestor:
        return True
    return any(parent is ancestor for parent in node.parents)


def is_rendered(node: PageElement) -> bool:
    """False when *node* is (inside) a script, style or noscript element."""
    if isinstance(node, Tag) and node.name in NON_RENDERING_TAGS:
        return False
    return not any(parent.name in NON_RENDERING_TAGS for parent in node.parents)


def nearest_element(node: PageElement) -> Tag | None:
    """The node itself if it is an element, else its parent element."""
    element = node if isinstance(node, Tag) else node.parent
    if element is None or isinstance(element, BeautifulSoup):
        return None
    return element


def iter_text_nodes(root: PageElement) -> Iterator[NavigableString]:
    """Yield every text node under *root* (inclusive) in document order."""
    if is_text_node(root):
        yield root  # type: ignore[misc]
        return
    if not isinstance(root, Tag):
        return
    for node in root.descendants:
        if is_text_node(node):
            yield node  # type: ignore[misc]


def _index_path(node: PageElement) -> tuple[int, ...]:
    """Child-index path from the document root down to *node*."""
    steps: list[int] = []
    current = node
    while current.parent is not None:
        index = child_index(current)
        if index is None:  # pragma: no cover - parent/contents out of sync
            break
        steps.append(index)
        current = current.parent
    steps.reverse()
    return tuple(steps)


def point_key(container: PageElement, offset: int) -> tuple[int, ...]:
    """Sortable key for the boundary point ``(container, offset)``."""
    return (*_index_path(container), offset)


def common_ancestor(a: PageElement, b: PageElement) -> PageElement | None:
    """Deepest node that is an inclusive ancestor of both *a* and *b*."""
    ancestors = [a, *a.parents]
    for candidate in (b, *b.parents):
        if any(candidate is node for node in ancestors):
            return candidate
    return None


# ---------------------------------------------------------------------------
# Range
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class LiveRange:
    """A pair of boundary points over a live document tree."""

    start_container: PageElement
    start_offset: int
    end_container: PageElement
    end_offset: int

    @classmethod
    def over_text(
        cls, node: NavigableString, start: int, end: int | None = None
    ) -> LiveRange:
        """Range covering ``node[start:end]`` of a single text node."""
        return cls(node, start, node, len(node) if end is None else end)

    def start_key(self) -> tuple[int, ...]:
        return point_key(self.start_container, self.start_offset)

    def end_key(self) -> tuple[int, ...]:
        return point_key(self.end_container, self.end_offset)

    @property
    def is_collapsed(self) -> bool:
        """True for empty ranges and for ranges whose end precedes their start."""
        if self.start_container is self.end_container:
            return self.start_offset >= self.end_offset
        return self.start_key() >= self.end_key()

    def text(self) -> str:
        """Concatenated data of every text node inside the range."""
        return range_text(self)


def range_text(rng: LiveRange) -> str:
    """Stringify a range the way ``Range.toString()`` does."""
    if rng.is_collapsed:
        return ""
    sc, ec = rng.start_container, rng.end_container
    if sc is ec and is_text_node(sc):
        return str(sc)[rng.start_offset : rng.end_offset]

    start_key = rng.start_key()
    end_key = rng.end_key()
    parts: list[str] = []
    for node in iter_text_nodes(document_of(sc)):
        base = _index_path(node)
        if (*base, 0) >= end_key:
            break
        if (*base, len(node)) <= start_key:
            continue
        lo = rng.start_offset if node is sc else 0
        hi = rng.end_offset if node is ec else len(node)
        parts.append(str(node)[lo:hi])
    return "".join(parts)


def range_is_live(rng: LiveRange, document: BeautifulSoup) -> bool:
    """Re-validate a range against the current tree right before mutating it."""
    for container, offset in (
        (rng.start_container, rng.start_offset),
        (rng.end_container, rng.end_offset),
    ):
        if not is_attached(container, document):
            return False
        if not 0 <= offset <= node_length(container):
            return False
    return not rng.is_collapsed


# ---------------------------------------------------------------------------
# Mutation primitives
# ---------------------------------------------------------------------------


def split_text_node(
    node: NavigableString, offset: int
) -> tuple[NavigableString, NavigableString]:
    """Replace *node* with two text nodes split at *offset*.

    Both halves keep the original string class.  Callers must pass
    ``0 < offset < len(node)`` so neither half is empty.
    """
    parent = node.parent
    index = child_index(node)
    if parent is None or index is None:
        msg = "Cannot split a detached text node"
        raise ValueError(msg)
    cls = type(node)
    left, right = cls(str(node)[:offset]), cls(str(node)[offset:])
    node.extract()
    parent.insert(index, left)
    parent.insert(index + 1, right)
    return left, right


def _element_point(node: PageElement, offset: int) -> tuple[Tag, int, bool]:
    """Convert a text boundary point to an element point, splitting if needed.

    Returns ``(parent, child_index, did_split)``.
    """
    parent = node.parent
    index = child_index(node)
    if parent is None or index is None:
        msg = "Range boundary is detached from the document"
        raise ValueError(msg)
    if offset <= 0:
        return parent, index, False
    if offset >= len(node):
        return parent, index + 1, False
    split_text_node(node, offset)  # type: ignore[arg-type]
    return parent, index + 1, True


def _split_single_text(
    node: NavigableString, start: int, end: int
) -> tuple[Tag, int, Tag, int]:
    """Split one text node around ``[start, end)``; return element points."""
    parent = node.parent
    index = child_index(node)
    if parent is None or index is None:
        msg = "Range boundary is detached from the document"
        raise ValueError(msg)
    text = str(node)
    cls = type(node)
    node.extract()
    position = index
    if text[:start]:
        parent.insert(position, cls(text[:start]))
        position += 1
    start_index = position
    parent.insert(position, cls(text[start:end]))
    position += 1
    end_index = position
    if text[end:]:
        parent.insert(position, cls(text[end:]))
    return parent, start_index, parent, end_index


def _to_element_points(rng: LiveRange) -> tuple[Tag, int, Tag, int]:
    sc, so = rng.start_container, rng.start_offset
    ec, eo = rng.end_container, rng.end_offset

    if sc is ec and is_text_node(sc):
        return _split_single_text(sc, so, eo)  # type: ignore[arg-type]

    if is_text_node(sc):
        start_parent, start_index, did_split = _element_point(sc, so)
        # Splitting the start text node shifts child indexes in its parent
        if did_split and ec is start_parent:
            eo += 1
    else:
        start_parent, start_index = sc, so  # type: ignore[assignment]

    if is_text_node(ec):
        end_parent, end_index, _ = _element_point(ec, eo)
    else:
        end_parent, end_index = ec, eo  # type: ignore[assignment]

    return start_parent, start_index, end_parent, end_index


def _child_of(ancestor: PageElement, node: PageElement) -> PageElement:
    """The child of *ancestor* that contains *node*."""
    current = node
    while current.parent is not ancestor:
        current = current.parent  # type: ignore[assignment]
    return current


def _shallow_clone(tag: Tag) -> Tag:
    document = document_of(tag)
    if not isinstance(document, BeautifulSoup):
        msg = "Cannot clone an element outside a document"
        raise ValueError(msg)
    return document.new_tag(tag.name, attrs=copy.deepcopy(dict(tag.attrs)))


def _partial_holder(partial: Tag, into: Tag) -> Tag:
    """Where the selected part of a partially selected element goes.

    Markers are never cloned: a highlight id keeps exactly one marker
    element, so the selected part of an overlapped marker moves into
    *into* directly and leaves that marker's coverage.
    """
    if is_marker(partial):
        return into
    clone = _shallow_clone(partial)
    into.append(clone)
    return clone


def _extract_between(
    start_parent: Tag, start_index: int, end_parent: Tag, end_index: int, into: Tag
) -> None:
    """Move everything between two element points into *into*.

    Partially selected ancestors stay in place and are represented in
    *into* by shallow clones holding the selected part of their children
    (markers excepted, see ``_partial_holder``).
    """
    if start_parent is end_parent:
        for child in list(start_parent.contents[start_index:end_index]):
            into.append(child.extract())
        return

    ancestor = common_ancestor(start_parent, end_parent)
    if not isinstance(ancestor, Tag):
        msg = "Range boundaries share no common ancestor"
        raise ValueError(msg)

    first_partial: Tag | None = None
    last_partial: Tag | None = None
    if start_parent is ancestor:
        first_index = start_index
    else:
        first_partial = _child_of(ancestor, start_parent)  # type: ignore[assignment]
        first_index = child_index(first_partial) + 1  # type: ignore[operator]
    if end_parent is ancestor:
        last_index = end_index
    else:
        last_partial = _child_of(ancestor, end_parent)  # type: ignore[assignment]
        last_index = child_index(last_partial)  # type: ignore[assignment]

    contained = list(ancestor.contents[first_index:last_index])

    if first_partial is not None:
        holder = _partial_holder(first_partial, into)
        first_end = len(first_partial.contents)
        _extract_between(start_parent, start_index, first_partial, first_end, holder)
    for child in contained:
        into.append(child.extract())
    if last_partial is not None:
        holder = _partial_holder(last_partial, into)
        _extract_between(last_partial, 0, end_parent, end_index, holder)


def extract_contents(rng: LiveRange, into: Tag) -> tuple[Tag, int]:
    """Move the range's contents into *into*, like ``Range.extractContents()``.

    Text nodes cut by a boundary are split first, so every character ends
    up either inside *into* or where it was; nothing is copied or dropped.

    Returns:
        The collapsed insertion point ``(parent, index)`` where the
        extracted content used to start.
    """
    start_parent, start_index, end_parent, end_index = _to_element_points(rng)

    if contains(start_parent, end_parent):
        insert_at: tuple[Tag, int] | None = (start_parent, start_index)
        reference = None
    else:
        insert_at = None
        ancestor = common_ancestor(start_parent, end_parent)
        reference = _child_of(ancestor, start_parent)  # type: ignore[arg-type]

    _extract_between(start_parent, start_index, end_parent, end_index, into)

    if insert_at is not None:
        return insert_at
    parent = reference.parent  # type: ignore[union-attr]
    position = child_index(reference) + 1  # type: ignore[arg-type,operator]
    return parent, position  # type: ignore[return-value]
