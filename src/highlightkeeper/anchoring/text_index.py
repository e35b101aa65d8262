"""Flattened text projection of a document subtree.

Two complementary addressing schemes live here:

- **Structural paths** (``path_of`` / ``node_of``): XPath-shaped strings such
  as ``/html[1]/body[1]/p[2]/text()[1]`` that count same-kind siblings at
  each level.  Cheap and exact while the tree is unchanged, brittle once
  scripts insert same-kind siblings before the target.
- **Flattened text offsets** (``build_text_index`` / ``offset_of`` /
  ``resolve_offset``): every rendered text node under a root concatenated
  in document order, with each node's ``[start, end)`` span recorded so a
  character index maps back to ``(text node, offset)``.

All lookups return ``None`` when they cannot answer.  Callers treat that
as "try the next strategy".
"""

# Pattern: Functional Core (pure lookups over the live tree)

from __future__ import annotations

import re
from dataclasses import dataclass, field

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PageElement

from highlightkeeper.anchoring.dom import (
    NON_RENDERING_TAGS,
    clamp_offset,
    contains,
    is_rendered,
    is_text_node,
    point_key,
)

_STEP = re.compile(r"(text\(\)|[^\[\]/]+)\[(\d+)\]")


# ---------------------------------------------------------------------------
# Structural paths
# ---------------------------------------------------------------------------


def path_of(node: PageElement) -> str:
    """Build the structural path of *node* relative to its document.

    Text nodes are numbered among their text-node siblings, elements among
    siblings with the same tag name.  Other node kinds (comments) add no
    step, so their path is their parent's.
    """
    parts: list[str] = []
    current: PageElement | None = node
    while current is not None and not isinstance(current, BeautifulSoup):
        if is_text_node(current):
            ordinal = 1 + sum(
                1 for sibling in current.previous_siblings if is_text_node(sibling)
            )
            parts.append(f"text()[{ordinal}]")
        elif isinstance(current, Tag):
            ordinal = 1 + sum(
                1
                for sibling in current.previous_siblings
                if isinstance(sibling, Tag) and sibling.name == current.name
            )
            parts.append(f"{current.name.lower()}[{ordinal}]")
        current = current.parent
    parts.reverse()
    return "/" + "/".join(parts)


def node_of(document: BeautifulSoup, path: str) -> PageElement | None:
    """Inverse of ``path_of``; ``None`` once the path no longer resolves."""
    if not path or not path.startswith("/"):
        return None
    current: PageElement = document
    for step in path[1:].split("/"):
        match = _STEP.fullmatch(step)
        if match is None or not isinstance(current, Tag):
            return None
        kind, ordinal = match.group(1).lower(), int(match.group(2))
        if kind == "text()":
            candidates = [child for child in current.contents if is_text_node(child)]
        else:
            candidates = [
                child
                for child in current.contents
                if isinstance(child, Tag) and child.name.lower() == kind
            ]
        if not 1 <= ordinal <= len(candidates):
            return None
        current = candidates[ordinal - 1]
    return current


# ---------------------------------------------------------------------------
# Flattened text index
# ---------------------------------------------------------------------------


@dataclass
class TextNodeInfo:
    """A rendered text node's span in the flattened string."""

    node: NavigableString
    start: int  # inclusive
    end: int  # exclusive


@dataclass
class TextIndex:
    """Rendered text under ``root`` with per-node spans."""

    root: PageElement
    text: str = ""
    nodes: list[TextNodeInfo] = field(default_factory=list)

    def find(self, node: PageElement) -> TextNodeInfo | None:
        """Span record for *node*, by identity."""
        for info in self.nodes:
            if info.node is node:
                return info
        return None


def build_text_index(root: PageElement) -> TextIndex:
    """Concatenate rendered text under *root*, recording each node's span.

    Text inside script/style/noscript is skipped, as are empty text nodes.
    """
    index = TextIndex(root=root)
    if not is_rendered(root):
        return index

    chunks: list[str] = []
    length = 0

    def _walk(node: PageElement) -> None:
        nonlocal length
        if is_text_node(node):
            text = str(node)
            if not text:
                return
            chunks.append(text)
            end = length + len(text)
            info = TextNodeInfo(
                node=node, start=length, end=end  # type: ignore[arg-type]
            )
            index.nodes.append(info)
            length += len(text)
            return
        if not isinstance(node, Tag) or node.name in NON_RENDERING_TAGS:
            return
        for child in node.contents:
            _walk(child)

    _walk(root)
    index.text = "".join(chunks)
    return index


def offset_of(
    root: PageElement,
    node: PageElement,
    offset: int,
    index: TextIndex | None = None,
) -> int | None:
    """Flattened-text index of the boundary point ``(node, offset)`` under *root*.

    Element boundary points map to the number of rendered characters that
    precede them.  Returns ``None`` when *node* is outside *root*.
    """
    if not contains(root, node):
        return None
    if index is None:
        index = build_text_index(root)

    if is_text_node(node):
        info = index.find(node)
        if info is not None:
            return info.start + clamp_offset(node, offset)

    key = point_key(node, offset)
    total = 0
    for info in index.nodes:
        if point_key(info.node, len(info.node)) <= key:
            total = info.end
            continue
        break
    return total


def resolve_offset(
    root: PageElement,
    target: int,
    *,
    prefer_end: bool = False,
    index: TextIndex | None = None,
) -> tuple[NavigableString, int] | None:
    """Locate the text node and in-node offset for flattened index *target*.

    When *target* sits exactly between two text nodes, ``prefer_end``
    chooses the end of the earlier node (for range ends) instead of the
    start of the later one (for range starts), so a resolved range never
    picks up an empty edge in a neighbouring node.
    """
    if index is None:
        index = build_text_index(root)
    if not index.nodes or not 0 <= target <= len(index.text):
        return None

    # Strictly inside a node
    for info in index.nodes:
        if info.start < target < info.end:
            return info.node, target - info.start

    # On a node boundary
    for position, info in enumerate(index.nodes):
        if target == info.start:
            if prefer_end and position > 0:
                previous = index.nodes[position - 1]
                return previous.node, len(previous.node)
            return info.node, 0

    # End of the last node
    last = index.nodes[-1]
    if target == last.end:
        return last.node, len(last.node)
    return None
