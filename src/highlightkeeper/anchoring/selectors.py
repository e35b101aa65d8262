"""CSS selectors that locate a boundary's anchor element.

A selector is a chain of compound steps joined by child combinators,
built from the element upward:

- an element with an ``id`` contributes ``#id`` and ends the chain;
- any other element contributes its tag name, up to two class names
  and ``:nth-of-type(n)`` when it has same-tag siblings;
- ``body`` and ``html`` end the chain;
- highlight markers are skipped and the gap is bridged with a
  descendant combinator, so selectors stay valid whether or not a
  marker is currently wrapped around part of the element.

Selectors only ever climb ``max_depth`` levels, so on deep anonymous
markup two elements can share one.  ``anchor_element_for`` and
``resolve_selector`` therefore check uniqueness when asked to.
"""

from __future__ import annotations

import logging

import soupsieve as sv
from bs4 import BeautifulSoup, Tag
from bs4.element import PageElement

from highlightkeeper.anchoring.dom import is_marker, is_rendered, nearest_element

logger = logging.getLogger(__name__)

_CHAIN_ROOTS = frozenset(("body", "html"))


def _classes(element: Tag, max_classes: int) -> list[str]:
    raw = element.get("class") or []
    if isinstance(raw, str):
        raw = raw.split()
    seen: list[str] = []
    for name in raw:
        if name and name not in seen:
            seen.append(name)
    return seen[:max_classes]


def element_step(element: Tag, *, max_classes: int = 2) -> str:
    """Compound selector for *element* alone."""
    element_id = element.get("id")
    if isinstance(element_id, str) and element_id.strip():
        return f"#{sv.escape(element_id)}"

    name = element.name.lower()
    step = sv.escape(name)
    for class_name in _classes(element, max_classes):
        step += f".{sv.escape(class_name)}"

    if name in _CHAIN_ROOTS:
        return step
    parent = element.parent
    if parent is not None:
        same_type = [
            child
            for child in parent.contents
            if isinstance(child, Tag) and child.name.lower() == name
        ]
        if len(same_type) > 1:
            position = next(i for i, child in enumerate(same_type) if child is element)
            step += f":nth-of-type({position + 1})"
    return step


def build_selector(
    element: Tag, *, max_depth: int = 6, max_classes: int = 2
) -> str | None:
    """Selector for *element*, climbing at most *max_depth* element levels.

    Returns ``None`` for markers, the document itself and elements that
    do not render.
    """
    if isinstance(element, BeautifulSoup) or is_marker(element):
        return None
    if not is_rendered(element):
        return None

    steps: list[str] = []
    joiners: list[str] = []
    current: PageElement | None = element
    skipped_marker = False
    levels = 0
    while (
        isinstance(current, Tag)
        and not isinstance(current, BeautifulSoup)
        and levels < max_depth
    ):
        if is_marker(current):
            skipped_marker = True
            current = current.parent
            continue
        if steps:
            joiners.append(" " if skipped_marker else " > ")
        skipped_marker = False
        step = element_step(current, max_classes=max_classes)
        steps.append(step)
        levels += 1
        if step.startswith("#") or current.name.lower() in _CHAIN_ROOTS:
            break
        current = current.parent

    if not steps:
        return None
    selector = steps[-1]
    for step, joiner in zip(reversed(steps[:-1]), reversed(joiners), strict=True):
        selector += joiner + step
    return selector


def select_all(document: BeautifulSoup, css: str, *, limit: int = 0) -> list[Tag]:
    """Run *css* against *document*; invalid selectors match nothing."""
    try:
        return document.select(css, limit=limit)
    except sv.SelectorSyntaxError:
        logger.debug("Invalid stored selector %r", css)
        return []


def resolve_selector(
    document: BeautifulSoup, css: str | None, *, require_unique: bool = True
) -> Tag | None:
    """``querySelector`` equivalent.

    With *require_unique*, a selector matching more than one element
    resolves to nothing rather than to the first match.
    """
    if not css:
        return None
    matches = select_all(document, css, limit=2 if require_unique else 1)
    if not matches:
        return None
    if require_unique and len(matches) > 1:
        logger.debug("Selector %r is ambiguous", css)
        return None
    return matches[0]


def anchor_element_for(
    node: PageElement,
    *,
    max_depth: int = 6,
    max_classes: int = 2,
    require_unique: bool = True,
) -> tuple[Tag, str] | None:
    """Nearest non-marker ancestor of *node* with a usable selector.

    Tries the node's own element first and climbs up to *max_depth*
    non-marker ancestors.  With *require_unique* a candidate is accepted
    only when its selector resolves back to that very element.
    """
    element = nearest_element(node)
    document = node
    while document.parent is not None:
        document = document.parent
    if not isinstance(document, BeautifulSoup):
        return None

    tried = 0
    current: PageElement | None = element
    while (
        isinstance(current, Tag)
        and not isinstance(current, BeautifulSoup)
        and tried < max_depth
    ):
        if is_marker(current):
            current = current.parent
            continue
        tried += 1
        css = build_selector(current, max_depth=max_depth, max_classes=max_classes)
        if css is not None:
            if not require_unique:
                return current, css
            if resolve_selector(document, css, require_unique=True) is current:
                return current, css
        current = current.parent
    return None
