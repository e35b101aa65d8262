"""Wrap and unwrap highlight markers in the live document.

Markers are ``<mark>`` elements keyed by highlight id.  Wrapping moves
the range's nodes into the marker (splitting text nodes at the range
edges), so the document's text content is unchanged apart from the
wrapper itself.  Unwrapping moves the children back out and merges
adjacent text nodes again.

Both directions are idempotent: wrapping an id that already has a live
marker returns the existing marker, and unwrapping a detached marker
does nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from bs4 import BeautifulSoup, Tag

from highlightkeeper.anchoring.dom import (
    LiveRange,
    document_of,
    extract_contents,
    range_is_live,
)
from highlightkeeper.anchoring.marker_constants import (
    COLOR_ATTR,
    DATASET_COLOR_ATTR,
    DATASET_NOTE_ATTR,
    HIGHLIGHT_ATTR,
    HIGHLIGHT_CLASS,
    MARKER_BASE_STYLE,
    MARKER_TAG,
    NOTE_ATTR,
)
from highlightkeeper.errors import StaleRange

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class MarkerHandle:
    """A live marker element for one highlight id."""

    highlight_id: str
    element: Tag
    # False when the marker already existed and nothing was wrapped
    created: bool = True

    @property
    def is_attached(self) -> bool:
        return isinstance(document_of(self.element), BeautifulSoup)


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


def find_marker(document: BeautifulSoup, highlight_id: str) -> Tag | None:
    """The live marker for *highlight_id*, if any."""
    return document.find(attrs={HIGHLIGHT_ATTR: highlight_id})


def find_markers(document: BeautifulSoup, highlight_id: str) -> list[Tag]:
    """Every element carrying *highlight_id*, in document order."""
    return document.find_all(attrs={HIGHLIGHT_ATTR: highlight_id})


def count_markers(document: BeautifulSoup, highlight_id: str | None = None) -> int:
    """Number of markers for one id, or for all ids."""
    if highlight_id is None:
        return len(document.find_all(attrs={HIGHLIGHT_ATTR: True}))
    return len(find_markers(document, highlight_id))


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------


def _parse_style(style: str) -> dict[str, str]:
    properties: dict[str, str] = {}
    for declaration in style.split(";"):
        name, sep, value = declaration.partition(":")
        if sep and name.strip():
            properties[name.strip().lower()] = value.strip()
    return properties


def _format_style(properties: dict[str, str]) -> str:
    return "; ".join(f"{name}: {value}" for name, value in properties.items()) + ";"


def set_marker_metadata(
    element: Tag, *, color: str | None = None, note: str | None = None
) -> None:
    """Update a marker's colour and/or note without touching its children.

    The note is trimmed; an empty note removes the note attributes and
    tooltip.  Passing ``None`` leaves that field as it is.
    """
    if color:
        style = _parse_style(str(element.get("style", "")))
        style["background-color"] = color
        element["style"] = _format_style(style)
        element[COLOR_ATTR] = color
        element[DATASET_COLOR_ATTR] = color

    if note is not None:
        trimmed = note.strip()
        if trimmed:
            element[NOTE_ATTR] = trimmed
            element[DATASET_NOTE_ATTR] = trimmed
            element["title"] = trimmed
        else:
            for attr in (NOTE_ATTR, DATASET_NOTE_ATTR, "title"):
                if attr in element.attrs:
                    del element[attr]


# ---------------------------------------------------------------------------
# Wrap / unwrap
# ---------------------------------------------------------------------------


def create_marker(document: BeautifulSoup, color: str, highlight_id: str) -> Tag:
    """New, detached marker element for *highlight_id*."""
    marker = document.new_tag(
        MARKER_TAG,
        attrs={"class": [HIGHLIGHT_CLASS], HIGHLIGHT_ATTR: highlight_id},
    )
    marker["style"] = _format_style(dict(MARKER_BASE_STYLE))
    set_marker_metadata(marker, color=color)
    return marker


def wrap_range(
    rng: LiveRange, color: str, highlight_id: str, document: BeautifulSoup | None = None
) -> MarkerHandle:
    """Move the contents of *rng* into a new marker at the same position.

    Raises:
        StaleRange: the range is detached, out of bounds or collapsed
            by the time it is wrapped.
    """
    if document is None:
        root = document_of(rng.start_container)
        if not isinstance(root, BeautifulSoup):
            msg = f"Range for {highlight_id} is detached from any document"
            raise StaleRange(msg)
        document = root

    existing = find_marker(document, highlight_id)
    if existing is not None:
        logger.debug("Marker %s already present; skipping wrap", highlight_id)
        return MarkerHandle(highlight_id, existing, created=False)

    if not range_is_live(rng, document):
        msg = f"Range for {highlight_id} no longer describes live content"
        raise StaleRange(msg)

    marker = create_marker(document, color, highlight_id)
    parent, index = extract_contents(rng, marker)
    parent.insert(index, marker)
    return MarkerHandle(highlight_id, marker, created=True)


def unwrap_marker(element: Tag) -> None:
    """Replace a marker with its children and merge split text runs."""
    parent = element.parent
    if parent is None:
        return
    element.unwrap()
    parent.smooth()


# ---------------------------------------------------------------------------
# Engine API
# ---------------------------------------------------------------------------


def apply_marker(
    rng: LiveRange,
    color: str,
    highlight_id: str,
    *,
    note: str | None = None,
    document: BeautifulSoup | None = None,
) -> MarkerHandle:
    """Wrap *rng* for *highlight_id* and set its metadata (idempotent)."""
    handle = wrap_range(rng, color, highlight_id, document)
    set_marker_metadata(handle.element, color=color, note=note)
    return handle


def unwrap_markers(document: BeautifulSoup, highlight_id: str) -> int:
    """Unwrap every element carrying *highlight_id*; return how many."""
    markers = find_markers(document, highlight_id)
    for marker in markers:
        unwrap_marker(marker)
    return len(markers)


def remove_marker(handle: MarkerHandle) -> None:
    """Unwrap the marker behind *handle*; a no-op once it is gone.

    Stray elements sharing the id (markup saved by another tool) go too.
    """
    if not handle.is_attached:
        return
    document = document_of(handle.element)
    unwrap_markers(document, handle.highlight_id)  # type: ignore[arg-type]
