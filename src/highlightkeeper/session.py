"""Highlight lifecycle on one page: commit, recolour/annotate, delete.

Ties the anchoring engine to a store.  The snapshot is always taken
before the range is wrapped, since wrapping splits text nodes and would
otherwise change the stored structural paths.
"""

from __future__ import annotations

import logging
import random
from typing import TYPE_CHECKING

from bs4 import Tag

from highlightkeeper.anchoring.builder import build_snapshot
from highlightkeeper.anchoring.dom import (
    EDITABLE_TAGS,
    LiveRange,
    common_ancestor,
    document_root,
    nearest_element,
)
from highlightkeeper.anchoring.models import HighlightEntry, now_ms
from highlightkeeper.anchoring.mutator import (
    apply_marker,
    find_markers,
    set_marker_metadata,
    unwrap_markers,
)
from highlightkeeper.anchoring.text_index import build_text_index, resolve_offset
from highlightkeeper.errors import InvalidSelection
from highlightkeeper.storage.colors import normalize_color, normalize_tags

if TYPE_CHECKING:
    from bs4 import BeautifulSoup

    from highlightkeeper.config import AnchoringConfig
    from highlightkeeper.storage.store import BaseStore

logger = logging.getLogger(__name__)


def new_highlight_id() -> str:
    return f"hk-{now_ms()}-{random.randrange(100000)}"


def is_editable(element: Tag | None) -> bool:
    """True inside form controls and ``contenteditable`` regions."""
    current = element
    while isinstance(current, Tag):
        if current.name in EDITABLE_TAGS:
            return True
        editable = current.get("contenteditable")
        if editable is not None:
            return str(editable).strip().lower() != "false"
        current = current.parent
    return False


def range_for_text(
    document: BeautifulSoup, text: str, occurrence: int = 1
) -> LiveRange | None:
    """Range over the *occurrence*-th match of *text* in the body text."""
    if not text or occurrence < 1:
        return None
    root = document_root(document)
    index = build_text_index(root)
    position = -1
    for _ in range(occurrence):
        position = index.text.find(text, position + 1)
        if position == -1:
            return None
    start = resolve_offset(root, position, index=index)
    end = resolve_offset(root, position + len(text), prefer_end=True, index=index)
    if start is None or end is None:
        return None
    return LiveRange(start[0], start[1], end[0], end[1])


def commit_highlight(
    document: BeautifulSoup,
    rng: LiveRange,
    url: str,
    store: BaseStore,
    *,
    color: str,
    config: AnchoringConfig | None = None,
) -> HighlightEntry:
    """Snapshot, wrap and persist a user selection.

    Raises:
        InvalidSelection: the range is collapsed or lies in an editable
            control.
    """
    if rng.is_collapsed:
        msg = "Selection is empty"
        raise InvalidSelection(msg)
    ancestor = common_ancestor(rng.start_container, rng.end_container)
    if ancestor is None or is_editable(nearest_element(ancestor)):
        msg = "Cannot highlight inside an editable field"
        raise InvalidSelection(msg)

    color = normalize_color(color)
    snapshot = build_snapshot(rng, config)
    highlight_id = new_highlight_id()
    apply_marker(rng, color, highlight_id, note="", document=document)

    entry = HighlightEntry(
        id=highlight_id,
        color=color,
        text=snapshot.text,
        range=snapshot,
        url=url,
        created_at=now_ms(),
        note="",
    )
    store.save_entry(entry)
    logger.info("Committed highlight %s on %s", highlight_id, url)
    return entry


def update_highlight(
    document: BeautifulSoup | None,
    url: str,
    highlight_id: str,
    store: BaseStore,
    *,
    color: str | None = None,
    note: str | None = None,
    tags: list[str] | str | None = None,
) -> bool:
    """Recolour, annotate or retag a highlight, live and in the store.

    Returns False when the store has no such highlight.
    """
    fields: dict[str, object] = {}
    if color is not None:
        fields["color"] = normalize_color(color)
    if note is not None:
        fields["note"] = note.strip()
    if tags is not None:
        fields["tags"] = normalize_tags(tags)

    if document is not None:
        for marker in find_markers(document, highlight_id):
            set_marker_metadata(
                marker,
                color=fields.get("color"),  # type: ignore[arg-type]
                note=fields.get("note"),  # type: ignore[arg-type]
            )
    if not fields:
        return store.get_entry(url, highlight_id) is not None
    return store.update_entry(url, highlight_id, **fields)


def delete_highlight(
    document: BeautifulSoup | None, url: str, highlight_id: str, store: BaseStore
) -> bool:
    """Unwrap the live marker (if any) and delete the stored entry."""
    if document is not None:
        unwrap_markers(document, highlight_id)
    removed = store.delete_entry(url, highlight_id)
    if removed:
        logger.info("Deleted highlight %s on %s", highlight_id, url)
    return removed
