"""Marker element constants shared by the mutator, builder and resolver.

Markers are ``<mark>`` elements keyed by ``data-highlight-id``.  They are
transient projections of stored highlights, so selector construction
skips over them and restoration checks for them by id before wrapping.
"""

from __future__ import annotations

MARKER_TAG = "mark"
HIGHLIGHT_CLASS = "hk-highlight"
HIGHLIGHT_ATTR = "data-highlight-id"
COLOR_ATTR = "data-highlight-color"
NOTE_ATTR = "data-highlight-note"
# dataset mirrors (element.dataset.hkColor / hkNote)
DATASET_COLOR_ATTR = "data-hk-color"
DATASET_NOTE_ATTR = "data-hk-note"

# Fixed inline style applied alongside the background colour
MARKER_BASE_STYLE = (("padding", "0"), ("margin", "0"), ("color", "inherit"))
