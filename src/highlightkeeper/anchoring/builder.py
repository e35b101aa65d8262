"""Build a portable ``RangeSnapshot`` from a live range.

A snapshot carries three independent ways back to the passage:

1. structural paths of the two boundary containers plus raw offsets;
2. per-boundary CSS selector + text offset within that element;
3. the quoted text with up to ``context_chars`` characters either side.

Missing pieces are left out rather than guessed, and an anchor with no
boundary and no quote is dropped entirely.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from bs4 import BeautifulSoup

from highlightkeeper.anchoring.dom import (
    LiveRange,
    document_of,
    document_root,
    is_rendered,
    range_text,
)
from highlightkeeper.anchoring.models import (
    Anchor,
    Boundary,
    QuoteContext,
    RangeSnapshot,
    now_ms,
)
from highlightkeeper.anchoring.selectors import anchor_element_for
from highlightkeeper.anchoring.text_index import (
    TextIndex,
    build_text_index,
    offset_of,
    path_of,
)
from highlightkeeper.config import AnchoringConfig, get_settings

if TYPE_CHECKING:
    from bs4.element import PageElement

logger = logging.getLogger(__name__)


def _anchoring(config: AnchoringConfig | None) -> AnchoringConfig:
    return config if config is not None else get_settings().anchoring


def build_boundary(
    node: PageElement, offset: int, config: AnchoringConfig | None = None
) -> Boundary | None:
    """Selector + element-relative text offset for one boundary point."""
    config = _anchoring(config)
    if not is_rendered(node):
        return None
    found = anchor_element_for(
        node,
        max_depth=config.selector_max_depth,
        max_classes=config.selector_max_classes,
        require_unique=config.require_unique_selector,
    )
    if found is None:
        return None
    element, css = found
    return Boundary(css=css, text_offset=offset_of(element, node, offset))


def build_quote(
    rng: LiveRange,
    config: AnchoringConfig | None = None,
    *,
    text: str | None = None,
    index: TextIndex | None = None,
) -> QuoteContext | None:
    """Quoted text plus surrounding context from the document's rendered text.

    Returns ``None`` for empty or whitespace-only selections, which are
    useless for content-addressed lookup.
    """
    config = _anchoring(config)
    exact = range_text(rng) if text is None else text
    if not exact.strip():
        return None

    document = document_of(rng.start_container)
    root = document_root(document) if isinstance(document, BeautifulSoup) else document
    if index is None:
        index = build_text_index(root)

    window = config.context_chars
    start = offset_of(root, rng.start_container, rng.start_offset, index)
    end = offset_of(root, rng.end_container, rng.end_offset, index)
    prefix = index.text[max(0, start - window) : start] if start is not None else ""
    suffix = index.text[end : end + window] if end is not None else ""
    return QuoteContext(exact=exact, prefix=prefix, suffix=suffix)


def build_anchor(
    rng: LiveRange,
    config: AnchoringConfig | None = None,
    *,
    created_at: int | None = None,
    text: str | None = None,
) -> Anchor | None:
    """Fallback descriptor for *rng*, or ``None`` if nothing could be built."""
    config = _anchoring(config)
    anchor = Anchor(
        version=config.anchor_version,
        created_at=now_ms() if created_at is None else created_at,
        start=build_boundary(rng.start_container, rng.start_offset, config),
        end=build_boundary(rng.end_container, rng.end_offset, config),
        quote=build_quote(rng, config, text=text),
    )
    if anchor.is_empty:
        logger.debug("No selector or quote available; relying on paths only")
        return None
    return anchor


def build_snapshot(
    rng: LiveRange,
    config: AnchoringConfig | None = None,
    *,
    created_at: int | None = None,
) -> RangeSnapshot:
    """Serialize a live range.

    ``text`` is the range's text content at capture time; the raw
    offsets are stored exactly as the range holds them.
    """
    text = range_text(rng)
    return RangeSnapshot(
        start_path=path_of(rng.start_container),
        start_offset=rng.start_offset,
        end_path=path_of(rng.end_container),
        end_offset=rng.end_offset,
        text=text,
        anchors=build_anchor(rng, config, created_at=created_at, text=text),
    )
