"""Re-resolve a stored ``RangeSnapshot`` against the current document.

Strategies run strictly in order and the first one producing a live,
non-collapsed range wins:

1. ``path``     structural paths + clamped raw offsets
2. ``selector`` boundary selectors + element-relative text offsets
3. ``quote``    substring scan of the body text, context-checked

Each strategy is a plain function ``(snapshot, document, config) ->
LiveRange`` that raises a ``StrategyFailed`` subclass when it cannot
answer.  Failures are expected (structure drifts constantly), so they
are logged at DEBUG and collected as reasons rather than surfaced.

When a fallback strategy wins, the range is re-serialized so the caller
can persist the healed snapshot.
"""

# Pattern: Functional Core (strategies are pure reads of the live tree)

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field

from bs4 import BeautifulSoup, PageElement

from highlightkeeper.anchoring.builder import build_snapshot
from highlightkeeper.anchoring.dom import LiveRange, clamp_offset, document_root
from highlightkeeper.anchoring.models import Boundary, RangeSnapshot
from highlightkeeper.anchoring.selectors import resolve_selector
from highlightkeeper.anchoring.text_index import (
    build_text_index,
    node_of,
    offset_of,
    resolve_offset,
)
from highlightkeeper.config import AnchoringConfig, get_settings
from highlightkeeper.errors import (
    CollapsedRangeProduced,
    QuoteNotFound,
    SelectorNotResolved,
    StrategyFailed,
    StructuralPathStale,
    UnresolvableAnchor,
)

logger = logging.getLogger(__name__)

Strategy = Callable[[RangeSnapshot, BeautifulSoup, AnchoringConfig], LiveRange]


@dataclass(eq=False)
class ResolveResult:
    """Outcome of ``resolve_snapshot``.

    ``snapshot`` is the input snapshot unless a fallback strategy won,
    in which case it is the freshly built replacement and ``updated`` is
    true.
    """

    range: LiveRange | None
    snapshot: RangeSnapshot
    updated: bool = False
    strategy: str | None = None
    reasons: list[str] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return self.range is not None


def _non_collapsed(rng: LiveRange) -> LiveRange:
    if rng.is_collapsed:
        msg = "resolved range is collapsed"
        raise CollapsedRangeProduced(msg)
    return rng


# ---------------------------------------------------------------------------
# Strategy 1: structural path
# ---------------------------------------------------------------------------


def resolve_by_path(
    snapshot: RangeSnapshot, document: BeautifulSoup, config: AnchoringConfig
) -> LiveRange:
    """Follow the stored paths and clamp the raw offsets.

    A path that still resolves but now points at different text (a
    same-kind sibling was inserted before the target) is stale too.
    """
    if not snapshot.has_paths:
        msg = "no stored path"
        raise StructuralPathStale(msg)
    start = node_of(document, snapshot.start_path)
    end = node_of(document, snapshot.end_path)
    if start is None or end is None:
        missing = snapshot.start_path if start is None else snapshot.end_path
        msg = f"path {missing} no longer resolves"
        raise StructuralPathStale(msg)

    rng = _non_collapsed(
        LiveRange(
            start,
            clamp_offset(start, snapshot.start_offset),
            end,
            clamp_offset(end, snapshot.end_offset),
        )
    )
    if snapshot.text and rng.text() != snapshot.text:
        msg = "path resolves to different text"
        raise StructuralPathStale(msg)
    return rng


# ---------------------------------------------------------------------------
# Strategy 2: selector + text offset
# ---------------------------------------------------------------------------


def _boundary_point(
    document: BeautifulSoup,
    boundary: Boundary | None,
    config: AnchoringConfig,
    *,
    prefer_end: bool,
) -> tuple[PageElement, int] | None:
    if boundary is None or not boundary.is_usable:
        return None
    element = resolve_selector(
        document, boundary.css, require_unique=config.require_unique_selector
    )
    if element is None:
        return None
    offset = boundary.text_offset or 0
    return resolve_offset(element, offset, prefer_end=prefer_end)


def resolve_by_selector(
    snapshot: RangeSnapshot, document: BeautifulSoup, config: AnchoringConfig
) -> LiveRange:
    """Locate each boundary through its selector and element text offset.

    If only one boundary resolves, the other is derived by walking the
    quote's length through the body text from the one that did.
    """
    anchors = snapshot.anchors
    if anchors is None:
        msg = "no anchors"
        raise SelectorNotResolved(msg)

    start = _boundary_point(document, anchors.start, config, prefer_end=False)
    end = _boundary_point(document, anchors.end, config, prefer_end=True)
    if start is None and end is None:
        msg = "neither boundary selector resolved"
        raise SelectorNotResolved(msg)

    expected = anchors.quote.exact if anchors.quote else snapshot.text
    if start is None or end is None:
        if not expected:
            msg = "one boundary missing and no quote length to derive it"
            raise SelectorNotResolved(msg)
        root = document_root(document)
        index = build_text_index(root)
        known = start if start is not None else end
        known_node, known_offset = known  # type: ignore[misc]
        position = offset_of(root, known_node, known_offset, index)
        if position is None:
            msg = "resolved boundary lies outside the document body"
            raise SelectorNotResolved(msg)
        if start is None:
            start = resolve_offset(root, position - len(expected), index=index)
        else:
            end = resolve_offset(
                root, position + len(expected), prefer_end=True, index=index
            )
        if start is None or end is None:
            msg = "derived boundary falls outside the document text"
            raise SelectorNotResolved(msg)

    rng = _non_collapsed(LiveRange(start[0], start[1], end[0], end[1]))
    if expected and rng.text() != expected:
        msg = "selector range text differs from the stored quote"
        raise SelectorNotResolved(msg)
    return rng


# ---------------------------------------------------------------------------
# Strategy 3: quote scan
# ---------------------------------------------------------------------------


def _occurrences(text: str, exact: str) -> Iterator[int]:
    position = text.find(exact)
    while position != -1:
        yield position
        position = text.find(exact, position + 1)


def find_quote(text: str, exact: str, prefix: str = "", suffix: str = "") -> int | None:
    """Index of the best occurrence of *exact* in *text*, or ``None``.

    Occurrences are accepted in loosening tiers: prefix and suffix both
    matching, then prefix only, then suffix only, then any occurrence.
    Within a tier the first occurrence wins.  An empty context string
    matches everywhere.
    """
    if not exact:
        return None
    positions = list(_occurrences(text, exact))
    if not positions:
        return None

    def prefix_ok(position: int) -> bool:
        return not prefix or text[max(0, position - len(prefix)) : position] == prefix

    def suffix_ok(position: int) -> bool:
        end = position + len(exact)
        return not suffix or text[end : end + len(suffix)] == suffix

    tiers: tuple[Callable[[int], bool], ...] = (
        lambda p: prefix_ok(p) and suffix_ok(p),
        prefix_ok,
        suffix_ok,
        lambda _p: True,
    )
    for accept in tiers:
        for position in positions:
            if accept(position):
                return position
    return None  # pragma: no cover - last tier accepts everything


def resolve_by_quote(
    snapshot: RangeSnapshot, document: BeautifulSoup, config: AnchoringConfig
) -> LiveRange:
    """Find the quoted passage in the body text, preferring matching context."""
    quote = snapshot.anchors.quote if snapshot.anchors else None
    if quote is None:
        msg = "no quote"
        raise QuoteNotFound(msg)

    root = document_root(document)
    index = build_text_index(root)
    position = find_quote(index.text, quote.exact, quote.prefix, quote.suffix)
    if position is None:
        msg = "quote does not occur in the document"
        raise QuoteNotFound(msg)

    start = resolve_offset(root, position, index=index)
    end = resolve_offset(
        root, position + len(quote.exact), prefer_end=True, index=index
    )
    if start is None or end is None:  # pragma: no cover - position came from index
        msg = "quote offsets fall outside the text index"
        raise QuoteNotFound(msg)
    return _non_collapsed(LiveRange(start[0], start[1], end[0], end[1]))


STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("path", resolve_by_path),
    ("selector", resolve_by_selector),
    ("quote", resolve_by_quote),
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def resolve_snapshot(
    snapshot: RangeSnapshot,
    document: BeautifulSoup,
    config: AnchoringConfig | None = None,
) -> ResolveResult:
    """Resolve *snapshot* against *document*.

    Returns a result with ``range=None`` when every strategy failed.
    """
    config = config if config is not None else get_settings().anchoring
    reasons: list[str] = []
    for name, strategy in STRATEGIES:
        try:
            rng = strategy(snapshot, document, config)
        except StrategyFailed as exc:
            logger.debug("Strategy %s fell through: %s", name, exc)
            reasons.append(f"{name}: {exc}")
            continue

        if name == "path":
            return ResolveResult(rng, snapshot, False, name, reasons)

        created_at = snapshot.anchors.created_at if snapshot.anchors else None
        healed = build_snapshot(rng, config, created_at=created_at)
        logger.debug("Resolved %r via %s strategy", snapshot.text[:40], name)
        return ResolveResult(rng, healed, True, name, reasons)

    return ResolveResult(None, snapshot, False, None, reasons)


def resolve_snapshot_or_raise(
    snapshot: RangeSnapshot,
    document: BeautifulSoup,
    config: AnchoringConfig | None = None,
) -> ResolveResult:
    """Like ``resolve_snapshot`` but raise ``UnresolvableAnchor`` on failure."""
    result = resolve_snapshot(snapshot, document, config)
    if result.range is None:
        raise UnresolvableAnchor(snapshot.text, result.reasons)
    return result
