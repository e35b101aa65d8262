"""Range anchoring and restoration engine.

Builds durable descriptions of text ranges, re-resolves them after the
document has changed, and marks the resolved ranges in the tree.
"""

from highlightkeeper.anchoring.builder import build_snapshot
from highlightkeeper.anchoring.dom import LiveRange, parse_document
from highlightkeeper.anchoring.models import (
    Anchor,
    Boundary,
    HighlightEntry,
    QuoteContext,
    RangeSnapshot,
)
from highlightkeeper.anchoring.mutator import (
    MarkerHandle,
    apply_marker,
    find_marker,
    remove_marker,
    unwrap_markers,
)
from highlightkeeper.anchoring.resolver import ResolveResult, resolve_snapshot
from highlightkeeper.anchoring.scheduler import (
    PassResult,
    RestorationScheduler,
    run_restoration_pass,
)

__all__ = [
    "Anchor",
    "Boundary",
    "HighlightEntry",
    "LiveRange",
    "MarkerHandle",
    "PassResult",
    "QuoteContext",
    "RangeSnapshot",
    "ResolveResult",
    "RestorationScheduler",
    "apply_marker",
    "build_snapshot",
    "find_marker",
    "parse_document",
    "remove_marker",
    "resolve_snapshot",
    "run_restoration_pass",
    "unwrap_markers",
]
