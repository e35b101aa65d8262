"""Exception taxonomy for the anchoring engine and its collaborators.

Resolution failures are expected and common: a single strategy failing
is signalled with a ``StrategyFailed`` subclass that the resolver loop
swallows before trying the next strategy.  Only ``StorageUnavailable``
is escalated out of a restoration pass.
"""

from __future__ import annotations


class HighlightKeeperError(Exception):
    """Base class for all highlightkeeper errors."""


class AnchoringError(HighlightKeeperError):
    """Base class for failures while relocating a stored range."""


class StrategyFailed(AnchoringError):
    """A single resolution strategy produced no usable range."""


class StructuralPathStale(StrategyFailed):
    """A stored tree path no longer resolves, or resolves to other text."""


class CollapsedRangeProduced(StrategyFailed):
    """A strategy produced a zero-length (or inverted) range."""


class SelectorNotResolved(StrategyFailed):
    """Neither boundary selector located a unique element."""


class QuoteNotFound(StrategyFailed):
    """The quoted passage does not occur in the document text."""


class UnresolvableAnchor(AnchoringError):
    """Every resolution strategy was exhausted."""

    def __init__(self, text: str, reasons: list[str]) -> None:
        self.text = text
        self.reasons = reasons
        preview = text if len(text) <= 40 else f"{text[:37]}..."
        super().__init__(f"Could not resolve {preview!r}: {'; '.join(reasons)}")


class MalformedImportEntry(HighlightKeeperError, ValueError):
    """An imported entry lacks the fields needed to restore it."""

    def __init__(self, index: int, reason: str) -> None:
        self.index = index
        self.reason = reason
        super().__init__(f"Import entry {index}: {reason}")


class InvalidSelection(HighlightKeeperError, ValueError):
    """A selection cannot be committed as a highlight."""


class StorageUnavailable(HighlightKeeperError):
    """The highlight store cannot be read or written."""


class StaleRange(AnchoringError):
    """A range stopped describing live content before it could be wrapped."""


class InvalidImportPayload(HighlightKeeperError, ValueError):
    """An import file is not JSON, or holds no recognisable entries."""
