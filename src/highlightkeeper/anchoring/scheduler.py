"""Drive stored highlights to visible markers while the document settles.

A restoration pass resolves every entry that has no live marker yet,
wraps what resolves and persists healed snapshots.  ``RestorationScheduler``
repeats passes on a fixed backoff table until every entry is visible or
the attempt budget runs out; unresolved entries are left in the store
for a later page load.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from highlightkeeper.anchoring.mutator import apply_marker, find_marker
from highlightkeeper.anchoring.resolver import resolve_snapshot
from highlightkeeper.config import get_settings
from highlightkeeper.errors import StorageUnavailable

if TYPE_CHECKING:
    from bs4 import BeautifulSoup

    from highlightkeeper.anchoring.models import HighlightEntry
    from highlightkeeper.config import AnchoringConfig
    from highlightkeeper.storage.store import HighlightStore

logger = logging.getLogger(__name__)


@dataclass
class PassResult:
    """Counts from one restoration pass."""

    total_count: int = 0
    visible_count: int = 0
    restored: list[str] = field(default_factory=list)
    healed: list[str] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return self.visible_count >= self.total_count


def _restore_entry(
    document: BeautifulSoup,
    entry: HighlightEntry,
    store: HighlightStore | None,
    config: AnchoringConfig,
    result: PassResult,
) -> None:
    if entry.range is None:
        result.unresolved.append(entry.id)
        return

    resolution = resolve_snapshot(entry.range, document, config)
    if resolution.range is None:
        logger.debug(
            "Highlight %s unresolved: %s", entry.id, "; ".join(resolution.reasons)
        )
        result.unresolved.append(entry.id)
        return

    apply_marker(
        resolution.range, entry.color, entry.id, note=entry.note, document=document
    )
    result.restored.append(entry.id)
    result.visible_count += 1

    if resolution.updated:
        entry.range = resolution.snapshot
        if store is not None:
            store.update_range(entry.url, entry.id, resolution.snapshot)
        result.healed.append(entry.id)
        logger.info("Healed highlight %s via %s", entry.id, resolution.strategy)


def run_restoration_pass(
    document: BeautifulSoup,
    entries: Iterable[HighlightEntry],
    store: HighlightStore | None = None,
    config: AnchoringConfig | None = None,
) -> PassResult:
    """Make every entry visible that can be, in one sweep.

    Entries that already have a live marker count as visible and are not
    touched, so repeated passes never duplicate markers.  A failure in
    one entry never aborts the pass; only ``StorageUnavailable``
    propagates.
    """
    config = config if config is not None else get_settings().anchoring
    result = PassResult()
    for entry in entries:
        result.total_count += 1
        if find_marker(document, entry.id) is not None:
            result.visible_count += 1
            continue
        try:
            _restore_entry(document, entry, store, config, result)
        except StorageUnavailable:
            raise
        except Exception:
            logger.exception("Failed to restore highlight %s", entry.id)
            result.unresolved.append(entry.id)

    logger.info(
        "Restoration pass: %d/%d visible", result.visible_count, result.total_count
    )
    return result


class RestorationScheduler:
    """Repeat restoration passes on a backoff schedule until converged.

    ``load_entries`` is called before every pass, so highlights added
    while the schedule is running are picked up.  The delay table is an
    explicit queue: once drained, its last delay is reused until
    ``max_attempts`` passes have run.
    """

    def __init__(
        self,
        document: BeautifulSoup,
        load_entries: Callable[[], Iterable[HighlightEntry]],
        store: HighlightStore | None = None,
        *,
        delays: Iterable[float] | None = None,
        max_attempts: int | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        config: AnchoringConfig | None = None,
    ) -> None:
        settings = get_settings()
        self.document = document
        self.load_entries = load_entries
        self.store = store
        self.config = config if config is not None else settings.anchoring
        self.delays = tuple(delays) if delays is not None else settings.restore.delays
        self.max_attempts = (
            max_attempts if max_attempts is not None else settings.restore.max_attempts
        )
        self._sleep = sleep
        self._queue: deque[float] = deque(self.delays)
        self._last_delay = self.delays[-1] if self.delays else 0.0
        self.attempts = 0
        self.cancelled = False
        self.last_result: PassResult | None = None

    def run_pass(self) -> PassResult:
        """One pass over the current entries."""
        self.attempts += 1
        self.last_result = run_restoration_pass(
            self.document, list(self.load_entries()), self.store, self.config
        )
        return self.last_result

    def next_delay(self) -> float | None:
        """Delay before the next pass, or ``None`` when the budget is spent."""
        if self.cancelled or self.attempts >= self.max_attempts:
            return None
        if self._queue:
            self._last_delay = self._queue.popleft()
        return self._last_delay

    def cancel(self) -> None:
        """Drop all pending passes."""
        self.cancelled = True
        self._queue.clear()

    async def run(self) -> PassResult:
        """Run passes until converged, cancelled or out of attempts."""
        result = self.run_pass()
        while not result.converged:
            delay = self.next_delay()
            if delay is None:
                logger.warning(
                    "Restoration stopped after %d attempts; %d highlight(s) unresolved",
                    self.attempts,
                    len(result.unresolved),
                )
                break
            await self._sleep(delay)
            if self.cancelled:
                break
            result = self.run_pass()
        return result
