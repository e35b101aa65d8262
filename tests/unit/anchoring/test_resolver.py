"""Tests for snapshot resolution and its fallback strategies."""

from __future__ import annotations

import pytest

from highlightkeeper.anchoring.builder import build_snapshot
from highlightkeeper.anchoring.dom import parse_document
from highlightkeeper.anchoring.models import (
    Anchor,
    Boundary,
    QuoteContext,
    RangeSnapshot,
)
from highlightkeeper.anchoring.resolver import (
    STRATEGIES,
    find_quote,
    resolve_by_path,
    resolve_by_quote,
    resolve_snapshot,
    resolve_snapshot_or_raise,
)
from highlightkeeper.errors import (
    QuoteNotFound,
    StructuralPathStale,
    UnresolvableAnchor,
)
from highlightkeeper.session import range_for_text
from tests.helpers.highlights import (
    CREATED_AT,
    MOVED_SCENARIO_HTML,
    SCENARIO_HTML,
    TWO_CATS_HTML,
    make_entry,
)

MAIN_HTML = (
    '<html><body><div id="main">'
    "<p>Hello world, this is a test paragraph about testing.</p>"
    "</div></body></html>"
)

# A same-kind sibling before #main makes the stored paths stale
SHIFTED_MAIN_HTML = (
    "<html><body><div>ad</div><div id=\"main\">"
    "<p>Hello world, this is a test paragraph about testing.</p>"
    "</div></body></html>"
)


def _quote_only(exact: str, prefix: str = "", suffix: str = "") -> RangeSnapshot:
    return RangeSnapshot(
        start_path="/html[1]/body[1]/article[1]/text()[1]",
        start_offset=0,
        end_path="/html[1]/body[1]/article[1]/text()[1]",
        end_offset=len(exact),
        text=exact,
        anchors=Anchor(
            version=1,
            created_at=CREATED_AT,
            quote=QuoteContext(exact=exact, prefix=prefix, suffix=suffix),
        ),
    )


class TestStrategyOrder:
    """STRATEGIES."""

    def test_strategies_run_path_selector_quote(self) -> None:
        """Strategies run path, then selector, then quote."""
        assert [name for name, _ in STRATEGIES] == ["path", "selector", "quote"]


class TestRoundTrip:
    """Resolving on the unchanged document."""

    @pytest.mark.parametrize(
        ("html", "text"),
        [
            (SCENARIO_HTML, "a test paragraph"),
            ("<body><p>one <b>two</b> three</p></body>", "e two th"),
            ("<body><p>alpha beta</p><p>gamma delta</p></body>", "betagamma"),
            ("<body><ul><li>x</li><li>y</li></ul></body>", "y"),
        ],
    )
    def test_same_text_via_path(self, html: str, text: str, anchoring_config) -> None:
        """An unchanged page resolves by path without healing."""
        doc = parse_document(html)
        snapshot = build_snapshot(range_for_text(doc, text), anchoring_config)
        result = resolve_snapshot(snapshot, doc, anchoring_config)
        assert result.range.text() == text
        assert result.strategy == "path"
        assert result.updated is False
        assert result.snapshot is snapshot


class TestConcreteScenario:
    """'a test paragraph' after new content is inserted before it."""

    def test_resolves_via_quote_scan(self, anchoring_config) -> None:
        """Path and selector fail, and the quote finds the text."""
        entry = make_entry(SCENARIO_HTML, "a test paragraph", "hk-1")
        moved = parse_document(MOVED_SCENARIO_HTML)
        result = resolve_snapshot(entry.range, moved, anchoring_config)
        assert result.range.text() == "a test paragraph"
        assert result.strategy == "quote"
        assert result.updated is True
        assert result.reasons[0].startswith("path:")
        assert result.reasons[1].startswith("selector:")

    def test_healed_snapshot_points_at_new_location(self, anchoring_config) -> None:
        """The healed snapshot resolves by path next time."""
        entry = make_entry(SCENARIO_HTML, "a test paragraph", "hk-1")
        moved = parse_document(MOVED_SCENARIO_HTML)
        healed = resolve_snapshot(entry.range, moved, anchoring_config).snapshot
        assert healed.start_path == "/html[1]/body[1]/p[2]/text()[1]"
        assert healed.text == "a test paragraph"
        assert healed.anchors.start.css == "body > p:nth-of-type(2)"
        assert healed.anchors.created_at == CREATED_AT
        # The healed snapshot now resolves directly
        again = resolve_snapshot(healed, moved, anchoring_config)
        assert again.strategy == "path"


class TestSelfHealing:
    """Corrupted structural paths."""

    def test_corrupted_paths_resolve_via_quote(self, anchoring_config) -> None:
        """Bad paths without selectors heal through the quote."""
        doc = parse_document(SCENARIO_HTML)
        snapshot = make_entry(SCENARIO_HTML, "a test paragraph", "hk-1").range
        snapshot.start_path = snapshot.end_path = "/html[1]/body[1]/div[7]/text()[1]"
        snapshot.anchors.start = snapshot.anchors.end = None
        result = resolve_snapshot(snapshot, doc, anchoring_config)
        assert result.strategy == "quote"
        assert result.updated is True
        assert result.range.text() == "a test paragraph"
        assert result.snapshot.start_path == "/html[1]/body[1]/p[1]/text()[1]"

    def test_corrupted_paths_resolve_via_selector(self, anchoring_config) -> None:
        """Bad paths heal through the boundary selectors."""
        doc = parse_document(SCENARIO_HTML)
        snapshot = make_entry(SCENARIO_HTML, "a test paragraph", "hk-1").range
        snapshot.start_path = snapshot.end_path = "/nowhere[1]"
        result = resolve_snapshot(snapshot, doc, anchoring_config)
        assert result.strategy == "selector"
        assert result.updated is True
        assert result.range.text() == "a test paragraph"


class TestSelectorStrategy:
    """Selector + text offset resolution."""

    def test_stale_path_resolves_by_selector(self, anchoring_config) -> None:
        """A shifted element is found by its selector."""
        entry = make_entry(MAIN_HTML, "a test paragraph", "hk-1")
        shifted = parse_document(SHIFTED_MAIN_HTML)
        result = resolve_snapshot(entry.range, shifted, anchoring_config)
        assert result.strategy == "selector"
        assert result.range.text() == "a test paragraph"
        assert result.range.start_container.parent is shifted.select_one("#main > p")

    def test_missing_start_is_derived_from_end(self, anchoring_config) -> None:
        """An unresolvable start is placed from the end."""
        entry = make_entry(MAIN_HTML, "a test paragraph", "hk-1")
        entry.range.anchors.start = Boundary(css="#gone", text_offset=21)
        shifted = parse_document(SHIFTED_MAIN_HTML)
        result = resolve_snapshot(entry.range, shifted, anchoring_config)
        assert result.strategy == "selector"
        assert result.range.text() == "a test paragraph"

    def test_missing_end_is_derived_from_start(self, anchoring_config) -> None:
        """A missing end is placed from the start."""
        entry = make_entry(MAIN_HTML, "a test paragraph", "hk-1")
        entry.range.anchors.end = None
        shifted = parse_document(SHIFTED_MAIN_HTML)
        result = resolve_snapshot(entry.range, shifted, anchoring_config)
        assert result.strategy == "selector"
        assert result.range.text() == "a test paragraph"

    def test_edited_element_falls_through_to_quote(self, anchoring_config) -> None:
        """Offsets that now cover different text are not trusted."""
        entry = make_entry(MAIN_HTML, "a test paragraph", "hk-1")
        edited = parse_document(
            '<html><body><div>ad</div><div id="main">'
            "<p>Hi! Hello world, this is a test paragraph about testing.</p>"
            "</div></body></html>"
        )
        result = resolve_snapshot(entry.range, edited, anchoring_config)
        assert result.strategy == "quote"
        assert result.range.text() == "a test paragraph"


class TestQuoteStrategy:
    """Quote scan with context tiers."""

    def test_disambiguates_by_prefix(self, anchoring_config) -> None:
        """The prefix picks the right occurrence."""
        doc = parse_document(TWO_CATS_HTML)
        snapshot = _quote_only("the cat sat", prefix="Later ")
        result = resolve_snapshot(snapshot, doc, anchoring_config)
        assert result.strategy == "quote"
        assert result.range.text() == "the cat sat"
        second_p = doc.find_all("p")[1]
        assert result.range.start_container.parent is second_p

    def test_built_snapshot_of_second_occurrence(self, anchoring_config) -> None:
        """A built quote finds the occurrence it came from."""
        entry = make_entry(TWO_CATS_HTML, "the cat sat", "hk-1", occurrence=2)
        entry.range.start_path = entry.range.end_path = "/x[1]"
        entry.range.anchors.start = entry.range.anchors.end = None
        doc = parse_document(TWO_CATS_HTML)
        rng = resolve_by_quote(entry.range, doc, anchoring_config)
        assert rng.start_container.parent is doc.find_all("p")[1]

    def test_missing_quote(self, anchoring_config) -> None:
        """Absent text raises QuoteNotFound."""
        doc = parse_document(TWO_CATS_HTML)
        snapshot = _quote_only("the dog ran")
        with pytest.raises(QuoteNotFound):
            resolve_by_quote(snapshot, doc, anchoring_config)


class TestFindQuote:
    """find_quote() tier order."""

    TEXT = "A: the cat sat. B: the cat sat! C: the cat sat?"

    def test_both_contexts(self) -> None:
        """Prefix and suffix together win first."""
        assert find_quote(self.TEXT, "the cat sat", "B: ", "!") == 19

    def test_prefix_only_beats_suffix_only(self) -> None:
        """A prefix match beats a suffix match."""
        assert find_quote(self.TEXT, "the cat sat", "C: ", "!") == 35

    def test_suffix_only(self) -> None:
        """A suffix match beats the bare text."""
        assert find_quote(self.TEXT, "the cat sat", "Z: ", "!") == 19

    def test_bare_first_occurrence(self) -> None:
        """Without context matches the first occurrence wins."""
        assert find_quote(self.TEXT, "the cat sat", "Z: ", "#") == 3

    def test_empty_context_matches_anything(self) -> None:
        """Empty context matches the first occurrence."""
        assert find_quote(self.TEXT, "the cat sat") == 3

    def test_prefix_near_start_of_text(self) -> None:
        """A stored prefix longer than the available text cannot match."""
        assert find_quote("cat", "cat", "the ") == 0

    def test_not_found(self) -> None:
        """Absent or empty text gives None."""
        assert find_quote(self.TEXT, "dog") is None
        assert find_quote(self.TEXT, "") is None


class TestFailures:
    """Exhausted strategies."""

    def test_unresolvable(self, anchoring_config) -> None:
        """Every strategy fails and records a reason."""
        doc = parse_document(TWO_CATS_HTML)
        snapshot = _quote_only("the dog ran")
        result = resolve_snapshot(snapshot, doc, anchoring_config)
        assert result.range is None
        assert result.resolved is False
        assert result.updated is False
        assert [reason.split(":")[0] for reason in result.reasons] == [
            "path",
            "selector",
            "quote",
        ]

    def test_or_raise(self, anchoring_config) -> None:
        """resolve_snapshot_or_raise() raises UnresolvableAnchor."""
        doc = parse_document(TWO_CATS_HTML)
        with pytest.raises(UnresolvableAnchor) as excinfo:
            snapshot = _quote_only("the dog ran")
            resolve_snapshot_or_raise(snapshot, doc, anchoring_config)
        assert excinfo.value.text == "the dog ran"
        assert len(excinfo.value.reasons) == 3

    def test_collapsed_path_range_falls_through(self, anchoring_config) -> None:
        """Offsets past the text collapse and fall through."""
        doc = parse_document("<html><body><p>short</p></body></html>")
        path = "/html[1]/body[1]/p[1]/text()[1]"
        snapshot = RangeSnapshot(path, 50, path, 80, "gone text")
        result = resolve_snapshot(snapshot, doc, anchoring_config)
        assert result.range is None
        assert "collapsed" in result.reasons[0]

    def test_path_to_different_text_is_stale(self, anchoring_config) -> None:
        """A path range over other text is stale."""
        entry = make_entry(SCENARIO_HTML, "a test paragraph", "hk-1")
        moved = parse_document(MOVED_SCENARIO_HTML)
        with pytest.raises(StructuralPathStale, match="different text"):
            resolve_by_path(entry.range, moved, anchoring_config)
