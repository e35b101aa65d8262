"""Tests for marker wrapping, unwrapping and metadata."""

from __future__ import annotations

import pytest

from highlightkeeper.anchoring.dom import LiveRange, parse_document
from highlightkeeper.anchoring.marker_constants import (
    COLOR_ATTR,
    DATASET_NOTE_ATTR,
    HIGHLIGHT_ATTR,
    NOTE_ATTR,
)
from highlightkeeper.anchoring.mutator import (
    MarkerHandle,
    apply_marker,
    count_markers,
    find_marker,
    remove_marker,
    set_marker_metadata,
    unwrap_marker,
    unwrap_markers,
    wrap_range,
)
from highlightkeeper.errors import StaleRange
from highlightkeeper.session import range_for_text
from tests.helpers.highlights import OVERLAP_HTML

WRAP_CASES = [
    (
        "<body><p>Hello world, this is a test paragraph about testing.</p></body>",
        "a test paragraph",
    ),
    ("<body><p>one <b>two</b> three</p></body>", "e two th"),
    ("<body><div><p>alpha beta</p><p>gamma delta</p></div></body>", "betagamma"),
    ("<body><p>a<i>b<u>c</u>d</i>e</p></body>", "bcd"),
]


class TestWrap:
    """wrap_range() / apply_marker()."""

    def test_marker_attributes(self) -> None:
        """The marker carries id and colour as style and data attributes."""
        doc = parse_document("<body><p>Hello world</p></body>")
        handle = apply_marker(range_for_text(doc, "world"), "#81c784", "hk-1")
        marker = handle.element
        assert handle.created is True
        assert marker.name == "mark"
        assert marker[HIGHLIGHT_ATTR] == "hk-1"
        assert marker[COLOR_ATTR] == "#81c784"
        assert "background-color: #81c784" in marker["style"]
        assert marker.get_text() == "world"
        assert str(doc.p).startswith("<p>Hello <mark")

    @pytest.mark.parametrize(("html", "text"), WRAP_CASES)
    def test_text_content_is_unchanged(self, html: str, text: str) -> None:
        """Wrapping neither adds nor drops characters."""
        doc = parse_document(html)
        before = doc.body.get_text()
        handle = wrap_range(range_for_text(doc, text), "#ffeb3b", "hk-1")
        assert doc.body.get_text() == before
        assert handle.element.get_text() == text

    def test_wrap_is_idempotent_per_id(self) -> None:
        """A second wrap for a live id returns the existing marker."""
        doc = parse_document("<body><p>Hello world</p></body>")
        first = apply_marker(range_for_text(doc, "world"), "#ffeb3b", "hk-1")
        second = apply_marker(range_for_text(doc, "Hello"), "#ffeb3b", "hk-1")
        assert second.created is False
        assert second.element is first.element
        assert count_markers(doc, "hk-1") == 1

    def test_detached_range_is_rejected(self) -> None:
        """A range whose nodes left the document raises StaleRange."""
        doc = parse_document("<body><p>Hello world</p></body>")
        rng = range_for_text(doc, "world")
        doc.p.extract()
        with pytest.raises(StaleRange):
            wrap_range(rng, "#ffeb3b", "hk-1", doc)
        assert count_markers(doc) == 0

    def test_offsets_invalidated_by_edit(self) -> None:
        """Offsets beyond the current node length raise StaleRange."""
        doc = parse_document("<body><p>Hello world</p></body>")
        node = doc.p.contents[0]
        rng = LiveRange.over_text(node, 6, 11)
        node.replace_with("Hi")
        with pytest.raises(StaleRange):
            wrap_range(rng, "#ffeb3b", "hk-1", doc)


class TestOverlap:
    """Ranges that partly cover an existing marker."""

    def test_overlapping_end_keeps_one_marker_per_id(self) -> None:
        """The covered tail of the old marker moves into the new one."""
        doc = parse_document(OVERLAP_HTML)
        before = doc.body.get_text()
        apply_marker(range_for_text(doc, "two three"), "#ffeb3b", "hk-a")
        second = apply_marker(range_for_text(doc, "three four"), "#81c784", "hk-b")

        assert count_markers(doc, "hk-a") == 1
        assert count_markers(doc, "hk-b") == 1
        assert doc.body.get_text() == before
        assert find_marker(doc, "hk-a").get_text() == "two "
        assert second.element.get_text() == "three four"

    def test_overlapping_start_keeps_one_marker_per_id(self) -> None:
        """The covered head of the old marker moves into the new one."""
        doc = parse_document(OVERLAP_HTML)
        before = doc.body.get_text()
        apply_marker(range_for_text(doc, "two three"), "#ffeb3b", "hk-a")
        second = apply_marker(range_for_text(doc, "one two"), "#81c784", "hk-b")

        assert count_markers(doc, "hk-a") == 1
        assert count_markers(doc, "hk-b") == 1
        assert doc.body.get_text() == before
        assert find_marker(doc, "hk-a").get_text() == " three"
        assert second.element.get_text() == "one two"

    def test_removing_overlapped_marker_leaves_no_trace(self) -> None:
        """Removing the older highlight leaves the newer one intact."""
        doc = parse_document(OVERLAP_HTML)
        before = doc.body.get_text()
        first = apply_marker(range_for_text(doc, "two three"), "#ffeb3b", "hk-a")
        apply_marker(range_for_text(doc, "three four"), "#81c784", "hk-b")

        remove_marker(first)

        assert count_markers(doc, "hk-a") == 0
        assert "#ffeb3b" not in str(doc)
        assert find_marker(doc, "hk-b").get_text() == "three four"
        assert doc.body.get_text() == before


class TestUnwrap:
    """unwrap_marker() / unwrap_markers() / remove_marker()."""

    @pytest.mark.parametrize(("html", "text"), WRAP_CASES)
    def test_unwrap_restores_text(self, html: str, text: str) -> None:
        """Removing a fresh marker restores the original text."""
        doc = parse_document(html)
        before = doc.body.get_text()
        handle = wrap_range(range_for_text(doc, text), "#ffeb3b", "hk-1")
        remove_marker(handle)
        assert doc.body.get_text() == before
        assert find_marker(doc, "hk-1") is None

    def test_unwrap_merges_split_text(self) -> None:
        """Split text runs are merged back into one node."""
        doc = parse_document("<body><p>Hello world, again</p></body>")
        handle = wrap_range(range_for_text(doc, "world"), "#ffeb3b", "hk-1")
        unwrap_marker(handle.element)
        assert doc.p.contents == ["Hello world, again"]
        assert str(doc.p) == "<p>Hello world, again</p>"

    def test_remove_twice_is_noop(self) -> None:
        """Removing a detached marker does nothing."""
        doc = parse_document("<body><p>Hello world</p></body>")
        handle = apply_marker(range_for_text(doc, "world"), "#ffeb3b", "hk-1")
        remove_marker(handle)
        remove_marker(handle)
        assert str(doc.p) == "<p>Hello world</p>"

    def test_remove_unwraps_every_element_with_the_id(self) -> None:
        """Saved markup with a repeated id is fully cleaned up."""
        doc = parse_document(
            f'<body><p><mark {HIGHLIGHT_ATTR}="hk-1">a</mark> b '
            f'<mark {HIGHLIGHT_ATTR}="hk-1">c</mark></p></body>'
        )
        remove_marker(MarkerHandle("hk-1", doc.find("mark")))
        assert count_markers(doc, "hk-1") == 0
        assert str(doc.p) == "<p>a b c</p>"

    def test_unwrap_markers_counts(self) -> None:
        """unwrap_markers() reports how many elements it removed."""
        doc = parse_document("<body><p>Hello world</p></body>")
        apply_marker(range_for_text(doc, "world"), "#ffeb3b", "hk-1")
        assert unwrap_markers(doc, "hk-1") == 1
        assert unwrap_markers(doc, "hk-1") == 0


class TestMetadata:
    """set_marker_metadata()."""

    def _marker(self):
        doc = parse_document("<body><p>Hello world</p></body>")
        return apply_marker(range_for_text(doc, "world"), "#ffeb3b", "hk-1").element

    def test_note_is_trimmed(self) -> None:
        """The note is trimmed and mirrored into the tooltip."""
        marker = self._marker()
        set_marker_metadata(marker, note="  remember this  ")
        assert marker[NOTE_ATTR] == "remember this"
        assert marker[DATASET_NOTE_ATTR] == "remember this"
        assert marker["title"] == "remember this"

    def test_empty_note_clears_attributes(self) -> None:
        """A blank note removes the note attributes, repeatedly."""
        marker = self._marker()
        set_marker_metadata(marker, note="x")
        set_marker_metadata(marker, note="   ")
        set_marker_metadata(marker, note="")
        for attr in (NOTE_ATTR, DATASET_NOTE_ATTR, "title"):
            assert attr not in marker.attrs

    def test_recolour_keeps_children_and_other_styles(self) -> None:
        """Recolouring only replaces the background colour."""
        marker = self._marker()
        set_marker_metadata(marker, color="#64b5f6")
        assert marker.get_text() == "world"
        assert "background-color: #64b5f6" in marker["style"]
        assert "#ffeb3b" not in marker["style"]
        assert "padding: 0" in marker["style"]

    def test_none_leaves_fields_alone(self) -> None:
        """None for a field leaves it unchanged."""
        marker = self._marker()
        set_marker_metadata(marker, note="keep")
        set_marker_metadata(marker)
        assert marker[NOTE_ATTR] == "keep"
        assert marker[COLOR_ATTR] == "#ffeb3b"
