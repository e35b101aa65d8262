"""Anchor and snapshot data model with its persisted JSON form.

These are plain dataclasses for in-memory use; ``to_dict`` / ``from_dict``
convert to and from the camelCase JSON shared with the storage and
export collaborators::

    {
      "startXPath": str, "startOffset": int,
      "endXPath": str, "endOffset": int,
      "text": str,
      "anchors": {
        "version": int, "createdAt": number,
        "start": {"css": str | null, "textOffset": int | null} | null,
        "end":   {"css": str | null, "textOffset": int | null} | null,
        "quote": {"exact": str, "prefix": str, "suffix": str} | null
      }            # key omitted when there is no anchor
    }

``from_dict`` is lenient: missing numbers become 0, missing strings
become ``""`` and a malformed ``anchors`` object becomes ``None``.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Any


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def as_int(value: Any, default: int = 0) -> int:
    """Coerce JSON-ish numbers (and numeric strings) to int."""
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, (float, str)):
        try:
            number = float(value)
        except ValueError:
            return default
        return int(number) if math.isfinite(number) else default
    return default


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) and math.isfinite(value):
        return int(value)
    return None


def as_str(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) else default


@dataclass
class Boundary:
    """One range endpoint: an element selector plus a rendered-text offset."""

    css: str | None = None
    text_offset: int | None = None

    @property
    def is_usable(self) -> bool:
        return bool(self.css) and self.text_offset is not None

    def to_dict(self) -> dict[str, Any]:
        return {"css": self.css, "textOffset": self.text_offset}

    @classmethod
    def parse(cls, data: Any) -> Boundary | None:
        if not isinstance(data, dict):
            return None
        css = data.get("css")
        boundary = cls(
            css=css if isinstance(css, str) and css else None,
            text_offset=_optional_int(data.get("textOffset")),
        )
        if boundary.css is None and boundary.text_offset is None:
            return None
        return boundary


@dataclass
class QuoteContext:
    """Literal passage text with up to N characters of context either side."""

    exact: str
    prefix: str = ""
    suffix: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"exact": self.exact, "prefix": self.prefix, "suffix": self.suffix}

    @classmethod
    def parse(cls, data: Any) -> QuoteContext | None:
        if not isinstance(data, dict):
            return None
        exact = data.get("exact")
        if not isinstance(exact, str) or not exact:
            return None
        return cls(
            exact=exact,
            prefix=as_str(data.get("prefix")),
            suffix=as_str(data.get("suffix")),
        )


@dataclass
class Anchor:
    """Fallback descriptor used when the structural path has gone stale.

    At least one of ``start``, ``end`` and ``quote`` is set; ``parse``
    returns ``None`` rather than building an anchor with none.
    """

    version: int
    created_at: int
    start: Boundary | None = None
    end: Boundary | None = None
    quote: QuoteContext | None = None

    @property
    def is_empty(self) -> bool:
        return self.start is None and self.end is None and self.quote is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "createdAt": self.created_at,
            "start": self.start.to_dict() if self.start else None,
            "end": self.end.to_dict() if self.end else None,
            "quote": self.quote.to_dict() if self.quote else None,
        }

    @classmethod
    def parse(cls, data: Any) -> Anchor | None:
        """Parse a well-formed anchors object, or return ``None``."""
        if not isinstance(data, dict):
            return None
        anchor = cls(
            version=as_int(data.get("version"), 1),
            created_at=as_int(data.get("createdAt")),
            start=Boundary.parse(data.get("start")),
            end=Boundary.parse(data.get("end")),
            quote=QuoteContext.parse(data.get("quote")),
        )
        return None if anchor.is_empty else anchor


@dataclass
class RangeSnapshot:
    """Serialized range: structural paths, raw offsets, text and anchors."""

    start_path: str
    start_offset: int
    end_path: str
    end_offset: int
    text: str
    anchors: Anchor | None = None

    @property
    def has_paths(self) -> bool:
        return bool(self.start_path) and bool(self.end_path)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "startXPath": self.start_path,
            "startOffset": self.start_offset,
            "endXPath": self.end_path,
            "endOffset": self.end_offset,
            "text": self.text,
        }
        if self.anchors is not None:
            data["anchors"] = self.anchors.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RangeSnapshot:
        return cls(
            start_path=as_str(data.get("startXPath")),
            start_offset=as_int(data.get("startOffset")),
            end_path=as_str(data.get("endXPath")),
            end_offset=as_int(data.get("endOffset")),
            text=as_str(data.get("text")),
            anchors=Anchor.parse(data.get("anchors")),
        )


@dataclass
class HighlightEntry:
    """A stored highlight as owned by the persistence collaborator."""

    id: str
    color: str
    text: str
    range: RangeSnapshot | None
    url: str
    created_at: int = field(default_factory=now_ms)
    note: str = ""
    tags: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "color": self.color,
            "text": self.text,
            "note": self.note,
            "range": self.range.to_dict() if self.range else None,
            "url": self.url,
            "createdAt": self.created_at,
        }
        if self.tags is not None:
            data["tags"] = list(self.tags)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HighlightEntry:
        raw_range = data.get("range")
        tags = data.get("tags")
        return cls(
            id=as_str(data.get("id")),
            color=as_str(data.get("color")),
            text=as_str(data.get("text")),
            note=as_str(data.get("note")),
            range=RangeSnapshot.from_dict(raw_range)
            if isinstance(raw_range, dict)
            else None,
            url=as_str(data.get("url")),
            created_at=as_int(data.get("createdAt")),
            tags=[str(tag) for tag in tags] if isinstance(tags, list) else None,
        )
