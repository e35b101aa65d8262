"""Bulk export and import of stored highlights.

Export writes every page with its entries::

    {"type": "highlight-keeper-bulk", "version": 1, "exportedAt": <ms>,
     "pages": [{"url": ..., "title": ..., "entries": [...]}]}

Import accepts that shape, a bare array of entries, an object with an
``entries`` array, or a single entry object.  Every entry is normalised
and given a fresh id; entries that cannot be restored are skipped and
counted.  Pages that already hold highlights are never overwritten.
"""

from __future__ import annotations

import json
import logging
import math
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from highlightkeeper.anchoring.models import Anchor, as_int, as_str, now_ms
from highlightkeeper.errors import (
    InvalidImportPayload,
    MalformedImportEntry,
    StorageUnavailable,
)
from highlightkeeper.storage.colors import normalize_color, normalize_tags

if TYPE_CHECKING:
    from collections.abc import Iterable

    from highlightkeeper.storage.store import BaseStore

logger = logging.getLogger(__name__)

BULK_TYPE = "highlight-keeper-bulk"
BULK_VERSION = 1


@dataclass
class ImportResult:
    """Aggregate outcome of a bulk import."""

    imported_pages: int = 0
    imported_entries: int = 0
    skipped_entries: int = 0
    skipped_pages: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def export_payload(store: BaseStore, *, exported_at: int | None = None) -> dict:
    """Bulk export document for every page in *store*."""
    return {
        "type": BULK_TYPE,
        "version": BULK_VERSION,
        "exportedAt": now_ms() if exported_at is None else exported_at,
        "pages": [
            {
                "url": url,
                "title": store.page_title(url),
                "entries": store.raw_entries(url),
            }
            for url in store.pages()
        ],
    }


def write_export(store: BaseStore, path: Path | str) -> int:
    """Write the bulk export to *path*; return the number of pages written.

    Raises:
        StorageUnavailable: *path* cannot be written.
    """
    payload = export_payload(store)
    try:
        Path(path).write_text(
            json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8"
        )
    except OSError as exc:
        msg = f"Cannot write export {path}: {exc}"
        raise StorageUnavailable(msg) from exc
    logger.info("Exported %d page(s) to %s", len(payload["pages"]), path)
    return len(payload["pages"])


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


def parse_import_payload(raw: str | Any) -> list[Any]:
    """Flatten any accepted import shape into a list of raw entries.

    Entries inside a bulk ``pages`` list inherit the page's ``url`` and
    ``title`` when they do not carry their own.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            msg = f"Import file is not valid JSON: {exc}"
            raise InvalidImportPayload(msg) from exc

    if isinstance(raw, list):
        return raw
    if not isinstance(raw, dict):
        return []
    if isinstance(raw.get("pages"), list):
        flattened: list[Any] = []
        for page in raw["pages"]:
            if not isinstance(page, dict) or not isinstance(page.get("entries"), list):
                continue
            for entry in page["entries"]:
                if isinstance(entry, dict):
                    entry = {
                        "url": page.get("url"),
                        "title": page.get("title"),
                        **{k: v for k, v in entry.items() if v is not None},
                    }
                flattened.append(entry)
        return flattened
    if isinstance(raw.get("entries"), list):
        return raw["entries"]
    return [raw]


def _import_id(index: int) -> str:
    return f"hk-import-{now_ms()}-{random.randrange(100000)}-{index}"


def normalize_import_entry(entry: Any, index: int) -> dict[str, Any]:
    """Normalise one imported entry into the stored entry shape.

    The result may carry a ``title`` key for the page; it is not part of
    the stored entry.

    Raises:
        MalformedImportEntry: the entry has no url, or neither an XPath
            pair nor a well-formed ``anchors`` object.
    """
    if not isinstance(entry, dict):
        raise MalformedImportEntry(index, "entry is not an object")

    url = entry.get("url") if isinstance(entry.get("url"), str) else None
    if not url and isinstance(entry.get("pageUrl"), str):
        url = entry["pageUrl"]
    if not url:
        raise MalformedImportEntry(index, "missing url")

    raw_range = entry.get("range")
    if not isinstance(raw_range, dict):
        raise MalformedImportEntry(index, "missing range")
    has_paths = isinstance(raw_range.get("startXPath"), str) and isinstance(
        raw_range.get("endXPath"), str
    )
    anchors = Anchor.parse(raw_range.get("anchors"))
    if not has_paths and anchors is None:
        raise MalformedImportEntry(index, "range has neither paths nor anchors")

    text = entry.get("text") if isinstance(entry.get("text"), str) else None
    raw_text = raw_range.get("text")
    range_text = raw_text if isinstance(raw_text, str) else None
    normalized_range: dict[str, Any] = {
        "startXPath": as_str(raw_range.get("startXPath")),
        "startOffset": as_int(raw_range.get("startOffset")),
        "endXPath": as_str(raw_range.get("endXPath")),
        "endOffset": as_int(raw_range.get("endOffset")),
        "text": range_text if range_text is not None else (text or ""),
    }
    if anchors is not None:
        normalized_range["anchors"] = anchors.to_dict()

    created_at = entry.get("createdAt")
    if isinstance(created_at, bool) or not (
        isinstance(created_at, (int, float)) and math.isfinite(created_at)
    ):
        created_at = now_ms()

    normalized: dict[str, Any] = {
        "id": _import_id(index),
        "color": normalize_color(entry.get("color")),
        "text": text if text is not None else (range_text or ""),
        "note": as_str(entry.get("note")),
        "range": normalized_range,
        "url": url,
        "createdAt": created_at,
        "tags": normalize_tags(entry.get("tags", "")),
    }
    title = entry.get("title")
    if isinstance(title, str) and title.strip():
        normalized["title"] = title.strip()
    return normalized


def import_entries(store: BaseStore, raw_entries: Iterable[Any]) -> ImportResult:
    """Normalise *raw_entries* and store them page by page.

    A page that already has highlights is skipped whole so an import
    never duplicates or reorders existing marks.
    """
    result = ImportResult()
    grouped: dict[str, list[dict[str, Any]]] = {}
    for index, raw in enumerate(raw_entries):
        try:
            normalized = normalize_import_entry(raw, index)
        except MalformedImportEntry as exc:
            logger.debug("Skipping import entry: %s", exc)
            result.skipped_entries += 1
            result.errors.append(str(exc))
            continue
        grouped.setdefault(normalized["url"], []).append(normalized)

    for url, entries in grouped.items():
        if store.has_entries(url):
            result.skipped_pages.append(url)
            continue
        title = next((entry["title"] for entry in entries if "title" in entry), None)
        store.set_page_entries(
            url, [{k: v for k, v in entry.items() if k != "title"} for entry in entries]
        )
        if title:
            store.set_page_title(url, title)
        result.imported_pages += 1
        result.imported_entries += len(entries)

    logger.info(
        "Imported %d page(s), %d entr(ies); skipped %d entr(ies), %d page(s)",
        result.imported_pages,
        result.imported_entries,
        result.skipped_entries,
        len(result.skipped_pages),
    )
    return result


def import_files(store: BaseStore, paths: Iterable[Path | str]) -> ImportResult:
    """Import several files as one batch (entry indexes run across files)."""
    flattened: list[Any] = []
    for path in paths:
        try:
            content = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            msg = f"Cannot read import file {path}: {exc}"
            raise InvalidImportPayload(msg) from exc
        flattened.extend(parse_import_payload(content))
    return import_entries(store, flattened)
