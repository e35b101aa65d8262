"""Persistence of highlight entries, keyed by page URL.

Stored shape (one JSON document)::

    {
      "pages": {"<url>": [<HighlightEntry dict>, ...]},
      "meta":  {"<url>": {"title": "<page title>"}}
    }

Entries are kept as the dicts they were saved as, so fields this
package does not model survive a load/save cycle untouched.  Writes are
upserts keyed by highlight id, which keeps repeated restoration passes
and retried commits idempotent.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from highlightkeeper.anchoring.models import HighlightEntry
from highlightkeeper.errors import StorageUnavailable

if TYPE_CHECKING:
    from highlightkeeper.anchoring.models import RangeSnapshot

logger = logging.getLogger(__name__)

# HighlightEntry attribute -> stored JSON key for partial updates
_UPDATABLE_FIELDS = {
    "color": "color",
    "note": "note",
    "text": "text",
    "tags": "tags",
    "created_at": "createdAt",
}


class HighlightStore(Protocol):
    """Interface the engine and session layer use to persist highlights."""

    def list_entries(self, url: str) -> list[HighlightEntry]: ...

    def save_entry(self, entry: HighlightEntry) -> None: ...

    def update_entry(self, url: str, highlight_id: str, **fields: Any) -> bool: ...

    def update_range(
        self, url: str, highlight_id: str, snapshot: RangeSnapshot
    ) -> bool: ...

    def delete_entry(self, url: str, highlight_id: str) -> bool: ...


class BaseStore:
    """Store logic over an in-memory document; subclasses load and save it."""

    def _load(self) -> dict[str, Any]:
        raise NotImplementedError

    def _save(self, data: dict[str, Any]) -> None:
        raise NotImplementedError

    @staticmethod
    def _pages(data: dict[str, Any]) -> dict[str, list[dict[str, Any]]]:
        return data.setdefault("pages", {})

    @staticmethod
    def _meta(data: dict[str, Any]) -> dict[str, dict[str, Any]]:
        return data.setdefault("meta", {})

    # -- reads -------------------------------------------------------------

    def pages(self) -> list[str]:
        """URLs that have at least one stored entry."""
        return [url for url, entries in self._pages(self._load()).items() if entries]

    def has_entries(self, url: str) -> bool:
        return bool(self._pages(self._load()).get(url))

    def raw_entries(self, url: str) -> list[dict[str, Any]]:
        """Entries for *url* exactly as stored."""
        return list(self._pages(self._load()).get(url, []))

    def list_entries(self, url: str) -> list[HighlightEntry]:
        return [
            HighlightEntry.from_dict(item)
            for item in self.raw_entries(url)
            if isinstance(item, dict)
        ]

    def get_entry(self, url: str, highlight_id: str) -> HighlightEntry | None:
        for entry in self.list_entries(url):
            if entry.id == highlight_id:
                return entry
        return None

    def page_title(self, url: str) -> str:
        meta = self._meta(self._load()).get(url) or {}
        title = meta.get("title")
        return title.strip() if isinstance(title, str) else ""

    # -- writes ------------------------------------------------------------

    def save_entry(self, entry: HighlightEntry) -> None:
        """Insert *entry*, or replace the stored entry with the same id."""
        data = self._load()
        entries = self._pages(data).setdefault(entry.url, [])
        payload = entry.to_dict()
        for position, item in enumerate(entries):
            if isinstance(item, dict) and item.get("id") == entry.id:
                entries[position] = {**item, **payload}
                break
        else:
            entries.append(payload)
        self._save(data)

    def _patch(self, url: str, highlight_id: str, patch: dict[str, Any]) -> bool:
        data = self._load()
        for item in self._pages(data).get(url, []):
            if isinstance(item, dict) and item.get("id") == highlight_id:
                item.update(patch)
                self._save(data)
                return True
        return False

    def update_entry(self, url: str, highlight_id: str, **fields: Any) -> bool:
        """Merge the given fields into a stored entry.

        Returns False when no entry with that id exists on the page.
        """
        unknown = set(fields) - set(_UPDATABLE_FIELDS)
        if unknown:
            msg = f"Cannot update fields: {', '.join(sorted(unknown))}"
            raise TypeError(msg)
        patch = {_UPDATABLE_FIELDS[name]: value for name, value in fields.items()}
        return self._patch(url, highlight_id, patch)

    def update_range(
        self, url: str, highlight_id: str, snapshot: RangeSnapshot
    ) -> bool:
        """Replace a stored entry's range with a healed snapshot."""
        return self._patch(url, highlight_id, {"range": snapshot.to_dict()})

    def delete_entry(self, url: str, highlight_id: str) -> bool:
        data = self._load()
        pages = self._pages(data)
        entries = pages.get(url, [])
        remaining = [
            item
            for item in entries
            if not (isinstance(item, dict) and item.get("id") == highlight_id)
        ]
        if len(remaining) == len(entries):
            return False
        if remaining:
            pages[url] = remaining
        else:
            del pages[url]
        self._save(data)
        return True

    def set_page_entries(self, url: str, entries: list[dict[str, Any]]) -> None:
        """Replace every entry stored for *url*."""
        data = self._load()
        self._pages(data)[url] = list(entries)
        self._save(data)

    def set_page_title(self, url: str, title: str) -> None:
        data = self._load()
        self._meta(data).setdefault(url, {})["title"] = title
        self._save(data)


class MemoryStore(BaseStore):
    """Store held in process memory, for tests and one-shot runs."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self.data: dict[str, Any] = data if data is not None else {}

    def _load(self) -> dict[str, Any]:
        return self.data

    def _save(self, data: dict[str, Any]) -> None:
        self.data = data


class JsonFileStore(BaseStore):
    """Store persisted as a single JSON file, rewritten atomically."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as exc:
            msg = f"Cannot read highlight store {self.path}: {exc}"
            raise StorageUnavailable(msg) from exc
        except json.JSONDecodeError as exc:
            msg = f"Highlight store {self.path} is not valid JSON: {exc}"
            raise StorageUnavailable(msg) from exc
        if not isinstance(data, dict):
            msg = f"Highlight store {self.path} does not hold a JSON object"
            raise StorageUnavailable(msg)
        return data

    def _save(self, data: dict[str, Any]) -> None:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(
                json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8"
            )
            os.replace(tmp_path, self.path)
        except OSError as exc:
            msg = f"Cannot write highlight store {self.path}: {exc}"
            raise StorageUnavailable(msg) from exc
        logger.debug("Saved highlight store %s", self.path)
