"""Per-page summaries for listing and searching stored highlights."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

from highlightkeeper.anchoring.models import as_int

if TYPE_CHECKING:
    from highlightkeeper.storage.store import BaseStore


def page_display_name(url: str) -> str:
    """``host/path`` for http(s) URLs, the URL itself otherwise."""
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        return url
    path = parts.path.rstrip("/") if parts.path not in ("", "/") else "/"
    return f"{parts.hostname}{path}"


@dataclass
class PageSummary:
    url: str
    title: str
    total: int
    updated_at: int
    entries: list[dict[str, Any]] = field(default_factory=list)

    def matches(self, term: str) -> bool:
        """Case-insensitive search over title, url, text, notes and tags."""
        needle = term.strip().lower()
        if not needle:
            return True
        haystacks: list[str] = [self.title, self.url]
        for entry in self.entries:
            haystacks.append(str(entry.get("text") or ""))
            haystacks.append(str(entry.get("note") or ""))
            tags = entry.get("tags")
            if isinstance(tags, list):
                haystacks.extend(str(tag) for tag in tags)
        return any(needle in value.lower() for value in haystacks if value)


def page_summaries(store: BaseStore, search: str = "") -> list[PageSummary]:
    """Pages with highlights, most recently updated first."""
    summaries = []
    for url in store.pages():
        entries = store.raw_entries(url)
        summaries.append(
            PageSummary(
                url=url,
                title=store.page_title(url) or page_display_name(url),
                total=len(entries),
                updated_at=max(
                    (as_int(entry.get("createdAt")) for entry in entries), default=0
                ),
                entries=entries,
            )
        )
    summaries.sort(key=lambda page: page.updated_at, reverse=True)
    return [page for page in summaries if page.matches(search)]
