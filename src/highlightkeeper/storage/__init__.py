"""Highlight persistence, bulk transfer and value normalisation."""

from highlightkeeper.storage.colors import (
    normalize_color,
    normalize_palette,
    normalize_tags,
)
from highlightkeeper.storage.pages import PageSummary, page_summaries
from highlightkeeper.storage.store import (
    BaseStore,
    HighlightStore,
    JsonFileStore,
    MemoryStore,
)
from highlightkeeper.storage.transfer import (
    ImportResult,
    export_payload,
    import_entries,
    import_files,
    write_export,
)

__all__ = [
    "BaseStore",
    "HighlightStore",
    "ImportResult",
    "JsonFileStore",
    "MemoryStore",
    "PageSummary",
    "export_payload",
    "import_entries",
    "import_files",
    "normalize_color",
    "normalize_palette",
    "normalize_tags",
    "page_summaries",
    "write_export",
]
