"""Command-line interface for highlight-keeper.

Usage:
    highlightkeeper mark page.html --url URL --text "a test paragraph"
    highlightkeeper restore page.html --url URL -o marked.html
    highlightkeeper export all.json
    highlightkeeper import a.json b.json
    highlightkeeper pages --search torts
    highlightkeeper palette
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from highlightkeeper.anchoring.dom import parse_document
from highlightkeeper.anchoring.scheduler import RestorationScheduler
from highlightkeeper.config import get_settings
from highlightkeeper.errors import HighlightKeeperError
from highlightkeeper.session import commit_highlight, range_for_text
from highlightkeeper.storage.colors import normalize_palette
from highlightkeeper.storage.pages import page_summaries
from highlightkeeper.storage.store import JsonFileStore
from highlightkeeper.storage.transfer import import_files, write_export

console = Console()


def _read_page(path: Path):
    try:
        return parse_document(path.read_text(encoding="utf-8"))
    except OSError as exc:
        console.print(f"[red]Error:[/] cannot read {path}: {exc}")
        sys.exit(1)


def _write_page(document, output: Path | None) -> None:
    if output is None:
        return
    try:
        output.write_text(str(document), encoding="utf-8")
    except OSError as exc:
        console.print(f"[red]Error:[/] cannot write {output}: {exc}")
        sys.exit(1)
    console.print(f"Wrote [bold]{output}[/]")


def _pick_color(value: str | None) -> str:
    """Resolve ``--color``: a palette position (1-based) or a CSS colour."""
    app = get_settings().app
    if value is None:
        return app.default_color
    if value.isdigit():
        palette = normalize_palette(app.palette)
        position = int(value)
        if not 1 <= position <= len(palette):
            console.print(
                f"[red]Error:[/] palette has {len(palette)} colours, not {position}"
            )
            sys.exit(1)
        return palette[position - 1]
    return value


def _cmd_mark(args: argparse.Namespace, store: JsonFileStore) -> None:
    document = _read_page(args.page)
    rng = range_for_text(document, args.text, args.occurrence)
    if rng is None:
        console.print(
            f"[red]Error:[/] occurrence {args.occurrence} of {args.text!r} not found"
        )
        sys.exit(1)
    color = _pick_color(args.color)
    entry = commit_highlight(document, rng, args.url, store, color=color)
    console.print(f"[green]Marked[/] {entry.text!r} as [bold]{entry.id}[/]")
    _write_page(document, args.output)


def _cmd_restore(args: argparse.Namespace, store: JsonFileStore) -> None:
    document = _read_page(args.page)
    scheduler = RestorationScheduler(
        document,
        lambda: store.list_entries(args.url),
        store,
        max_attempts=args.attempts,
    )
    result = asyncio.run(scheduler.run())

    colour = "green" if result.converged else "yellow"
    console.print(
        f"[{colour}]{result.visible_count}/{result.total_count}[/] highlight(s) "
        f"visible after {scheduler.attempts} pass(es)"
    )
    if result.healed:
        console.print(f"  Healed:     {', '.join(result.healed)}")
    if result.unresolved:
        console.print(f"  Unresolved: {', '.join(result.unresolved)}")
    _write_page(document, args.output)


def _cmd_export(args: argparse.Namespace, store: JsonFileStore) -> None:
    pages = write_export(store, args.output)
    console.print(f"Exported [bold]{pages}[/] page(s) to {args.output}")


def _cmd_import(args: argparse.Namespace, store: JsonFileStore) -> None:
    result = import_files(store, args.files)
    console.print(
        f"Imported [bold]{result.imported_pages}[/] page(s) "
        f"({result.imported_entries} highlight(s))"
    )
    if result.skipped_entries:
        console.print(f"  [yellow]Skipped entries:[/] {result.skipped_entries}")
    if result.skipped_pages:
        console.print(
            f"  [yellow]Skipped pages (already have highlights):[/] "
            f"{len(result.skipped_pages)}"
        )


def _cmd_pages(args: argparse.Namespace, store: JsonFileStore) -> None:
    summaries = page_summaries(store, args.search or "")
    if not summaries:
        console.print("[dim]No pages match.[/]")
        return
    table = Table(title="Pages")
    table.add_column("Title")
    table.add_column("URL")
    table.add_column("Highlights", justify="right")
    for page in summaries:
        table.add_row(page.title, page.url, str(page.total))
    console.print(table)


def _cmd_palette(args: argparse.Namespace, store: JsonFileStore) -> None:
    table = Table(title="Palette")
    table.add_column("#", justify="right")
    table.add_column("Colour")
    table.add_column("Swatch")
    for position, color in enumerate(normalize_palette(get_settings().app.palette), 1):
        table.add_row(str(position), color, f"[on {color}]      [/]")
    console.print(table)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="highlightkeeper",
        description="Anchor, restore and transfer text highlights on HTML pages.",
    )
    parser.add_argument(
        "--store",
        type=Path,
        default=None,
        help="Highlight store JSON file (default: STORAGE__PATH setting).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    mark = sub.add_parser("mark", help="Highlight text on a saved page.")
    mark.add_argument("page", type=Path)
    mark.add_argument("--url", required=True, help="Page URL the highlight belongs to.")
    mark.add_argument("--text", required=True, help="Text to highlight.")
    mark.add_argument("--occurrence", type=int, default=1)
    mark.add_argument(
        "--color", default=None, help="CSS colour or palette position (see palette)."
    )
    mark.add_argument("-o", "--output", type=Path, default=None)
    mark.set_defaults(handler=_cmd_mark)

    restore = sub.add_parser("restore", help="Re-apply stored highlights to a page.")
    restore.add_argument("page", type=Path)
    restore.add_argument("--url", required=True)
    restore.add_argument("--attempts", type=int, default=None)
    restore.add_argument("-o", "--output", type=Path, default=None)
    restore.set_defaults(handler=_cmd_restore)

    export = sub.add_parser("export", help="Write every stored highlight to a file.")
    export.add_argument("output", type=Path)
    export.set_defaults(handler=_cmd_export)

    importer = sub.add_parser("import", help="Import highlights from export files.")
    importer.add_argument("files", type=Path, nargs="+")
    importer.set_defaults(handler=_cmd_import)

    pages = sub.add_parser("pages", help="List pages with highlights.")
    pages.add_argument("--search", default=None)
    pages.set_defaults(handler=_cmd_pages)

    palette = sub.add_parser("palette", help="List the configured highlight colours.")
    palette.set_defaults(handler=_cmd_palette)
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    from highlightkeeper import _setup_logging

    args = _build_parser().parse_args(argv)
    settings = get_settings()
    _setup_logging(settings.app.log_dir)

    store = JsonFileStore(args.store or settings.storage.path)
    try:
        args.handler(args, store)
    except HighlightKeeperError as exc:
        console.print(f"[red]Error:[/] {exc}")
        sys.exit(1)
