from __future__ import annotations

import argparse
import asyncio
from datetime import datetime
from pathlib import Path
from typing import Optional

import uvicorn
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from .api import create_app
from .browse import BrowseService, FolderListing
from .config import Settings
from .errors import ApuntesError, ConfigError, InvalidPrefix
from .log import configure_logging
from .models import CountResult

EXIT_OK = 0
EXIT_STORE_ERROR = 1
EXIT_USAGE = 2


def format_size(size: int) -> str:
    units = ["B", "KB", "MB", "GB", "TB", "PB"]
    value = float(size)
    for unit in units:
        if value < 1024 or unit == units[-1]:
            if unit == "B":
                return f"{int(value)} {unit}"
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} PB"


def format_time(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return value.strftime("%Y-%m-%d %H:%M")


def count_cell(result: Optional[CountResult]) -> Text:
    if result is None:
        return Text("")
    if not result.ok:
        return Text("unavailable", style="red")
    return Text(str(result.total_files))


def render_listing(listing: FolderListing, console: Console) -> None:
    title = listing.prefix or "/"
    table = Table(title=title, title_justify="left")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Size", justify="right")
    table.add_column("Modified")
    if listing.counts:
        table.add_column("Files", justify="right")
    for entry in listing.entries:
        name = Text(
            f"{entry.display_name}/" if entry.is_folder else entry.display_name,
            style="bold blue" if entry.is_folder else "",
        )
        row = [
            name,
            "dir" if entry.is_folder else entry.mime_type,
            "" if entry.size is None else format_size(entry.size),
            format_time(entry.last_modified),
        ]
        if listing.counts:
            row.append(count_cell(listing.counts.get(entry.key)))
        table.add_row(*row)
    console.print(table)
    if listing.partial:
        console.print("[yellow]Some folder counts are unavailable.[/yellow]")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="apuntes", description="Browse study notes stored in an object bucket"
    )
    parser.add_argument("--env-file", type=Path, help="Load settings from this .env file")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=3001)
    serve.add_argument("--reload", action="store_true")

    for name, help_text in (
        ("list", "List folders and files directly under a prefix"),
        ("count", "Count every file below a prefix"),
        ("counts", "List a prefix with recursive counts for each folder"),
    ):
        command = subparsers.add_parser(name, help=help_text)
        command.add_argument("prefix", nargs="?", default="")
    return parser


def _run_serve(settings: Settings, host: str, port: int, reload: bool) -> int:
    if reload:
        uvicorn.run(
            "apuntes.api:create_app",
            factory=True,
            host=host,
            port=port,
            reload=True,
            log_config=None,
        )
        return EXIT_OK
    uvicorn.run(create_app(settings), host=host, port=port, log_config=None)
    return EXIT_OK


async def _run_query(service: BrowseService, command: str, prefix: str, console: Console) -> int:
    if command == "count":
        result = await service.count(prefix)
        console.print(f"{result.prefix or '/'}: {result.total_files} files")
        return EXIT_OK
    if command == "counts":
        listing = await service.browse(prefix)
    else:
        listing = await service.list(prefix)
    render_listing(listing, console)
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = Settings.from_env(env_file=args.env_file)
    configure_logging(
        (args.log_level or settings.log_level).upper(),
        rich_output=args.command != "serve",
    )
    console = Console()
    try:
        if args.command == "serve":
            return _run_serve(settings, args.host, args.port, args.reload)
        service = BrowseService.from_settings(settings)
        return asyncio.run(_run_query(service, args.command, args.prefix, console))
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {escape(str(exc))}")
        return EXIT_USAGE
    except InvalidPrefix as exc:
        console.print(f"[red]Invalid prefix:[/red] {escape(str(exc))}")
        return EXIT_USAGE
    except ApuntesError as exc:
        console.print(f"[red]{exc.kind.value}:[/red] {escape(str(exc))}")
        return EXIT_STORE_ERROR
