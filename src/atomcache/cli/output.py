"""
Rich terminal output helpers for CLI.

Provides functions for printing store listings, atoms and statistics
using the Rich library.
"""

from datetime import datetime
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from atomcache.core.models import Atom, Resolution, Source

# Console instance for all output
console = Console()

# Bytes shown by `show` before the content is cut
PREVIEW_BYTES = 4096


def format_size(size: int) -> str:
    """Format a byte count for humans."""
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def format_timestamp(timestamp: datetime | None) -> str:
    """Format a timestamp, or a dash when there is none."""
    if timestamp is None:
        return "-"
    return timestamp.strftime("%Y-%m-%d %H:%M:%S %Z")


def get_source_style(source: Source) -> str:
    """Get Rich style string for the origin of a value."""
    styles = {
        Source.MEMORY: "cyan",
        Source.STORE: "green",
        Source.NETWORK: "yellow",
    }
    return styles.get(source, "white")


def print_keys_table(
    index: int,
    timestamps: dict[str, datetime],
    sizes: dict[str, int],
) -> None:
    """Print the atoms of a store, newest first.

    Args:
        index: Store index, used in the title.
        timestamps: Last update per key.
        sizes: Content size per key.
    """
    table = Table(
        title=f"Store {index}",
        box=box.ROUNDED,
        show_header=True,
        header_style="bold cyan",
    )

    table.add_column("Key", style="cyan", overflow="fold")
    table.add_column("Size", justify="right")
    table.add_column("Last update", style="dim")

    for key in sorted(timestamps, key=lambda k: timestamps[k], reverse=True):
        table.add_row(key, format_size(sizes.get(key, 0)), format_timestamp(timestamps[key]))

    console.print(table)


def print_atom(key: str, atom: Atom) -> None:
    """Print the metadata and a text preview of an atom."""
    lines = [
        f"[bold]Key:[/] {key}",
        f"[bold]Last update:[/] {format_timestamp(atom.timestamp)}",
        f"[bold]Size:[/] {format_size(atom.size)}",
    ]
    if atom.context:
        lines.append(f"[bold]Context:[/] {atom.context}")
    console.print(Panel("\n".join(lines), title="Atom", box=box.ROUNDED, expand=False))

    preview = atom.content[:PREVIEW_BYTES].decode("utf-8", errors="replace")
    console.print(preview, markup=False, highlight=False)
    if atom.size > PREVIEW_BYTES:
        print_info(f"Showing the first {PREVIEW_BYTES} of {atom.size} bytes.")


def print_stats(stats: dict[str, Any]) -> None:
    """Print the statistics of a store."""
    table = Table(box=box.ROUNDED, show_header=False)
    table.add_column("Field", style="bold cyan")
    table.add_column("Value")

    table.add_row("Index", str(stats["index"]))
    table.add_row("Backend", stats["backend"])
    table.add_row("Location", stats["location"])
    table.add_row("Entries", str(stats["entries"]))
    table.add_row("Total size", format_size(stats["total_bytes"]))
    table.add_row("Oldest", format_timestamp(stats["oldest"]))
    table.add_row("Newest", format_timestamp(stats["newest"]))

    console.print(table)


def print_resolution(resolution: Resolution) -> None:
    """Print where a fetched value came from."""
    style = get_source_style(resolution.source)
    console.print(
        f"[{style}]{resolution.source}[/] {format_size(resolution.atom.size)}, "
        f"updated {format_timestamp(resolution.atom.timestamp)}",
        highlight=False,
    )


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[bold yellow]Warning:[/] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[cyan]Info:[/] {message}")
