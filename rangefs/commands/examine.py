"""Commands for inspecting and validating archives."""

from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import Any

import click
import structlog
from rich.table import Table

from rangefs.commands._context import get_context_objects, output_json
from rangefs.core.metadata import get_extension
from rangefs.core.types import EntryFlags
from rangefs.core.utils import format_size
from rangefs.formats.index import ArchiveIndex, ArchiveTrailer, check_layout, read_archive_file

logger = structlog.get_logger()


def _flag_names(flags: int) -> str:
    names = []
    if flags & EntryFlags.GZIP:
        names.append("gzip")
    if flags & EntryFlags.BROTLI:
        names.append("brotli")
    return ",".join(names) if names else "raw"


def _load(archive: Path) -> tuple[ArchiveTrailer, ArchiveIndex, int]:
    try:
        return read_archive_file(archive)
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Failed to read archive {archive}: {e}") from e


def get_statistics(index: ArchiveIndex) -> dict[str, Any]:
    """Get statistics about an archive index.

    Args:
        index: Parsed archive index

    Returns:
        Statistics dictionary
    """
    lengths = [entry.length for entry in index.entries]
    by_flags = Counter(_flag_names(entry.flags) for entry in index.entries)
    by_extension = Counter(get_extension(entry.path) or "(none)" for entry in index.entries)

    return {
        "total_entries": len(index.entries),
        "payload_size": sum(lengths),
        "min_entry_size": min(lengths) if lengths else 0,
        "max_entry_size": max(lengths) if lengths else 0,
        "avg_entry_size": sum(lengths) / len(lengths) if lengths else 0,
        "compression": dict(by_flags),
        "extensions": dict(by_extension.most_common(10)),
    }


@click.command()
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--show-entries", "-e", default=20, help="Number of entries to display (0 for none, -1 for all)")
@click.pass_context
def examine(ctx: click.Context, archive: Path, show_entries: int) -> None:
    """Examine an archive's trailer and index."""
    config, console, verbose = get_context_objects(ctx)
    trailer, index, size = _load(archive)
    stats = get_statistics(index)
    shown = index.entries if show_entries < 0 else index.entries[:show_entries]

    if config.output_format == "json":
        output_json({
            "archive": str(archive),
            "size": size,
            "trailer": trailer.model_dump(),
            "statistics": stats,
            "entries": [entry.model_dump() for entry in shown],
        })
        return

    if config.output_format == "plain":
        click.echo(f"File: {archive.name}")
        click.echo(f"Size: {size:,} bytes")
        click.echo(f"Index: {trailer.index_length:,} bytes at offset {trailer.index_offset:,}")
        click.echo(f"Entries: {stats['total_entries']:,}")
        for entry in shown:
            click.echo(f"  0x{entry.offset:08x} {entry.length:>10,} {_flag_names(entry.flags):>6} {entry.path}")
        return

    table = Table(title=f"Archive {archive.name}")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Size", format_size(size))
    table.add_row("Index Offset", f"{trailer.index_offset:,}")
    table.add_row("Index Length", f"{trailer.index_length:,}")
    table.add_row("Entries", f"{stats['total_entries']:,}")
    table.add_row("Payload Size", format_size(stats["payload_size"]))
    if stats["total_entries"]:
        table.add_row("Entry Size Range", f"{stats['min_entry_size']:,} - {stats['max_entry_size']:,} bytes")
        table.add_row("Average Entry Size", f"{stats['avg_entry_size']:.0f} bytes")
    table.add_row("Compression", ", ".join(f"{k}: {v}" for k, v in stats["compression"].items()) or "-")
    console.print(table)

    if shown:
        entries_table = Table(title=f"Entries ({len(shown)} of {len(index.entries)})")
        entries_table.add_column("Path", style="cyan")
        entries_table.add_column("Offset", justify="right")
        entries_table.add_column("Length", justify="right")
        entries_table.add_column("Flags")
        for entry in shown:
            entries_table.add_row(entry.path, f"0x{entry.offset:08x}", f"{entry.length:,}", _flag_names(entry.flags))
        console.print(entries_table)

    if verbose:
        console.print(f"Extensions: {stats['extensions']}")


@click.command()
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def validate(ctx: click.Context, archive: Path) -> None:
    """Validate an archive's layout (contiguity and trailer anchoring)."""
    config, _, _ = get_context_objects(ctx)
    trailer, index, size = _load(archive)
    problems = check_layout(trailer, index, size)

    if config.output_format == "json":
        output_json({"archive": str(archive), "valid": not problems, "problems": problems})
    elif problems:
        for problem in problems:
            click.echo(f"  {problem}")
    else:
        click.echo(f"{archive.name}: valid ({len(index.entries)} entries)")

    if problems:
        logger.warning("archive_invalid", archive=str(archive), problems=len(problems))
        raise click.ClickException(f"{archive.name}: {len(problems)} layout problem(s)")
