"""Build command: pack a directory tree into an archive."""

from __future__ import annotations

from pathlib import Path

import click
import structlog
from rich.table import Table

from rangefs.commands._context import get_context_objects, output_json
from rangefs.core.errors import ArchiveError
from rangefs.core.types import Compression
from rangefs.core.utils import compression_ratio, format_size
from rangefs.formats.builder import ArchiveBuilder

logger = structlog.get_logger()


@click.command()
@click.argument("input_dir", type=click.Path(path_type=Path))
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path))
@click.option(
    "--compress",
    "-z",
    type=click.Choice([c.value for c in Compression], case_sensitive=False),
    default=None,
    help="Compress every entry (defaults to the configured compression)",
)
@click.pass_context
def build(ctx: click.Context, input_dir: Path, output: Path, compress: str | None) -> None:
    """Pack INPUT_DIR into the archive OUTPUT."""
    config, console, verbose = get_context_objects(ctx)
    compression = Compression(compress.lower()) if compress else config.compression

    try:
        result = ArchiveBuilder(compression).build(input_dir, output)
    except ArchiveError as e:
        raise click.ClickException(str(e)) from e

    if config.output_format == "json":
        output_json({
            "output": str(result.output_path),
            "entries": len(result.entries),
            "compression": compression.value,
            "input_size": result.input_size,
            "archive_size": result.archive_size,
            "ratio": round(compression_ratio(result.payload_size, result.input_size), 4),
            "index_offset": result.index_offset,
            "index_length": result.index_length,
        })
        return

    if config.output_format == "plain":
        click.echo(f"Built {result.output_path} from {input_dir} ({len(result.entries)} entries, "
                   f"{result.archive_size} bytes)")
        return

    table = Table(title="Archive Built")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Output", str(result.output_path))
    table.add_row("Entries", f"{len(result.entries):,}")
    table.add_row("Compression", compression.value)
    table.add_row("Input Size", format_size(result.input_size))
    table.add_row("Archive Size", format_size(result.archive_size))
    table.add_row("Ratio", f"{compression_ratio(result.payload_size, result.input_size):.1%}")
    table.add_row("Index", f"{result.index_length:,} bytes at offset {result.index_offset:,}")
    console.print(table)

    if verbose:
        for entry in result.entries:
            console.print(f"  {entry.path} ({entry.length:,} bytes)")
