"""Get command: serve a single path from an archive through the reader."""

from __future__ import annotations

import asyncio
from pathlib import Path

import click
import httpx
import structlog
from rich.table import Table

from rangefs.commands._context import get_context_objects, output_json
from rangefs.core.config import HttpStoreConfig, ReaderConfig
from rangefs.core.reader import ArchiveReader, Request, Response
from rangefs.core.stores import FileBlobStore, HttpBlobStore, MemoryConfigStore

logger = structlog.get_logger()


def serve_local(
    archive: Path,
    request: Request,
    reader_config: ReaderConfig | None = None,
) -> Response:
    """Run one request against an archive file on disk.

    The archive's directory acts as the blob store and its file name as the
    configured archive identity.
    """
    reader_config = reader_config or ReaderConfig()
    reader = ArchiveReader(
        FileBlobStore(archive.parent),
        MemoryConfigStore({reader_config.archive_key: archive.name}),
        config=reader_config,
    )
    return asyncio.run(reader.handle(request))


def serve_remote(
    base_url: str,
    name: str,
    request: Request,
    reader_config: ReaderConfig | None = None,
    http_config: HttpStoreConfig | None = None,
    client: httpx.AsyncClient | None = None,
) -> Response:
    """Run one request against an archive published under base_url.

    Only the trailer, index and the requested entry are fetched, each with
    an HTTP Range request.
    """
    reader_config = reader_config or ReaderConfig()

    async def _run() -> Response:
        async with HttpBlobStore(base_url, http_config, client=client) as store:
            reader = ArchiveReader(
                store,
                MemoryConfigStore({reader_config.archive_key: name}),
                config=reader_config,
            )
            return await reader.handle(request)

    return asyncio.run(_run())


@click.command()
@click.argument("archive")
@click.argument("path", default="/")
@click.option("--base-url", "-u", default=None, help="Read ARCHIVE by name from this URL prefix instead of disk")
@click.option("--head", "-I", is_flag=True, help="Send a HEAD request")
@click.option("--method", "-X", default="GET", help="Request method")
@click.option("--if-none-match", "if_none_match", default=None, help="ETag for a conditional request")
@click.option("--accept-encoding", default=None, help="Accept-Encoding request header")
@click.option(
    "--output-file", "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the response body to a file",
)
@click.option("--body", "-b", "show_body", is_flag=True, help="Write the raw response body to stdout")
@click.pass_context
def get(
    ctx: click.Context,
    archive: str,
    path: str,
    base_url: str | None,
    head: bool,
    method: str,
    if_none_match: str | None,
    accept_encoding: str | None,
    output_file: Path | None,
    show_body: bool,
) -> None:
    """Resolve PATH in ARCHIVE and show the response the reader produces.

    ARCHIVE is a local file, or an object name when --base-url is given.
    """
    config, console, _ = get_context_objects(ctx)

    headers: dict[str, str] = {}
    if if_none_match:
        headers["If-None-Match"] = if_none_match
    if accept_encoding:
        headers["Accept-Encoding"] = accept_encoding

    request = Request(method="HEAD" if head else method, path=path, headers=headers)
    if base_url:
        response = serve_remote(base_url, archive, request, config.reader, config.http)
    else:
        archive_path = Path(archive)
        if not archive_path.is_file():
            raise click.BadParameter(f"File '{archive}' does not exist.", param_hint="'ARCHIVE'")
        response = serve_local(archive_path.resolve(), request, config.reader)

    if output_file is not None:
        output_file.write_bytes(response.body)
        logger.debug("body_written", path=str(output_file), size=len(response.body))

    if show_body:
        click.get_binary_stream("stdout").write(response.body)
    elif config.output_format == "json":
        output_json({
            "status": response.status,
            "headers": dict(response.headers.items()),
            "body_size": len(response.body),
        })
    elif config.output_format == "plain":
        click.echo(f"{response.status}")
        for key, value in response.headers.items():
            click.echo(f"{key}: {value}")
    else:
        table = Table(title=f"{request.method} {request.path} -> {response.status}")
        table.add_column("Header", style="cyan")
        table.add_column("Value", style="white")
        for key, value in response.headers.items():
            table.add_row(key, value)
        console.print(table)

    if response.status >= 400:
        ctx.exit(1)
