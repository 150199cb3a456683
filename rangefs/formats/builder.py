"""Archive builder: packs a directory tree into a single seekable blob."""

from __future__ import annotations

import gzip
import os
import stat
import tempfile
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

import brotli
import structlog
from pydantic import BaseModel, Field

from rangefs.core.errors import (
    ArchiveError,
    InputDirMissing,
    OutputWriteFailure,
)
from rangefs.core.types import COMPRESSION_FLAGS, Compression
from rangefs.formats.index import (
    TRAILER_SIZE,
    ArchiveEntry,
    ArchiveIndex,
    ArchiveTrailer,
    IndexParser,
    TrailerParser,
)

logger = structlog.get_logger()

BROTLI_QUALITY = 11


class BuildResult(BaseModel):
    """Summary of a finished archive build."""

    output_path: Path = Field(description="Path of the written archive")
    entries: list[ArchiveEntry] = Field(description="Entries in archive order")
    index_offset: int = Field(description="Offset of the index block")
    index_length: int = Field(description="Length of the index block")
    archive_size: int = Field(description="Total archive size in bytes")
    input_size: int = Field(description="Sum of uncompressed input file sizes")

    @property
    def payload_size(self) -> int:
        return self.index_offset


def walk_files(input_dir: Path) -> Iterator[tuple[str, Path]]:
    """Yield (archive path, file path) for every regular file under input_dir.

    Children of each directory are visited in name order and directories
    are descended where they sort, so the order is stable across runs.
    """

    def _walk(current: Path, prefix: str) -> Iterator[tuple[str, Path]]:
        for child in sorted(current.iterdir(), key=lambda p: p.name):
            rel = f"{prefix}{child.name}"
            if child.is_dir():
                yield from _walk(child, f"{rel}/")
            elif child.is_file():
                yield rel, child
            else:
                logger.debug("skip_non_regular_file", path=str(child))

    yield from _walk(input_dir, "")


def _output_mode(output_path: Path) -> int:
    """Permission bits for a new archive: keep an existing file's mode, else follow the umask."""
    try:
        return stat.S_IMODE(output_path.stat().st_mode)
    except FileNotFoundError:
        pass
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def compress_payload(data: bytes, compression: Compression) -> bytes:
    """Compress a whole file's content as one unit.

    Args:
        data: Uncompressed file content
        compression: Compression to apply

    Returns:
        Stored payload bytes
    """
    if compression == Compression.GZIP:
        # Fixed mtime keeps builds reproducible
        return gzip.compress(data, mtime=0)
    if compression == Compression.BROTLI:
        return brotli.compress(data, quality=BROTLI_QUALITY)
    return data


class ArchiveBuilder:
    """Builder for rangefs archives."""

    def __init__(self, compression: Compression = Compression.NONE) -> None:
        """Initialize archive builder.

        Args:
            compression: Compression applied to every entry
        """
        self.compression = Compression(compression)
        self._index_parser = IndexParser()
        self._trailer_parser = TrailerParser()

    def build(self, input_dir: Path | str, output_path: Path | str) -> BuildResult:
        """Pack input_dir into an archive at output_path.

        The archive is written to a temporary file next to output_path and
        renamed into place once complete, so an existing archive is never
        left half-written.

        Args:
            input_dir: Directory to pack
            output_path: Archive file to create or overwrite

        Returns:
            Build summary

        Raises:
            InputDirMissing: If input_dir does not exist or cannot be listed
            OutputWriteFailure: If the archive cannot be written
            IndexEncodeError: If a path cannot be stored in the index
        """
        input_dir = Path(input_dir)
        output_path = Path(output_path)

        if not input_dir.is_dir():
            raise InputDirMissing(f"Input directory does not exist: {input_dir}")

        try:
            files = list(walk_files(input_dir))
        except OSError as e:
            raise InputDirMissing(f"Cannot read input directory {input_dir}: {e}") from e

        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{output_path.name}.", suffix=".tmp", dir=output_path.parent
            )
        except OSError as e:
            raise OutputWriteFailure(f"Cannot open {output_path} for writing: {e}") from e

        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as out:
                result = self._write_archive(files, out, output_path)
            os.chmod(tmp_path, _output_mode(output_path))
            os.replace(tmp_path, output_path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise OutputWriteFailure(f"Cannot write archive {output_path}: {e}") from e
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

        logger.info(
            "archive_built",
            output=str(output_path),
            entries=len(result.entries),
            size=result.archive_size,
            compression=self.compression.value,
        )
        return result

    def _write_archive(
        self, files: list[tuple[str, Path]], out: BinaryIO, output_path: Path
    ) -> BuildResult:
        """Write payloads, index and trailer to an open stream."""
        flags = int(COMPRESSION_FLAGS[self.compression])
        offset = 0
        input_size = 0
        entries: list[ArchiveEntry] = []

        for rel_path, file_path in files:
            try:
                content = file_path.read_bytes()
            except OSError as e:
                raise ArchiveError(f"Cannot read input file {file_path}: {e}") from e

            stored = compress_payload(content, self.compression)
            out.write(stored)

            entries.append(ArchiveEntry(path=rel_path, offset=offset, length=len(stored), flags=flags))
            logger.debug("entry_written", path=rel_path, offset=offset, length=len(stored), flags=flags)
            offset += len(stored)
            input_size += len(content)

        index_data = self._index_parser.build(ArchiveIndex(entries=entries))
        out.write(index_data)
        out.write(self._trailer_parser.build(
            ArchiveTrailer(index_offset=offset, index_length=len(index_data))
        ))

        return BuildResult(
            output_path=output_path,
            entries=entries,
            index_offset=offset,
            index_length=len(index_data),
            archive_size=offset + len(index_data) + TRAILER_SIZE,
            input_size=input_size,
        )


def build_archive(
    input_dir: Path | str,
    output_path: Path | str,
    compression: Compression | str = Compression.NONE,
) -> BuildResult:
    """Pack a directory into an archive.

    Args:
        input_dir: Directory to pack
        output_path: Archive file to create or overwrite
        compression: Compression applied to every entry

    Returns:
        Build summary
    """
    return ArchiveBuilder(Compression(compression)).build(input_dir, output_path)

