"""Archive index and trailer codec.

An archive is laid out as::

    [entry_0 payload][entry_1 payload]...[index][trailer]

The index is a little-endian entry count followed by one record per entry
(path length, UTF-8 path, offset, length, flags). The trailer is always the
final 16 bytes of the archive and holds the index offset and length, so a
reader can locate the index with a single suffix read.
"""

from __future__ import annotations

import struct
from io import BytesIO
from pathlib import Path
from typing import BinaryIO

import structlog
from pydantic import BaseModel, Field

from rangefs.core.errors import IndexDecodeError, IndexEncodeError
from rangefs.core.types import EntryFlags
from rangefs.formats.base import FormatParser

logger = structlog.get_logger()

U64_MAX = 0xFFFFFFFFFFFFFFFF
MAX_PATH_BYTES = 0xFFFF
TRAILER_SIZE = 16

_COUNT = struct.Struct("<I")
_PATH_LEN = struct.Struct("<H")
_ENTRY_TAIL = struct.Struct("<QQB")
_TRAILER = struct.Struct("<QQ")


class ArchiveEntry(BaseModel):
    """One packed file."""

    path: str = Field(description="Forward-slash path relative to the archive root")
    offset: int = Field(ge=0, le=U64_MAX, description="Absolute payload offset in the archive")
    length: int = Field(ge=0, le=U64_MAX, description="Stored (possibly compressed) payload length")
    flags: int = Field(default=0, ge=0, le=0xFF, description="Compression flag bits")

    @property
    def end(self) -> int:
        """Offset one past the last payload byte."""
        return self.offset + self.length

    @property
    def is_gzip(self) -> bool:
        return bool(self.flags & EntryFlags.GZIP)

    @property
    def is_brotli(self) -> bool:
        return bool(self.flags & EntryFlags.BROTLI)


class ArchiveTrailer(BaseModel):
    """Fixed-size record at the end of the archive."""

    index_offset: int = Field(ge=0, le=U64_MAX, description="Offset of the index")
    index_length: int = Field(ge=0, le=U64_MAX, description="Length of the index in bytes")


class ArchiveIndex(BaseModel):
    """Ordered archive entries."""

    entries: list[ArchiveEntry] = Field(default_factory=list, description="Entries in archive order")

    def to_mapping(self) -> dict[str, ArchiveEntry]:
        """Map entry paths to entries."""
        return {entry.path: entry for entry in self.entries}

    def find_entry(self, path: str) -> ArchiveEntry | None:
        """Find an entry by exact path."""
        for entry in self.entries:
            if entry.path == path:
                return entry
        return None


class IndexParser(FormatParser[ArchiveIndex]):
    """Parser for the archive index block."""

    def parse(self, data: bytes | BinaryIO) -> ArchiveIndex:
        """Parse an index block.

        Args:
            data: Index bytes (exactly the range named by the trailer)

        Returns:
            Parsed archive index

        Raises:
            IndexDecodeError: If the data is truncated, has trailing bytes,
                contains invalid UTF-8 or duplicate paths
        """
        all_data = self._block_bytes(data)
        view = memoryview(all_data)

        if len(all_data) < _COUNT.size:
            raise IndexDecodeError(f"Data too short for entry count: {len(all_data)} < {_COUNT.size}")

        (entry_count,) = _COUNT.unpack_from(view, 0)
        pos = _COUNT.size

        entries: list[ArchiveEntry] = []
        seen: set[str] = set()
        for i in range(entry_count):
            if pos + _PATH_LEN.size > len(all_data):
                raise IndexDecodeError(f"Index truncated at entry {i} of {entry_count}")
            (path_len,) = _PATH_LEN.unpack_from(view, pos)
            pos += _PATH_LEN.size

            if pos + path_len + _ENTRY_TAIL.size > len(all_data):
                raise IndexDecodeError(f"Index truncated at entry {i} of {entry_count}")
            try:
                path = bytes(view[pos:pos + path_len]).decode("utf-8")
            except UnicodeDecodeError as e:
                raise IndexDecodeError(f"Entry {i} path is not valid UTF-8: {e}") from e
            pos += path_len

            offset, length, flags = _ENTRY_TAIL.unpack_from(view, pos)
            pos += _ENTRY_TAIL.size

            if path in seen:
                raise IndexDecodeError(f"Duplicate path in index: {path}")
            seen.add(path)
            entries.append(ArchiveEntry(path=path, offset=offset, length=length, flags=flags))

        if pos != len(all_data):
            raise IndexDecodeError(f"Index has {len(all_data) - pos} trailing bytes")

        return ArchiveIndex(entries=entries)

    def build(self, obj: ArchiveIndex) -> bytes:
        """Build index bytes.

        Args:
            obj: Archive index

        Returns:
            Encoded index block

        Raises:
            IndexEncodeError: If a path is not UTF-8 encodable or too long
        """
        result = BytesIO()
        result.write(_COUNT.pack(len(obj.entries)))

        for entry in obj.entries:
            try:
                path_bytes = entry.path.encode("utf-8")
            except UnicodeEncodeError as e:
                raise IndexEncodeError(f"Path is not valid UTF-8: {entry.path!r}") from e
            if len(path_bytes) > MAX_PATH_BYTES:
                raise IndexEncodeError(
                    f"Path too long: {len(path_bytes)} bytes > {MAX_PATH_BYTES}: {entry.path[:64]}..."
                )
            result.write(_PATH_LEN.pack(len(path_bytes)))
            result.write(path_bytes)
            result.write(_ENTRY_TAIL.pack(entry.offset, entry.length, entry.flags))

        return result.getvalue()


class TrailerParser(FormatParser[ArchiveTrailer]):
    """Parser for the 16-byte archive trailer."""

    def parse(self, data: bytes | BinaryIO) -> ArchiveTrailer:
        """Parse a trailer.

        Accepts either exactly 16 bytes or a whole archive, in which case
        the last 16 bytes are used.

        Raises:
            IndexDecodeError: If fewer than 16 bytes are given
        """
        all_data = self._block_bytes(data)
        if len(all_data) < TRAILER_SIZE:
            raise IndexDecodeError(f"Data too short for trailer: {len(all_data)} < {TRAILER_SIZE}")

        index_offset, index_length = _TRAILER.unpack(all_data[-TRAILER_SIZE:])
        return ArchiveTrailer(index_offset=index_offset, index_length=index_length)

    def build(self, obj: ArchiveTrailer) -> bytes:
        return _TRAILER.pack(obj.index_offset, obj.index_length)


def encode_index(entries: list[ArchiveEntry]) -> bytes:
    """Encode entries into an index block."""
    return IndexParser().build(ArchiveIndex(entries=list(entries)))


def decode_index(data: bytes) -> list[ArchiveEntry]:
    """Decode an index block into entries."""
    return IndexParser().parse(data).entries


def encode_trailer(index_offset: int, index_length: int) -> bytes:
    """Encode the trailer pointing at an index."""
    return TrailerParser().build(ArchiveTrailer(index_offset=index_offset, index_length=index_length))


def decode_trailer(data: bytes) -> ArchiveTrailer:
    """Decode a trailer from exactly 16 bytes.

    Raises:
        IndexDecodeError: If data is not exactly 16 bytes
    """
    if len(data) != TRAILER_SIZE:
        raise IndexDecodeError(f"Trailer must be {TRAILER_SIZE} bytes, got {len(data)}")
    return TrailerParser().parse(data)


def read_archive_index(data: bytes) -> tuple[ArchiveTrailer, ArchiveIndex]:
    """Locate and parse the index of a complete in-memory archive.

    Args:
        data: Whole archive bytes

    Returns:
        Tuple of (trailer, index)

    Raises:
        IndexDecodeError: If the trailer points outside the archive or the
            index is malformed
    """
    trailer = TrailerParser().parse(data)
    index_end = trailer.index_offset + trailer.index_length
    if index_end != len(data) - TRAILER_SIZE:
        raise IndexDecodeError(
            f"Trailer index range {trailer.index_offset}+{trailer.index_length} "
            f"does not end at trailer (archive size {len(data)})"
        )
    index = IndexParser().parse(data[trailer.index_offset:index_end])
    return trailer, index


def is_archive(data: bytes) -> bool:
    """Check if data appears to be a complete rangefs archive.

    Args:
        data: Data to check

    Returns:
        True if the trailer anchors a decodable index
    """
    try:
        read_archive_index(data)
        return True
    except ValueError:
        return False


def read_archive_file(path: Path | str) -> tuple[ArchiveTrailer, ArchiveIndex, int]:
    """Read only the trailer and index of an archive file.

    Args:
        path: Archive file path

    Returns:
        Tuple of (trailer, index, archive size)

    Raises:
        IndexDecodeError: If the trailer or index is malformed
        OSError: If the file cannot be read
    """
    with open(path, "rb") as f:
        size = f.seek(0, 2)
        if size < TRAILER_SIZE:
            raise IndexDecodeError(f"Archive too short for trailer: {size} < {TRAILER_SIZE}")
        trailer = TrailerParser().parse_at(f, size - TRAILER_SIZE, TRAILER_SIZE)

        if trailer.index_offset + trailer.index_length > size - TRAILER_SIZE:
            raise IndexDecodeError(
                f"Trailer index range {trailer.index_offset}+{trailer.index_length} "
                f"exceeds archive size {size}"
            )
        index = IndexParser().parse_at(f, trailer.index_offset, trailer.index_length)

    return trailer, index, size


def check_layout(trailer: ArchiveTrailer, index: ArchiveIndex, archive_size: int) -> list[str]:
    """Check an archive's layout invariants.

    Entries must be contiguous from offset 0 in index order, the index must
    start where the last payload ends, and the trailer must be the final
    16 bytes.

    Returns:
        List of problems, empty if the layout is valid
    """
    problems: list[str] = []
    expected_offset = 0
    for i, entry in enumerate(index.entries):
        if entry.offset != expected_offset:
            problems.append(f"Entry {i} ({entry.path}) starts at {entry.offset}, expected {expected_offset}")
        if entry.is_gzip and entry.is_brotli:
            problems.append(f"Entry {i} ({entry.path}) has both gzip and brotli flags set")
        if entry.flags & ~int(EntryFlags.GZIP | EntryFlags.BROTLI):
            problems.append(f"Entry {i} ({entry.path}) has unknown flag bits 0x{entry.flags:02x}")
        expected_offset = entry.end

    if trailer.index_offset != expected_offset:
        problems.append(f"Index starts at {trailer.index_offset}, expected {expected_offset}")
    if trailer.index_offset + trailer.index_length + TRAILER_SIZE != archive_size:
        problems.append(
            f"Index ends at {trailer.index_offset + trailer.index_length}, "
            f"expected {archive_size - TRAILER_SIZE}"
        )
    return problems
