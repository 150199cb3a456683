"""Archive format: index/trailer codec and directory builder."""

from rangefs.formats.base import FormatParser
from rangefs.formats.builder import ArchiveBuilder, BuildResult, build_archive
from rangefs.formats.index import (
    ArchiveEntry,
    ArchiveIndex,
    ArchiveTrailer,
    IndexParser,
    TrailerParser,
    check_layout,
    decode_index,
    decode_trailer,
    encode_index,
    encode_trailer,
    is_archive,
    read_archive_file,
    read_archive_index,
)

__all__ = [
    # Base
    "FormatParser",
    # Index
    "ArchiveEntry",
    "ArchiveIndex",
    "ArchiveTrailer",
    "IndexParser",
    "TrailerParser",
    "check_layout",
    "decode_index",
    "decode_trailer",
    "encode_index",
    "encode_trailer",
    "is_archive",
    "read_archive_file",
    "read_archive_index",
    # Builder
    "ArchiveBuilder",
    "BuildResult",
    "build_archive",
]
