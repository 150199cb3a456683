"""Core type definitions for rangefs."""

from enum import IntFlag, StrEnum


class Compression(StrEnum):
    """Per-entry compression applied by the archive builder."""
    NONE = "none"
    GZIP = "gzip"
    BROTLI = "brotli"


class EntryFlags(IntFlag):
    """Entry flag bits stored in the archive index."""
    NONE = 0
    GZIP = 0x01
    BROTLI = 0x02


COMPRESSION_FLAGS: dict[Compression, EntryFlags] = {
    Compression.NONE: EntryFlags.NONE,
    Compression.GZIP: EntryFlags.GZIP,
    Compression.BROTLI: EntryFlags.BROTLI,
}

# HTTP Content-Encoding token for each compression flag
CONTENT_ENCODINGS: dict[EntryFlags, str] = {
    EntryFlags.GZIP: "gzip",
    EntryFlags.BROTLI: "br",
}
