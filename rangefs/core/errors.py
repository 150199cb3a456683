"""Exception hierarchy for archive building and serving."""

from __future__ import annotations


class ArchiveError(Exception):
    """Base class for all rangefs errors."""


class ConfigMissing(ArchiveError):
    """Raised when a required key is absent from the config store.

    Attributes:
        key: The config store key that was looked up
    """

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"{key} not found in config store")


class BlobNotFound(ArchiveError):
    """Raised when a named blob or a requested range is absent."""

    def __init__(self, name: str, what: str = "blob"):
        self.name = name
        self.what = what
        super().__init__(f"Failed to fetch {what} from {name}")


class IndexDecodeError(ArchiveError, ValueError):
    """Raised when trailer or index bytes are malformed."""


class IndexEncodeError(ArchiveError, ValueError):
    """Raised when entries cannot be represented in the index format."""


class DecompressionFailure(ArchiveError):
    """Raised when a flagged entry's payload does not decompress.

    Attributes:
        path: Archive path of the entry
        flags: Entry flags as stored in the index
    """

    def __init__(self, message: str, *, path: str | None = None, flags: int | None = None):
        self.path = path
        self.flags = flags
        super().__init__(message)


class InputDirMissing(ArchiveError):
    """Raised when the builder's input directory does not exist."""


class OutputWriteFailure(ArchiveError):
    """Raised when the builder cannot write its output archive."""
