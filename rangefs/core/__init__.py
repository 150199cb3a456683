"""Core functionality for rangefs.

This module provides the serving side of the archive format:
- Configuration management
- Type definitions and errors
- Blob and config store collaborators
- Index cache and archive reader
- HTTP metadata derivation
"""

from rangefs.core.cache import IndexCache
from rangefs.core.errors import (
    ArchiveError,
    BlobNotFound,
    ConfigMissing,
    DecompressionFailure,
    IndexDecodeError,
    IndexEncodeError,
    InputDirMissing,
    OutputWriteFailure,
)
from rangefs.core.reader import ArchiveReader, Request, Response
from rangefs.core.stores import (
    BlobStore,
    ConfigStore,
    FileBlobStore,
    HttpBlobStore,
    JsonConfigStore,
    MemoryBlobStore,
    MemoryConfigStore,
)
from rangefs.core.types import Compression, EntryFlags

__all__ = [
    # Reader
    "ArchiveReader",
    "IndexCache",
    "Request",
    "Response",
    # Stores
    "BlobStore",
    "ConfigStore",
    "FileBlobStore",
    "HttpBlobStore",
    "JsonConfigStore",
    "MemoryBlobStore",
    "MemoryConfigStore",
    # Types
    "Compression",
    "EntryFlags",
    # Errors
    "ArchiveError",
    "BlobNotFound",
    "ConfigMissing",
    "DecompressionFailure",
    "IndexDecodeError",
    "IndexEncodeError",
    "InputDirMissing",
    "OutputWriteFailure",
]
