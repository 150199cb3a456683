"""rangefs - pack static sites into one archive and serve them by byte range.

Key modules:
- formats: Archive index codec and builder
- core: Reader, index cache, stores, HTTP metadata, configuration
- commands: CLI command implementations
"""

__version__ = "0.1.0"
__author__ = "rangefs contributors"

from rangefs.core.reader import ArchiveReader, Request, Response
from rangefs.core.types import Compression, EntryFlags
from rangefs.formats.builder import build_archive

__all__ = [
    "__version__",
    "__author__",
    "ArchiveReader",
    "Compression",
    "EntryFlags",
    "Request",
    "Response",
    "build_archive",
]
