"""CLI command implementations for rangefs.

- build: Pack a directory into an archive
- examine: Inspect an archive's trailer and index
- validate: Check an archive's layout invariants
- get: Serve one path from a local archive through the reader
"""

from rangefs.commands.build import build
from rangefs.commands.examine import examine, validate
from rangefs.commands.get import get

__all__ = ["build", "examine", "get", "validate"]
