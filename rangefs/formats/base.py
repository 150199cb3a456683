"""Shared plumbing for the archive's binary blocks (index and trailer)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import BinaryIO, Generic, TypeVar

from pydantic import BaseModel

from rangefs.core.errors import IndexDecodeError

T = TypeVar("T", bound=BaseModel)


class FormatParser(ABC, Generic[T]):
    """Codec for one fixed-position block of an archive.

    Subclasses decode raw block bytes into a pydantic model and encode the
    model back. Blocks sit at known offsets, so the base class also knows
    how to cut a block out of an open archive file.
    """

    @abstractmethod
    def parse(self, data: bytes | BinaryIO) -> T:
        """Decode a block.

        Raises:
            IndexDecodeError: If the block is malformed
        """
        ...

    @abstractmethod
    def build(self, obj: T) -> bytes:
        """Encode a block."""
        ...

    def parse_at(self, stream: BinaryIO, offset: int, length: int) -> T:
        """Decode the block stored at ``offset`` in an open archive."""
        return self.parse(self.read_window(stream, offset, length))

    def validate(self, data: bytes) -> tuple[bool, str]:
        """Check a block decodes and re-encodes to the same bytes.

        Returns:
            Tuple of (is_valid, message)
        """
        try:
            rebuilt = self.build(self.parse(data))
        except ValueError as e:
            return False, str(e)
        if rebuilt == data:
            return True, "Valid"
        mismatch = next(
            (i for i, (a, b) in enumerate(zip(data, rebuilt)) if a != b),
            min(len(data), len(rebuilt)),
        )
        return False, f"Round-trip mismatch at byte {mismatch}"

    @staticmethod
    def read_window(stream: BinaryIO, offset: int, length: int) -> bytes:
        """Read exactly ``length`` bytes at ``offset``.

        Raises:
            IndexDecodeError: If the stream ends early
        """
        stream.seek(offset)
        data = stream.read(length)
        if len(data) != length:
            raise IndexDecodeError(f"Short read at offset {offset}: wanted {length} bytes, got {len(data)}")
        return data

    @staticmethod
    def _block_bytes(data: bytes | BinaryIO) -> bytes:
        """Materialize parser input; streams are read to the end and rewound."""
        if isinstance(data, (bytes, bytearray, memoryview)):
            return bytes(data)
        start = data.tell()
        try:
            return data.read()
        finally:
            data.seek(start)
