"""Shared utilities for rangefs."""

from __future__ import annotations

_BINARY_UNITS = ("B", "KB", "MB", "GB", "TB", "PB")


def format_size(size: int) -> str:
    """Format a byte count for the CLI tables.

    Whole bytes below 1 KB, one decimal above; units step by 1024 and
    stop at PB. Negative sizes render as ``0 B``.

    Example:
        >>> format_size(512)
        '512 B'
        >>> format_size(1536)
        '1.5 KB'
    """
    if size < 1024:
        return f"{max(size, 0)} B"
    exponent = min((size.bit_length() - 1) // 10, len(_BINARY_UNITS) - 1)
    return f"{size / (1 << (10 * exponent)):.1f} {_BINARY_UNITS[exponent]}"


def compression_ratio(stored: int, original: int) -> float:
    """Ratio of stored to original size (1.0 for empty input)."""
    if original <= 0:
        return 1.0
    return stored / original
