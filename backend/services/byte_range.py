"""
HTTP Range header parsing for video streaming.

Only single byte ranges are served; a header asking for several ranges is
treated like no Range header at all.
"""

from typing import Optional, Tuple


class RangeNotSatisfiableError(ValueError):
    """The requested range lies outside the object."""

    def __init__(self, header: str, total_size: int):
        super().__init__(f"Range {header!r} not satisfiable for {total_size} bytes")
        self.total_size = total_size


def _is_ascii_digits(text: str) -> bool:
    # str.isdigit also accepts superscripts and other digits int() rejects
    return text.isascii() and text.isdigit()


def parse_range_header(header: Optional[str], total_size: int) -> Optional[Tuple[int, int]]:
    """
    Resolve a Range header against an object size.

    Supports "bytes=start-end", "bytes=start-" and "bytes=-suffix". An end past
    the last byte is clamped to it.

    Args:
        header: Raw Range header value (may be None)
        total_size: Object size in bytes

    Returns:
        (start, end) inclusive, or None when the whole object should be served

    Raises:
        RangeNotSatisfiableError: If the range starts past the end of the object
            or asks for an empty suffix

    Examples:
        >>> parse_range_header("bytes=100-199", 1000)
        (100, 199)
        >>> parse_range_header("bytes=-100", 1000)
        (900, 999)
    """
    if not header:
        return None

    unit, _, range_set = header.strip().partition("=")
    if unit.strip().lower() != "bytes" or not range_set or "," in range_set:
        return None

    start_text, dash, end_text = range_set.strip().partition("-")
    if not dash:
        return None
    start_text, end_text = start_text.strip(), end_text.strip()

    if (start_text and not _is_ascii_digits(start_text)) or (end_text and not _is_ascii_digits(end_text)):
        return None

    if not start_text:
        if not end_text:
            return None
        suffix = int(end_text)
        if suffix == 0 or total_size == 0:
            raise RangeNotSatisfiableError(header, total_size)
        return max(total_size - suffix, 0), total_size - 1

    start = int(start_text)
    end = int(end_text) if end_text else total_size - 1
    if end < start:
        return None
    if start >= total_size:
        raise RangeNotSatisfiableError(header, total_size)

    return start, min(end, total_size - 1)
