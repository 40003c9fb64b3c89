from __future__ import annotations

import logging
import typing as tp
from dataclasses import dataclass

from ._exceptions import InvalidRangeError

logger = logging.getLogger("recache.ranges")

__all__ = ("ByteRange", "apply_range")


def parse_bound(value: str, range_header: str) -> int:
    if not (value.isascii() and value.isdigit()):
        raise InvalidRangeError(f"Could not parse the bound {value!r} of the range header {range_header!r}.")
    return int(value)


@dataclass(frozen=True)
class ByteRange:
    """
    A single byte range resolved against a body of known length.

    `start` is inclusive and `end` is exclusive, so the range can be
    used directly as a slice.
    """

    start: int
    end: int

    @classmethod
    def from_header(cls, range_header: str, length: int) -> tp.Optional["ByteRange"]:
        """
        Resolves a `Range` header against a body of `length` bytes.

        Supports `bytes=START-END`, `bytes=START-` and `bytes=-SUFFIX`.
        Returns `None` when the range unit is not `bytes`, which means
        the full body should be served. A list of ranges is reduced to
        its first element.

        Raises:
            InvalidRangeError: A bound is not a number or the range is empty.
        """
        # Example: "bytes=0-99,200-299,-500,100-"
        unit, separator, ranges = range_header.partition("=")
        unit = unit.strip()

        if not separator or unit.lower() != "bytes":
            logger.debug(f"Ignoring the range header {range_header!r} since the range unit {unit!r} is not supported.")
            return None

        ranges = ranges.strip()
        if "," in ranges:
            first_range = ranges.split(",")[0].strip()
            logger.warning(
                f"Multiple ranges are not supported, only fulfilling the first one ({first_range!r} of {ranges!r})."
            )
            ranges = first_range

        first_bound, separator, last_bound = ranges.partition("-")
        if not separator:
            raise InvalidRangeError(f"The range {ranges!r} does not contain the '-' separator.")

        first_bound = first_bound.strip()
        last_bound = last_bound.strip()

        if not first_bound:
            # the range is in the form -SUFFIX, the wanted range is (length - suffix) -> length
            suffix = parse_bound(last_bound, range_header)
            start, end = max(length - suffix, 0), length
        elif not last_bound:
            # the range is in the form START-, the wanted range is start -> length
            start, end = parse_bound(first_bound, range_header), length
        else:
            start = parse_bound(first_bound, range_header)
            end = min(parse_bound(last_bound, range_header) + 1, length)

        if start >= end:
            raise InvalidRangeError(f"The range {ranges!r} cannot be satisfied for a body of {length} bytes.")

        return cls(start=start, end=end)

    def slice(self, body: bytes) -> bytes:
        return bytes(body[self.start : self.end])

    def content_range(self, length: int) -> str:
        return f"bytes {self.start}-{self.end - 1}/{length}"


def apply_range(body: bytes, range_header: str) -> bytes:
    """
    Returns the part of `body` selected by `range_header`.

    The whole body is returned when the range unit is not supported.
    The passed body is never modified.
    """
    byte_range = ByteRange.from_header(range_header, len(body))
    if byte_range is None:
        return body
    return byte_range.slice(body)
