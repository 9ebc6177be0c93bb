"""HTTP byte-range parsing for single-range requests.

Only the ``bytes=<start>-<end>`` form is recognized. Headers that do not
match it are ignored and the whole payload is served. Either bound may be
omitted: a missing start means 0 and a missing end means the last byte.
Note that ``bytes=-N`` is therefore read as ``0..N``, not as a suffix range.
"""
import re
from dataclasses import dataclass
from typing import Optional

from app.errors import InvalidRangeError

RANGE_PATTERN = re.compile(r"^bytes=(\d*)-(\d*)$")


@dataclass(frozen=True)
class ByteRange:
    """Inclusive ``[start, end]`` slice of a payload of ``size`` bytes."""
    start: int
    end: int
    size: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.size}"

    def slice(self, data: bytes) -> bytes:
        return data[self.start:self.end + 1]


def resolve_range(header: Optional[str], size: int) -> Optional[ByteRange]:
    """Resolve a ``Range`` header against a payload size.

    Returns:
        The ByteRange to serve, or None when the header is absent or not in
        the recognized form (serve the whole payload).

    Raises:
        InvalidRangeError: start > end, or start beyond the payload.
    """
    if not header:
        return None
    match = RANGE_PATTERN.match(header.strip())
    if not match:
        return None

    start = int(match.group(1)) if match.group(1) else 0
    end = int(match.group(2)) if match.group(2) else size - 1
    if start > end or start >= size:
        raise InvalidRangeError(size)

    return ByteRange(start=start, end=min(end, size - 1), size=size)
