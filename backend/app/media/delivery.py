"""Builds HTTP responses for stored media, honoring ``Range`` requests."""
from typing import Optional

from fastapi import Response

from app.errors import InvalidRangeError

from .ranges import resolve_range
from .schemas import MediaRecord

DEFAULT_CACHE_CONTROL = "public, max-age=31536000"


def build_media_response(
    record: MediaRecord,
    range_header: Optional[str] = None,
    cache_control: str = DEFAULT_CACHE_CONTROL,
) -> Response:
    """Serve *record* whole (200), sliced (206) or reject the range (416).

    Every response advertises ``Accept-Ranges: bytes``. The long-lived
    ``Cache-Control`` is only attached to full responses; filenames are
    stable per slot, so caches may keep serving old bytes after a
    re-upload.
    """
    data = record.data
    size = len(data)
    headers = {"Accept-Ranges": "bytes"}

    try:
        byte_range = resolve_range(range_header, size)
    except InvalidRangeError:
        headers["Content-Range"] = f"bytes */{size}"
        return Response(status_code=416, headers=headers)

    if byte_range is None:
        headers["Cache-Control"] = cache_control
        return Response(content=data, status_code=200, headers=headers, media_type=record.mimetype)

    headers["Content-Range"] = byte_range.content_range
    return Response(
        content=byte_range.slice(data),
        status_code=206,
        headers=headers,
        media_type=record.mimetype,
    )
