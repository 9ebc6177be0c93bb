"""Owner media store with range-aware delivery.

Each owner has three media slots (main, dashboard, welcome). Uploads replace
the slot's previous file; files are served publicly by their canonical
filename with HTTP byte-range support so browsers can seek in welcome
videos. Payloads live base64-encoded in DuckDB next to their metadata.
"""
from .schemas import FieldType, MediaKind, MediaRecord, MediaSummary, UploadPolicy
from .service import MediaStore

__all__ = [
    "FieldType",
    "MediaKind",
    "MediaRecord",
    "MediaStore",
    "MediaSummary",
    "UploadPolicy",
]
