"""Pydantic schemas and upload policy for owner media.

This module defines the data models for the per-owner media slots:
- FieldType: which slot a file fills (main, dashboard, welcome)
- MediaKind: image or video, derived from the mimetype
- MediaSummary / MediaRecord: stored record without / with its bytes
- UploadPolicy: which kinds each slot accepts and how large they may be

Each owner has at most one file per slot. The stored filename is
``{ownerId}_{fieldType}.{ext}``, which is stable across re-uploads and
therefore guessable; it is an address, not a secret.
"""
from datetime import datetime
from enum import Enum
from pathlib import PurePosixPath
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, Field

from app.errors import InvalidTypeError, TooLargeError


class FieldType(str, Enum):
    """Media slot an upload fills for its owner.

    Attributes:
        MAIN: Primary wedding photo.
        DASHBOARD: Photo shown on the owner's dashboard.
        WELCOME: Welcome-screen media; the only slot that accepts video.
    """
    MAIN = "main"
    DASHBOARD = "dashboard"
    WELCOME = "welcome"

    @classmethod
    def normalize(cls, raw: Optional[str]) -> "FieldType":
        """Map a client-supplied field type onto a slot.

        Accepts the slot names and the legacy ``weddingPhotoUrl*`` form
        names. Anything else collapses to MAIN.
        """
        value = (raw or "").strip()
        if value in LEGACY_FIELD_TYPES:
            return LEGACY_FIELD_TYPES[value]
        try:
            return cls(value)
        except ValueError:
            return cls.MAIN


LEGACY_FIELD_TYPES: Dict[str, FieldType] = {
    "weddingPhotoUrl": FieldType.MAIN,
    "weddingPhotoUrl_dashboard": FieldType.DASHBOARD,
    "weddingPhotoUrl_welcome": FieldType.WELCOME,
}


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


ALLOWED_MIME_TYPES: Dict[MediaKind, Tuple[str, ...]] = {
    MediaKind.IMAGE: (
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/gif",
        "image/webp",
    ),
    MediaKind.VIDEO: (
        "video/mp4",
        "video/webm",
        "video/quicktime",
    ),
}

FIELD_MEDIA_KINDS: Dict[FieldType, Tuple[MediaKind, ...]] = {
    FieldType.MAIN: (MediaKind.IMAGE,),
    FieldType.DASHBOARD: (MediaKind.IMAGE,),
    FieldType.WELCOME: (MediaKind.IMAGE, MediaKind.VIDEO),
}

EXTENSION_BY_MIME_TYPE: Dict[str, str] = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "video/mp4": "mp4",
    "video/webm": "webm",
    "video/quicktime": "mov",
}

DEFAULT_EXTENSION = "jpg"


def get_media_kind(mimetype: str) -> Optional[MediaKind]:
    """Return the media kind for an allowed mimetype, None otherwise."""
    for kind, mime_types in ALLOWED_MIME_TYPES.items():
        if mimetype in mime_types:
            return kind
    return None


def resolve_extension(mimetype: str, declared_name: Optional[str] = None) -> str:
    """Storage extension: mimetype table, then the declared name, then jpg.

    Examples:
        >>> resolve_extension("video/quicktime", "clip.MOV")
        'mov'
        >>> resolve_extension("image/heic", "photo.HEIC")
        'heic'
        >>> resolve_extension("image/heic", "photo")
        'jpg'
    """
    ext = EXTENSION_BY_MIME_TYPE.get(mimetype)
    if not ext and declared_name:
        ext = PurePosixPath(declared_name).suffix.lstrip(".")
    return (ext or DEFAULT_EXTENSION).lower()


def filename_prefix(owner_id: str, field_type: FieldType) -> str:
    """Prefix shared by every extension variant of one owner's slot."""
    return f"{owner_id}_{field_type.value}."


def canonical_filename(owner_id: str, field_type: FieldType, ext: str) -> str:
    return f"{filename_prefix(owner_id, field_type)}{ext}"


def _megabytes(limit: int) -> str:
    return f"{limit // (1024 * 1024)}MB"


class UploadPolicy(BaseModel):
    """Per-slot type and size rules.

    The size ceiling follows the media kind rather than the slot: images
    are capped at ``max_image_bytes`` everywhere, videos (welcome only) at
    ``max_video_bytes``.
    """
    max_image_bytes: int = 5 * 1024 * 1024
    max_video_bytes: int = 50 * 1024 * 1024

    def limit_for(self, kind: MediaKind) -> int:
        return self.max_video_bytes if kind == MediaKind.VIDEO else self.max_image_bytes

    def check_type(self, field_type: FieldType, mimetype: str) -> MediaKind:
        """Raise InvalidTypeError unless *mimetype* is allowed in the slot."""
        kind = get_media_kind(mimetype)
        if kind is None or kind not in FIELD_MEDIA_KINDS[field_type]:
            if field_type == FieldType.WELCOME:
                raise InvalidTypeError(
                    "Invalid file type. Allowed: JPEG, PNG, GIF, WebP, MP4, WebM, MOV."
                )
            raise InvalidTypeError(
                "Invalid file type. Only JPEG, PNG, GIF, and WebP images are allowed."
            )
        return kind

    def check_size(self, kind: MediaKind, size: int) -> None:
        """Raise TooLargeError if *size* exceeds the ceiling for *kind*."""
        limit = self.limit_for(kind)
        if size > limit:
            if kind == MediaKind.VIDEO:
                raise TooLargeError(f"File too large. Max {_megabytes(limit)} for video.")
            raise TooLargeError(f"File size too large. Maximum size is {_megabytes(limit)}.")

    def validate(self, field_type: FieldType, mimetype: str, size: int) -> MediaKind:
        kind = self.check_type(field_type, mimetype)
        self.check_size(kind, size)
        return kind


# =============================================================================
# Stored records
# =============================================================================


class MediaSummary(BaseModel):
    """Stored media metadata, without the payload."""
    filename: str = Field(..., description="Canonical {ownerId}_{fieldType}.{ext}")
    mimetype: str = Field(..., description="MIME type declared at upload")
    size: int = Field(..., description="Payload size in bytes")
    owner_id: str = Field(..., description="Owner identity")
    field_type: FieldType = Field(..., description="Media slot")


class MediaRecord(MediaSummary):
    """A stored media file including its decoded bytes."""
    data: bytes = Field(..., repr=False, description="Decoded payload")
    account_id: Optional[str] = Field(None, description="Uploader's account")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class PutResult(BaseModel):
    filename: str
    size: int
    mimetype: str


# =============================================================================
# API responses
# =============================================================================


class UploadData(BaseModel):
    url: str = Field(..., description="Public URL serving the file")
    filename: str
    size: int
    type: str = Field(..., description="MIME type")


class UploadResponse(BaseModel):
    """Response after a successful upload (POST /upload)."""
    success: bool = True
    message: str = "File uploaded successfully"
    data: UploadData


class ExistsResponse(BaseModel):
    """Response of GET /upload/{filename}/exists."""
    success: bool = True
    exists: bool = True
    filename: str
    size: int
    type: str
