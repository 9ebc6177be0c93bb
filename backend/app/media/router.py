"""FastAPI router for owner media uploads and range-aware delivery.

Endpoints:
    GET    /upload/test               - Auth smoke test, lists expected filenames
    POST   /upload                    - Upload a file into one of the caller's slots
    GET    /upload/{filename}/exists  - Metadata lookup (public)
    GET    /upload/{filename}         - Serve bytes, honoring Range (public)
    DELETE /upload/{filename}         - Owner-only delete
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Header, Request, UploadFile
from fastapi.responses import Response

from app.auth.dependencies import require_identity
from app.auth.schemas import Identity
from app.config import AppConfig
from app.errors import (
    ForbiddenError,
    GuestSyncError,
    InvalidUploadError,
    ReadFailureError,
    StoreFailureError,
)

from .delivery import build_media_response
from .schemas import ExistsResponse, FieldType, UploadData, UploadResponse
from .service import MediaStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/upload", tags=["upload"])


def get_media_store(request: Request) -> MediaStore:
    return request.app.state.media_store


def get_app_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_file_url(request: Request, config: AppConfig, filename: str) -> str:
    """Public URL for a stored file."""
    base_url = config.server.public_base_url or str(request.base_url)
    return f"{base_url.rstrip('/')}{router.prefix}/{filename}"


async def read_upload(photo: UploadFile) -> bytes:
    """Read the whole multipart file.

    Raises:
        ReadFailureError: The upload stream could not be read.
    """
    try:
        return await photo.read()
    except Exception as e:
        logger.error(f"Failed to read upload {photo.filename}: {e}")
        raise ReadFailureError() from e


@router.get("/test")
async def upload_test(identity: Identity = Depends(require_identity)) -> dict:
    """Check that the caller's token works and show the filenames they own."""
    return {
        "success": True,
        "message": "Upload endpoint is working",
        "userId": identity.id,
        "expectedFilenames": {
            FieldType.MAIN.value: f"{identity.id}_main.(jpg|png|webp|...)",
            FieldType.DASHBOARD.value: f"{identity.id}_dashboard.(jpg|png|webp|...)",
            FieldType.WELCOME.value: f"{identity.id}_welcome.(jpg|png|webp|mp4|webm|mov)",
        },
    }


@router.post("", response_model=UploadResponse)
async def upload_file(
    request: Request,
    photo: Optional[UploadFile] = File(None),
    fieldType: Optional[str] = Form(None),
    userId: Optional[str] = Form(None),
    identity: Identity = Depends(require_identity),
    store: MediaStore = Depends(get_media_store),
    config: AppConfig = Depends(get_app_config),
) -> UploadResponse:
    """Upload a file into one of the owner's media slots.

    Slots and accepted types:
    - main, dashboard: JPEG, PNG, GIF, WebP up to the image limit
    - welcome: the above, plus MP4, WebM, MOV up to the video limit

    Unknown ``fieldType`` values are stored in the main slot.

    Args:
        photo: The file to upload.
        fieldType: Target slot.
        userId: Owner of the file; must be the caller unless the caller has
            an elevated role.

    Returns:
        UploadResponse with the public URL and stored filename.

    Raises:
        InvalidUploadError 400: Missing photo/userId or empty file.
        ForbiddenError 403: userId is not the caller.
        InvalidTypeError / TooLargeError 400: Policy violation.
        ReadFailureError / StoreFailureError 500: Read or persistence failure.
    """
    owner_id = (userId or "").strip()
    if photo is None:
        raise InvalidUploadError("No photo file provided")
    if not owner_id:
        raise InvalidUploadError("userId is required")
    if owner_id != identity.id and not identity.is_elevated(config.auth.elevated_roles):
        logger.warning(f"Upload by {identity.id} for owner {owner_id} rejected")
        raise ForbiddenError()

    if not photo.filename:
        raise InvalidUploadError("Invalid file name")
    mimetype = photo.content_type
    if not mimetype:
        raise InvalidUploadError("Invalid file type")

    field_type = FieldType.normalize(fieldType)

    # Reject on the declared size before buffering the body.
    kind = store.policy.check_type(field_type, mimetype)
    if photo.size is not None:
        store.policy.check_size(kind, photo.size)

    content = await read_upload(photo)
    if not content:
        raise InvalidUploadError("Invalid file size")

    try:
        result = store.put(
            owner_id=owner_id,
            field_type=field_type,
            content=content,
            mimetype=mimetype,
            declared_name=photo.filename,
            account_id=identity.account_id,
        )
    except GuestSyncError:
        raise
    except Exception as e:
        logger.error(f"File upload failed: {e}")
        raise StoreFailureError(f"Upload failed: {e}") from e

    return UploadResponse(
        data=UploadData(
            url=get_file_url(request, config, result.filename),
            filename=result.filename,
            size=result.size,
            type=result.mimetype,
        )
    )


@router.get("/{filename}/exists", response_model=ExistsResponse)
async def file_exists(
    filename: str,
    store: MediaStore = Depends(get_media_store),
) -> ExistsResponse:
    """Check for a file by exact name or by name without extension.

    Raises:
        NotFoundError 404: No matching file.
    """
    try:
        summary = store.find_summary(filename)
    except GuestSyncError:
        raise
    except Exception as e:
        logger.error(f"Exists check for {filename} failed: {e}")
        raise StoreFailureError("Failed to read file") from e
    return ExistsResponse(
        filename=summary.filename,
        size=summary.size,
        type=summary.mimetype,
    )


@router.get("/{filename}")
async def serve_file(
    filename: str,
    range_header: Optional[str] = Header(default=None, alias="Range"),
    store: MediaStore = Depends(get_media_store),
    config: AppConfig = Depends(get_app_config),
) -> Response:
    """Serve a stored file, whole or as a single byte range.

    Args:
        filename: Exact stored name, or the name without its extension.
        range_header: Optional ``Range: bytes=start-end``.

    Returns:
        200 with the full payload, 206 with the requested slice, or 416
        with ``Content-Range: bytes */size``.
    """
    try:
        record = store.get(filename)
    except GuestSyncError:
        raise
    except Exception as e:
        logger.error(f"Serving {filename} failed: {e}")
        raise StoreFailureError("Failed to read file") from e
    return build_media_response(record, range_header, config.upload.cache_control)


@router.delete("/{filename}")
async def delete_file(
    filename: str,
    identity: Identity = Depends(require_identity),
    store: MediaStore = Depends(get_media_store),
) -> dict:
    """Delete one of the caller's files.

    A file owned by someone else is reported exactly like a missing one.

    Raises:
        NotFoundError 404: Missing, or not owned by the caller.
    """
    try:
        store.delete(filename, identity.id)
    except GuestSyncError:
        raise
    except Exception as e:
        logger.error(f"Deleting {filename} failed: {e}")
        raise StoreFailureError("Failed to delete file") from e
    return {"success": True, "message": "File deleted successfully"}
