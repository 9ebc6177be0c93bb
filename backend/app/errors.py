"""Error taxonomy shared by the upload, delivery and realtime modules.

Every error carries a human-readable message and the HTTP status it maps
to. Routers raise these; ``app.main`` renders them as
``{"success": false, "error": message}``. The WebSocket handler never
raises them to the transport and replies with an error frame instead.
"""


class GuestSyncError(Exception):
    """Base exception for handler-local errors."""
    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


# =============================================================================
# Authentication / authorization
# =============================================================================


class AuthMissingError(GuestSyncError):
    """Raised when no bearer token is supplied."""
    def __init__(self, message: str = "No token provided"):
        super().__init__(message, status_code=401)


class AuthInvalidFormatError(GuestSyncError):
    """Raised when the bearer token does not have the expected shape."""
    def __init__(self, message: str = "Invalid token format"):
        super().__init__(message, status_code=401)


class UserNotFoundError(GuestSyncError):
    """Raised when the token names a user the directory does not know."""
    def __init__(self, message: str = "User not found"):
        super().__init__(message, status_code=401)


class ForbiddenError(GuestSyncError):
    """Raised when a caller writes on behalf of another owner."""
    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, status_code=403)


# =============================================================================
# Upload validation
# =============================================================================


class InvalidUploadError(GuestSyncError):
    """Raised when a required multipart field is missing or empty."""
    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class InvalidTypeError(GuestSyncError):
    """Raised when a mimetype is not allowed for the target field."""
    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class TooLargeError(GuestSyncError):
    """Raised when a payload exceeds the limit for its media kind."""
    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class ReadFailureError(GuestSyncError):
    """Raised when the uploaded bytes could not be materialized."""
    def __init__(self, message: str = "Failed to read file data"):
        super().__init__(message, status_code=500)


# =============================================================================
# Storage / delivery
# =============================================================================


class StoreFailureError(GuestSyncError):
    """Raised when the persistence layer rejects a read or write."""
    def __init__(self, message: str = "Failed to store file"):
        super().__init__(message, status_code=500)


class NotFoundError(GuestSyncError):
    """Raised when a record is absent, or present but owned by someone else.

    Both causes share this one variant so that non-owners cannot probe for
    the existence of another owner's files.
    """
    def __init__(self, message: str = "File not found"):
        super().__init__(message, status_code=404)


class InvalidRangeError(GuestSyncError):
    """Raised when a well-formed Range header cannot be satisfied."""
    def __init__(self, size: int):
        self.size = size
        super().__init__(f"Requested range not satisfiable for {size} bytes", status_code=416)


# =============================================================================
# Realtime protocol
# =============================================================================


class ProtocolError(GuestSyncError):
    """Raised for an unrecognized or malformed WebSocket control message."""
    def __init__(self, message: str = "Unknown message type"):
        super().__init__(message, status_code=400)
