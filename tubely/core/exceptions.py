"""Error taxonomy shared by the HTTP layer and the ingestion pipeline.

Every error carries the HTTP status and the machine readable error code that
the API returns in its JSON envelope.
"""

from typing import Optional


class TubelyError(Exception):
    """Base exception for all caller-visible errors."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"
    public_message: Optional[str] = None

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    @property
    def response_message(self) -> str:
        """Message sent back to the client.

        Server-side errors hide internal details behind a generic message.
        """
        if self.public_message is not None:
            return self.public_message
        return self.message


class BadRequestError(TubelyError):
    """Malformed id, wrong or missing content type, oversized payload."""

    status_code = 400
    error_code = "BAD_REQUEST"


class PayloadTooLargeError(BadRequestError):
    """Upload exceeded the byte ceiling for its asset class."""

    error_code = "PAYLOAD_TOO_LARGE"


class UnauthorizedError(TubelyError):
    status_code = 401
    error_code = "UNAUTHORIZED"


class ForbiddenError(TubelyError):
    """Authenticated, but not the owner of the resource."""

    status_code = 403
    error_code = "FORBIDDEN"


class NotFoundError(TubelyError):
    status_code = 404
    error_code = "NOT_FOUND"


class ToolError(TubelyError):
    """External media tool failed (non-zero exit, timeout, bad output)."""

    error_code = "TOOL_ERROR"
    public_message = "Media processing failed"


class StorageError(TubelyError):
    """Object store or record store write failed."""

    error_code = "STORAGE_ERROR"
    public_message = "Storage operation failed"


class StagingError(TubelyError):
    """Upload could not be written to local staging."""

    error_code = "STAGING_ERROR"
    public_message = "Could not stage upload"
