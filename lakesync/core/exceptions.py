import logging
from fastapi import HTTPException
from typing import Optional

logger = logging.getLogger(__name__)


class LakeError(Exception):
    """Base class for storage-core failures.

    `detail` is safe to show to clients, `internal_detail` is only logged.
    """
    code = "error"
    status_code = 500

    def __init__(self, detail: str, internal_detail: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        self.internal_detail = internal_detail


class NotFound(LakeError):
    code = "not_found"
    status_code = 404


class Forbidden(LakeError):
    code = "forbidden"
    status_code = 403


class Conflict(LakeError):
    code = "conflict"
    status_code = 409


class InvalidArgument(LakeError):
    code = "invalid_argument"
    status_code = 400


class UnsupportedMediaType(InvalidArgument):
    code = "unsupported_media_type"
    status_code = 415


class Internal(LakeError):
    code = "internal"
    status_code = 500


# Custom HTTPException class to handle secure errors, so we don't expose internal details to the client
class SecureHTTPException(HTTPException):
    def __init__(self, status_code: int, detail, internal_detail: str = None):
        super().__init__(status_code=status_code, detail=detail)
        if internal_detail:
            if status_code >= 500:
                logger.error(f"Internal error: {internal_detail}")
            else:
                logger.warning(f"Request rejected: {internal_detail}")


def to_http_exception(e: LakeError) -> SecureHTTPException:
    return SecureHTTPException(
        status_code=e.status_code,
        detail={"code": e.code, "message": e.detail},
        internal_detail=e.internal_detail
    )


def handle_database_error(e: Exception) -> HTTPException:
    logger.error(f"Database error: {str(e)}")
    return SecureHTTPException(
        status_code=500,
        detail={"code": Internal.code, "message": "Internal server error"},
        internal_detail=str(e)
    )
