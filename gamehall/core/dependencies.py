"""
Request dependencies for FastAPI
"""

from fastapi import HTTPException, Request, status
import structlog

from gamehall.core.context import TerminalContext
from gamehall.core.errors import DomainError, ErrorCode

logger = structlog.get_logger(__name__)

_NOT_FOUND = {
    ErrorCode.TABLE_NOT_FOUND,
    ErrorCode.SESSION_NOT_FOUND,
    ErrorCode.PROMOTION_NOT_FOUND,
    ErrorCode.ENTITY_NOT_FOUND,
}
_CONFLICT = {ErrorCode.TABLE_CONFLICT, ErrorCode.TABLE_UNAVAILABLE}


def get_context(request: Request) -> TerminalContext:
    """Get the terminal context created at startup"""
    return request.app.state.context


def to_http_exception(error: DomainError) -> HTTPException:
    """Map a domain error onto the HTTP status operators see"""
    if error.code in _NOT_FOUND:
        status_code = status.HTTP_404_NOT_FOUND
    elif error.code in _CONFLICT:
        status_code = status.HTTP_409_CONFLICT
    else:
        status_code = status.HTTP_400_BAD_REQUEST

    detail = {"code": error.code.value, "message": error.message}
    details = getattr(error, "details", None)
    if details:
        detail["details"] = details
    logger.debug(f"Domain error surfaced to client: {error}")
    return HTTPException(status_code=status_code, detail=detail)
