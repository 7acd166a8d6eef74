"""
============================================================================
SiteLedger - API Error Translation
============================================================================

Domain exceptions carry an error code; the application handler turns them
into the same JSON detail the auth guard uses for HTTPException:

    {"error_code": "...", "message": "...", "timestamp": "<ISO-8601 UTC>"}

STATUS MAPPING:
    NotFoundError            404
    ValidationError          400
    InvalidTransitionError   400
    PermissionDeniedError    403
    ConflictError            409

============================================================================
"""

from datetime import datetime, timezone
from typing import Any, Dict
import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from services.erp_errors import (
    ConflictError,
    ERPError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (PermissionDeniedError, 403),
    (ConflictError, 409),
    (ValidationError, 400),
    (InvalidTransitionError, 400),
)


def status_for(exc: ERPError) -> int:
    for error_class, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_class):
            return status_code
    return 400


def error_detail(error_code: str, message: str, **extra: Any) -> Dict[str, Any]:
    detail: Dict[str, Any] = {
        "error_code": error_code,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    detail.update(extra)
    return detail


async def erp_error_handler(request: Request, exc: ERPError) -> JSONResponse:
    """Application-wide handler so routers can let domain errors propagate."""
    status_code = status_for(exc)
    logger.warning(
        f"[{exc.error_code}] {exc.message} | "
        f"path={request.url.path} | method={request.method} | status={status_code}"
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": error_detail(exc.error_code, exc.message, **exc.extra)},
    )
