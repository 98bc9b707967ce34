"""Error Handlers — map every failure to the {"error": {...}} envelope.

Invariants:
    - AcademyError -> its own http_status and to_response() body
    - RequestValidationError -> 400 VALIDATION_ERROR with per-field details
    - Anything else -> 500 INTERNAL_ERROR, internals never leaked
    - Transient storage failures carry Retry-After so clients back off

Design Decisions:
    - Caller errors (4xx) logged at WARNING, infrastructure errors (5xx) at ERROR
    - Handlers are module-level coroutines registered with add_exception_handler,
      so tests can call them directly
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from academy.core.errors import AcademyError, DatabaseError, ErrorSeverity

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 1


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AcademyError, academy_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)


async def academy_error_handler(request: Request, exc: AcademyError) -> JSONResponse:
    level = logging.ERROR if exc.http_status >= 500 else logging.WARNING
    logger.log(
        level,
        f"{type(exc).__name__}: {exc.message}",
        extra={"error_code": exc.code, "path": request.url.path},
    )
    headers = None
    if isinstance(exc, DatabaseError) and exc.transient:
        headers = {"Retry-After": str(RETRY_AFTER_SECONDS)}
    return JSONResponse(exc.to_response(), status_code=exc.http_status, headers=headers)


async def validation_error_handler(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in e["loc"]),
            "message": e["msg"],
            "type": e["type"],
        }
        for e in exc.errors()
    ]
    logger.warning(
        f"Rejected payload on {request.url.path}: {len(details)} invalid field(s)",
        extra={"error_code": "VALIDATION_ERROR", "path": request.url.path},
    )
    # input values are never echoed back
    return _envelope(
        status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR", "Invalid request data",
        "validation", ErrorSeverity.ERROR, details=details,
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled {type(exc).__name__} on {request.url.path}",
        exc_info=exc,
        extra={"path": request.url.path},
    )
    return _envelope(
        status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR",
        "An unexpected error occurred", "internal", ErrorSeverity.CRITICAL,
    )


def _envelope(
    status_code: int, code: str, message: str, category: str,
    severity: ErrorSeverity, **extra,
) -> JSONResponse:
    error = {
        "code": code, "message": message,
        "category": category, "severity": severity.value, **extra,
    }
    return JSONResponse({"error": error}, status_code=status_code)
