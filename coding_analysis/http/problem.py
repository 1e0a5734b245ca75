"""Problem+JSON utilities and global exception handlers.

Defines the RFC7807 media type and handler callables that produce
application/problem+json responses.
"""

from __future__ import annotations

import logging
from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from coding_analysis.errors import AppError

PROBLEM_MEDIA_TYPE = "application/problem+json"

logger = logging.getLogger(__name__)


def problem(title: str, status: int, detail: str | None = None, **extra: object) -> dict:
    body: dict = {"title": title, "status": status}
    if detail is not None:
        body["detail"] = detail
    body.update(extra)
    return body


async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:  # noqa: D401
    status_code = int(getattr(exc, "status_code", 500) or 500)
    detail = exc.detail if isinstance(exc.detail, dict) else problem("Error", status_code, str(exc.detail or ""))
    headers = {str(k): str(v) for k, v in (exc.headers or {}).items()}
    return JSONResponse(
        detail,
        status_code=status_code,
        media_type=PROBLEM_MEDIA_TYPE,
        headers=headers or None,
    )


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:  # noqa: D401
    body = problem(
        "Invalid Request",
        422,
        "Request validation failed",
        errors=[{"loc": list(e.get("loc", ())), "msg": str(e.get("msg", ""))} for e in exc.errors()],
    )
    return JSONResponse(body, status_code=422, media_type=PROBLEM_MEDIA_TYPE)


async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:  # noqa: D401
    logger.error("app_error path=%s error=%s", request.url.path, exc)
    return JSONResponse(
        problem("Internal Server Error", 500, str(exc), code=type(exc).__name__),
        status_code=500,
        media_type=PROBLEM_MEDIA_TYPE,
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:  # noqa: D401
    logger.error("unexpected_error path=%s", request.url.path, exc_info=exc)
    return JSONResponse(problem("Internal Server Error", 500), status_code=500, media_type=PROBLEM_MEDIA_TYPE)


__all__ = [
    "PROBLEM_MEDIA_TYPE",
    "problem",
    "handle_http_exception",
    "handle_request_validation_error",
    "handle_app_error",
    "handle_unexpected_error",
]
