"""Exception handlers for the sandbox repair API.

Every error leaves the service in one JSON shape
(``{"error", "detail", "request_id"}``) with the request id echoed in
the ``X-Request-ID`` header, so the editor can correlate a failed
session call with the server log.  ``error`` is the HTTP reason phrase
(or ``"Validation failed"``); ``detail`` carries the message.  Stack
traces are logged, never returned.
"""

import logging
import uuid
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.errors import AppError, format_error_response

logger = logging.getLogger(__name__)


def _request_id(request: Request) -> str:
    return request.headers.get("x-request-id") or uuid.uuid4().hex


def _where(request: Request) -> str:
    """``METHOD /path`` plus the monitoring session, when the route has one."""
    where = f"{request.method} {request.url.path}"
    session_id = request.path_params.get("session_id")
    if session_id:
        where += f" [session={session_id}]"
    return where


def _reason(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


def _error_response(request_id: str, status_code: int, detail: object, error: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=format_error_response(
            error=error or _reason(status_code),
            detail=detail,
            request_id=request_id,
        ),
        headers={"X-Request-ID": request_id},
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Service errors: unknown session (404), busy session (409), bad input (400)."""
    request_id = _request_id(request)
    level = logging.ERROR if exc.status_code >= 500 else logging.INFO
    logger.log(level, "%s on %s (%s) [request_id=%s]", type(exc).__name__, _where(request), exc, request_id)
    return _error_response(request_id, exc.status_code, str(exc))


async def route_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes and disallowed methods."""
    request_id = _request_id(request)
    logger.info("HTTP %d on %s [request_id=%s]", exc.status_code, _where(request), request_id)
    return _error_response(request_id, exc.status_code, exc.detail or _reason(exc.status_code))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies: one ``"<field path>: <message>"`` line per problem."""
    request_id = _request_id(request)
    problems = [
        f"{'.'.join(str(part) for part in e.get('loc', ()))}: {e.get('msg', '')}"
        for e in exc.errors()
    ]
    logger.info("Rejected body on %s: %s [request_id=%s]", _where(request), "; ".join(problems), request_id)
    return _error_response(request_id, 422, problems, error="Validation failed")


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = _request_id(request)
    logger.error("Unhandled exception on %s [request_id=%s]", _where(request), request_id, exc_info=exc)
    return _error_response(request_id, 500, "Internal server error")


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, route_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)
