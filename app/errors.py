"""
API error taxonomy and the FastAPI handlers that render it.

Every error response is a JSON object with a human-readable ``message``.
Internal errors carry the underlying cause in ``error`` outside production.
"""
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import Settings
from app.logger import get_logger, log_request_failure

logger = get_logger(__name__)


class ApiError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500
    default_message = "Server error"

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class BadRequest(ApiError):
    status_code = 400
    default_message = "Bad request"


class PayloadTooLarge(BadRequest):
    status_code = 413
    default_message = "File too large"


class Unauthenticated(ApiError):
    status_code = 401
    default_message = "Not authorized, no token"


class Forbidden(ApiError):
    status_code = 403
    default_message = "Not authorized to access this resource"


class NotFound(ApiError):
    status_code = 404
    default_message = "Resource not found"


class InternalError(ApiError):
    status_code = 500
    default_message = "Server error"


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
        parts.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


def _request_context(request: Request) -> Dict[str, Any]:
    context: Dict[str, Any] = {
        "query": dict(request.query_params),
        "params": dict(request.path_params),
    }
    raw_body = getattr(request.state, "raw_body", None)
    if raw_body:
        context["body"] = raw_body.decode("utf-8", errors="replace")
    return context


def register_error_handlers(app: FastAPI, settings: Settings) -> None:
    """Attach the JSON error handlers to the application."""

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
        body: Dict[str, Any] = {"message": exc.message}
        if isinstance(exc, InternalError):
            logger.error(f"{request.method} {request.url.path}: {exc.message} ({exc.detail})")
            if not settings.is_production and exc.detail:
                body["error"] = exc.detail
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"message": _format_validation_errors(exc)},
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        context = _request_context(request)
        log_request_failure(logger, request.method, request.url.path, exc, context)
        return JSONResponse(
            status_code=500,
            content={
                "message": "Something went wrong!",
                "error": "Server error" if settings.is_production else str(exc),
                "path": request.url.path,
                "requestId": request.headers.get("x-request-id", "unknown"),
            },
        )
