"""FastAPI exception handlers producing the ErrorResponse envelope."""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.routing import Match

from noticehook.errors.exceptions import NoticeHookError, StorageError, ValidationError
from noticehook.models.common import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)


_HTTP_ERROR_CODES = {404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}


def _allowed_methods(request: Request) -> set[str]:
    """Methods of every route whose path matches, not just the first one."""
    allowed: set[str] = set()
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match != Match.NONE:
            allowed.update(getattr(route, "methods", None) or ())
    return allowed


def _render(request: Request, exc: NoticeHookError) -> JSONResponse:
    trace_id = getattr(request.state, "trace_id", "unknown")
    error_response = ErrorResponse(
        error=ErrorDetail(
            code=exc.code,
            message=exc.message,
            details=exc.details,
            trace_id=trace_id,
            timestamp=datetime.now(timezone.utc),
        ),
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response.model_dump(mode="json", exclude_none=True),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all custom exception handlers on the FastAPI app."""

    @app.exception_handler(NoticeHookError)
    async def noticehook_error_handler(request: Request, exc: NoticeHookError):
        if exc.status_code >= 500:
            logger.error(
                "request_failed",
                extra={"path": request.url.path, "method": request.method, "code": exc.code, "reason": exc.message},
            )
        return _render(request, exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        return _render(request, ValidationError("Invalid request", details=errors))

    @app.exception_handler(SQLAlchemyError)
    async def storage_error_handler(request: Request, exc: SQLAlchemyError):
        logger.exception("Storage failure on %s %s", request.method, request.url.path)
        return _render(request, StorageError())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        # Routing errors (unknown path, unsupported method) share the envelope.
        code = _HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
        response = _render(request, NoticeHookError(code, str(exc.detail), status_code=exc.status_code))
        if exc.headers:
            response.headers.update(exc.headers)
        if exc.status_code == 405:
            response.headers["Allow"] = ", ".join(sorted(_allowed_methods(request)))
        return response
