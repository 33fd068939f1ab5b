"""
Error handling for the conversion gateway.

- register_exception_handlers maps every typed AppError to its status code and a
  ``{"error", "code"}`` body, and request validation failures to 400.
- ErrorMiddleware catches anything else, logs it, and returns a generic 500.
"""
import logging
import traceback

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from support.constants import APP_NAME
from support.exceptions import AppError


logger = logging.getLogger(APP_NAME)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Translate a typed gateway error into its JSON response."""
    log_method = logger.error if exc.status_code >= 500 else logger.info
    log_method("%s %s -> %s %s: %s", request.method, request.url.path, exc.status_code, exc.code, exc.message)
    headers = None
    if getattr(exc, "retry_after", None):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    if location:
        message = f"{location}: {message}"
    return JSONResponse(status_code=400, content={"error": message, "code": "INVALID_REQUEST"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)


class ErrorMiddleware(BaseHTTPMiddleware):
    """Middleware to catch unhandled exceptions and return 500 JSON response."""

    async def dispatch(self, request: Request, call_next) -> Response:
        """Catch exceptions and return JSON error response."""
        try:
            return await call_next(request)
        except Exception as e:
            logger.error("Unhandled error: %s", str(e))
            logger.error("Traceback: %s", traceback.format_exc())

            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "code": "INTERNAL_ERROR"},
            )
