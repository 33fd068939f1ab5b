"""
Logging middleware for the conversion gateway.
"""
import time
import logging
from typing import Callable
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from user_agents import parse


SENSITIVE_HEADERS = {"authorization", "cookie", "proxy-authorization", "x-callback-secret"}


class EnhancedLoggingMiddleware(BaseHTTPMiddleware):
    """Enhanced middleware for structured request/response logging."""

    def __init__(self, app, service_name: str, enable_user_agent: bool = True):
        super().__init__(app)
        self.service_name = service_name
        self.enable_user_agent = enable_user_agent
        self.logger = logging.getLogger(service_name)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Generate request ID for tracing
        request_id = str(uuid.uuid4())[:8]
        request.state.request_id = request_id

        start_time = time.time()

        client_ip = request.client.host if request.client else "unknown"

        request_log = {
            "request_id": request_id,
            "service": self.service_name,
            "method": request.method,
            "url": str(request.url),
            "client_ip": client_ip,
        }

        if self.enable_user_agent:
            user_agent_parsed = parse(request.headers.get("user-agent", ""))
            request_log.update({
                "user_agent": user_agent_parsed.browser.family if user_agent_parsed else "unknown",
                "user_agent_os": user_agent_parsed.os.family if user_agent_parsed else "unknown",
            })

        # Never log secrets
        request_log["headers"] = {
            name: value for name, value in request.headers.items() if name.lower() not in SENSITIVE_HEADERS
        }

        self.logger.info("Request received", extra={"request_data": request_log})

        try:
            response = await call_next(request)
            process_time = time.time() - start_time

            response_log = {
                "request_id": request_id,
                "service": self.service_name,
                "status_code": response.status_code,
                "process_time": round(process_time, 3),
            }

            logger_method = self.logger.info if response.status_code < 400 else self.logger.warning
            logger_method("Response sent", extra={"response_data": response_log})

            # Add request ID to response headers for client tracing
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = f"{process_time:.3f}"
            response.headers["X-Service"] = self.service_name

            return response

        except Exception as e:
            process_time = time.time() - start_time
            error_log = {
                "request_id": request_id,
                "service": self.service_name,
                "method": request.method,
                "url": str(request.url),
                "error_type": type(e).__name__,
                "error_message": str(e),
                "process_time": round(process_time, 3),
            }

            self.logger.error(
                "Error processing request",
                extra={"error_data": error_log},
                exc_info=True
            )
            raise
