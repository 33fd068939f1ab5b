"""
InMemoryRateLimiter middleware

Purpose
- Per-route, per-IP fixed-window throttling in front of the gateway routes.

Identity key
- ``<client ip>-<policy name>``, so each route family has its own counter.
- Workflow callbacks carrying a valid X-Callback-Secret are counted under a
  separate, more permissive ``callback_trusted`` policy instead of the normal
  callback quota.

Behavior
- Every limited response carries ``RateLimit-Limit``, ``RateLimit-Remaining``
  and ``RateLimit-Reset`` headers.
- When a window is exhausted, returns 429 with ``Retry-After`` and a
  ``{"error", "code"}`` body using the policy's code.
- Requests matching no policy pass through untouched.
- During tests, when app.state.testing is True, the middleware is bypassed.

Important notes
- Counters live in process memory; each worker process keeps its own.

Usage
    app.add_middleware(InMemoryRateLimiter, policies=default_rate_limit_policies())
"""
import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Pattern, Tuple

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from support.constants import (
    CALLBACK_SECRET_HEADER,
    RATE_LIMIT_CALLBACK,
    RATE_LIMIT_CALLBACK_TRUSTED,
    RATE_LIMIT_DELETE,
    RATE_LIMIT_DOWNLOAD,
    RATE_LIMIT_LIST,
    RATE_LIMIT_STATUS,
    RATE_LIMIT_UPLOAD,
)
from support.exceptions import RateLimitError
from support.security import verify_callback_secret


@dataclass(frozen=True)
class RateLimitPolicy:
    name: str
    method: str
    path_pattern: Pattern
    limit: int
    window_seconds: int
    message: str
    code: str

    def matches(self, method: str, path: str) -> bool:
        return method == self.method and self.path_pattern.fullmatch(path) is not None


def _policy(name, method, pattern, limit_and_window, message, code) -> RateLimitPolicy:
    limit, window = limit_and_window
    return RateLimitPolicy(name, method, re.compile(pattern), limit, window, message, code)


def default_rate_limit_policies() -> List[RateLimitPolicy]:
    return [
        _policy("upload", "POST", r"/v1/jobs/?", RATE_LIMIT_UPLOAD,
                "Too many file uploads. Please try again later.", "UPLOAD_RATE_LIMIT_EXCEEDED"),
        _policy("status", "GET", r"/v1/jobs/[^/]+/(status|execution)", RATE_LIMIT_STATUS,
                "Too many status check requests. Please slow down.", "STATUS_RATE_LIMIT_EXCEEDED"),
        _policy("download", "GET", r"/v1/(files/download/[^/]+|jobs/[^/]+/download-url)", RATE_LIMIT_DOWNLOAD,
                "Too many download requests. Please try again later.", "DOWNLOAD_RATE_LIMIT_EXCEEDED"),
        _policy("list", "GET", r"/v1/(files|files/stats|jobs)/?", RATE_LIMIT_LIST,
                "Too many list requests. Please slow down.", "LIST_RATE_LIMIT_EXCEEDED"),
        _policy("delete", "DELETE", r"/v1/files/[^/]+", RATE_LIMIT_DELETE,
                "Too many delete requests. Please try again later.", "DELETE_RATE_LIMIT_EXCEEDED"),
        _policy("callback", "POST", r"/v1/callbacks/.+", RATE_LIMIT_CALLBACK,
                "Too many callback requests. Please slow down.", "CALLBACK_RATE_LIMIT_EXCEEDED"),
    ]


def trusted_callback_policy() -> RateLimitPolicy:
    return _policy("callback_trusted", "POST", r"/v1/callbacks/.+", RATE_LIMIT_CALLBACK_TRUSTED,
                   "Too many callback requests. Please slow down.", "CALLBACK_RATE_LIMIT_EXCEEDED")


class InMemoryRateLimiter(BaseHTTPMiddleware):
    """A per-route fixed-window rate limiter keyed by client IP."""

    def __init__(
        self,
        app,
        policies: Optional[List[RateLimitPolicy]] = None,
        trusted_policy: Optional[RateLimitPolicy] = None,
    ):
        super().__init__(app)
        self.policies = policies if policies is not None else default_rate_limit_policies()
        self.trusted_policy = trusted_policy or trusted_callback_policy()
        self._buckets: Dict[str, Tuple[int, int]] = {}  # key -> (window_start_timestamp, count)

    def _select_policy(self, request: Request) -> Optional[RateLimitPolicy]:
        method, path = request.method, request.url.path
        for policy in self.policies:
            if policy.matches(method, path):
                if policy.name == "callback" and verify_callback_secret(
                    request.headers.get(CALLBACK_SECRET_HEADER)
                ):
                    return self.trusted_policy
                return policy
        return None

    @staticmethod
    def _get_identity(request: Request) -> str:
        return request.client.host if request.client else "unknown"

    def _hit(self, key: str, policy: RateLimitPolicy, now: int) -> Tuple[int, int]:
        """Count one request. Returns (count in window, seconds until reset)."""
        window_start = now - (now % policy.window_seconds)
        bucket = self._buckets.get(key)
        if not bucket or bucket[0] != window_start:
            count = 1
        else:
            count = bucket[1] + 1
        self._buckets[key] = (window_start, count)
        return count, max(1, window_start + policy.window_seconds - now)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Rate limit requests per IP and route in a fixed time window."""

        # Bypass rate limiting during tests
        app_state = getattr(request.app, "state", None)
        if getattr(app_state, "testing", False):
            return await call_next(request)

        policy = self._select_policy(request)
        if policy is None:
            return await call_next(request)

        key = f"{self._get_identity(request)}-{policy.name}"
        count, reset_in = self._hit(key, policy, int(time.time()))
        headers = {
            "RateLimit-Limit": str(policy.limit),
            "RateLimit-Remaining": str(max(0, policy.limit - count)),
            "RateLimit-Reset": str(reset_in),
        }

        if count > policy.limit:
            error = RateLimitError(policy.message, code=policy.code, retry_after=reset_in)
            headers["Retry-After"] = str(error.retry_after)
            return JSONResponse(status_code=error.status_code, content=error.to_dict(), headers=headers)

        response: Response = await call_next(request)
        response.headers.update(headers)
        return response
