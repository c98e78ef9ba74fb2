"""
Request Middleware

Correlation ID: tags every request with an ID so webhook deliveries and
API calls can be traced through the logs.
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.shared.core.logging import set_correlation_id


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Assigns a correlation ID to each request.

    - Reuses an incoming X-Request-ID header when the caller sends one
    - Otherwise generates req-xxxxxxxx
    - Echoes the ID back in the X-Request-ID response header
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = set_correlation_id(request.headers.get("X-Request-ID"))

        response = await call_next(request)

        response.headers["X-Request-ID"] = correlation_id
        return response
