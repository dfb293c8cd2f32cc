"""
Request Context Middleware

Gives every request a correlation ID and its own execution-guard scope.
"""

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from ...engine.execution_guard import execution_scope
from ...utils.logger import set_correlation_id
from ...utils.idgen import generate_correlation_id


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Per-request context.

    - Reuses the caller's X-Correlation-Id header or generates one
    - Opens a fresh double-execution guard scope, so a transition repeated
      within one request is caught but a later request may apply it again
    - Echoes the correlation ID in the response headers
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        correlation_id = (
            request.headers.get("X-Correlation-Id") or generate_correlation_id()
        )
        set_correlation_id(correlation_id)

        with execution_scope():
            response = await call_next(request)

        response.headers["X-Correlation-Id"] = correlation_id
        return response
