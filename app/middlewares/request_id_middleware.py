import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from fastapi import Request, Response

from app.utils.context import set_request_id
from app.utils.logging import get_logger

REQUEST_ID_HEADER = "X-Request-ID"

__all__ = ["RequestIDMiddleware", "REQUEST_ID_HEADER"]


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tags every request with an ID, echoed back and bound to its log lines."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            request_id = str(uuid.UUID(request.headers.get(REQUEST_ID_HEADER)))
        except (ValueError, TypeError):
            request_id = str(uuid.uuid4())

        request.state.request_id = request_id

        # Set in context variable for global access to logger
        set_request_id(request_id)

        started = time.perf_counter()
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id

        get_logger().info(
            f"{request.method} {request.url.path} -> {response.status_code}",
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response
