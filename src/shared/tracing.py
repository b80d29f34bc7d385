"""
Request tracing for the Lumina command service

Gives every app invocation a correlation ID and binds it, together with the
authenticated user id forwarded by the auth proxy, to the structlog context.
The validation, model-attempt and usage-write log lines of one request can
then be joined.

Usage:
    from shared.tracing import RequestTracingMiddleware

    app.add_middleware(RequestTracingMiddleware, service_name="lumina-command")

Headers:
    X-Request-ID: Correlation ID (echoed, or generated when absent)
    X-User-ID: Authenticated user id, bound to logs as ``user_id``
    X-Response-Time-Ms: Wall time spent inside the service
"""
import time
import uuid
from typing import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"
USER_ID_HEADER = "X-User-ID"
RESPONSE_TIME_HEADER = "X-Response-Time-Ms"


class RequestTracingMiddleware(BaseHTTPMiddleware):
    """Correlation IDs, per-request log context and timing headers."""

    def __init__(self, app, service_name: str = "lumina"):
        super().__init__(app)
        self.service_name = service_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        started = time.perf_counter()
        request.state.request_id = request_id

        context = {
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "service": self.service_name,
        }
        user_id = request.headers.get(USER_ID_HEADER)
        if user_id:
            context["user_id"] = user_id

        with structlog.contextvars.bound_contextvars(**context):
            logger.debug("request_started")
            try:
                response = await call_next(request)
            except Exception as e:
                logger.error(
                    "request_failed",
                    error_type=type(e).__name__,
                    duration_ms=round((time.perf_counter() - started) * 1000, 2)
                )
                raise

            duration_ms = (time.perf_counter() - started) * 1000
            response.headers[REQUEST_ID_HEADER] = request_id
            response.headers[RESPONSE_TIME_HEADER] = str(int(duration_ms))
            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2)
            )
            return response
