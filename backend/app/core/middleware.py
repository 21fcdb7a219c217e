"""
Request logging middleware

Every request gets an id (taken from X-Request-ID when the client sends one)
that is bound to the log context and echoed back in the response headers.
"""
import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.logging_config import LoggingConfig

logger = LoggingConfig.get_logger(__name__)

# Probes hit these every few seconds; keep them out of the info log
QUIET_PATHS = ("/health", "/metrics")
SLOW_REQUEST_MS = 2000


class LoggingContextMiddleware(BaseHTTPMiddleware):
    """Bind request id, method, path and client to every log record of a request"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        path = request.url.path
        LoggingConfig.set_context(
            request_id=request_id,
            method=request.method,
            path=path,
            client_host=request.client.host if request.client else None,
        )
        level = logging.DEBUG if path.startswith(QUIET_PATHS) else logging.INFO
        started = time.perf_counter()
        logger.log(level, "Request started", extra={"query_params": str(request.query_params)})

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                exc_info=True,
                extra={
                    "error_type": type(e).__name__,
                    "duration_ms": int((time.perf_counter() - started) * 1000),
                },
            )
            raise
        finally:
            duration_ms = int((time.perf_counter() - started) * 1000)
            LoggingConfig.clear_context()

        if duration_ms >= SLOW_REQUEST_MS:
            level = logging.WARNING
        logger.log(
            level,
            "Request completed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        response.headers["X-Request-ID"] = request_id
        return response
