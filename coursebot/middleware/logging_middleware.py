"""
Request logging middleware with correlation IDs for request tracing.
"""
import logging
import time
import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Context variables carried across async calls of one request
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str] = ContextVar("user_id", default="")

logger = logging.getLogger(__name__)

CONTEXT_PATH = "/api/context/"


def get_request_id() -> str:
    return request_id_var.get()


def get_user_id() -> str:
    return user_id_var.get()


def set_user_id(user_id: str):
    """Attach a user id to the current request (for ids that arrive in the body)"""
    user_id_var.set(user_id)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Assigns a short request id, logs start/end with timing and picks the user
    id from the X-User-ID header or a /api/context/{user_id} path.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())[:8]
        request_id_var.set(request_id)

        path = request.url.path
        user_id = request.headers.get("x-user-id", "")
        if not user_id and path.startswith(CONTEXT_PATH):
            user_id = path[len(CONTEXT_PATH) :].split("/")[0]
        user_id_var.set(user_id)

        start_time = time.time()
        logger.info(
            f"[{request_id}] → {request.method} {path}",
            extra={
                "request_id": request_id,
                "user_id": user_id,
                "method": request.method,
                "path": path,
                "event": "request_start",
            },
        )

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"[{request_id}] ✗ Error: {str(e)[:100]} ({duration_ms:.0f}ms)",
                extra={
                    "request_id": request_id,
                    "user_id": user_id,
                    "error": str(e),
                    "duration_ms": duration_ms,
                    "event": "request_error",
                },
                exc_info=True,
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        log_level = logging.INFO if response.status_code < 400 else logging.WARNING
        logger.log(
            log_level,
            f"[{request_id}] ← {response.status_code} ({duration_ms:.0f}ms)",
            extra={
                "request_id": request_id,
                "user_id": user_id,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
                "event": "request_end",
            },
        )
        response.headers["X-Request-ID"] = request_id
        return response


class ContextualLogger:
    """Logger wrapper that prefixes messages with [request_id][user:...]"""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def _format_msg(self, msg: str) -> str:
        prefix = ""
        request_id = get_request_id()
        user_id = get_user_id()
        if request_id:
            prefix = f"[{request_id}]"
        if user_id:
            prefix += f"[user:{user_id[:12]}]"
        return f"{prefix} {msg}" if prefix else msg

    def debug(self, msg: str, *args, **kwargs):
        self.logger.debug(self._format_msg(msg), *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self.logger.info(self._format_msg(msg), *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self.logger.warning(self._format_msg(msg), *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self.logger.error(self._format_msg(msg), *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        self.logger.exception(self._format_msg(msg), *args, **kwargs)


def get_logger(name: str) -> ContextualLogger:
    """Get a contextual logger that includes request/user IDs."""
    return ContextualLogger(name)
