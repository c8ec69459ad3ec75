"""
Middleware package for the API.
"""
from coursebot.middleware.logging_middleware import (
    ContextualLogger,
    RequestLoggingMiddleware,
    get_logger,
    get_request_id,
    get_user_id,
    set_user_id,
)

__all__ = [
    "RequestLoggingMiddleware",
    "ContextualLogger",
    "get_logger",
    "get_request_id",
    "get_user_id",
    "set_user_id",
]
