"""Middleware modules for the application."""
from .request_id import request_id_middleware
from .logging import log_requests_middleware

__all__ = [
    "request_id_middleware",
    "log_requests_middleware",
]
