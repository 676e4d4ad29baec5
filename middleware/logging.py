"""Request logging middleware."""
import time
import logging
from fastapi import Request
from config import DEBUG, LOG_VERBOSITY
from exceptions import get_client_ip
from utils.sanitization import sanitize_for_logging

logger = logging.getLogger(__name__)

QUIET_PATHS = {"/", "/docs", "/openapi.json", "/redoc", "/health"}


async def log_requests_middleware(request: Request, call_next):
    """Log all requests when DEBUG is enabled or verbosity is verbose."""
    if not (DEBUG or LOG_VERBOSITY == "verbose") or request.url.path in QUIET_PATHS:
        return await call_next(request)

    start_time = time.time()
    client_ip = get_client_ip(request)
    query = sanitize_for_logging(request.url.query, max_length=150)
    logger.debug(f"🌐 REQUEST: {request.method} {request.url.path}?{query} | IP: {client_ip}")

    response = await call_next(request)

    process_time = time.time() - start_time
    logger.debug(f"✅ RESPONSE: {response.status_code} | {request.method} {request.url.path} | {process_time:.3f}s | IP: {client_ip}")
    return response
