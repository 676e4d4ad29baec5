"""Domain errors and exception handlers for standardized error responses."""
import logging
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from models import ErrorResponse
from config import DEBUG

logger = logging.getLogger(__name__)

# Error code mappings
ERROR_CODES = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_SERVER_ERROR",
    503: "SERVICE_UNAVAILABLE",
    504: "GATEWAY_TIMEOUT"
}


class WeatherHistError(Exception):
    """Base class for failures raised by the reconciliation core."""


class ProviderUnavailable(WeatherHistError):
    """The remote provider could not be reached, timed out or answered with an error.

    Retryable by the caller. Raised before any store write happens.
    """

    def __init__(self, message: str, status: int = None):
        super().__init__(message)
        self.status = status


class ProviderPayloadError(ProviderUnavailable):
    """The remote provider answered, but the payload could not be parsed."""


class StoreUnavailable(WeatherHistError):
    """The record store is unreachable or a statement failed.

    A failed batch write has been rolled back when this is raised.
    """


def get_client_ip(request: Request) -> str:
    """Get the client IP address from the request."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"


def _error_response(request: Request, status_code: int, error: str, message: str, details=None) -> JSONResponse:
    error_response = ErrorResponse(
        error=error,
        message=message,
        code=error,
        details=details,
        path=request.url.path,
        method=request.method,
        request_id=getattr(request.state, 'request_id', None)
    )
    return JSONResponse(status_code=status_code, content=error_response.model_dump())


def register_exception_handlers(app):
    """Register all exception handlers with the FastAPI app."""

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors with standardized error format."""
        client_ip = get_client_ip(request)
        request_id = getattr(request.state, 'request_id', None)

        error_details = []
        for error in exc.errors():
            field = " -> ".join(str(loc) for loc in error['loc'])
            error_details.append({
                "field": field,
                "message": error['msg'],
                "type": error['type'],
            })

        logger.warning(f"❌ VALIDATION ERROR: {exc.errors()} | IP={client_ip} | Path={request.url.path} | Request-ID={request_id}")
        return _error_response(request, 422, "VALIDATION_ERROR", "Request data validation failed", error_details)

    @app.exception_handler(ProviderUnavailable)
    async def provider_unavailable_handler(request: Request, exc: ProviderUnavailable):
        """The provider failed before anything was written; the caller may retry."""
        logger.error(f"❌ PROVIDER UNAVAILABLE: {exc} | Path={request.url.path}")
        return _error_response(
            request,
            503,
            "SERVICE_UNAVAILABLE",
            "Remote weather provider is unavailable",
            {"status": exc.status} if exc.status else None,
        )

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
        """Persistence failures are fatal to the request."""
        logger.error(f"❌ STORE UNAVAILABLE: {exc} | Path={request.url.path}")
        return _error_response(
            request,
            500,
            "STORE_UNAVAILABLE",
            "Record store is unavailable" if not DEBUG else str(exc),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTPException with standardized error format."""
        if isinstance(exc.detail, dict):
            detail_data = exc.detail
            error_message = detail_data.get("message", detail_data.get("detail", "An error occurred"))
            error_code = detail_data.get("code", ERROR_CODES.get(exc.status_code, "UNKNOWN_ERROR"))
            error_details = detail_data.get("details")
        elif isinstance(exc.detail, str):
            error_message = exc.detail
            error_code = ERROR_CODES.get(exc.status_code, "UNKNOWN_ERROR")
            error_details = None
        else:
            error_message = str(exc.detail) if exc.detail else "An error occurred"
            error_code = ERROR_CODES.get(exc.status_code, "UNKNOWN_ERROR")
            error_details = None

        return _error_response(request, exc.status_code, error_code, error_message, error_details)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unhandled exceptions with standardized error format."""
        request_id = getattr(request.state, 'request_id', None)

        logger.error(f"❌ UNHANDLED EXCEPTION: {type(exc).__name__}: {str(exc)} | Path={request.url.path} | Request-ID={request_id}", exc_info=True)

        return _error_response(
            request,
            500,
            "INTERNAL_SERVER_ERROR",
            "An internal server error occurred" if not DEBUG else str(exc),
            {"type": type(exc).__name__} if DEBUG else None,
        )
