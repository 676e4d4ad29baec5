"""Request ID middleware for tracing."""
import uuid
from fastapi import Request


async def request_id_middleware(request: Request, call_next):
    """Tag each request with an ID, reusing a well-formed incoming X-Request-ID."""
    incoming = request.headers.get("X-Request-ID", "")
    request_id = incoming if 0 < len(incoming) <= 64 and incoming.replace("-", "").isalnum() else str(uuid.uuid4())
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id

    return response
