import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from leadlink.common.logging import get_logger
from leadlink.common.security import decode_token

logger = get_logger("middleware")


def caller_tag(request: Request) -> str:
    """``role:account-id`` from the bearer token, without touching the database."""
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return "anonymous"
    try:
        payload = decode_token(auth[7:])
    except ValueError:
        return "invalid-token"
    return f"{payload.get('role', 'user')}:{payload.get('sub', '?')}"


class AuditMiddleware(BaseHTTPMiddleware):
    """Access log line per request, tagged with the calling user or vendor.

    Responses carry ``X-Request-ID`` (echoed when the client sent one) and
    ``X-Request-Duration-Ms``.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID", "")[:64] or uuid.uuid4().hex[:12]
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        logger.info(
            "%s %s %d %.1fms account=%s request=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            caller_tag(request),
            request_id,
        )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        return response
