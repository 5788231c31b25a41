"""Error envelope for the HTTP API.

Every failure is rendered as ``{"success": false, "message": ..., "error": CODE}``.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from leadlink.common.exceptions import LeadLinkException
from leadlink.common.logging import get_logger

logger = get_logger("api.errors")

STATUS_TO_CODE = {
    400: "BAD_REQUEST",
    401: "AUTHENTICATION_REQUIRED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    500: "INTERNAL_ERROR",
    502: "SERVICE_UNAVAILABLE",
    503: "SERVICE_UNAVAILABLE",
}


def error_response(status_code: int, message: str, error_code: str, **extra) -> JSONResponse:
    content = {"success": False, "message": message, "error": error_code}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"field": ".".join(str(loc) for loc in err["loc"]), "message": err["msg"]}
            for err in exc.errors()
        ]
        logger.warning("Validation error on %s: %d field(s)", request.url.path, len(errors))
        message = errors[0]["message"] if errors else "Invalid request"
        return error_response(status.HTTP_400_BAD_REQUEST, message, "VALIDATION_ERROR", errors=errors)

    @app.exception_handler(LeadLinkException)
    async def leadlink_exception_handler(request: Request, exc: LeadLinkException) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s on %s: %s", exc.error_code, request.url.path, exc.detail)
        else:
            logger.info("%s on %s: %s", exc.error_code, request.url.path, exc.detail)
        return error_response(exc.status_code, str(exc.detail), exc.error_code)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return error_response(
            exc.status_code,
            str(exc.detail) if exc.detail else "An error occurred",
            STATUS_TO_CODE.get(exc.status_code, "INTERNAL_ERROR"),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled exception on %s %s: %s: %s",
            request.method, request.url.path, type(exc).__name__, exc,
            exc_info=True,
        )
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "An internal error occurred", "INTERNAL_ERROR"
        )
