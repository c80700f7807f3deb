import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from mealmind.core.exceptions import AppError

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "internal server error"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """
    Client errors are returned as-is; server errors are logged with full
    detail and returned with an opaque message.
    """
    # Server-side failures never expose their message to the client
    if exc.status_code >= 500:
        logger.error(
            "%s %s failed with %s: %s",
            request.method,
            request.url.path,
            type(exc).__name__,
            exc.message,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": INTERNAL_ERROR_MESSAGE, "code": exc.code},
        )

    logger.warning("%s %s rejected (%d): %s", request.method, request.url.path, exc.status_code, exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Field locations only; echoing input could leak passwords
    fields = [".".join(str(part) for part in error.get("loc", ())) for error in exc.errors()]
    logger.warning("%s %s invalid request: %s", request.method, request.url.path, fields)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "invalid request", "code": "validation_error", "fields": fields},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("%s %s raised an unhandled error", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": INTERNAL_ERROR_MESSAGE, "code": "internal_error"},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
