"""
Central error handling for the auth API.

Every error leaves the service as ``{code, data: [], message, kind}``.
Only the fixed public message of an error is returned; exception text
goes to the log.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from auth.errors import AuthError, RateLimitExceededError

logger = logging.getLogger("uvicorn.error")


def error_body(code: int, message: str, kind: str) -> dict:
    return {"code": code, "data": [], "message": message, "kind": kind}


async def handle_auth_error(request: Request, exc: AuthError) -> JSONResponse:
    headers = {}
    if isinstance(exc, RateLimitExceededError):
        headers["Retry-After"] = str(exc.retry_after_seconds)
    elif exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers["WWW-Authenticate"] = "Bearer"

    if exc.status_code >= 500:
        logger.warning("%s %s failed with %s: %s", request.method, request.url.path, exc.kind, exc)
    else:
        logger.info("%s %s rejected with %s", request.method, request.url.path, exc.kind)

    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, exc.public_message, exc.kind),
        headers=headers,
    )


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [".".join(str(part) for part in error.get("loc", ())[1:]) for error in exc.errors()]
    logger.info("%s %s invalid request: %s", request.method, request.url.path, fields)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(status.HTTP_400_BAD_REQUEST, "Invalid request", "invalid_request"),
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unexpected error in %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", "internal_error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthError, handle_auth_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
