# app/core/errors.py
"""
Application error taxonomy and the HTTP error envelope.

Every failure leaves the API as:

    {"statusCode": 401, "error": "InvalidCredentials", "message": "..."}

Domain errors (auth, not-found, conflict, validation) map to 4xx.
Infrastructure errors (hashing, signing, database) map to 5xx.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that surface as an error envelope."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "InternalServerError"
    message: str = "Internal Server Error"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


# ----- Authentication -----


class AuthError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "Unauthorized"
    message = "Authentication required"


class InvalidCredentialsError(AuthError):
    error = "InvalidCredentials"
    message = "Invalid username or password"


class UnauthorizedError(AuthError):
    error = "Unauthorized"
    message = "Authentication required"


class InvalidTokenError(AuthError):
    error = "InvalidToken"
    message = "Invalid token"


class TokenExpiredError(AuthError):
    error = "Expired"
    message = "Token expired"


# ----- Domain -----


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "NotFound"
    message = "User not found"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    error = "Conflict"
    message = "Conflict"


class DuplicateUsernameError(ConflictError):
    error = "DuplicateUsername"
    message = "Username already exists"


class ValidationError(AppError):
    status_code = 422
    error = "ValidationError"
    message = "Invalid request"


# ----- Infrastructure -----


class HashingError(AppError):
    error = "HashingError"
    message = "Failed to hash password"


class SigningError(AppError):
    error = "SigningError"
    message = "Failed to sign or verify token"


def error_body(status_code: int, error: str, message: str, **extra) -> dict:
    body = {"statusCode": status_code, "error": error, "message": message}
    body.update(extra)
    return body


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            f"{request.method} {request.url.path} -> {exc.status_code} {exc.error}",
            exc_info=exc,
        )
    else:
        logger.info(
            f"{request.method} {request.url.path} -> {exc.status_code} {exc.error}"
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, exc.error, exc.message),
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    code = 422
    logger.info(f"{request.method} {request.url.path} -> {code} ValidationError")
    return JSONResponse(
        status_code=code,
        content=error_body(
            code,
            "ValidationError",
            "Request body or parameters are invalid",
            details=jsonable_encoder(exc.errors()),
        ),
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    # Router-level failures (unknown path, wrong method).
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, "HttpError", str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def database_error_handler(
    request: Request, exc: SQLAlchemyError
) -> JSONResponse:
    code = status.HTTP_500_INTERNAL_SERVER_ERROR
    logger.error(
        f"{request.method} {request.url.path} -> {code} StoreUnavailable",
        exc_info=exc,
    )
    return JSONResponse(
        status_code=code,
        content=error_body(code, "StoreUnavailable", "User store unavailable"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the error-envelope handlers to an application."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
