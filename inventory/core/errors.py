"""Error codes, the API error exception and FastAPI exception handlers."""

import logging
from enum import Enum

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Machine-readable codes returned in the `error` field of error bodies."""

    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    ACCOUNT_DISABLED = "ACCOUNT_DISABLED"
    INVALID_REFRESH_TOKEN = "INVALID_REFRESH_TOKEN"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    USER_EXISTS = "USER_EXISTS"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ApiError(Exception):
    """Controlled error rendered as {"error": code, "message": message}."""

    def __init__(
        self,
        status_code: int,
        code: ErrorCode | str,
        message: str,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code.value if isinstance(code, ErrorCode) else code
        self.message = message
        self.headers = headers


def unauthorized(message: str = "Authentication required") -> ApiError:
    return ApiError(
        status.HTTP_401_UNAUTHORIZED,
        ErrorCode.UNAUTHORIZED,
        message,
        headers={"WWW-Authenticate": "Bearer"},
    )


def error_body(code: ErrorCode | str, message: str) -> dict[str, str]:
    return {"error": code.value if isinstance(code, ErrorCode) else code, "message": message}


# Default codes for HTTP errors raised by FastAPI/Starlette themselves.
_STATUS_CODES = {
    status.HTTP_401_UNAUTHORIZED: (ErrorCode.UNAUTHORIZED, "Authentication required"),
    status.HTTP_403_FORBIDDEN: (ErrorCode.FORBIDDEN, "Access denied"),
    status.HTTP_404_NOT_FOUND: (ErrorCode.NOT_FOUND, "Not found"),
}


def register_exception_handlers(app: FastAPI) -> None:
    """Register handlers that render every error with the same body shape."""

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.code, exc.message),
            headers=exc.headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        code, message = _STATUS_CODES.get(
            exc.status_code, (f"HTTP_{exc.status_code}", str(exc.detail))
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(code, message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        fields = [".".join(str(p) for p in err.get("loc", ()) if p != "body") for err in exc.errors()]
        message = "Invalid request"
        if any(fields):
            message = f"Invalid request: {', '.join(f for f in fields if f)}"
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=error_body(ErrorCode.VALIDATION_ERROR, message),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "Unhandled error on %s %s", request.method, request.url.path
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(ErrorCode.INTERNAL_ERROR, "Internal server error"),
        )
