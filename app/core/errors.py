from __future__ import annotations

import logging
from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Error rendered as ``{"error", "message", "details"}`` with ``status_code``."""

    def __init__(
        self,
        status_code: int,
        error: str,
        message: str | None = None,
        details: str | None = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(message or error)
        self.status_code = status_code
        self.error = error
        self.message = message
        self.details = details
        self.headers = headers

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.error}
        if self.message is not None:
            payload["message"] = self.message
        if self.details is not None:
            payload["details"] = self.details
        return payload


def invalid_input(message: str, details: str | None = None) -> ApiError:
    return ApiError(status.HTTP_400_BAD_REQUEST, "Invalid Input", message, details)


def unauthorized(message: str = "Authentication required") -> ApiError:
    return ApiError(status.HTTP_401_UNAUTHORIZED, "Unauthorized", message)


def forbidden(message: str = "You do not have access to this resource") -> ApiError:
    return ApiError(status.HTTP_403_FORBIDDEN, "Forbidden", message)


def not_found(message: str) -> ApiError:
    return ApiError(status.HTTP_404_NOT_FOUND, "Not Found", message)


def server_error(message: str, details: str | None = None) -> ApiError:
    return ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Server Error", message, details)


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("api_error path=%s status=%s: %s", request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=exc.headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Request body is invalid")
    error = invalid_input(f"{location}: {message}" if location else message)
    return JSONResponse(status_code=error.status_code, content=error.to_payload())
