"""API error type and FastAPI exception handlers.

Routers raise ``ApiError`` from a service ``Failure``; the handler renders
``{"detail": ..., "code": ...}`` plus any optional fields.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from netmatch.services.auth import ErrorCode, Failure

logger = logging.getLogger("netmatch")


class ApiError(Exception):
    """An error that crosses the API boundary. ``message`` is user-safe."""

    def __init__(
        self,
        status_code: int,
        message: str,
        code: ErrorCode | str | None = None,
        *,
        extra: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code
        self.extra = extra or {}
        self.headers = headers

    @classmethod
    def from_failure(cls, failure: Failure) -> "ApiError":
        extra: dict[str, Any] = {}
        headers = None
        if failure.retry_after_minutes is not None:
            extra["retry_after_minutes"] = failure.retry_after_minutes
            headers = {"Retry-After": str(failure.retry_after_minutes * 60)}
        if failure.email is not None:
            extra["email"] = failure.email
        return cls(failure.status_code, failure.message, failure.code, extra=extra, headers=headers)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"detail": self.message}
        if self.code is not None:
            payload["code"] = self.code.value if isinstance(self.code, ErrorCode) else self.code
        payload.update(self.extra)
        return payload


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        # Field errors carry the submitted input; log locations only.
        logger.info("Rejected malformed request to %s: %s", request.url.path, [err.get("loc") for err in exc.errors()])
        error = ApiError(400, "Invalid request", ErrorCode.VALIDATION_ERROR)
        return JSONResponse(status_code=error.status_code, content=error.to_dict())
