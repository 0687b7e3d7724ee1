"""Exception handlers rendering RFC 7807 problem details."""

from __future__ import annotations

import logging
import traceback
import uuid
from typing import Any, Iterable

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..domain.errors import LoginRejected, OtpDispatchError
from ..schemas.login import LoginError

logger = logging.getLogger(__name__)

PROBLEM_JSON = "application/problem+json"

VALIDATION_TYPE = "https://tools.ietf.org/html/rfc7231#section-6.5.1"
BAD_GATEWAY_TYPE = "https://tools.ietf.org/html/rfc7231#section-6.6.3"
SERVER_ERROR_TYPE = "https://tools.ietf.org/html/rfc7231#section-6.6.1"


def trace_id(request: Request) -> str:
    return request.headers.get("X-Request-ID") or uuid.uuid4().hex


def problem_response(
    request: Request,
    *,
    status_code: int,
    type_: str,
    title: str,
    **extra: Any,
) -> JSONResponse:
    """Build a problem details response carrying a trace identifier."""
    body: dict[str, Any] = {
        "type": type_,
        "title": title,
        "status": status_code,
        "traceId": trace_id(request),
    }
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body, media_type=PROBLEM_JSON)


def _field_name(loc: Iterable[Any]) -> str:
    parts = [str(part) for part in loc if part != "body" and not isinstance(part, int)]
    if not parts:
        return "$"
    name = parts[-1]
    return name[:1].upper() + name[1:]


def validation_errors(errors: Iterable[dict[str, Any]]) -> dict[str, list[str]]:
    """Group validation errors by PascalCase field name."""
    grouped: dict[str, list[str]] = {}
    for error in errors:
        field = _field_name(error.get("loc", ()))
        if error.get("type") == "missing" and field != "$":
            message = f"The {field} field is required."
        else:
            message = error.get("msg", "The value is invalid.")
        grouped.setdefault(field, []).append(message)
    return grouped


def install_exception_handlers(app: FastAPI, *, development: bool = False) -> None:
    """Register the handlers mapping domain and framework errors to HTTP responses."""

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return problem_response(
            request,
            status_code=status.HTTP_400_BAD_REQUEST,
            type_=VALIDATION_TYPE,
            title="One or more validation errors occurred.",
            errors=validation_errors(exc.errors()),
        )

    @app.exception_handler(LoginRejected)
    async def handle_login_rejected(request: Request, exc: LoginRejected) -> JSONResponse:
        body = LoginError(error_code=exc.error_code, error_message=exc.error_message)
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content=body.model_dump(by_alias=True),
        )

    @app.exception_handler(OtpDispatchError)
    async def handle_otp_failure(request: Request, exc: OtpDispatchError) -> JSONResponse:
        extra: dict[str, Any] = {}
        if development:
            extra["detail"] = str(exc)
        return problem_response(
            request,
            status_code=status.HTTP_502_BAD_GATEWAY,
            type_=BAD_GATEWAY_TYPE,
            title="OTP service unavailable.",
            **extra,
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        extra: dict[str, Any] = {}
        if development:
            extra = {
                "detail": str(exc),
                "exception": type(exc).__name__,
                "stackTrace": traceback.format_exception(type(exc), exc, exc.__traceback__),
            }
        return problem_response(
            request,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            type_=SERVER_ERROR_TYPE,
            title="An error occurred while processing your request.",
            **extra,
        )
