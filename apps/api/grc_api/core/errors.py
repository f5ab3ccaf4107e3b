from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from grc_api.core.logging import get_logger
from grc_api.core.settings import get_settings
from grc_api.core.supabase_jwt import AuthFailure, authenticate, extract_access_token

logger = get_logger("api.errors")

UNIQUE_VIOLATION_CODE = "23505"
_REQUIRED_ERROR_TYPES = {"missing", "string_too_short"}
_LOCATION_PREFIXES = {"body", "query", "path", "header", "cookie"}
_WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class GrcError(Exception):
    """Base for errors rendered as ``{"error": message}`` at the endpoint boundary."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(GrcError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class AuthorizationError(GrcError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class ForbiddenError(GrcError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class NotFoundError(GrcError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ConflictError(GrcError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"


class StoreError(GrcError):
    """The data store rejected or failed a request. The message reaches the client verbatim."""

    default_message = "Data store request failed"

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code

    @property
    def is_unique_violation(self) -> bool:
        return self.code == UNIQUE_VIOLATION_CODE


class AuditError(GrcError):
    """Audit side-channel failure. Logged by the emitter, never rendered."""

    default_message = "Failed to record audit event"


def join_field_names(names: Sequence[str]) -> str:
    if len(names) <= 1:
        return "".join(names)
    return f"{', '.join(names[:-1])} and {names[-1]}"


def _field_path(loc: Sequence[Any]) -> list[str]:
    return [str(part) for part in loc if part not in _LOCATION_PREFIXES]


def _is_required_error(error: dict[str, Any]) -> bool:
    if error.get("type") in _REQUIRED_ERROR_TYPES:
        return True
    # An explicit null for a required string reads as "missing" to callers.
    return error.get("type") == "string_type" and error.get("input") is None


def validation_message(errors: Sequence[dict[str, Any]]) -> str:
    required: list[str] = []
    for error in errors:
        if error.get("type") == "json_invalid":
            return "Invalid JSON body"
        path = _field_path(error.get("loc", ()))
        if not path:
            if error.get("type") == "missing":
                return "Request body is required"
            continue
        if _is_required_error(error):
            name = path[-1]
            if name not in required:
                required.append(name)

    if required:
        verb = "is" if len(required) == 1 else "are"
        return f"{join_field_names(required)} {verb} required"

    if not errors:
        return ValidationError.default_message
    first = errors[0]
    context_error = (first.get("ctx") or {}).get("error")
    if first.get("type") == "value_error" and context_error is not None:
        return str(context_error)
    path = _field_path(first.get("loc", ()))
    message = str(first.get("msg") or ValidationError.default_message)
    return f"{'.'.join(path)}: {message}" if path else message


def _error_response(status_code: int, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


async def _grc_error_handler(request: Request, exc: GrcError) -> JSONResponse:
    if isinstance(exc, StoreError):
        logger.error(
            "store.error",
            extra={
                "component": "store",
                "method": request.method,
                "path": request.url.path,
                "store_code": exc.code,
                "error": exc.message,
            },
        )
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthorizationError) else None
    return _error_response(exc.status_code, exc.message, headers)


async def _http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return _error_response(exc.status_code, message, getattr(exc, "headers", None))


def _is_anonymous_write(request: Request) -> bool:
    if request.method not in _WRITE_METHODS:
        return False
    settings = get_settings()
    token = extract_access_token(request, settings.AUTH_COOKIE_NAME)
    return isinstance(authenticate(token, settings), AuthFailure)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    # Unparseable bodies fail before route dependencies run, so authentication is checked here.
    if any(error.get("type") == "json_invalid" for error in errors) and _is_anonymous_write(request):
        return _error_response(
            status.HTTP_401_UNAUTHORIZED,
            AuthorizationError.default_message,
            {"WWW-Authenticate": "Bearer"},
        )
    return _error_response(status.HTTP_400_BAD_REQUEST, validation_message(errors))


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "request.unhandled_error",
        extra={"component": "api", "method": request.method, "path": request.url.path},
    )
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, GrcError.default_message)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GrcError, _grc_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_exception_handler)
