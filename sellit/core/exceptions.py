# sellit/core/exceptions.py
from __future__ import annotations

"""
Unified exceptions & handlers for Sellit.

- Domain exceptions (NotFoundError, BadRequestError, ConflictError, ...)
- Global FastAPI handlers with structured logging via sellit.core.logging
- RFC 7807-style JSON body (application/problem+json)
- IntegrityError parsing (duplicate/foreign key/not null/check) for PG/SQLite
- StaleDataError (optimistic lock lost) -> 409 CONCURRENT_MODIFICATION
"""

import re
from typing import Any, Dict, Optional, Tuple

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from sellit.core.logging import get_logger, redact_secrets

logger = get_logger(__name__)

# -----------------------------------------------------------------------------
# Domain exceptions
# -----------------------------------------------------------------------------


class SellitException(Exception):
    """Base domain exception."""

    default_status = status.HTTP_400_BAD_REQUEST
    title = "Bad request"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        *,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        http_status: Optional[int] = None,
    ):
        self.message = message
        self.code = code
        self.extra = extra or {}
        self.headers = headers or {}
        self.http_status = http_status  # позволяет насильно указать статус
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return self.http_status or self.default_status


class BadRequestError(SellitException):
    """Request is well-formed but cannot be applied."""


class NoValidAttributesError(BadRequestError):
    """No selected attribute resolved to a live catalog value."""

    def __init__(self, message: str = "No valid attribute values selected", **kwargs):
        kwargs.setdefault("code", "NO_VALID_ATTRIBUTES")
        super().__init__(message, **kwargs)


class AuthenticationError(SellitException):
    default_status = status.HTTP_401_UNAUTHORIZED
    title = "Authentication error"


class AuthorizationError(SellitException):
    default_status = status.HTTP_403_FORBIDDEN
    title = "Authorization error"


class SellitValidationError(SellitException):
    default_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    title = "Validation error"


class NotFoundError(SellitException):
    default_status = status.HTTP_404_NOT_FOUND
    title = "Resource not found"


class ConflictError(SellitException):
    default_status = status.HTTP_409_CONFLICT
    title = "Conflict"


class ExternalServiceError(SellitException):
    default_status = status.HTTP_502_BAD_GATEWAY
    title = "Upstream service error"


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def _problem_json(
    title: str,
    detail: str,
    status_code: int,
    code: Optional[str] = None,
    instance: Optional[str] = None,
    extras: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """RFC 7807 inspired body (application/problem+json compatible)."""
    body: Dict[str, Any] = {
        "type": f"https://httpstatuses.com/{status_code}",
        "title": title,
        "status": status_code,
        "detail": detail,
        "code": code,
    }
    if instance:
        body["instance"] = instance
    if extras:
        body["extra"] = redact_secrets(extras)
    return {k: v for k, v in body.items() if v is not None}


def _json_problem_response(
    status_code: int,
    content: Dict[str, Any],
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=content,
        headers=headers or {},
        media_type="application/problem+json",
    )


def _jsonable_errors(errs: list) -> list:
    # pydantic кладёт исходные исключения в ctx, они не сериализуются
    out = []
    for e in errs:
        item = {k: v for k, v in e.items() if k in ("type", "loc", "msg")}
        item["loc"] = [str(p) for p in item.get("loc", ())]
        out.append(item)
    return out


_DUP_RE = re.compile(r"duplicate key|unique constraint|unique violation", re.IGNORECASE)
_FK_RE = re.compile(r"foreign key", re.IGNORECASE)
_NOTNULL_RE = re.compile(r"not null", re.IGNORECASE)
_CHECK_RE = re.compile(r"check constraint|violates check constraint", re.IGNORECASE)


def _parse_integrity_error(exc: IntegrityError) -> Tuple[str, str]:
    """Returns (message, code) for user-friendly error mapping."""
    text = str(getattr(exc, "orig", exc))
    if _DUP_RE.search(text):
        return ("A record with this value already exists", "DUPLICATE_VALUE")
    if _FK_RE.search(text):
        return ("Referenced record does not exist", "FOREIGN_KEY_ERROR")
    if _NOTNULL_RE.search(text):
        return ("Required field is missing", "REQUIRED_FIELD")
    if _CHECK_RE.search(text):
        return ("Invalid value provided", "INVALID_VALUE")
    return ("A database constraint was violated", "INTEGRITY_ERROR")


# -----------------------------------------------------------------------------
# Exception Handlers (FastAPI)
# -----------------------------------------------------------------------------


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception", exc_info=exc, path=request.url.path, method=request.method)
    body = _problem_json(
        title="Internal server error",
        detail="An unexpected error occurred. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code="INTERNAL_ERROR",
        instance=str(request.url),
    )
    return _json_problem_response(status.HTTP_500_INTERNAL_SERVER_ERROR, body)


async def sellit_exception_handler(request: Request, exc: SellitException) -> JSONResponse:
    """Domain exceptions -> status taken from the exception class."""
    sc = exc.status_code
    if isinstance(exc, AuthenticationError):
        exc.headers.setdefault("WWW-Authenticate", 'Bearer realm="api"')

    logger.warning(
        "Sellit exception",
        exception_type=type(exc).__name__,
        message=exc.message,
        code=exc.code,
        path=request.url.path,
        method=request.method,
    )
    body = _problem_json(
        title=exc.title,
        detail=exc.message,
        status_code=sc,
        code=exc.code,
        instance=str(request.url),
        extras=exc.extra,
    )
    return _json_problem_response(sc, body, headers=exc.headers)


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    msg, code = _parse_integrity_error(exc)
    logger.warning(
        "Database integrity error",
        error=str(getattr(exc, "orig", exc)),
        path=request.url.path,
        method=request.method,
        code=code,
    )
    body = _problem_json(
        title="Integrity error",
        detail=msg,
        status_code=status.HTTP_409_CONFLICT,
        code=code,
        instance=str(request.url),
    )
    return _json_problem_response(status.HTTP_409_CONFLICT, body)


async def stale_data_handler(request: Request, exc: StaleDataError) -> JSONResponse:
    """Optimistic lock lost: another request saved the same product first."""
    logger.warning("Concurrent modification", path=request.url.path, method=request.method)
    body = _problem_json(
        title="Conflict",
        detail="The resource was modified by another request. Reload and try again.",
        status_code=status.HTTP_409_CONFLICT,
        code="CONCURRENT_MODIFICATION",
        instance=str(request.url),
    )
    return _json_problem_response(status.HTTP_409_CONFLICT, body)


async def validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
    errs = _jsonable_errors(exc.errors())
    logger.warning("Validation error", errors=errs, path=request.url.path, method=request.method)
    body = _problem_json(
        title="Validation error",
        detail="One or more fields failed validation",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code="VALIDATION_ERROR",
        instance=str(request.url),
        extras={"errors": errs},
    )
    return _json_problem_response(status.HTTP_422_UNPROCESSABLE_ENTITY, body)


async def request_validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """FastAPI RequestValidationError (body/query/path validation)."""
    errs = _jsonable_errors(list(exc.errors()))
    logger.warning(
        "Request validation error", errors=errs, path=request.url.path, method=request.method
    )
    body = _problem_json(
        title="Validation error",
        detail="Request validation failed",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code="REQUEST_VALIDATION_ERROR",
        instance=str(request.url),
        extras={"errors": errs},
    )
    return _json_problem_response(status.HTTP_422_UNPROCESSABLE_ENTITY, body)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    logger.info(
        "HTTP exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method,
    )
    body = _problem_json(
        title=f"HTTP {exc.status_code}",
        detail=str(exc.detail),
        status_code=exc.status_code,
        code=f"HTTP_{exc.status_code}",
        instance=str(request.url),
    )
    return _json_problem_response(exc.status_code, body, headers=exc.headers or {})


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("SQLAlchemy error", exc_info=exc, path=request.url.path, method=request.method)
    body = _problem_json(
        title="Database error",
        detail="Database operation failed",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code="DB_ERROR",
        instance=str(request.url),
    )
    return _json_problem_response(status.HTTP_500_INTERNAL_SERVER_ERROR, body)


async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
    """Operational DB errors (timeouts, connection issues)."""
    logger.error("DB operational error", exc_info=exc, path=request.url.path, method=request.method)
    body = _problem_json(
        title="Database unavailable",
        detail="Database is temporarily unavailable. Please retry later.",
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        code="DB_UNAVAILABLE",
        instance=str(request.url),
    )
    return _json_problem_response(status.HTTP_503_SERVICE_UNAVAILABLE, body)


# -----------------------------------------------------------------------------
# Registration
# -----------------------------------------------------------------------------


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to FastAPI app."""
    app.add_exception_handler(SellitException, sellit_exception_handler)

    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

    app.add_exception_handler(StaleDataError, stale_data_handler)  # 409
    app.add_exception_handler(IntegrityError, integrity_error_handler)  # 409
    app.add_exception_handler(OperationalError, operational_error_handler)  # 503
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)  # 500

    app.add_exception_handler(Exception, global_exception_handler)


__all__ = [
    "SellitException",
    "BadRequestError",
    "NoValidAttributesError",
    "AuthenticationError",
    "AuthorizationError",
    "SellitValidationError",
    "NotFoundError",
    "ConflictError",
    "ExternalServiceError",
    "register_exception_handlers",
]
