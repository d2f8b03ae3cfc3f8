# sellit/core/logging.py
"""
Centralized logging for Sellit.

Features:
- Stdlib logging (dictConfig) + structlog (JSON in prod, dev console otherwise).
- Size-based rotating app log + error log.
- Sensitive fields redaction.
- Context (request_id, user_id, tenant/store, client_ip, user_agent) via contextvars.
- ASGI middleware for request context & access logs (X-Request-ID echo).
- Audit logger for data-changing catalog operations.

Env knobs (via Settings):
  LOG_PATH=logs/app.log
  LOG_LEVEL=INFO
  LOG_FORMAT=json|console
  ENVIRONMENT=production|development|test
"""

from __future__ import annotations

import logging
import logging.config
import os
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Any, Dict, Optional, Tuple

import structlog

from sellit.core.config import settings

# ---------- Context vars ----------
_ctx_request_id: ContextVar[str] = ContextVar("request_id", default="")
_ctx_user_id: ContextVar[str] = ContextVar("user_id", default="")
_ctx_tenant: ContextVar[str] = ContextVar("tenant", default="")
_ctx_client_ip: ContextVar[str] = ContextVar("client_ip", default="")
_ctx_user_agent: ContextVar[str] = ContextVar("user_agent", default="")

_CONFIGURED = False

# ---------- Secrets redaction ----------
_SECRET_KEYS = ("secret", "password", "token", "dsn", "api_key", "api_secret", "access_key")


def _mask_secret_value(v: Any) -> Any:
    s = str(v)
    if len(s) <= 6:
        return "***"
    return s[:3] + "***" + s[-3:]


def redact_secrets(data: Any) -> Any:
    if isinstance(data, dict):
        out: Dict[str, Any] = {}
        for k, v in data.items():
            lk = str(k).lower()
            if any(x in lk for x in _SECRET_KEYS) and "public" not in lk:
                out[k] = _mask_secret_value(v)
            else:
                out[k] = redact_secrets(v)
        return out
    if isinstance(data, list):
        return [redact_secrets(v) for v in data]
    if isinstance(data, tuple):
        return tuple(redact_secrets(v) for v in data)
    return data


# ---------- structlog processors ----------
def _inject_context(_, __, event_dict):
    rid = _ctx_request_id.get()
    uid = _ctx_user_id.get()
    ten = _ctx_tenant.get()
    cip = _ctx_client_ip.get()
    ua = _ctx_user_agent.get()
    if rid:
        event_dict["request_id"] = rid
    if uid:
        event_dict["user_id"] = uid
    if ten:
        event_dict["store_id"] = ten
    if cip:
        event_dict["client_ip"] = cip
    if ua:
        event_dict["user_agent"] = ua
    return event_dict


def _redact_processor(_, __, event_dict):
    return redact_secrets(event_dict)


def _add_app(_, __, event_dict):
    event_dict["app"] = settings.PROJECT_NAME
    event_dict["version"] = settings.VERSION
    return event_dict


# ---------- Stdlib dictConfig ----------
def _build_stdlib_dict_config(logs_dir: Optional[str]) -> dict:
    level = (settings.LOG_LEVEL or "INFO").upper()
    fmt_console = (
        "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s"
        if settings.is_production
        else "%(asctime)s [%(levelname)s] %(name)s:%(funcName)s:%(lineno)d - %(message)s"
    )

    handlers: Dict[str, Any] = {
        "console": {
            "level": level,
            "class": "logging.StreamHandler",
            "formatter": "console",
            "stream": "ext://sys.stdout",
        },
    }
    root_handlers = ["console"]

    # в тестах файлов не пишем
    if logs_dir:
        os.makedirs(logs_dir, exist_ok=True)
        handlers["file"] = {
            "level": "DEBUG",
            "class": "logging.handlers.RotatingFileHandler",
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "formatter": "plain",
            "filename": os.path.join(logs_dir, "sellit.log"),
            "encoding": "utf8",
        }
        handlers["error_file"] = {
            "level": "ERROR",
            "class": "logging.handlers.RotatingFileHandler",
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "formatter": "plain",
            "filename": os.path.join(logs_dir, "errors.log"),
            "encoding": "utf8",
        }
        root_handlers += ["file", "error_file"]

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {"format": fmt_console, "datefmt": "%Y-%m-%d %H:%M:%S"},
            "plain": {"format": "%(message)s"},
        },
        "handlers": handlers,
        "loggers": {
            "": {"handlers": root_handlers, "level": level, "propagate": False},
            "uvicorn": {"handlers": ["console"], "level": "INFO", "propagate": False},
            "uvicorn.access": {"handlers": ["console"], "level": "WARNING", "propagate": False},
            "sqlalchemy.engine": {"level": "INFO" if settings.DB_ECHO else "WARNING"},
        },
    }


# ---------- structlog configure ----------
def _configure_structlog() -> None:
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        _inject_context,
        _redact_processor,
        _add_app,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    use_json = settings.is_production or settings.LOG_FORMAT == "json"
    renderer = structlog.processors.JSONRenderer() if use_json else structlog.dev.ConsoleRenderer()
    processors.append(renderer)

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


# ---------- Public API ----------
def setup_logging() -> None:
    """
    Centralized logging setup:
    - stdlib dictConfig (console + rotating files outside tests)
    - structlog (JSON/console)
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    logs_dir = None
    if not settings.is_testing:
        logs_dir = os.path.dirname(settings.LOG_PATH) or "logs"
    logging.config.dictConfig(_build_stdlib_dict_config(logs_dir))
    _configure_structlog()

    lg = logging.getLogger(__name__)
    lg.info("Logging initialized")
    if logs_dir:
        lg.info("Log files location: %s", os.path.abspath(logs_dir))
    _CONFIGURED = True


def get_logger(name: str):
    return structlog.get_logger(name)


# ---------- Context helpers ----------
@contextmanager
def bind_context(
    request_id: Optional[str] = None,
    user_id: Optional[str | int] = None,
    tenant: Optional[str | int] = None,
    client_ip: Optional[str] = None,
    user_agent: Optional[str] = None,
):
    """Scoped binding of log context; values are reset on exit."""
    tokens: list[Tuple[ContextVar[str], Token]] = []
    if request_id is not None:
        tokens.append((_ctx_request_id, _ctx_request_id.set(request_id)))
    if user_id is not None:
        tokens.append((_ctx_user_id, _ctx_user_id.set(str(user_id))))
    if tenant is not None:
        tokens.append((_ctx_tenant, _ctx_tenant.set(str(tenant))))
    if client_ip is not None:
        tokens.append((_ctx_client_ip, _ctx_client_ip.set(client_ip)))
    if user_agent is not None:
        tokens.append((_ctx_user_agent, _ctx_user_agent.set(user_agent)))
    try:
        yield
    finally:
        for var, tok in reversed(tokens):
            var.reset(tok)


def bind_actor(user_id: Optional[str | int], store_id: Optional[str | int]) -> None:
    """Attach the authenticated actor to the current request context (until cleared)."""
    if user_id is not None:
        _ctx_user_id.set(str(user_id))
    if store_id is not None:
        _ctx_tenant.set(str(store_id))


# ---------- Audit Logger ----------
class AuditLogger:
    def __init__(self):
        self.logger = get_logger("audit")

    def log_data_change(
        self,
        user_id: int | str | None,
        action: str,
        resource_type: str,
        resource_id: str | int,
        changes: dict[str, Any],
    ) -> None:
        self.logger.info(
            "data_change",
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id),
            changes=redact_secrets(changes),
        )

    def log_permission_denied(self, user_id: int | str | None, reason: str, resource: str) -> None:
        self.logger.warning("permission_denied", user_id=user_id, reason=reason, resource=resource)


audit_logger = AuditLogger()


# ---------- ASGI middleware ----------
class LoggingContextMiddleware:
    """
    - Generates/reads X-Request-ID and echoes it on the response
    - Binds request context
    - Logs request end with duration and status
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            return await self.app(scope, receive, send)

        headers = {k.decode().lower(): v.decode() for k, v in scope.get("headers", [])}
        request_id = headers.get("x-request-id") or headers.get("x-correlation-id") or str(uuid.uuid4())
        client = scope.get("client") or ("", 0)
        client_ip = client[0] if isinstance(client, (list, tuple)) and client else ""
        user_agent = headers.get("user-agent", "")
        path = scope.get("path", "")
        method = scope.get("method", "")

        start = time.perf_counter()
        status_code_holder = {"code": 500}

        async def _send(message):
            if message["type"] == "http.response.start":
                status_code_holder["code"] = message.get("status", 200)
                raw_headers = list(message.get("headers", []))
                if not any(k.lower() == b"x-request-id" for k, _ in raw_headers):
                    raw_headers.append((b"x-request-id", request_id.encode()))
                message["headers"] = raw_headers
            await send(message)

        with bind_context(request_id=request_id, client_ip=client_ip, user_agent=user_agent):
            lg = get_logger("http")
            try:
                await self.app(scope, receive, _send)
            finally:
                dur_ms = (time.perf_counter() - start) * 1000.0
                lg.info(
                    "request_end",
                    method=method,
                    path=path,
                    status=status_code_holder["code"],
                    duration_ms=round(dur_ms, 2),
                )
                # актор привязывается зависимостью авторизации, сбрасываем после запроса
                _ctx_user_id.set("")
                _ctx_tenant.set("")


__all__ = [
    "setup_logging",
    "get_logger",
    "bind_context",
    "bind_actor",
    "redact_secrets",
    "audit_logger",
    "AuditLogger",
    "LoggingContextMiddleware",
]
