"""Structured JSON logging with per-request GRC context.

Every record logged while a request is in flight carries the request id and,
once authentication and org scoping have run, the caller's ``user_id`` and the
``org_id`` the request targets. The context is a mutable mapping shared by the
request task and the dependency threads FastAPI spawns from it, so identifiers
bound inside a dependency show up on the middleware's ``request.end`` line too.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from typing import Any

from grc_api.core.settings import get_settings

LogContext = dict[str, str]

CONTEXT_FIELDS = ("request_id", "org_id", "user_id")

_log_context: ContextVar[LogContext | None] = ContextVar("grc_log_context", default=None)
_configured = False

# Attributes every LogRecord has; anything else on a record came from ``extra``.
_RECORD_ATTRIBUTES = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}
_SENSITIVE_KEY_FRAGMENTS = ("secret", "token", "password", "apikey", "api_key", "authorization")


def start_request_context(request_id: str) -> Token[LogContext | None]:
    return _log_context.set({"request_id": request_id})


def end_request_context(token: Token[LogContext | None]) -> None:
    _log_context.reset(token)


def bind_log_context(**fields: str | None) -> None:
    """Attach identifiers to the current request's log context. Empty values are skipped."""
    context = _log_context.get()
    if context is None:
        return
    context.update({key: str(value) for key, value in fields.items() if value})


def current_log_context() -> LogContext:
    return dict(_log_context.get() or {})


def get_request_id() -> str | None:
    return current_log_context().get("request_id")


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(fragment in lowered for fragment in _SENSITIVE_KEY_FRAGMENTS)


def _json_safe_value(value: Any) -> Any:
    if value is None or isinstance(value, str | int | float | bool):
        return value
    if isinstance(value, dict):
        return {
            str(k): "[redacted]" if _is_sensitive_key(str(k)) else _json_safe_value(v)
            for k, v in value.items()
        }
    if isinstance(value, list | tuple | set | frozenset):
        return [_json_safe_value(item) for item in value]
    return str(value)


class JsonLogFormatter(logging.Formatter):
    """One compact JSON object per record; ``extra`` fields win over request context."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "component": getattr(record, "component", record.name),
        }
        payload.update(current_log_context())

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRIBUTES or key == "component" or key.startswith("_"):
                continue
            payload[key] = "[redacted]" if _is_sensitive_key(key) else _json_safe_value(value)

        if record.exc_info and record.exc_info[0] is not None:
            payload["error_type"] = record.exc_info[0].__name__
            payload["error"] = str(record.exc_info[1])[:500]

        return json.dumps(payload, separators=(",", ":"), ensure_ascii=True)


def configure_logging() -> None:
    global _configured
    if _configured:
        return

    settings = get_settings()
    level = logging.getLevelName(settings.LOG_LEVEL.strip().upper() or "INFO")
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonLogFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # httpx logs every request line at INFO; the store logs its own failures.
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(f"grc.{name}")
