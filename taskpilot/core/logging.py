from __future__ import annotations

import logging
import logging.config
from collections.abc import MutableMapping
from time import perf_counter
from typing import Any
from uuid import uuid4

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from taskpilot.core.config import Settings
from taskpilot.security.redaction import redact_sensitive_text

TRACE_HEADER = "X-Trace-ID"

_CONTEXT_ID_KEYS: tuple[str, ...] = ("user_id", "task_id", "conversation_id")
_ROUTED_LOGGERS: tuple[str, ...] = ("uvicorn", "uvicorn.error", "uvicorn.access", "sqlalchemy")
_LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
_LOG_FILE_BACKUPS = 3


def _normalize_optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    return normalized if normalized else None


def _normalize_optional_int(value: int | str | None) -> int | None:
    if value is None:
        return None
    if isinstance(value, str):
        normalized = value.strip()
        if not normalized.isdigit():
            return None
        value = int(normalized)
    return value if value > 0 else None


def bind_log_context(
    *,
    trace_id: str | None = None,
    user_id: int | str | None = None,
    task_id: int | str | None = None,
    conversation_id: int | str | None = None,
) -> None:
    """Attach request-scoped identifiers to every later log line of this context."""
    payload: dict[str, object] = {}
    normalized_trace_id = _normalize_optional_text(trace_id)
    if normalized_trace_id is not None:
        payload["trace_id"] = normalized_trace_id
    ids = dict(zip(_CONTEXT_ID_KEYS, (user_id, task_id, conversation_id), strict=True))
    for key, value in ids.items():
        normalized = _normalize_optional_int(value)
        if normalized is not None:
            payload[key] = normalized
    if payload:
        structlog.contextvars.bind_contextvars(**payload)


def clear_log_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.stdlib.get_logger(name)


def _redact_string_fields(
    _logger: Any,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    # Provider and SMTP errors can echo credentials back in their text.
    for key, value in event_dict.items():
        if isinstance(value, str) and key != "event":
            event_dict[key] = redact_sensitive_text(value)
    return event_dict


def _shared_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _redact_string_fields,
    ]


def _build_handlers(settings: Settings, level: str) -> dict[str, dict[str, object]]:
    handlers: dict[str, dict[str, object]] = {
        "stdout": {
            "class": "logging.StreamHandler",
            "formatter": "structured",
            "level": level,
        }
    }
    if settings.log_file is not None:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "structured",
            "level": level,
            "filename": settings.log_file,
            "maxBytes": _LOG_FILE_MAX_BYTES,
            "backupCount": _LOG_FILE_BACKUPS,
            "encoding": "utf-8",
        }
    return handlers


def build_logging_config(settings: Settings) -> dict[str, Any]:
    """dictConfig payload routing stdlib, uvicorn and SQLAlchemy records through structlog."""
    level = settings.log_level.upper()
    renderer: Any = (
        structlog.dev.ConsoleRenderer()
        if settings.log_format == "console"
        else structlog.processors.JSONRenderer()
    )
    handlers = _build_handlers(settings, level)
    handler_names = list(handlers)

    loggers: dict[str, dict[str, object]] = {"": {"handlers": handler_names, "level": level}}
    for name in _ROUTED_LOGGERS:
        loggers[name] = {"handlers": handler_names, "level": level, "propagate": False}
    if not settings.sqlalchemy_echo:
        # Statement logging is enabled per engine through ``echo``.
        loggers["sqlalchemy"]["level"] = "WARNING"

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": structlog.stdlib.ProcessorFormatter,
                "foreign_pre_chain": _shared_processors(),
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.processors.format_exc_info,
                    structlog.processors.EventRenamer("message"),
                    renderer,
                ],
            }
        },
        "handlers": handlers,
        "loggers": loggers,
    }


def configure_logging(settings: Settings) -> None:
    logging.config.dictConfig(build_logging_config(settings))
    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


class TraceContextMiddleware(BaseHTTPMiddleware):
    """Binds a trace id to each request and logs its outcome with the elapsed time."""

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)
        self._logger = get_logger("taskpilot.api.request")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        trace_id = _resolve_request_trace_id(request)
        request.state.trace_id = trace_id
        clear_log_context()
        bind_log_context(trace_id=trace_id)
        started = perf_counter()
        self._logger.info("request.received", method=request.method, path=request.url.path)
        try:
            response = await call_next(request)
        except Exception:
            self._logger.exception(
                "request.failed",
                method=request.method,
                path=request.url.path,
                duration_ms=_elapsed_ms(started),
            )
            clear_log_context()
            raise
        response.headers[TRACE_HEADER] = trace_id
        self._logger.info(
            "request.completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=_elapsed_ms(started),
        )
        clear_log_context()
        return response


def _elapsed_ms(started: float) -> float:
    return round((perf_counter() - started) * 1000, 2)


def _resolve_request_trace_id(request: Request) -> str:
    incoming = _normalize_optional_text(request.headers.get(TRACE_HEADER))
    if incoming is not None:
        return incoming
    return f"trace-http-{uuid4().hex}"
