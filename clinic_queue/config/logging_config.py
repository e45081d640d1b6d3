"""
Structured logging for the clinic queue.

structlog renders every entry, including those from stdlib loggers such as
uvicorn and python-arango, as JSON or as console lines. Request and admin
context are kept in context variables so that every entry written while
handling a command carries the request id and the acting admin.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from clinic_queue.config.config import Settings, get_settings

# Third-party loggers that are only useful at WARNING and above
QUIET_LOGGERS = ("uvicorn.access", "urllib3", "arango")


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(settings: Settings) -> Processor:
    if settings.log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=not settings.is_production)


def configure_logging(settings: Settings | None = None) -> None:
    """
    Route structlog and stdlib logging through one stdout handler.

    `log_format` picks JSON (log aggregation) or console output;
    `log_level` applies to the root logger.
    """
    settings = settings or get_settings()
    shared = _shared_processors()

    processors = list(shared)
    if settings.log_format == "json":
        processors.append(structlog.processors.format_exc_info)
    processors.append(structlog.stdlib.ProcessorFormatter.wrap_for_formatter)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=_renderer(settings),
            foreign_pre_chain=shared,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(settings.log_level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Structured logger for a module, usually called with `__name__`."""
    return structlog.get_logger(name)


def log_request_context(
    request_id: str,
    method: str,
    path: str,
    **extra: Any,
) -> None:
    """
    Start a fresh log context for an incoming request.

    Clears whatever the previous request bound, then binds the request id,
    HTTP method and path along with any `extra` fields.
    """
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        http_method=method,
        http_path=path,
        **extra,
    )


def bind_admin_context(admin_id: str, authenticated: bool) -> None:
    """Tag the remaining entries of this request with the acting admin."""
    structlog.contextvars.bind_contextvars(
        admin_id=admin_id,
        admin_authenticated=authenticated,
    )
