"""
Structured Logging Configuration
================================

structlog setup shared by the API, the pipeline stages and the tests.
Per-upload context (team, file, session) is carried in contextvars so
every stage logs it without threading it through call signatures.
"""

import logging
import sys
from typing import Any

import structlog

from setup_assistant.config.settings import get_settings

_configured = False


def configure_logging(force: bool = False) -> None:
    """
    JSON lines in production, colored console output elsewhere.

    Later calls are no-ops unless ``force``.
    """
    global _configured
    if _configured and not force:
        return

    settings = get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_production:
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Module logger; pass ``__name__``."""
    return structlog.get_logger(name)


def bind_upload_context(**values: Any) -> None:
    """Attach upload-scoped fields (team_id, file_name, session_id) to all log lines."""
    structlog.contextvars.bind_contextvars(**{k: v for k, v in values.items() if v is not None})


def clear_upload_context(*keys: str) -> None:
    """Drop upload-scoped fields; with no keys, drop everything bound."""
    if keys:
        structlog.contextvars.unbind_contextvars(*keys)
    else:
        structlog.contextvars.clear_contextvars()
