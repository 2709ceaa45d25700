"""
Structured logging for the service and the CLI.

Everything goes through structlog: module loggers created with
``logging.getLogger(__name__)`` and the ``http`` logger of the request
middleware share one handler, one set of processors and the request/wallet
context bound by the middleware.

``LOG_FORMAT`` picks the renderer: ``json`` for log shipping, ``console``
for a terminal, ``auto`` for console on a TTY and JSON otherwise.
"""

import logging
import sys
from typing import List, Optional

import structlog

from . import __version__
from .config import settings

LOG_FORMATS = ("auto", "json", "console")

# uvicorn.access duplicates the middleware's http_request line
_QUIETED_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
}


def _add_service(logger: logging.Logger, method_name: str, event_dict: structlog.types.EventDict) -> structlog.types.EventDict:
    event_dict.setdefault("service", "pulsefolio")
    event_dict.setdefault("version", __version__)
    return event_dict


def resolve_format(log_format: Optional[str] = None) -> str:
    """Turn the configured format into ``json`` or ``console``."""

    fmt = (log_format or settings.log_format).lower()
    if fmt not in LOG_FORMATS:
        fmt = "auto"
    if fmt == "auto":
        return "console" if sys.stdout.isatty() else "json"
    return fmt


def build_processors(json_output: bool) -> List[structlog.types.Processor]:
    processors: List[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        processors += [_add_service, structlog.processors.format_exc_info]
    return processors


def setup_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Configure structlog and install it as the root handler.

    Args:
        log_level: Override settings.log_level
        log_format: Override settings.log_format (auto, json or console)
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    json_output = resolve_format(log_format) == "json"
    shared = build_processors(json_output)

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name, quiet_level in _QUIETED_LOGGERS.items():
        # WARNING at least, or the root level when that is stricter
        logging.getLogger(name).setLevel(max(quiet_level, level))
