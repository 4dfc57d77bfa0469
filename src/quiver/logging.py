"""
quiver.logging — structlog setup.

Logs go to stderr through the stdlib root logger so that SDK loggers
(botocore, azure, google.auth) share the same renderer.

    QUIVER_LOG_LEVEL=DEBUG     default WARNING, --verbose sets DEBUG
    QUIVER_LOG_FORMAT=json     default console
"""

from __future__ import annotations

import logging
import os
from enum import Enum

import structlog
from structlog.typing import Processor


class LogFormats(str, Enum):
    JSON = "json"
    CONSOLE = "console"


_NOISY = ("botocore", "boto3", "urllib3", "azure", "google.auth", "aiodocker")
_handler: logging.Handler | None = None


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    level = (level or os.environ.get("QUIVER_LOG_LEVEL") or "WARNING").upper()
    fmt = fmt or os.environ.get("QUIVER_LOG_FORMAT") or LogFormats.CONSOLE.value

    log_renderer: Processor
    if fmt == LogFormats.JSON:
        log_renderer = structlog.processors.JSONRenderer()
    else:
        log_renderer = structlog.dev.ConsoleRenderer(colors=False)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if fmt == LogFormats.JSON:
        processors.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            log_renderer,
        ],
    )

    global _handler
    root_logger = logging.getLogger()
    # Repeated CLI invocations in one process must not stack handlers
    if _handler is not None:
        root_logger.removeHandler(_handler)
    _handler = logging.StreamHandler()
    _handler.setFormatter(formatter)
    root_logger.addHandler(_handler)
    root_logger.setLevel(level)

    if level != "DEBUG":
        for name in _NOISY:
            logging.getLogger(name).setLevel(logging.WARNING)
