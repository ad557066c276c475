"""Logging setup utilities for serverpanel.

Configures the panel's own loggers and uvicorn's server and access
loggers with one shared format, so request lines and process lifecycle
events land in the same stream (and file, if configured).
"""

from __future__ import annotations

import logging
import sys

from serverpanel.config.settings import LoggingConfig

# uvicorn is started with log_config=None, so its loggers use these handlers.
SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Configure logging for the serverpanel application.

    Safe to call more than once; handlers installed by a previous call
    are replaced.

    Args:
        config: Logging configuration. If None, uses defaults
                (INFO level, stderr output).
    """
    if config is None:
        config = LoggingConfig()

    level = getattr(logging, config.level.upper(), logging.INFO)
    formatter = logging.Formatter(config.format)

    handlers: list[logging.Handler] = []
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    if config.file:
        file_handler = logging.FileHandler(config.file)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    panel_logger = logging.getLogger("serverpanel")
    _install(panel_logger, handlers, level)

    uvicorn_logger = logging.getLogger("uvicorn")
    _install(uvicorn_logger, handlers, max(level, logging.INFO))
    for name in SERVER_LOGGERS[1:]:
        child = logging.getLogger(name)
        for handler in list(child.handlers):
            child.removeHandler(handler)
        child.propagate = True

    panel_logger.info("Logging initialized at %s level", config.level)


def _install(logger: logging.Logger, handlers: list[logging.Handler], level: int) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
