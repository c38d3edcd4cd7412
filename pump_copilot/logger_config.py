"""
Logging Configuration for Pump Copilot
Console/file handlers with rotation plus structlog wiring

Services log through structlog.get_logger(); infrastructure modules use the
stdlib logging.getLogger(__name__). Both end up in the handlers set up here.
"""

import logging
import sys
import uuid
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterator, Optional

import structlog


class ColoredFormatter(logging.Formatter):
    """Colored console formatter"""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record):
        # Work on a copy so file handlers keep the plain level name
        record = logging.makeLogRecord(record.__dict__)
        if record.levelname in self.COLORS:
            record.levelname = (
                f"{self.COLORS[record.levelname]}{record.levelname}{self.RESET}"
            )
        return super().format(record)


def setup_logging(
    name: str = "pump_copilot",
    level: int = logging.INFO,
    json_output: bool = False,
    log_file: Optional[str] = None,
    log_to_console: bool = True,
) -> logging.Logger:
    """
    Setup logging with rotation and structlog integration

    Args:
        name: Root logger name for the package
        level: Logging level
        json_output: Render structlog events as JSON instead of key=value
        log_file: Optional path of a rotating log file
        log_to_console: Enable console logging

    Returns:
        Configured stdlib logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers = []

    file_formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console_formatter = ColoredFormatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        datefmt="%H:%M:%S",
    )

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        # 10MB max, keep 5 backups
        file_handler = RotatingFileHandler(
            path,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(console_formatter)
        logger.addHandler(console_handler)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )

    return logger


def setup_logging_from_settings(settings=None) -> logging.Logger:
    """Configure logging from LoggingSettings"""
    if settings is None:
        from pump_copilot.settings import get_settings

        settings = get_settings().logging

    return setup_logging(
        level=settings.level_number,
        json_output=settings.json_output,
        log_file=settings.log_file,
    )


@contextmanager
def correlation_scope(correlation_id: Optional[str] = None) -> Iterator[str]:
    """
    Bind a correlation id to every structlog event emitted inside the block.

    Usage:
        with correlation_scope() as cid:
            orchestrator.analyze_batch(...)
    """
    cid = correlation_id or uuid.uuid4().hex[:12]
    tokens = structlog.contextvars.bind_contextvars(correlation_id=cid)
    try:
        yield cid
    finally:
        structlog.contextvars.reset_contextvars(**tokens)


def get_logger(name: str = "pump_copilot"):
    """Convenience accessor returning a structlog logger bound to a name"""
    return structlog.get_logger(name)
