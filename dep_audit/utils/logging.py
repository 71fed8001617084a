"""Logging utilities for dep-audit.

Log records go to stderr so stdout stays reserved for the report.
"""

import logging
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

_THEME = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "red",
    "critical": "red bold",
    "debug": "dim",
})

_level = logging.WARNING


class AuditLogger:
    """Logger wrapper with rich formatting on stderr."""

    def __init__(self, name: str, level: Optional[int] = None) -> None:
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level if level is not None else _level)
        self._setup_handlers()

    def _setup_handlers(self) -> None:
        """Attach a single rich stderr handler."""
        handler = RichHandler(
            console=Console(stderr=True, theme=_THEME),
            show_time=True,
            show_path=False,
            markup=False,
        )
        handler.setFormatter(logging.Formatter(fmt="%(name)s: %(message)s", datefmt="[%X]"))

        # Remove existing handlers to avoid duplicates
        self.logger.handlers.clear()
        self.logger.addHandler(handler)
        self.logger.propagate = False

    def info(self, msg: str, **kwargs: Any) -> None:
        self.logger.info(msg, extra=kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        self.logger.warning(msg, extra=kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        self.logger.error(msg, extra=kwargs)

    def debug(self, msg: str, **kwargs: Any) -> None:
        self.logger.debug(msg, extra=kwargs)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging levels for dep-audit.

    Args:
        verbose: Enable debug logging
    """
    global _level
    _level = logging.DEBUG if verbose else logging.WARNING

    # Loggers created before this call pick up the new level too
    for logger in logging.root.manager.loggerDict.values():
        if isinstance(logger, logging.Logger) and any(isinstance(h, RichHandler) for h in logger.handlers):
            logger.setLevel(_level)

    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> AuditLogger:
    """Get a dep-audit logger instance.

    Args:
        name: Logger name

    Returns:
        Configured logger instance
    """
    return AuditLogger(name)
