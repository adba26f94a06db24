"""Logging utilities for symkit.

symkit logs through loguru and is silent by default (`symkit/__init__.py`
disables the package logger). `enable_logging()` adds a stderr handler that
only passes symkit records and returns a handle that removes it again.

Note:
    Importing this module removes loguru's default stderr handler (ID 0) so
    that symkit records are not printed twice once ``enable_logging()`` adds
    its own handler. If handler 0 was already removed, the ``ValueError`` is
    suppressed.
"""

from __future__ import annotations

import contextlib
import sys
import threading
from typing import TYPE_CHECKING, ClassVar, Final, Literal

from loguru import logger

from symkit.settings import get_settings

if TYPE_CHECKING:
    from types import TracebackType

    from loguru import Record

PACKAGE_NAME: Final[str] = __name__.split(".")[0]

with contextlib.suppress(ValueError):
    logger.remove(0)

type LogLevel = Literal[
    "TRACE",
    "DEBUG",
    "INFO",
    "WARNING",
    "ERROR",
    "CRITICAL",
]

type LogFormat = Literal["short", "full"]

_SHORT_FORMAT: Final[str] = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "  # noqa: RUF027 - loguru format string
    "<cyan>{function}</cyan> - "
    "<level>{message}</level> {extra}"
)
_FULL_FORMAT: Final[str] = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "  # noqa: RUF027 - loguru format string
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level> {extra}"
)


class LoggingHandle:
    """Handle for one symkit logging handler.

    Examples:
        >>> with enable_logging(level="DEBUG"):  # doctest: +SKIP
        ...     parse_orange_decision_list(text)

        >>> handle = enable_logging()  # doctest: +SKIP
        >>> handle.disable()  # doctest: +SKIP
    """

    _active_ids: ClassVar[set[int]] = set()
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, handler_id: int) -> None:
        """Initialize the logging handle.

        Args:
            handler_id (int): The loguru handler ID from logger.add().
        """
        self.handler_id: int | None = handler_id
        with LoggingHandle._lock:
            LoggingHandle._active_ids.add(handler_id)

    def disable(self) -> None:
        """Remove this handle's handler; disable the symkit logger once no handle is left.

        Calling it more than once is a no-op.
        """
        with LoggingHandle._lock:
            if self.handler_id is None:
                return
            LoggingHandle._active_ids.discard(self.handler_id)
            with contextlib.suppress(ValueError):
                logger.remove(self.handler_id)
            self.handler_id = None
            if not LoggingHandle._active_ids:
                logger.disable(PACKAGE_NAME)

    def __enter__(self) -> LoggingHandle:
        """Enter context manager.

        Returns:
            LoggingHandle: This handle instance.
        """
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit context manager and disable logging."""
        self.disable()

    @classmethod
    def get_active_handle_count(cls) -> int:
        """Return the number of handles that have not been disabled yet.

        Returns:
            int: Count of active handles.
        """
        with cls._lock:
            return len(cls._active_ids)


def enable_logging(
    *,
    level: LogLevel | None = None,
    log_format: LogFormat | None = None,
) -> LoggingHandle:
    """Enable symkit logging on stderr.

    Args:
        level (LogLevel | None): Minimum log level to display. `None` uses
            `SymkitSettings.log_level` (`SYMKIT_LOG_LEVEL`, default "INFO").
            "DEBUG" shows every parsed rule and constructed model.
        log_format (LogFormat | None): "short" shows the function name only,
            "full" shows module:function:line. `None` uses
            `SymkitSettings.log_format`.

    Returns:
        LoggingHandle: Independent handle for managing the logging handler.
    """
    settings = get_settings()
    level = level or settings.log_level
    log_format = log_format or settings.log_format

    logger.enable(PACKAGE_NAME)
    handler_id = logger.add(
        sys.stderr,
        level=level,
        filter=_is_symkit_record,
        format=_SHORT_FORMAT if log_format == "short" else _FULL_FORMAT,
    )
    return LoggingHandle(handler_id)


def _is_symkit_record(record: Record) -> bool:
    """Pass only records emitted from symkit modules.

    Args:
        record (Record): The loguru Record object to filter.

    Returns:
        bool: True if the record comes from the symkit package.
    """
    name = record["name"]
    return name is not None and name.startswith(PACKAGE_NAME)
