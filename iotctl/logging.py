"""femtologging integration for iotctl.

Operator-facing output goes through :mod:`iotctl.console`. This module covers
the diagnostic trail: every external command the tool runs and every failure
it recovers from is recorded here, at a level chosen with ``--log-level`` or
``IOT_LOG_LEVEL``.

Example:
>>> from iotctl.logging import get_logger, log_command
>>> logger = get_logger(__name__)
>>> log_command(logger, ["kubectl", "get", "pods"])

"""

from __future__ import annotations

import enum
import os
import shlex
import typing as typ

from femtologging import basicConfig, get_logger

LOG_LEVEL_ENV_VAR = "IOT_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "WARNING"


class LogLevel(enum.StrEnum):
    """Levels accepted by femtologging."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def normalize_log_level(level: str | None) -> tuple[str, bool]:
    """Normalize a log level string and report invalid inputs.

    Parameters
    ----------
    level : str | None
        Raw log level string, e.g. from the command line.

    Returns
    -------
    tuple[str, bool]
        The normalized level (``DEFAULT_LOG_LEVEL`` when unusable) and a flag
        that is True when the input was missing or unrecognised.

    """
    if not level:
        return (DEFAULT_LOG_LEVEL, True)

    normalized = level.strip().upper()
    if normalized in LogLevel.__members__:
        return (normalized, False)

    return (DEFAULT_LOG_LEVEL, True)


def configure_logging(level: str | None = None, *, force: bool = False) -> str:
    """Configure femtologging and return the level in effect.

    When ``level`` is None the ``IOT_LOG_LEVEL`` environment variable is used.
    An unrecognised explicit level is reported through the freshly configured
    logger rather than silently ignored.
    """
    raw = level if level is not None else os.environ.get(LOG_LEVEL_ENV_VAR)
    normalized, invalid = normalize_log_level(raw)
    basicConfig(level=normalized, force=force)
    if invalid and raw:
        log_warning(
            get_logger("iotctl"),
            "Unknown log level %r; using %s",
            raw,
            normalized,
        )
    return normalized


class _SupportsLog(typ.Protocol):
    """Protocol for femtologging-compatible loggers."""

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str | None: ...


def _emit(
    logger: _SupportsLog,
    level: str,
    template: str,
    args: tuple[object, ...],
    exc_info: object | None = None,
) -> None:
    """Format with percent-style interpolation and hand off to femtologging."""
    message = template % args if args else template
    logger.log(level, message, exc_info=exc_info, stack_info=False)


def log_debug(logger: _SupportsLog, template: str, *args: object) -> None:
    """Log a DEBUG message with percent-style formatting."""
    _emit(logger, "DEBUG", template, args)


def log_info(logger: _SupportsLog, template: str, *args: object) -> None:
    """Log an INFO message with percent-style formatting."""
    _emit(logger, "INFO", template, args)


def log_warning(logger: _SupportsLog, template: str, *args: object) -> None:
    """Log a WARNING message with percent-style formatting."""
    _emit(logger, "WARNING", template, args)


def log_error(logger: _SupportsLog, template: str, *args: object) -> None:
    """Log an ERROR message with percent-style formatting."""
    _emit(logger, "ERROR", template, args)


def log_exception(logger: _SupportsLog, message: str, exc: BaseException) -> None:
    """Log ``message`` at ERROR with ``exc`` attached as exc_info."""
    _emit(logger, "ERROR", message, (), exc_info=exc)


def log_command(logger: _SupportsLog, args: typ.Sequence[str]) -> None:
    """Record an external command line at DEBUG level.

    Arguments are shell-quoted so the logged line can be pasted back into a
    terminal. Callers must not pass secrets as plain arguments.
    """
    log_debug(logger, "exec: %s", shlex.join(args))


__all__ = [
    "DEFAULT_LOG_LEVEL",
    "LOG_LEVEL_ENV_VAR",
    "LogLevel",
    "configure_logging",
    "get_logger",
    "log_command",
    "log_debug",
    "log_error",
    "log_exception",
    "log_info",
    "log_warning",
    "normalize_log_level",
]
