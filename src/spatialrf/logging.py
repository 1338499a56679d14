"""Core logging and error-report helpers for spatialrf."""

from __future__ import annotations

import logging
import platform
import sys
import traceback
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, Protocol

DEFAULT_LOG_TAG = "spatialrf"
_recent_log_lines: deque[str] = deque(maxlen=1200)


class Logger(Protocol):
    """Minimal logger protocol used across the workflow stages."""

    def info(self, message: Any) -> None: ...

    def warning(self, message: Any) -> None: ...

    def exception(self, message: Any, exc: BaseException | None = None) -> None: ...


class FeedbackProtocol(Protocol):
    """Progress sink, e.g. the CLI progress printer."""

    def setProgress(self, value: float | int) -> None: ...

    def setProgressText(self, message: str) -> None: ...


LoggerFactory = Callable[[str], Logger]
ErrorHandler = Callable[[str, Any, Optional[str]], None]


def _format_message(message: Any) -> str:
    if isinstance(message, str):
        return message
    return repr(message)


def _level_name(level: int | None) -> str:
    if level == logging.CRITICAL:
        return "CRITICAL"
    if level == logging.WARNING:
        return "WARNING"
    return "INFO"


def record_log_entry(tag: str, level: int | None, message: Any) -> None:
    """Capture recent log entries so they can be attached to error reports."""
    text = _format_message(message)
    if not text:
        return
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    _recent_log_lines.append(f"{timestamp} [{_level_name(level)}] {tag}: {text}")


def get_recent_log_output(max_lines: int = 400) -> str:
    """Return recent log lines captured in the current process."""
    if max_lines <= 0 or not _recent_log_lines:
        return ""
    lines = list(_recent_log_lines)[-max_lines:]
    return "\n".join(lines)


def clear_recent_log_output() -> None:
    _recent_log_lines.clear()


def get_system_info() -> str:
    """Gather interpreter and dependency versions for error reports."""
    info_lines: list[str] = []
    info_lines.append(f"Python: {sys.version}")
    info_lines.append(f"OS: {platform.system()} {platform.release()} ({platform.machine()})")

    from spatialrf import __version__

    info_lines.append(f"spatialrf: {__version__}")

    dependencies = {}
    for pkg in ["sklearn", "numpy", "scipy", "gdal"]:
        try:
            if pkg == "sklearn":
                import sklearn

                dependencies[pkg] = getattr(sklearn, "__version__", "Unknown version")
            elif pkg == "numpy":
                import numpy

                dependencies[pkg] = getattr(numpy, "__version__", "Unknown version")
            elif pkg == "scipy":
                import scipy

                dependencies[pkg] = getattr(scipy, "__version__", "Unknown version")
            elif pkg == "gdal":
                from osgeo import gdal

                dependencies[pkg] = getattr(gdal, "__version__", "Unknown version")
        except ImportError:
            dependencies[pkg] = "Not installed"

    info_lines.append("\nDependencies:")
    for pkg, version in dependencies.items():
        info_lines.append(f"  - {pkg}: {version}")

    return "\n".join(info_lines)


def build_error_report(error_title: str, error_message: Any, context: str = "", max_log_lines: int = 200) -> str:
    """Compose a plain-text report with system info and recent logs."""
    msg = _format_message(error_message)
    log_output = get_recent_log_output(max_lines=max_log_lines) or "[No spatialrf logs captured in this session]"
    return f"""{error_title}

Error message:
{msg}

Context:
{context or "N/A"}

Environment:
{get_system_info()}

Recent log output:
{log_output}
"""


def _default_error_handler(title: str, message: Any, context: str | None) -> None:
    print(f"{title}: {_format_message(message)}", file=sys.stderr)
    if context:
        print(context, file=sys.stderr)


_error_handler: ErrorHandler = _default_error_handler


def _logger_factory(tag):
    return PythonLogger(tag)


def register_error_handler(handler: ErrorHandler) -> None:
    global _error_handler
    _error_handler = handler


def register_logger_factory(factory: LoggerFactory) -> None:
    global _logger_factory
    _logger_factory = factory


def create_logger(tag: str = DEFAULT_LOG_TAG) -> Logger:
    return _logger_factory(tag)


def show_error(title: str, message: Any, context: str | None = None) -> None:
    _error_handler(title, message, context)


@dataclass
class PythonLogger:
    tag: str = DEFAULT_LOG_TAG

    def __post_init__(self) -> None:
        self._logger = logging.getLogger(self.tag)
        if not self._logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(
                logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S"),
            )
            self._logger.addHandler(handler)
        self._logger.setLevel(logging.INFO)

    def _log(self, level: int, message: Any) -> None:
        record_log_entry(self.tag, level, message)
        self._logger.log(level, _format_message(message))

    def info(self, message: Any) -> None:
        self._log(logging.INFO, message)

    def warning(self, message: Any) -> None:
        self._log(logging.WARNING, message)

    def exception(self, message: Any, exc: BaseException | None = None) -> None:
        details = _format_message(message)
        if exc is None:
            details += "\n" + traceback.format_exc()
        else:
            details += "\n" + "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        self._log(logging.CRITICAL, details)


@dataclass
class Reporter:
    logger: Logger
    feedback: FeedbackProtocol | None = None

    @classmethod
    def from_feedback(cls, feedback: FeedbackProtocol | None, tag: str = DEFAULT_LOG_TAG) -> Reporter:
        logger = _logger_factory(tag)
        return cls(logger=logger, feedback=feedback)

    def info(self, message: Any) -> None:
        self.logger.info(message)
        if self.feedback is not None and hasattr(self.feedback, "setProgressText"):
            self.feedback.setProgressText(_format_message(message))

    def warning(self, message: Any) -> None:
        self.logger.warning(message)

    def progress(self, value: float | int) -> None:
        if self.feedback is not None and hasattr(self.feedback, "setProgress"):
            self.feedback.setProgress(int(value))
