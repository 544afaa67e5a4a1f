"""Leveled application logger.

One instance per process, built from Settings at startup and handed to the
middleware and to any code that wants to log. Emission never raises into the
caller: a failing sink is reported on stderr and the request carries on.
"""

import atexit
import itertools
import logging
import sys
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Union

from reqlog.obs.formats import console_formatter, format_stack, production_formatter
from reqlog.obs.masking import MaskingPolicy
from reqlog.obs.transports import TransportSet, console_sink, file_sink
from reqlog.types import LogRecord, Severity

Message = Union[str, BaseException]

_instance_ids = itertools.count()


class Logger:
    def __init__(self, transports: TransportSet, threshold: Severity = Severity.INFO, name: str = "reqlog"):
        self.threshold = threshold
        self.transports = transports
        self.closed = False

        # Private stdlib logger so host-level logging config cannot reroute our records
        self._logger = logging.getLogger(f"{name}.{next(_instance_ids)}")
        self._logger.propagate = False
        self._logger.setLevel(threshold.levelno)
        for handler in transports.handlers:
            self._logger.addHandler(handler)
        transports.start()

    def is_enabled_for(self, severity: Severity) -> bool:
        return severity <= self.threshold

    def log(self, severity: Severity, message: Message, fields: Optional[Mapping[str, Any]] = None, **extra: Any) -> None:
        if self.closed or not self.is_enabled_for(severity):
            return
        try:
            self._logger.handle(self._make_record(severity, message, fields, extra))
        except Exception as e:
            # Last resort: logging must never take the caller down
            print(f"[ERROR] Logging failed for {message!r}: {e!r}", file=sys.stderr)

    def error(self, message: Message, fields: Optional[Mapping[str, Any]] = None, **extra: Any) -> None:
        self.log(Severity.ERROR, message, fields, **extra)

    def warn(self, message: Message, fields: Optional[Mapping[str, Any]] = None, **extra: Any) -> None:
        self.log(Severity.WARN, message, fields, **extra)

    def info(self, message: Message, fields: Optional[Mapping[str, Any]] = None, **extra: Any) -> None:
        self.log(Severity.INFO, message, fields, **extra)

    def http(self, message: Message, fields: Optional[Mapping[str, Any]] = None, **extra: Any) -> None:
        self.log(Severity.HTTP, message, fields, **extra)

    def debug(self, message: Message, fields: Optional[Mapping[str, Any]] = None, **extra: Any) -> None:
        self.log(Severity.DEBUG, message, fields, **extra)

    def exception(self, message: Message, fields: Optional[Mapping[str, Any]] = None, **extra: Any) -> None:
        """Log at error level with the exception currently being handled."""
        exc = sys.exc_info()[1]
        if exc is not None and "error" not in extra and not (fields and "error" in fields):
            extra["error"] = exc
        self.log(Severity.ERROR, message, fields, **extra)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for handler in list(self._logger.handlers):
            self._logger.removeHandler(handler)
        self.transports.close()

    def _make_record(
        self,
        severity: Severity,
        message: Message,
        fields: Optional[Mapping[str, Any]],
        extra: Dict[str, Any],
    ) -> logging.LogRecord:
        merged: Dict[str, Any] = dict(fields or {})
        merged.update(extra)
        stack = None
        if isinstance(message, BaseException):
            stack = format_stack(message)
            message = str(message)

        log_record = LogRecord(
            level=severity,
            message=str(message),
            timestamp=datetime.now().astimezone(),
            fields=merged,
            stack=stack,
        )
        record = self._logger.makeRecord(
            self._logger.name,
            severity.levelno,
            fn="(reqlog)",
            lno=0,
            msg=log_record.message,
            args=None,
            exc_info=None,
        )
        record.log_record = log_record
        return record


def threshold_for(environment: str) -> Severity:
    return Severity.DEBUG if environment == "development" else Severity.INFO


def build_logger(settings, clock: Callable[[], datetime] = datetime.now, stream=None, policy: Optional[MaskingPolicy] = None) -> Logger:
    """Wire console and file sinks for ``settings`` and return a started Logger.

    This is a plain factory. A running service should go through
    ``init_logger``/``get_logger`` so only one set of file sinks is ever open
    on a log directory.
    """
    threshold = threshold_for(settings.APP_ENV)
    transports = TransportSet(console=console_sink(console_formatter(settings.APP_ENV, policy), stream=stream))
    if settings.file_sinks_enabled:
        rotation = settings.rotation_policy
        # Files stay machine-parseable whatever the console shows
        errors = file_sink(settings.LOG_DIR, "error", production_formatter(policy), level=logging.ERROR, policy=rotation, clock=clock)
        combined = file_sink(settings.LOG_DIR, "combined", production_formatter(policy), policy=rotation, clock=clock)
        # The error file can sit idle for weeks; let the busy sink expire its archives
        combined.file_handler.siblings.append(errors.file_handler)
        transports.files.extend([errors, combined])
    return Logger(transports, threshold=threshold)


_logger: Optional[Logger] = None
_atexit_registered = False


def init_logger(settings, **kwargs: Any) -> Logger:
    """Build the process-wide logger, closing the one it replaces first."""
    global _logger, _atexit_registered
    if _logger is not None:
        _logger.close()
    _logger = build_logger(settings, **kwargs)
    if not _atexit_registered:
        atexit.register(_close_process_logger)
        _atexit_registered = True
    return _logger


def get_logger() -> Logger:
    """Process-wide logger; built from the startup settings on first use."""
    if _logger is None or _logger.closed:
        from reqlog.config import settings

        return init_logger(settings)
    return _logger


def _close_process_logger() -> None:
    if _logger is not None:
        _logger.close()
