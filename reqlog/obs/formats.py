"""Rendering pipelines for log records.

Two pipelines, both built as ``structlog.stdlib.ProcessorFormatter`` so they
plug into ordinary ``logging`` handlers:

- development: local timestamp, colorized single line, extra fields inlined
  as JSON, stack trace on the following lines;
- production: ISO-8601 timestamp, masked fields nested under ``metadata``,
  one JSON object per line for log collectors.

The pipeline is picked once when the logger is built, never per record.
"""

import json
import logging
import traceback
from datetime import datetime, timezone
from typing import Dict, Optional

import structlog
from structlog.typing import EventDict, WrappedLogger

from reqlog.obs.masking import MaskingPolicy, mask
from reqlog.types import LogRecord, Severity

RESERVED_KEYS = ("message", "level", "timestamp", "label")

# ANSI SGR codes
RESET = "\033[0m"
LEVEL_COLORS: Dict[str, str] = {
    "error": "\033[31m",    # red
    "warn": "\033[33m",     # yellow
    "info": "\033[32m",     # green
    "http": "\033[35m",     # magenta
    "debug": "\033[37m",    # white
}

DEV_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def expand_record(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Turn the stdlib record into ``message``/``level``/fields/``stack`` keys."""
    record: logging.LogRecord = event_dict["_record"]
    log_record: Optional[LogRecord] = getattr(record, "log_record", None)
    if log_record is None:
        # A plain stdlib call that did not go through reqlog.obs.logger
        stack = None
        if record.exc_info:
            stack = logging.Formatter().formatException(record.exc_info)
        log_record = LogRecord(
            level=Severity.from_levelno(record.levelno),
            message=str(event_dict.get("event", "")),
            timestamp=datetime.fromtimestamp(record.created).astimezone(),
            stack=stack,
        )

    expanded: EventDict = dict(log_record.fields)
    expanded.update(
        message=log_record.message,
        level=log_record.level.label,
        timestamp=log_record.timestamp,
    )
    if log_record.stack:
        expanded["stack"] = log_record.stack
    expanded["_record"] = record
    expanded["_from_structlog"] = event_dict.get("_from_structlog", False)
    return expanded


def iso_timestamp(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    ts = event_dict.get("timestamp")
    if isinstance(ts, datetime):
        ts = ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        event_dict["timestamp"] = ts
    return event_dict


def local_timestamp(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    ts = event_dict.get("timestamp")
    if isinstance(ts, datetime):
        event_dict["timestamp"] = ts.astimezone().strftime(DEV_TIMESTAMP_FORMAT)
    return event_dict


def normalize_errors(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Replace exception values by their text and keep the first traceback as ``stack``."""
    for key, value in list(event_dict.items()):
        if key.startswith("_") or not isinstance(value, BaseException):
            continue
        if not event_dict.get("stack"):
            event_dict["stack"] = format_stack(value)
        event_dict[key] = str(value)
    return event_dict


def format_stack(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)).rstrip()


class MaskFields:
    """Processor running the masking engine over everything but the message."""

    def __init__(self, policy: Optional[MaskingPolicy] = None):
        self.policy = policy

    def __call__(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        message = event_dict.get("message")
        masked = mask(dict(event_dict), self.policy)
        if "message" in event_dict:
            masked["message"] = message
        return masked


def nest_metadata(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    metadata = {k: v for k, v in event_dict.items() if k not in RESERVED_KEYS}
    nested = {k: v for k, v in event_dict.items() if k in RESERVED_KEYS}
    nested["metadata"] = metadata
    return nested


class ConsoleLineRenderer:
    """``[timestamp] level: message {extra}`` plus the stack on following lines."""

    def __init__(self, colors: bool = True):
        self.colors = colors

    def __call__(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> str:
        timestamp = event_dict.pop("timestamp", "")
        level = event_dict.pop("level", method_name)
        message = event_dict.pop("message", "")
        stack = event_dict.pop("stack", None)

        line = f"[{timestamp}] {level}: {message}"
        if event_dict:
            line += f" {json.dumps(event_dict, default=str)}"
        if stack:
            line += f"\n{stack}"

        color = LEVEL_COLORS.get(level) if self.colors else None
        return f"{color}{line}{RESET}" if color else line


def development_formatter(colors: bool = True) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[expand_record, local_timestamp],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            normalize_errors,
            ConsoleLineRenderer(colors=colors),
        ],
    )


def production_formatter(policy: Optional[MaskingPolicy] = None) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[expand_record, iso_timestamp],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            normalize_errors,
            MaskFields(policy),
            nest_metadata,
            structlog.processors.JSONRenderer(default=str),
        ],
    )


def console_formatter(environment: str, policy: Optional[MaskingPolicy] = None) -> structlog.stdlib.ProcessorFormatter:
    """Production JSON on a production console, the readable line anywhere else."""
    if environment == "production":
        return production_formatter(policy)
    return development_formatter()


def render(formatter: logging.Formatter, record: LogRecord, name: str = "reqlog") -> str:
    """Format a LogRecord outside of any handler, e.g. to preview a record."""
    stdlib_record = logging.LogRecord(
        name=name,
        level=record.level.levelno,
        pathname=__file__,
        lineno=0,
        msg=record.message,
        args=None,
        exc_info=None,
    )
    stdlib_record.log_record = record
    return formatter.format(stdlib_record)


__all__ = [
    "ConsoleLineRenderer",
    "MaskFields",
    "console_formatter",
    "development_formatter",
    "production_formatter",
    "render",
]
