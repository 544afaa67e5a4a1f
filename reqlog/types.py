import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Any, Mapping, Optional


HTTP_LEVEL = 15
logging.addLevelName(HTTP_LEVEL, "HTTP")


class Severity(IntEnum):
    """Lower value = higher priority."""

    ERROR = 0
    WARN = 1
    INFO = 2
    HTTP = 3
    DEBUG = 4

    @property
    def levelno(self) -> int:
        return _LEVELNOS[self]

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def from_levelno(cls, levelno: int) -> "Severity":
        # Unknown stdlib levels fall into the closest band below them
        for severity in cls:
            if levelno >= _LEVELNOS[severity]:
                return severity
        return cls.DEBUG


_LEVELNOS = {
    Severity.ERROR: logging.ERROR,
    Severity.WARN: logging.WARNING,
    Severity.INFO: logging.INFO,
    Severity.HTTP: HTTP_LEVEL,
    Severity.DEBUG: logging.DEBUG,
}


@dataclass(frozen=True)
class LogRecord:
    level: Severity
    message: str
    timestamp: datetime
    fields: Mapping[str, Any] = field(default_factory=dict)
    stack: Optional[str] = None


@dataclass
class CorrelationContext:
    request_id: str
    start_time: float  # time.monotonic()
