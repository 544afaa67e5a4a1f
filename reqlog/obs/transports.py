"""Log sinks: the console stream and the date/size rotated log files.

File sinks never write on the caller's thread. Each one is a QueueHandler
that renders the record and enqueues it, and a QueueListener thread that
owns the file handler, so writes to one file are serialized and a rotation
swaps the file handle between two records, never inside one.
"""

import errno
import gzip
import logging
import logging.handlers
import os
import queue
import re
import shutil
import sys
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional, Tuple

_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([kmg]?)b?\s*$", re.IGNORECASE)
_SIZE_MULTIPLIERS = {"": 1, "k": 1024, "m": 1024 ** 2, "g": 1024 ** 3}

# Errors that mean the disk will not take more data
_STORAGE_ERRNOS = {errno.ENOSPC, errno.EDQUOT, errno.EROFS, errno.EACCES}


def parse_size(value) -> int:
    """Parse ``20m`` / ``512k`` / ``1g`` / ``1048576`` into bytes."""
    if isinstance(value, int):
        return value
    match = _SIZE_RE.match(str(value))
    if not match:
        raise ValueError(f"Invalid size: {value!r}")
    number, unit = match.groups()
    return int(float(number) * _SIZE_MULTIPLIERS[unit.lower()])


@dataclass(frozen=True)
class RotationPolicy:
    max_size_bytes: int = 20 * 1024 ** 2
    max_age_days: int = 14
    compress_on_rotate: bool = True
    date_pattern: str = "%Y-%m-%d"


class DailyRotatingFileHandler(logging.handlers.BaseRotatingHandler):
    """File handler rotated on date change or size, with gzip and retention.

    The active file is ``<directory>/<name>-<date>.log``; further files on
    the same day are ``<name>-<date>.<n>.log``. Closed files are compressed
    to ``.gz`` when the policy asks for it, and archives whose date is older
    than ``max_age_days`` are removed at startup and after every rotation,
    of this handler or of any handler listed in its ``siblings``.
    """

    def __init__(
        self,
        directory: str,
        name: str,
        policy: Optional[RotationPolicy] = None,
        clock: Callable[[], datetime] = datetime.now,
        encoding: str = "utf-8",
    ):
        self.directory = os.path.abspath(directory)
        self.name_prefix = name
        self.policy = policy or RotationPolicy()
        self.clock = clock
        self.degraded = False
        # Sinks sharing the directory whose retention runs on our rotations
        self.siblings: List["DailyRotatingFileHandler"] = []
        os.makedirs(self.directory, exist_ok=True)

        self.current_date = self._date_key(self.clock())
        self.index = self._last_index(self.current_date)
        super().__init__(self._path_for(self.current_date, self.index), "a", encoding=encoding, delay=True)
        self.rotator = self._gzip
        self.prune()

    # naming

    def _date_key(self, now: datetime) -> str:
        return now.strftime(self.policy.date_pattern)

    def _path_for(self, date_key: str, index: int) -> str:
        suffix = f".{index}" if index else ""
        return os.path.join(self.directory, f"{self.name_prefix}-{date_key}{suffix}.log")

    def _archive_pattern(self) -> "re.Pattern[str]":
        return re.compile(
            rf"^{re.escape(self.name_prefix)}-(?P<date>.+?)(?:\.(?P<index>\d+))?\.log(?:\.gz)?$"
        )

    def _last_index(self, date_key: str) -> int:
        """Continue today's newest file after a restart instead of starting over at 0."""
        pattern = self._archive_pattern()
        last = 0
        for entry in os.listdir(self.directory):
            match = pattern.match(entry)
            if match and match.group("date") == date_key:
                index = int(match.group("index") or 0)
                if entry.endswith(".gz"):
                    index += 1
                last = max(last, index)
        return last

    def files(self) -> List[str]:
        """Active file and archives of this sink, oldest first."""
        pattern = self._archive_pattern()
        found: List[Tuple[str, int, str]] = []
        for entry in os.listdir(self.directory):
            match = pattern.match(entry)
            if match:
                found.append((match.group("date"), int(match.group("index") or 0), entry))
        return [os.path.join(self.directory, entry) for _, _, entry in sorted(found)]

    # rotation

    def shouldRollover(self, record: logging.LogRecord) -> bool:
        if self._date_key(self.clock()) != self.current_date:
            return True
        if self.policy.max_size_bytes <= 0:
            return False
        if self.stream is None:
            self.stream = self._open()
        self.stream.seek(0, 2)
        size = self.stream.tell()
        if size == 0:
            # A record larger than the limit still gets a file of its own
            return False
        msg = f"{self.format(record)}{self.terminator}"
        return size + len(msg.encode(self.encoding or "utf-8")) >= self.policy.max_size_bytes

    def doRollover(self) -> None:
        if self.stream:
            self.stream.close()
            self.stream = None
        closed = self.baseFilename

        today = self._date_key(self.clock())
        if today != self.current_date:
            self.current_date = today
            self.index = self._last_index(today)
        else:
            self.index += 1
        self.baseFilename = self._path_for(self.current_date, self.index)

        if self.policy.compress_on_rotate and os.path.exists(closed):
            self.rotate(closed, f"{closed}.gz")
        self.stream = self._open()
        self.prune()
        for sibling in self.siblings:
            # An idle sink never rotates on its own
            with sibling.lock:
                sibling.prune()

    def _gzip(self, source: str, dest: str) -> None:
        with open(source, "rb") as f_in, gzip.open(dest, "wb") as f_out:
            shutil.copyfileobj(f_in, f_out)
        os.remove(source)

    def prune(self) -> List[str]:
        """Delete archives older than the retention window; returns removed paths."""
        cutoff = self.clock().date() - timedelta(days=self.policy.max_age_days)
        pattern = self._archive_pattern()
        removed = []
        for entry in os.listdir(self.directory):
            match = pattern.match(entry)
            if not match:
                continue
            path = os.path.join(self.directory, entry)
            if path == self.baseFilename:
                continue
            stamped = self._parse_date(match.group("date"))
            if stamped is not None and stamped < cutoff:
                try:
                    os.remove(path)
                    removed.append(path)
                except OSError as e:
                    print(f"[WARNING] Could not remove old log file {path}: {e}", file=sys.stderr)
        return removed

    def _parse_date(self, value: str) -> Optional[date]:
        try:
            return datetime.strptime(value, self.policy.date_pattern).date()
        except ValueError:
            return None

    # failures

    def emit(self, record: logging.LogRecord) -> None:
        if self.degraded:
            return
        try:
            self._write(record)
        except OSError as e:
            if e.errno not in _STORAGE_ERRNOS:
                self.handleError(record)
                return
            # Reclaim space and give the record one more chance
            print(f"[WARNING] Log file {self.baseFilename} not writable ({e}); pruning old logs", file=sys.stderr)
            self._drop_stream()
            self.prune()
            try:
                self._write(record)
            except OSError as retry_error:
                if retry_error.errno not in _STORAGE_ERRNOS:
                    self.handleError(record)
                    return
                self._drop_stream()
                self.degraded = True
                print(f"[ERROR] Disabling log file sink {self.baseFilename}: {retry_error}", file=sys.stderr)
            except Exception:
                self.handleError(record)
        except Exception:
            self.handleError(record)

    def _write(self, record: logging.LogRecord) -> None:
        if self.shouldRollover(record):
            self.doRollover()
        if self.stream is None:
            self.stream = self._open()
        self.stream.write(f"{self.format(record)}{self.terminator}")
        self.stream.flush()

    def _drop_stream(self) -> None:
        stream, self.stream = self.stream, None
        if stream is None:
            return
        try:
            stream.close()
        except OSError:
            # Buffered bytes hit the same full disk; the file is reopened on the next write
            pass

    def handleError(self, record: logging.LogRecord) -> None:
        exc = sys.exc_info()[1]
        print(f"[WARNING] Log file write failed for {self.baseFilename}: {exc!r}", file=sys.stderr)


class RenderingQueueHandler(logging.handlers.QueueHandler):
    """QueueHandler that reports failures like the file sink does."""

    def handleError(self, record: logging.LogRecord) -> None:
        exc = sys.exc_info()[1]
        print(f"[WARNING] Dropped log record {record.getMessage()!r}: {exc!r}", file=sys.stderr)


@dataclass
class FileSink:
    handler: RenderingQueueHandler
    listener: logging.handlers.QueueListener
    file_handler: DailyRotatingFileHandler


def file_sink(
    directory: str,
    name: str,
    formatter: logging.Formatter,
    level: int = logging.NOTSET,
    policy: Optional[RotationPolicy] = None,
    clock: Callable[[], datetime] = datetime.now,
) -> FileSink:
    """Queue-backed rotating file sink; the caller starts ``listener``."""
    file_handler = DailyRotatingFileHandler(directory, name, policy=policy, clock=clock)
    # Records arrive already rendered by the queue handler
    file_handler.setFormatter(logging.Formatter("%(message)s"))

    records: "queue.SimpleQueue[logging.LogRecord]" = queue.SimpleQueue()
    handler = RenderingQueueHandler(records)
    handler.setFormatter(formatter)
    handler.setLevel(level)
    listener = logging.handlers.QueueListener(records, file_handler, respect_handler_level=False)
    return FileSink(handler=handler, listener=listener, file_handler=file_handler)


def console_sink(formatter: logging.Formatter, stream=None) -> logging.StreamHandler:
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)
    return handler


@dataclass
class TransportSet:
    console: logging.Handler
    files: List[FileSink] = field(default_factory=list)
    started: bool = False

    @property
    def handlers(self) -> List[logging.Handler]:
        return [self.console] + [sink.handler for sink in self.files]

    def start(self) -> None:
        if self.started:
            return
        for sink in self.files:
            sink.listener.start()
        self.started = True

    def close(self) -> None:
        """Drain the file queues, then close every handler."""
        if self.started:
            for sink in self.files:
                sink.listener.stop()
            self.started = False
        for sink in self.files:
            sink.file_handler.close()
            sink.handler.close()
        try:
            self.console.flush()
        except (ValueError, OSError):
            # stdout is already closed when this runs from atexit
            pass
