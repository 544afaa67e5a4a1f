import os
import sys
import asyncio
import inspect
from datetime import datetime, timedelta

import pytest

# Ensure project root is on sys.path so `import reqlog` works in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

# Console-only logging for anything built from the default settings
os.environ["APP_ENV"] = "test"


def pytest_pyfunc_call(pyfuncitem):
    """Allow running async tests without pytest-asyncio.

    If the test function is a coroutine, run it in a fresh event loop.
    """
    testfunction = pyfuncitem.obj
    if inspect.iscoroutinefunction(testfunction):
        funcargs = pyfuncitem.funcargs
        sig = inspect.signature(testfunction)
        # Filter only the parameters that the test function expects
        allowed = {name: funcargs[name] for name in sig.parameters.keys() if name in funcargs}
        asyncio.run(testfunction(**allowed))
        return True
    return None


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingLogger:
    """Stands in for reqlog.obs.logger.Logger and keeps every call."""

    def __init__(self):
        self.records = []

    def log(self, severity, message, fields=None, **extra):
        merged = dict(fields or {})
        merged.update(extra)
        self.records.append((severity, message, merged))

    def info(self, message, fields=None, **extra):
        from reqlog.types import Severity
        self.log(Severity.INFO, message, fields, **extra)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 12, 0, 0))


@pytest.fixture
def recorder():
    return RecordingLogger()


@pytest.fixture
def make_settings(tmp_path):
    from reqlog.config import Settings

    def _make(**overrides):
        overrides.setdefault("LOG_DIR", str(tmp_path / "logs"))
        return Settings(**overrides)

    return _make
