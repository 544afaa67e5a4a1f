import json
from datetime import datetime, timezone

from reqlog.obs.formats import (
    RESET,
    console_formatter,
    development_formatter,
    production_formatter,
    render,
)
from reqlog.obs.masking import MASK
from reqlog.types import LogRecord, Severity


def _record(level=Severity.INFO, message="hello", fields=None, stack=None, timestamp=None):
    return LogRecord(
        level=level,
        message=message,
        timestamp=timestamp or datetime(2024, 1, 2, 3, 4, 5).astimezone(),
        fields=fields or {},
        stack=stack,
    )


def _boom():
    try:
        raise RuntimeError("db down")
    except RuntimeError as e:
        return e


def test_development_line_with_fields():
    out = render(development_formatter(), _record(fields={"a": 1}))
    assert out == "\033[32m[2024-01-02 03:04:05] info: hello {\"a\": 1}" + RESET


def test_development_line_without_fields_has_no_trailing_json():
    out = render(development_formatter(colors=False), _record())
    assert out == "[2024-01-02 03:04:05] info: hello"


def test_development_colors_per_level():
    formatter = development_formatter()
    assert render(formatter, _record(Severity.ERROR)).startswith("\033[31m")
    assert render(formatter, _record(Severity.WARN)).startswith("\033[33m")
    assert render(formatter, _record(Severity.HTTP)).startswith("\033[35m")
    assert render(formatter, _record(Severity.DEBUG)).startswith("\033[37m")


def test_development_exception_field_becomes_stack():
    out = render(development_formatter(colors=False), _record(Severity.ERROR, "failed", {"error": _boom()}))
    first, rest = out.split("\n", 1)
    assert first == '[2024-01-02 03:04:05] error: failed {"error": "db down"}'
    assert rest.startswith("Traceback (most recent call last):")
    assert "RuntimeError: db down" in rest


def test_production_record_shape():
    record = _record(
        message="password reset requested",
        fields={"user": {"email": "a@b.c", "password": "x"}, "token": "t", "ok": True},
        timestamp=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
    )
    out = render(production_formatter(), record)
    assert "\n" not in out

    data = json.loads(out)
    assert data["message"] == "password reset requested"
    assert data["level"] == "info"
    assert data["timestamp"] == "2024-01-02T03:04:05.000Z"
    assert data["metadata"] == {"user": {"email": "a@b.c", "password": MASK}, "token": MASK, "ok": True}
    assert set(data) == {"message", "level", "timestamp", "metadata"}


def test_production_empty_metadata_and_stack():
    out = render(production_formatter(), _record(Severity.ERROR, "failed", {"error": _boom()}))
    data = json.loads(out)
    assert data["metadata"]["error"] == "db down"
    assert "RuntimeError: db down" in data["metadata"]["stack"]

    data = json.loads(render(production_formatter(), _record()))
    assert data["metadata"] == {}


def test_record_stack_is_kept():
    out = render(production_formatter(), _record(Severity.ERROR, "x", stack="Traceback: here"))
    assert json.loads(out)["metadata"]["stack"] == "Traceback: here"


def test_reserved_keys_win_over_fields():
    out = render(production_formatter(), _record(message="real", fields={"message": "fake", "level": "debug"}))
    data = json.loads(out)
    assert data["message"] == "real"
    assert data["level"] == "info"


def test_console_formatter_follows_environment():
    assert render(console_formatter("production"), _record()).startswith("{")
    assert render(console_formatter("development"), _record()).startswith("\033[")
    assert render(console_formatter("staging"), _record()).startswith("\033[")
