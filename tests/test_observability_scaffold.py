def test_modules_exist():
    import reqlog.obs.context as ctx
    import reqlog.obs.formats as fmt
    import reqlog.obs.logger as log
    import reqlog.obs.masking as msk
    import reqlog.obs.middleware as mid
    import reqlog.obs.transports as trn

    assert hasattr(ctx, "request_id_var")
    assert hasattr(fmt, "development_formatter")
    assert hasattr(fmt, "production_formatter")
    assert hasattr(log, "build_logger")
    assert hasattr(log, "get_logger")
    assert hasattr(msk, "mask")
    assert hasattr(mid, "RequestLoggingMiddleware")
    assert hasattr(trn, "DailyRotatingFileHandler")


def test_get_logger_is_a_process_singleton():
    from reqlog.obs.logger import get_logger

    first = get_logger()
    assert get_logger() is first
    # APP_ENV=test in conftest, so no files are opened
    assert first.transports.files == []


def test_severity_order_and_stdlib_levels():
    import logging
    from reqlog.types import Severity

    assert Severity.ERROR < Severity.WARN < Severity.INFO < Severity.HTTP < Severity.DEBUG
    assert [s.levelno for s in Severity] == [40, 30, 20, 15, 10]
    assert logging.getLevelName(15) == "HTTP"
    assert Severity.from_levelno(logging.CRITICAL) == Severity.ERROR
    assert Severity.from_levelno(5) == Severity.DEBUG
