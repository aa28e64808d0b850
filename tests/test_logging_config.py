"""Tests for the shared logging setup."""
import logging

import pytest

from disaster_monitor.logging_config import SanitizedFormatter, sanitize_log_message, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_newlines_are_escaped() -> None:
    assert sanitize_log_message("Flood\nFAKE - ERROR - x") == "Flood\\nFAKE - ERROR - x"
    assert sanitize_log_message(42) == 42


def test_formatter_leaves_record_untouched() -> None:
    record = logging.LogRecord("t", logging.INFO, __file__, 1, "a\r\nb", None, None)
    rendered = SanitizedFormatter("%(message)s").format(record)
    assert rendered == "a\\r\\nb"
    assert record.getMessage() == "a\r\nb"


def test_setup_logging_writes_file(tmp_path, restore_root_logger) -> None:
    log_file = tmp_path / "logs" / "service.log"
    setup_logging("debug", str(log_file))

    logging.getLogger("disaster_monitor.test").info("report %s\nupdated", "r1")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING
    assert "report r1\\nupdated" in log_file.read_text(encoding="utf-8")
