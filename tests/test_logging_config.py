# tests/test_logging_config.py
"""
Tests for the unified logging setup.

The manager installs handlers on the root logger, so every test restores the
root handlers and resets the singleton state afterwards.
"""

import logging

import pytest

from llmbridge.logging_config import (DisplayFilter, UnifiedLoggingManager,
                                      configure_logging, get_log_file_path,
                                      log_display, set_component_level)


@pytest.fixture(autouse=True)
def reset_logging():
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in saved_handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in saved_handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(saved_level)
    UnifiedLoggingManager._configured = False
    UnifiedLoggingManager._log_file_path = None
    UnifiedLoggingManager._console_handler = None
    UnifiedLoggingManager._file_handler = None


def _record(level=logging.INFO, display=False):
    record = logging.LogRecord("llmbridge.test", level, __file__, 1, "msg", None, None)
    if display:
        record.display = True
    return record


class TestDisplayFilter:
    def test_console_enabled_passes_everything(self):
        assert DisplayFilter(console_globally_enabled=True).filter(_record())

    def test_silent_mode_blocks_plain_records(self):
        assert not DisplayFilter().filter(_record())

    def test_silent_mode_passes_display_records(self):
        assert DisplayFilter().filter(_record(display=True))

    def test_display_min_level(self):
        display_filter = DisplayFilter(display_min_level=logging.WARNING)
        assert not display_filter.filter(_record(logging.INFO, display=True))
        assert display_filter.filter(_record(logging.ERROR, display=True))


class TestConfigureLogging:
    """Tests for configure_logging and the singleton manager."""

    def test_singleton(self):
        assert UnifiedLoggingManager.get_instance() is UnifiedLoggingManager()

    def test_configures_once(self):
        assert configure_logging(config={"file_enabled": False}) is None
        assert UnifiedLoggingManager.is_configured()
        console = UnifiedLoggingManager._console_handler
        configure_logging(config={"console_enabled": True})
        assert UnifiedLoggingManager._console_handler is console

    def test_force_reconfigure(self):
        configure_logging()
        console = UnifiedLoggingManager._console_handler
        configure_logging(config={"console_enabled": True}, force_reconfigure=True)
        assert UnifiedLoggingManager._console_handler is not console
        assert UnifiedLoggingManager._console_handler.level == logging.WARNING

    def test_per_run_file(self, tmp_path):
        path = configure_logging(
            app_name="unit",
            config={"file_enabled": True, "file_directory": str(tmp_path)},
        )
        assert path is not None
        assert path.parent == tmp_path
        assert path.name.startswith("unit_")
        assert get_log_file_path() == path

        logging.getLogger("llmbridge.unit").info("written to file")
        UnifiedLoggingManager._file_handler.flush()
        assert "written to file" in path.read_text()

    def test_single_file(self, tmp_path):
        path = configure_logging(
            app_name="unit",
            config={"file_enabled": True, "file_directory": str(tmp_path), "file_mode": "single"},
        )
        assert path == tmp_path / "unit.log"

    def test_component_levels(self):
        configure_logging(config={"components": {"qdrant_client": "ERROR"}})
        assert logging.getLogger("qdrant_client").level == logging.ERROR
        assert logging.getLogger("aiohttp").level == logging.WARNING
        set_component_level("qdrant_client", "DEBUG")
        assert logging.getLogger("qdrant_client").level == logging.DEBUG


class TestLogDisplay:
    def test_marks_record(self, caplog):
        logger = logging.getLogger("llmbridge.unit")
        with caplog.at_level(logging.INFO, logger="llmbridge.unit"):
            log_display(logger, logging.INFO, "synced %d points", 3, extra={"collection": "c"})
        record = caplog.records[-1]
        assert record.getMessage() == "synced 3 points"
        assert record.display is True
        assert record.collection == "c"
