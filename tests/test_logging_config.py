from __future__ import annotations

import logging

import pytest

from cortexviz.logging_config import setup_logging


@pytest.fixture
def restore_loggers():
    names = ["cortexviz", "cortexviz.controller.fetch"]
    levels = {name: logging.getLogger(name).level for name in names}
    yield
    for name, level in levels.items():
        logger = logging.getLogger(name)
        logger.setLevel(level)
        if name == "cortexviz":
            logger.handlers.clear()


class TestSetupLogging:
    def test_single_console_handler(self, restore_loggers) -> None:
        """Calling twice doesn't duplicate handlers."""
        setup_logging(logging.WARNING)
        setup_logging(logging.WARNING)
        logger = logging.getLogger("cortexviz")
        assert logger.level == logging.WARNING
        assert len(logger.handlers) == 1

    def test_verbose_modules(self, restore_loggers) -> None:
        setup_logging(logging.WARNING, verbose=["controller.fetch", " ", ""])
        assert logging.getLogger("cortexviz.controller.fetch").getEffectiveLevel() == logging.DEBUG
        assert logging.getLogger("cortexviz.view.draw_cache").getEffectiveLevel() == logging.WARNING
        assert logging.getLogger("cortexviz").handlers[0].level == logging.DEBUG

    def test_log_file(self, restore_loggers, tmp_path) -> None:
        path = tmp_path / "cortexviz.log"
        setup_logging(logging.INFO, log_file=str(path))
        logging.getLogger("cortexviz.config").info("hello")
        for handler in logging.getLogger("cortexviz").handlers:
            handler.flush()
        assert "cortexviz.config - INFO - hello" in path.read_text(encoding="utf-8")
