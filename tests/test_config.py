import logging

import pytest

from timeline_core import config


@pytest.fixture
def clean_timeline_logger():
    target = logging.getLogger("timeline_core")
    original_handlers = list(target.handlers)
    original_level = target.level
    yield target
    for handler in list(target.handlers):
        if handler not in original_handlers:
            target.removeHandler(handler)
            handler.close()
    target.setLevel(original_level)


class TestGetSetting:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("TIMELINE_TEST_SETTING", "  value ")

        assert config.get_setting("TIMELINE_TEST_SETTING") == "value"

    def test_blank_uses_default(self, monkeypatch):
        monkeypatch.setenv("TIMELINE_TEST_SETTING", "   ")

        assert config.get_setting("TIMELINE_TEST_SETTING", "fallback") == "fallback"

    def test_missing_uses_default(self, monkeypatch):
        monkeypatch.delenv("TIMELINE_TEST_SETTING", raising=False)

        assert config.get_setting("TIMELINE_TEST_SETTING") is None


class TestConfigureLogging:
    def test_file_handler_attached_once(self, tmp_path, monkeypatch, clean_timeline_logger):
        log_file = tmp_path / "logs" / "timeline.log"
        monkeypatch.setattr(config, "TIMELINE_LOG_FILE", str(log_file))

        config.configure_logging("DEBUG")
        config.configure_logging("DEBUG")

        file_handlers = [
            h for h in clean_timeline_logger.handlers if isinstance(h, logging.FileHandler)
        ]
        assert len(file_handlers) == 1
        assert clean_timeline_logger.level == logging.DEBUG

        logging.getLogger("timeline_core.operators.timeline_editor").info("split_clip: test")
        file_handlers[0].flush()
        assert "split_clip: test" in log_file.read_text(encoding="utf-8")

    def test_no_file_handler_without_path(self, monkeypatch, clean_timeline_logger):
        monkeypatch.setattr(config, "TIMELINE_LOG_FILE", "")

        config.configure_logging()

        assert not any(
            isinstance(h, logging.FileHandler) for h in clean_timeline_logger.handlers
        )
