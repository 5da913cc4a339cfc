"""Tests for the rotating-file logger helpers."""

import logging
import sys
import os

# Ensure src is on path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tagstream import logger as tslog


class TestLogger:
    def test_child_namespace(self):
        log = tslog.get_logger("extractor")
        assert log.name == "tagstream.extractor"

    def test_log_dir_exists(self):
        tslog.get_logger("x")
        assert tslog.log_dir().is_dir()

    def test_log_exception_includes_traceback(self, caplog):
        log = tslog.get_logger("test")
        try:
            raise KeyError("boom")
        except KeyError as e:
            with caplog.at_level(logging.ERROR, logger="tagstream"):
                tslog.log_exception(log, "renderer failed", e)
        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert "renderer failed" in record.getMessage()
        assert "Traceback" in record.getMessage()

    def test_echo_toggle(self):
        root = logging.getLogger("tagstream")
        tslog.set_echo(True)
        try:
            assert any(isinstance(h, logging.StreamHandler) and h.stream is sys.stderr
                       for h in root.handlers)
        finally:
            tslog.set_echo(False)
        assert tslog._echo_handler is None


class TestTruncate:
    def test_empty(self):
        assert tslog.truncate("") == "(empty)"

    def test_short_text_is_one_line(self):
        assert tslog.truncate("a\nb") == "a\\nb"

    def test_placeholder_delimiters_visible(self):
        assert tslog.truncate("\x00BLOCK-1\x00") == "\\0BLOCK-1\\0"

    def test_long_text(self):
        out = tslog.truncate("x" * 50, max_len=10)
        assert out == "x" * 10 + "...[50 chars]"
