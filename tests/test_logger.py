"""Tests for logging setup and the lyrics-not-found report"""

import io
import logging

import pytest

from versualizer.core.logger import (
    LYRICS_NOT_FOUND_FILENAME,
    ColoredConsoleFormatter,
    get_logger,
    log_lyrics_not_found,
    parse_size,
    setup_logging,
    shutdown_logging,
)


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    shutdown_logging()


class TestParseSize:
    """Test size string parsing"""

    def test_units(self):
        assert parse_size("500B") == 500
        assert parse_size("10KB") == 10 * 1024
        assert parse_size("10MB") == 10 * 1024 ** 2
        assert parse_size("1GB") == 1024 ** 3

    def test_lowercase_and_spaces(self):
        assert parse_size(" 2 mb ") == 2 * 1024 ** 2

    def test_fractional(self):
        assert parse_size("1.5KB") == 1536

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_size("ten megabytes")


class TestSetupLogging:
    """Test handler wiring"""

    def test_console_only(self):
        stream = io.StringIO()
        setup_logging(level="WARNING", colored_output=False, stream=stream)

        logger = get_logger("versualizer.test")
        logger.info("hidden")
        logger.warning("shown")

        output = stream.getvalue()
        assert "hidden" not in output
        assert "WARNING: shown" in output

    def test_file_gets_debug(self, temp_dir):
        log_file = temp_dir / "logs" / "versualizer.log"
        setup_logging(level="ERROR", log_file=log_file, colored_output=False, stream=io.StringIO())

        get_logger("versualizer.test").debug("detail for the file")
        shutdown_logging()

        assert "detail for the file" in log_file.read_text(encoding="utf-8")

    def test_lyrics_not_found_report(self, temp_dir):
        log_file = temp_dir / "versualizer.log"
        stream = io.StringIO()
        setup_logging(level="INFO", log_file=log_file, colored_output=False, stream=stream)

        logger = get_logger("versualizer.test")
        log_lyrics_not_found(logger, "Song", "Artist", "spotify:abc")
        logger.warning("unrelated warning")
        shutdown_logging()

        report = (temp_dir / LYRICS_NOT_FOUND_FILENAME).read_text(encoding="utf-8")
        assert report == "Artist - Song (spotify:abc)\n"
        assert "No synced lyrics found for: Artist - Song" in stream.getvalue()

    def test_repeated_setup_replaces_handlers(self):
        setup_logging(stream=io.StringIO())
        setup_logging(stream=io.StringIO())
        assert len(logging.getLogger().handlers) == 1

    def test_chatty_libraries_are_quieted(self):
        setup_logging(level="DEBUG", stream=io.StringIO())
        assert logging.getLogger("spotipy").level == logging.WARNING


class TestColoredFormatter:
    """Test console formatting"""

    def test_colors_do_not_leak_into_record(self):
        formatter = ColoredConsoleFormatter(use_colors=True)
        record = logging.makeLogRecord({"levelno": logging.ERROR, "levelname": "ERROR", "msg": "boom"})

        formatted = formatter.format(record)

        assert "boom" in formatted
        assert "\x1b[" in formatted
        assert record.levelname == "ERROR"

    def test_plain(self):
        formatter = ColoredConsoleFormatter(use_colors=False)
        record = logging.makeLogRecord({"levelno": logging.INFO, "levelname": "INFO", "msg": "hello"})
        assert formatter.format(record) == "INFO: hello"
