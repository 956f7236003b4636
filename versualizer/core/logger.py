"""
Logging configuration for versualizer.

This module sets up the logging system with multiple outputs:
    - Console: Colored, compact messages (colorama, works on Windows too)
    - Log file: Complete log of all events (DEBUG and above), size-rotated
    - lyrics_not_found.log: Tracks for which no synced lyrics were found

Log File Locations:
    The main log file path comes from config.yaml (logging.file). The
    lyrics_not_found.log file is created next to it. Without a log file
    only console output is produced.

Usage:
    from versualizer.core.logger import setup_logging, get_logger

    setup_logging(level="INFO", log_file=Path("versualizer.log"))  # Once at startup
    logger = get_logger(__name__)

    logger.info("Poller started")
"""

import logging
import logging.handlers
import re
import sys
from pathlib import Path
from typing import TextIO

import colorama
from colorama import Fore, Style


LYRICS_NOT_FOUND_FILENAME = "lyrics_not_found.log"

# Log format for file output (detailed with timestamp)
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Log format for console output (compact)
CONSOLE_LOG_FORMAT = "%(levelname)s: %(message)s"

# Third-party loggers that are far too chatty at DEBUG/INFO
EXTERNAL_LOGGERS = (
    "spotipy",
    "urllib3",
    "urllib3.connectionpool",
    "aiohttp.access",
    "aiohttp.client",
    "asyncio",
)


class ColoredConsoleFormatter(logging.Formatter):
    """
    Formatter that colors the level name for console output.

    Colors:
        - DEBUG: Cyan
        - INFO: Green
        - WARNING: Yellow
        - ERROR: Red
        - CRITICAL: Bright Red
    """

    LEVEL_COLORS = {
        logging.DEBUG: Fore.CYAN,
        logging.INFO: Fore.GREEN,
        logging.WARNING: Fore.YELLOW,
        logging.ERROR: Fore.RED,
        logging.CRITICAL: Fore.RED + Style.BRIGHT,
    }

    def __init__(self, fmt: str = CONSOLE_LOG_FORMAT, use_colors: bool = True) -> None:
        super().__init__(fmt)
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_colors:
            return super().format(record)

        color = self.LEVEL_COLORS.get(record.levelno, "")

        # Work on a copy so file handlers still see the plain level name
        record_copy = logging.makeLogRecord(record.__dict__)
        record_copy.levelname = f"{color}{record.levelname}{Style.RESET_ALL}"
        return super().format(record_copy)


class LyricsNotFoundHandler(logging.Handler):
    """
    Handler that records tracks without synced lyrics in a report file.

    The handler looks for specific extra fields in log records:
        - 'lyrics_missing_track_name': The track title
        - 'lyrics_missing_track_artist': The artist name
        - 'lyrics_missing_track_ref': Source-qualified id (e.g., 'spotify:4uLU6hMC...')

    Only records containing these fields are written; everything else is
    ignored. Output format, one entry per line:

        Artist Name - Song Title (spotify:4uLU6hMCjMI75M1A2tKUQC)

    Use log_lyrics_not_found() rather than building the extras by hand.
    """

    def __init__(self, report_path: Path) -> None:
        super().__init__()
        self.report_path = report_path
        self.report_file: TextIO | None = None

    def open(self) -> None:
        """Open the report file in append mode (entries accumulate across runs)."""
        self.report_path.parent.mkdir(parents=True, exist_ok=True)
        self.report_file = open(self.report_path, "a", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        if not hasattr(record, "lyrics_missing_track_name"):
            return

        if self.report_file is None:
            return

        try:
            name = getattr(record, "lyrics_missing_track_name", "Unknown")
            artist = getattr(record, "lyrics_missing_track_artist", "Unknown")
            ref = getattr(record, "lyrics_missing_track_ref", "")

            self.report_file.write(f"{artist} - {name} ({ref})\n")
            self.report_file.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        """Close the report file handle. Safe to call multiple times."""
        if self.report_file is not None:
            try:
                self.report_file.close()
            except OSError:
                pass
            self.report_file = None
        super().close()


def parse_size(size_str: str) -> int:
    """
    Parse a size string to bytes.

    Args:
        size_str: Size string like "10MB", "1GB", "500KB".

    Returns:
        Size in bytes.

    Raises:
        ValueError: If the string is not a recognised size.
    """
    multipliers = {
        "B": 1,
        "KB": 1024,
        "MB": 1024 ** 2,
        "GB": 1024 ** 3,
    }

    match = re.match(r"^(\d+(?:\.\d+)?)\s*([KMG]?B)$", size_str.upper().strip())
    if not match:
        raise ValueError(f"Invalid size format: {size_str}")

    number, unit = match.groups()
    return int(float(number) * multipliers[unit])


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    colored_output: bool = True,
    max_size: str = "10MB",
    backup_count: int = 3,
    stream: TextIO | None = None
) -> None:
    """
    Configure the logging system for the application.

    This function should be called ONCE at application startup, after the
    configuration is loaded but before any tasks are started.

    Args:
        level: Console logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Path to the main log file, or None for console only.
        colored_output: Enable colored console output.
        max_size: Maximum log file size before rotation (e.g., "10MB").
        backup_count: Number of rotated files to keep.
        stream: Console stream, defaults to stderr.

    Behavior:
        1. Root logger captures everything (DEBUG); handlers filter
        2. Console handler at the requested level
        3. Rotating file handler at DEBUG (if log_file is set)
        4. LyricsNotFoundHandler next to the log file (if log_file is set)
        5. Silence chatty third-party loggers
    """
    colorama.just_fix_windows_console()

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Remove any existing handlers (closing them releases file handles)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(stream or sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(ColoredConsoleFormatter(use_colors=colored_output))
    root_logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=parse_size(max_size),
            backupCount=backup_count,
            encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
        root_logger.addHandler(file_handler)

        lyrics_handler = LyricsNotFoundHandler(log_file.parent / LYRICS_NOT_FOUND_FILENAME)
        lyrics_handler.open()
        root_logger.addHandler(lyrics_handler)

    for name in EXTERNAL_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("versualizer").debug(
        f"Logging initialized - Level: {level}, File: {log_file}"
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The logger name, typically __name__ of the calling module.
              This creates a hierarchy like 'versualizer.lyrics.fetcher'.

    Note:
        Loggers obtained before setup_logging() is called will have no
        handlers of their own; records propagate to the root logger.
    """
    return logging.getLogger(name)


def log_lyrics_not_found(
    logger: logging.Logger,
    track_name: str,
    artist: str,
    track_ref: str
) -> None:
    """
    Log a track for which no synced lyrics could be found.

    Logs a WARNING and attaches the extra fields LyricsNotFoundHandler
    uses to append the track to lyrics_not_found.log.

    Example:
        log_lyrics_not_found(logger, "Song Title", "Artist", "spotify:4uLU6hMC...")
    """
    logger.warning(
        f"No synced lyrics found for: {artist} - {track_name}",
        extra={
            "lyrics_missing_track_name": track_name,
            "lyrics_missing_track_artist": artist,
            "lyrics_missing_track_ref": track_ref,
        }
    )


def shutdown_logging() -> None:
    """
    Flush and close every handler on the root logger.

    Typically called in a finally block at application exit.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        try:
            handler.flush()
            handler.close()
        except (OSError, ValueError):
            pass
        root_logger.removeHandler(handler)
