"""
Logging configuration for tube-tracker.

This module sets up the logging system with multiple outputs:
    - Console: Real-time messages with tqdm-compatible formatting
    - log_full.log: Complete log of all events (DEBUG and above)
    - log_errors.log: Only ERROR and CRITICAL level messages
    - sync_failures.log: Background sync work that did not complete
      (refresh, progress migration, remote deletion) and should be retried
    - credit_failures.log: Refunds that could not be recorded remotely

Usage:
    from tube_tracker.core.logger import setup_logging, get_logger

    setup_logging(log_dir)  # Call once at startup
    logger = get_logger(__name__)  # Get logger for each module

    logger.info("Opening playlist")
    log_sync_failure(logger, "refresh", playlist_id, "YouTube unreachable")
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TextIO

from tqdm import tqdm


# Log format for file output (detailed with timestamp)
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Log format for console output (compact, tqdm-friendly)
CONSOLE_LOG_FORMAT = "%(levelname)s: %(message)s"


class Colors:
    """ANSI color codes for terminal output."""
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    WHITE = "\033[37m"
    BOLD = "\033[1m"


class ColoredConsoleFormatter(logging.Formatter):
    """
    Formatter that colors the level name on console output.

    Colors:
        - DEBUG: Blue
        - INFO: Green
        - WARNING: Yellow
        - ERROR: Red
        - CRITICAL: Bold Red
    """

    LEVEL_COLORS = {
        logging.DEBUG: Colors.BLUE,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.WHITE)
        colored_levelname = f"{color}{record.levelname}{Colors.RESET}"
        return f"{colored_levelname}: {record.getMessage()}"


class TqdmLoggingHandler(logging.Handler):
    """
    Logging handler that writes to console without breaking tqdm progress bars.

    The shell shows a progress bar while refreshing every playlist; plain
    stderr logging would tear it. tqdm.write() prints above active bars.
    """

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            tqdm.write(msg, file=self.stream)
        except Exception:
            self.handleError(record)


class ReportFileHandler(logging.Handler):
    """
    Base handler that copies selected records into a human-readable report.

    Subclasses name the `extra` attribute that marks a record as belonging
    to their report and render it as a short block of text. Records
    without that attribute are ignored.

    Attributes:
        report_path: Path to the report file.
        report_file: Open file handle (None until open() is called).
    """

    marker_attribute = ""

    def __init__(self, report_path: Path) -> None:
        super().__init__()
        self.report_path = report_path
        self.report_file: TextIO | None = None

    def open(self) -> None:
        """Open the report file for writing (overwrites existing content)."""
        self.report_file = open(self.report_path, "w", encoding="utf-8")

    def render(self, record: logging.LogRecord) -> str:
        raise NotImplementedError

    def emit(self, record: logging.LogRecord) -> None:
        if not hasattr(record, self.marker_attribute):
            return

        if self.report_file is None:
            return

        try:
            self.report_file.write(self.render(record))
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


class SyncFailureHandler(ReportFileHandler):
    """
    Captures background sync work that failed and needs a later retry.

    Output format:

        2026-01-01 12:00:00 delete_remote PLxxxxxxxx user=abc
        Remote store unreachable

    The handler looks for these extra fields:
        - 'sync_failure_operation': refresh, migrate_progress, delete_remote, ...
        - 'sync_failure_playlist_id': Playlist the operation was about
        - 'sync_failure_user_id': User the operation was for (optional)
        - 'sync_failure_reason': Error message
    """

    marker_attribute = "sync_failure_operation"

    def render(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime(FILE_DATE_FORMAT)
        operation = getattr(record, "sync_failure_operation", "unknown")
        playlist_id = getattr(record, "sync_failure_playlist_id", "")
        user_id = getattr(record, "sync_failure_user_id", None)
        reason = getattr(record, "sync_failure_reason", "")

        header = f"{timestamp} {operation} {playlist_id}"
        if user_id:
            header += f" user={user_id}"
        return f"{header}\n{reason}\n\n"


class CreditFailureHandler(ReportFileHandler):
    """
    Captures refunds that could not be recorded at the authoritative store.

    The local balance was bumped optimistically, so these entries are what
    an operator needs to reconcile the remote ledger by hand.

    Output format:

        2026-01-01 12:00:00 user=abc refund_notes +10
        Remote store unreachable
    """

    marker_attribute = "credit_failure_action"

    def render(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime(FILE_DATE_FORMAT)
        action = getattr(record, "credit_failure_action", "unknown")
        user_id = getattr(record, "credit_failure_user_id", "")
        amount = getattr(record, "credit_failure_amount", 0)
        reason = getattr(record, "credit_failure_reason", "")
        return f"{timestamp} user={user_id} {action} +{amount}\n{reason}\n\n"


class ErrorOnlyFilter(logging.Filter):
    """Filter that only allows ERROR and CRITICAL level records."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def setup_logging(log_dir: Path, console_level: int = logging.INFO) -> None:
    """
    Configure the logging system for the application.

    This function should be called ONCE at application startup, after
    the configuration is loaded but before any other operations.

    Args:
        log_dir: Directory where log files will be created.
                 Logs are stored in a 'logs' subdirectory.
        console_level: Minimum level shown on the console.

    Behavior:
        1. Create log_dir/logs if it doesn't exist
        2. Configure root logger level to DEBUG and drop existing handlers
        3. Console handler (TqdmLoggingHandler, colored)
        4. Full log file handler (DEBUG)
        5. Error log file handler (ERROR+ via ErrorOnlyFilter)
        6. Sync failure and credit failure report handlers

    Each run creates new log files with a unique timestamp.
    """
    logs_dir = log_dir / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    console_handler = TqdmLoggingHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(ColoredConsoleFormatter())
    root_logger.addHandler(console_handler)

    full_log_path = logs_dir / f"log_full_{timestamp}.log"
    full_handler = logging.FileHandler(full_log_path, mode="w", encoding="utf-8")
    full_handler.setLevel(logging.DEBUG)
    full_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    root_logger.addHandler(full_handler)

    error_log_path = logs_dir / f"log_errors_{timestamp}.log"
    error_handler = logging.FileHandler(error_log_path, mode="w", encoding="utf-8")
    error_handler.setLevel(logging.DEBUG)  # Filter handles the level restriction
    error_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    error_handler.addFilter(ErrorOnlyFilter())
    root_logger.addHandler(error_handler)

    sync_handler = SyncFailureHandler(logs_dir / f"sync_failures_{timestamp}.log")
    sync_handler.open()
    root_logger.addHandler(sync_handler)

    credit_handler = CreditFailureHandler(logs_dir / f"credit_failures_{timestamp}.log")
    credit_handler.open()
    root_logger.addHandler(credit_handler)

    # aiohttp and asyncio are chatty at DEBUG
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The logger name, typically __name__ of the calling module.

    Note:
        Loggers obtained before setup_logging() is called will have no
        handlers and will not produce output.
    """
    return logging.getLogger(name)


def log_sync_failure(
    logger: logging.Logger,
    operation: str,
    playlist_id: str,
    reason: str,
    user_id: str | None = None
) -> None:
    """
    Log a background sync failure so it lands in sync_failures.log.

    Args:
        logger: The logger to use for the message.
        operation: Short operation name (refresh, migrate_progress, delete_remote).
        playlist_id: Playlist the operation was about.
        reason: Description of why it failed.
        user_id: User the operation was for, if any.

    Example:
        log_sync_failure(logger, "delete_remote", "PL123", str(e), user_id=user.id)
    """
    logger.warning(
        f"{operation} failed for playlist {playlist_id}: {reason}",
        extra={
            "sync_failure_operation": operation,
            "sync_failure_playlist_id": playlist_id,
            "sync_failure_user_id": user_id,
            "sync_failure_reason": reason,
        }
    )


def log_credit_failure(
    logger: logging.Logger,
    user_id: str,
    action: str,
    amount: int,
    reason: str
) -> None:
    """
    Log a refund that could not be written to the authoritative store.

    Logged at ERROR: credits are real value and must never fail silently.
    """
    logger.error(
        f"Refund {action} (+{amount}) for user {user_id} not recorded: {reason}",
        extra={
            "credit_failure_action": action,
            "credit_failure_user_id": user_id,
            "credit_failure_amount": amount,
            "credit_failure_reason": reason,
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
        except OSError:
            pass
        root_logger.removeHandler(handler)
