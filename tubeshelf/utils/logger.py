"""
Logging setup for TubeShelf

Two audiences share one logging tree:
- the console, which shows warnings, errors and messages explicitly marked
  for the user (`logger.console_info`)
- an optional rotating log file, which receives everything at the
  configured level

Console output goes through `tqdm.write` so log lines printed while a
download bar is active do not tear the bar apart.
"""

import functools
import logging
import logging.handlers
import re
import sys
import time
from pathlib import Path
from typing import Optional

import colorama
from colorama import Fore, Back, Style
from tqdm import tqdm

from ..config.settings import get_settings


colorama.init()

# LogRecord attribute that routes an INFO/DEBUG record to the console
CONSOLE_FLAG = 'console_output'

FILE_FORMAT = '%(asctime)s | %(name)-30s | %(levelname)-8s | %(funcName)-20s | %(message)s'

# Third-party loggers that would otherwise flood the file log
QUIET_LOGGERS = ('yt_dlp', 'mutagen', 'urllib3')

_SIZE_RE = re.compile(r'^(\d+(?:\.\d+)?)\s*([KMGT]?B)$')
_SIZE_UNITS = {'B': 1, 'KB': 1024, 'MB': 1024 ** 2, 'GB': 1024 ** 3, 'TB': 1024 ** 4}


class ConsoleMessageFilter(logging.Filter):
    """Let through WARNING+ and records flagged for the user"""

    def filter(self, record):
        return record.levelno >= logging.WARNING or getattr(record, CONSOLE_FLAG, False)


class ColoredFormatter(logging.Formatter):
    """Colour warnings and errors; leave user info messages plain"""

    COLORS = {
        logging.WARNING: Fore.YELLOW,
        logging.ERROR: Fore.RED,
        logging.CRITICAL: Fore.RED + Back.WHITE + Style.BRIGHT,
    }

    def __init__(self, use_colors: bool = True):
        super().__init__('%(message)s')
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = self.COLORS.get(record.levelno) if self.use_colors else None
        return f"{color}{message}{Style.RESET_ALL}" if color else message


class TqdmConsoleHandler(logging.Handler):
    """Console handler that prints above any active tqdm bar"""

    def __init__(self, stream=None):
        super().__init__()
        self.stream = stream or sys.stdout

    def emit(self, record: logging.LogRecord) -> None:
        try:
            tqdm.write(self.format(record), file=self.stream)
        except Exception:
            self.handleError(record)


def parse_size(size_str: str) -> int:
    """
    Parse a size such as "10MB" or "512 KB" into bytes

    Raises:
        ValueError: If the string has no recognised unit
    """
    match = _SIZE_RE.match(size_str.upper().strip())
    if not match:
        raise ValueError(f"Invalid size format: {size_str}")

    number, unit = match.groups()
    return int(float(number) * _SIZE_UNITS[unit])


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    console_output: bool = True,
    colored_output: bool = True,
    max_size: str = "10MB",
    backup_count: int = 3
) -> None:
    """
    Replace the root handlers with a console handler and an optional file handler

    Args:
        level: Level for the file handler; the console is filtered separately
        log_file: Path to the rotating log file, None to disable it
        console_output: Attach the console handler
        colored_output: Colour console warnings and errors
        max_size: Rotation threshold, e.g. "10MB"
        backup_count: Rotated files to keep
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    if console_output:
        console_handler = TqdmConsoleHandler(sys.stdout)
        console_handler.addFilter(ConsoleMessageFilter())
        console_handler.setFormatter(ColoredFormatter(use_colors=colored_output))
        root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=parse_size(max_size),
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(getattr(logging, level.upper(), logging.INFO))
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        root_logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger('tubeshelf').debug(f"Logging ready (level={level}, file={log_file or 'none'})")


def configure_from_settings() -> None:
    """Apply the `logging` section of the global settings"""
    settings = get_settings()

    log_file_path = None
    if settings.logging.file:
        log_file_path = Path(settings.logging.file)
        if not log_file_path.is_absolute():
            log_file_path = settings.get_config_directory() / log_file_path

    setup_logging(
        level=settings.logging.level,
        log_file=str(log_file_path) if log_file_path else None,
        console_output=settings.logging.console_output,
        colored_output=settings.logging.colored_output,
        max_size=settings.logging.max_size,
        backup_count=settings.logging.backup_count
    )


def get_current_log_file() -> Optional[Path]:
    """Path of the active rotating log file, if any"""
    for handler in logging.getLogger().handlers:
        if isinstance(handler, logging.handlers.RotatingFileHandler):
            return Path(handler.baseFilename)
    return None


def get_logger(name: str) -> logging.Logger:
    """
    Get a module logger with a `console_info(message)` helper attached

    Args:
        name: Logger name (typically __name__)
    """
    logger = logging.getLogger(name)

    def console_info(message: str):
        logger.info(message, extra={CONSOLE_FLAG: True})

    logger.console_info = console_info
    return logger


class OperationLogger:
    """
    Reports one long-running operation, such as a single song download

    Percent updates draw a tqdm bar; start, completion and failure are
    logged for the user. The bar is created lazily, so operations that never
    report a percentage print no bar at all.
    """

    def __init__(self, logger: logging.Logger, operation_name: str):
        self.logger = logger
        self.operation_name = operation_name
        self.start_time: Optional[float] = None
        self.progress_bar: Optional[tqdm] = None

    def start(self, message: Optional[str] = None) -> None:
        self.start_time = time.monotonic()
        self.logger.info(message or f"Starting {self.operation_name}", extra={CONSOLE_FLAG: True})

    def update(self, percent: float, detail: Optional[str] = None) -> None:
        """
        Move the bar to a percentage

        Args:
            percent: 0 to 100; values outside are clamped
            detail: Raw progress text, written to the file log only
        """
        percent = max(0.0, min(100.0, percent))
        if detail:
            self.logger.debug(f"{self.operation_name}: {detail}")

        if self.progress_bar is None:
            self.progress_bar = tqdm(
                total=100,
                desc=self.operation_name,
                bar_format="{desc} {bar} {percentage:3.0f}%",
                ncols=80,
                colour='cyan',
                leave=False
            )

        self.progress_bar.n = percent
        self.progress_bar.refresh()

    def complete(self, message: Optional[str] = None) -> None:
        self._close_bar()
        self.logger.info(message or f"{self.operation_name} completed", extra={CONSOLE_FLAG: True})
        if self.start_time is not None:
            self.logger.debug(f"{self.operation_name} took {time.monotonic() - self.start_time:.2f}s")

    def error(self, message: str, exception: Optional[Exception] = None) -> None:
        self._close_bar()
        self.logger.error(f"{self.operation_name} failed: {message}", exc_info=exception)

    def _close_bar(self) -> None:
        if self.progress_bar is not None:
            self.progress_bar.close()
            self.progress_bar = None


def create_operation_logger(name: str, operation: str) -> OperationLogger:
    return OperationLogger(get_logger(name), operation)


def log_performance(func):
    """Decorator writing the call duration of `func` to the file log"""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger(func.__module__)
        started = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            logger.debug(f"{func.__name__} failed after {time.perf_counter() - started:.3f}s: {e}")
            raise
        logger.debug(f"{func.__name__} took {time.perf_counter() - started:.3f}s")
        return result

    return wrapper
