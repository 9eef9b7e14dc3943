"""
Logging for namebid.

Console output is colored with colorlog. Once a clock is bound, every
record also carries the ledger block height (``%(tick)s``) so registrar
events can be read against the auction schedule.
"""

import logging
import sys
from pathlib import Path
from typing import Callable, Optional

import colorlog

ROOT_LOGGER = "namebid"
LOG_FILE = "namebid.log"

CONSOLE_FORMAT = (
    "%(log_color)s%(levelname)-8s%(reset)s "
    "%(blue)s[%(name)s @%(tick)s]%(reset)s %(message)s"
)
FILE_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s @%(tick)s] %(message)s"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


class TickFilter(logging.Filter):
    """Stamp records with the bound clock's tick, or "-" when unbound."""

    def __init__(self):
        super().__init__()
        self.clock: Optional[Callable[[], int]] = None

    def filter(self, record: logging.LogRecord) -> bool:
        record.tick = self.clock() if self.clock is not None else "-"
        return True


class NamebidLogger:
    _initialized = False
    _tick_filter = TickFilter()

    @classmethod
    def setup(
        cls,
        level: int = logging.INFO,
        log_dir: Optional[str] = None,
        log_to_file: bool = False,
        force: bool = False,
    ):
        """
        Configure the ``namebid`` logger tree.

        Args:
            level: Logging level for the tree and its handlers
            log_dir: Directory for namebid.log. If None, uses ./logs
            log_to_file: Also write plain records to namebid.log
            force: Replace an existing configuration
        """
        if cls._initialized and not force:
            return

        root_logger = logging.getLogger(ROOT_LOGGER)
        root_logger.setLevel(level)
        root_logger.handlers.clear()

        console = colorlog.StreamHandler(sys.stderr)
        console.setFormatter(colorlog.ColoredFormatter(CONSOLE_FORMAT, log_colors=LOG_COLORS))
        handlers = [console]

        if log_to_file:
            directory = Path(log_dir) if log_dir else Path("logs")
            directory.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(directory / LOG_FILE)
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
            handlers.append(file_handler)

        for handler in handlers:
            handler.setLevel(level)
            handler.addFilter(cls._tick_filter)
            root_logger.addHandler(handler)

        cls._initialized = True

    @classmethod
    def bind_clock(cls, clock: Optional[Callable[[], int]]) -> None:
        """Use ``clock()`` (e.g. ``ledger.current_time``) for the tick field."""
        cls._tick_filter.clock = clock

    @classmethod
    def reset(cls) -> None:
        """Close handlers, unbind the clock and allow setup() to run again."""
        root_logger = logging.getLogger(ROOT_LOGGER)
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()
        cls._tick_filter.clock = None
        cls._initialized = False

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Logger for a subsystem ('registrar', 'ledger', 'storage.sqlite', ...)."""
        if not cls._initialized:
            cls.setup()
        return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def get_logger(name: str) -> logging.Logger:
    return NamebidLogger.get_logger(name)


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[str] = None,
    log_to_file: bool = False,
):
    """Configure logging, replacing any earlier setup"""
    NamebidLogger.setup(level=level, log_dir=log_dir, log_to_file=log_to_file, force=True)


def bind_clock(clock: Optional[Callable[[], int]]) -> None:
    NamebidLogger.bind_clock(clock)
