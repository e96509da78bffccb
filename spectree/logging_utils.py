"""Colored, filtered console logging for clustering scripts."""
import logging
import logging.handlers
from pathlib import Path

# Loggers whose INFO messages are shown on the console
CONSOLE_LOGGERS = (
    "spectree.clustering.recursive",
    "spectree.clustering.export",
    "spectree.graph.builder",
    "spectree.performance_profiler",
    "cluster_graph",
)


class Colors:
    """ANSI color codes."""
    RESET = "\033[0m"
    BOLD = "\033[1m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    CYAN = "\033[36m"


class ColoredFormatter(logging.Formatter):
    """A logging formatter that adds colors to the output."""

    LOG_LEVEL_COLORS = {
        logging.DEBUG: Colors.CYAN,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED,
    }

    def format(self, record):
        color = self.LOG_LEVEL_COLORS.get(record.levelno)
        message = super().format(record)
        if color:
            # Color the whole line
            return color + message + Colors.RESET
        return message


class ConsoleFilter(logging.Filter):
    """A logging filter that keeps the console down to run-level progress messages.

    Warnings and above always pass. INFO passes for the loggers listed in
    ``allowed`` (and their children). DEBUG only passes when ``verbose`` is set.
    """

    def __init__(self, allowed=CONSOLE_LOGGERS, verbose=False):
        super().__init__()
        self.allowed = tuple(allowed)
        self.verbose = verbose

    def filter(self, record):
        if record.levelno >= logging.WARNING:
            return True
        if record.levelno < logging.INFO:
            return self.verbose
        return any(
            record.name == name or record.name.startswith(name + ".")
            for name in self.allowed
        )


def setup_logging(console_level=logging.INFO, file_level=logging.DEBUG, log_file=None, quiet=False, verbose=False):
    """
    Set up logging with a colored, filtered console handler and an optional
    rotating file handler that receives everything at ``file_level``.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Remove any existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Console handler (colored and filtered)
    if not quiet:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(console_level)
        console_formatter = ColoredFormatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        )
        console_handler.setFormatter(console_formatter)
        console_handler.addFilter(ConsoleFilter(verbose=verbose))
        root_logger.addHandler(console_handler)

    # File handler (verbose)
    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=5 * 1024 * 1024, backupCount=5
        )
        file_handler.setLevel(file_level)
        file_formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(message)s"
        )
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

    logging.getLogger(__name__).debug("Colored and filtered logging initialized.")
