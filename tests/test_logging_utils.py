"""Unit tests for logging utilities.

Tests colored formatters, console filters, and logging setup.
"""
from __future__ import annotations

import logging
import logging.handlers

import pytest

from spectree.logging_utils import Colors, ColoredFormatter, ConsoleFilter, setup_logging


def _record(name, level, msg="message"):
    return logging.LogRecord(
        name=name,
        level=level,
        pathname="",
        lineno=0,
        msg=msg,
        args=(),
        exc_info=None,
    )


@pytest.fixture
def restore_root_logger():
    """setup_logging rewires the root logger; drop its handlers afterwards."""
    root_logger = logging.getLogger()
    level = root_logger.level
    yield root_logger
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(level)


# ==============================================================================
# ConsoleFilter Tests
# ==============================================================================

@pytest.mark.unit
@pytest.mark.parametrize("level", [logging.WARNING, logging.ERROR, logging.CRITICAL])
def test_console_filter_allows_warnings_and_above(level):
    """Warnings and above pass regardless of the logger name."""
    assert ConsoleFilter().filter(_record("some.library", level)) is True


@pytest.mark.unit
def test_console_filter_allows_clustering_progress():
    console_filter = ConsoleFilter()

    assert console_filter.filter(_record("spectree.clustering.recursive", logging.INFO)) is True
    assert console_filter.filter(_record("cluster_graph", logging.INFO)) is True


@pytest.mark.unit
def test_console_filter_allows_child_loggers():
    console_filter = ConsoleFilter(allowed=("spectree.graph",))
    assert console_filter.filter(_record("spectree.graph.builder", logging.INFO)) is True


@pytest.mark.unit
def test_console_filter_blocks_lookalike_names():
    """A shared prefix without a dot separator is a different logger."""
    console_filter = ConsoleFilter(allowed=("spectree.graph",))
    assert console_filter.filter(_record("spectree.graphviz", logging.INFO)) is False


@pytest.mark.unit
def test_console_filter_blocks_random_info():
    assert ConsoleFilter().filter(_record("spectree.clustering.postprocessing", logging.INFO)) is False


@pytest.mark.unit
def test_console_filter_debug_requires_verbose():
    record = _record("spectree.clustering.recursive", logging.DEBUG)

    assert ConsoleFilter().filter(record) is False
    assert ConsoleFilter(verbose=True).filter(record) is True


# ==============================================================================
# ColoredFormatter Tests
# ==============================================================================

@pytest.mark.unit
def test_colored_formatter_wraps_line_in_level_color():
    formatter = ColoredFormatter("%(levelname)s %(message)s")
    output = formatter.format(_record("x", logging.WARNING, "careful"))

    assert output.startswith(Colors.YELLOW)
    assert output.endswith(Colors.RESET)
    assert "WARNING careful" in output


@pytest.mark.unit
def test_colored_formatter_leaves_custom_levels_plain():
    formatter = ColoredFormatter("%(message)s")
    assert formatter.format(_record("x", 25, "plain")) == "plain"


# ==============================================================================
# setup_logging() Tests
# ==============================================================================

@pytest.mark.unit
def test_setup_logging_quiet_mode(tmp_path, restore_root_logger):
    """quiet=True creates only the file handler."""
    setup_logging(log_file=tmp_path / "run.log", quiet=True)

    handlers = restore_root_logger.handlers
    assert len(handlers) == 1
    handler = handlers[0]
    assert isinstance(handler, logging.handlers.RotatingFileHandler)
    assert handler.level == logging.DEBUG
    assert handler.formatter is not None


@pytest.mark.unit
def test_setup_logging_console_only(restore_root_logger):
    setup_logging()

    handlers = restore_root_logger.handlers
    assert len(handlers) == 1
    assert isinstance(handlers[0].formatter, ColoredFormatter)
    assert any(isinstance(f, ConsoleFilter) for f in handlers[0].filters)


@pytest.mark.integration
def test_full_logging_setup(tmp_path, restore_root_logger):
    """Everything reaches the log file, including loggers hidden from the console."""
    log_file = tmp_path / "logs" / "cluster.log"
    setup_logging(console_level=logging.INFO, file_level=logging.DEBUG, log_file=log_file)

    logger = logging.getLogger("test_integration")
    logger.debug("Debug message")
    logger.info("Info message")
    logger.warning("Warning message")
    for handler in restore_root_logger.handlers:
        handler.flush()

    content = log_file.read_text()
    assert "Debug message" in content
    assert "Info message" in content
    assert "Warning message" in content
