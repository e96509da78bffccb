"""Shared pytest configuration and fixtures for the test suite.

This module centralizes:
- Path setup (eliminates sys.path hacks in individual test files)
- Pytest markers for test categorization (unit, integration, property)
- Small reference graphs used across graph and clustering tests
"""
from __future__ import annotations

import sys
from pathlib import Path

import pytest


# ==============================================================================
# Path Setup - Ensures spectree/ is importable
# ==============================================================================

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from spectree.graph.builder import build_graph  # noqa: E402
from spectree.performance_profiler import PerformanceProfiler  # noqa: E402
from tests.helpers.graphs import K33_EDGES, two_cliques_edges  # noqa: E402


# ==============================================================================
# Pytest Configuration
# ==============================================================================

def pytest_configure(config):
    """Register custom markers for test categorization."""
    config.addinivalue_line(
        "markers",
        "unit: Fast tests with no I/O",
    )
    config.addinivalue_line(
        "markers",
        "integration: End-to-end clustering runs or file system access",
    )
    config.addinivalue_line(
        "markers",
        "property: Hypothesis property-based tests",
    )


@pytest.fixture(autouse=True)
def _reset_profiler():
    """Profiling is a process-wide singleton; keep tests isolated."""
    yield
    PerformanceProfiler.enable()
    PerformanceProfiler().clear_reports()


# ==============================================================================
# Reference Graphs
# ==============================================================================

@pytest.fixture
def k33_graph():
    return build_graph(K33_EDGES)


@pytest.fixture
def two_cliques_graph():
    return build_graph(two_cliques_edges())


@pytest.fixture
def digest_graph():
    return build_graph([
        (0, 1, 1), (0, 2, 2), (0, 3, 3), (0, 4, 4), (0, 5, 5), (0, 6, 6),
        (1, 2, 7), (1, 3, 8), (1, 4, 9), (1, 5, 10), (1, 6, 11),
        (2, 3, 12), (4, 5, 13), (4, 6, 14), (4, 7, 15), (4, 8, 16), (4, 9, 17),
        (5, 6, 18), (5, 7, 19), (5, 8, 20), (5, 9, 21), (6, 7, 22), (8, 9, 23),
    ])
