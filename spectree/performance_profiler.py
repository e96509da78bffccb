"""Performance profiling utilities for the clustering pipeline.

Provides context managers for timing a clustering run and its phases and for
collecting structured performance metrics.
"""
from __future__ import annotations

import logging
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class TimingMetric:
    """Container for a single timing measurement."""

    name: str
    duration_ms: float
    timestamp: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        meta_str = ", ".join(f"{k}={v}" for k, v in self.metadata.items()) if self.metadata else ""
        return f"{self.name}: {self.duration_ms:.2f}ms" + (f" ({meta_str})" if meta_str else "")


@dataclass
class PerformanceReport:
    """Aggregated performance metrics for a complete operation."""

    operation: str
    total_duration_ms: float
    phases: List[TimingMetric] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def add_phase(self, phase: TimingMetric) -> None:
        self.phases.append(phase)

    def get_phase_breakdown(self) -> Dict[str, float]:
        """Percentage of the total duration spent in each phase."""
        if self.total_duration_ms == 0:
            return {}
        breakdown: Dict[str, float] = defaultdict(float)
        for phase in self.phases:
            breakdown[phase.name] += (phase.duration_ms / self.total_duration_ms) * 100
        return dict(breakdown)

    def format_report(self) -> str:
        lines = [
            f"PERFORMANCE REPORT: {self.operation}",
            f"Total Duration: {self.total_duration_ms:.2f}ms ({self.total_duration_ms / 1000:.3f}s)",
        ]
        for key, value in self.metadata.items():
            lines.append(f"  {key}: {value}")
        for name, pct in sorted(self.get_phase_breakdown().items(), key=lambda kv: kv[1], reverse=True):
            lines.append(f"  [{pct:5.1f}%] {name}")
        return "\n".join(lines)


class PerformanceProfiler:
    """Singleton profiler collecting reports across the process."""

    _instance = None
    _enabled = True

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._reports = []
            cls._instance._active_reports = {}
        return cls._instance

    @classmethod
    def enable(cls) -> None:
        cls._enabled = True

    @classmethod
    def disable(cls) -> None:
        cls._enabled = False

    @classmethod
    def is_enabled(cls) -> bool:
        return cls._enabled

    def start_report(self, operation: str, metadata: Optional[Dict[str, Any]] = None) -> PerformanceReport:
        report = PerformanceReport(operation=operation, total_duration_ms=0.0, metadata=metadata or {})
        self._active_reports[operation] = (report, time.time())
        return report

    def finish_report(self, operation: str) -> Optional[PerformanceReport]:
        if operation not in self._active_reports:
            logger.warning("No active report found for operation: %s", operation)
            return None
        report, start_time = self._active_reports.pop(operation)
        report.total_duration_ms = (time.time() - start_time) * 1000
        self._reports.append(report)
        return report

    def add_phase_to_report(self, operation: str, phase: TimingMetric) -> None:
        if operation in self._active_reports:
            self._active_reports[operation][0].add_phase(phase)

    def get_all_reports(self) -> List[PerformanceReport]:
        return self._reports.copy()

    def clear_reports(self) -> None:
        self._reports.clear()
        self._active_reports.clear()


_profiler = PerformanceProfiler()


@contextmanager
def profile_operation(operation: str, metadata: Optional[Dict[str, Any]] = None, verbose: bool = True):
    """Context manager for profiling a complete operation.

    Usage:
        with profile_operation("recursive_clustering", {"vertices": 1000}):
            ...
    """
    if not PerformanceProfiler.is_enabled():
        yield None
        return

    report = _profiler.start_report(operation, metadata)
    try:
        yield report
    finally:
        final_report = _profiler.finish_report(operation)
        if final_report and verbose:
            logger.info(final_report.format_report())


@contextmanager
def profile_phase(phase_name: str, operation: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None):
    """Context manager for timing a phase, optionally attached to an active operation."""
    if not PerformanceProfiler.is_enabled():
        yield
        return

    start_time = time.time()
    try:
        yield
    finally:
        duration_ms = (time.time() - start_time) * 1000
        metric = TimingMetric(
            name=phase_name,
            duration_ms=duration_ms,
            timestamp=time.time(),
            metadata=metadata or {},
        )
        if operation:
            _profiler.add_phase_to_report(operation, metric)
        logger.debug("Phase [%s]: %.2fms", phase_name, duration_ms)


def get_profiler() -> PerformanceProfiler:
    """Get the global profiler instance."""
    return _profiler
