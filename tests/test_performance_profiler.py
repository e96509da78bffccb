"""Tests for spectree/performance_profiler.py."""
from __future__ import annotations

import pytest

from spectree.performance_profiler import (
    PerformanceProfiler,
    PerformanceReport,
    TimingMetric,
    get_profiler,
    profile_operation,
    profile_phase,
)


@pytest.mark.unit
def test_profiler_is_a_singleton():
    assert PerformanceProfiler() is get_profiler()


@pytest.mark.unit
def test_phases_attach_to_active_operation():
    with profile_operation("op", {"vertices": 3}, verbose=False) as report:
        with profile_phase("first", operation="op"):
            pass
        with profile_phase("detached"):
            pass

    assert [phase.name for phase in report.phases] == ["first"]
    assert report.total_duration_ms >= 0
    assert get_profiler().get_all_reports()[-1] is report


@pytest.mark.unit
def test_disabled_profiler_records_nothing():
    PerformanceProfiler.disable()
    get_profiler().clear_reports()

    with profile_operation("op") as report:
        with profile_phase("phase", operation="op"):
            pass

    assert report is None
    assert get_profiler().get_all_reports() == []


@pytest.mark.unit
def test_finishing_unknown_operation_returns_none():
    assert get_profiler().finish_report("never-started") is None


@pytest.mark.unit
def test_phase_breakdown_and_report_text():
    report = PerformanceReport(operation="op", total_duration_ms=200.0, metadata={"vertices": 10})
    report.add_phase(TimingMetric("a", 50.0, 0.0))
    report.add_phase(TimingMetric("a", 50.0, 0.0))
    report.add_phase(TimingMetric("b", 20.0, 0.0))

    assert report.get_phase_breakdown() == pytest.approx({"a": 50.0, "b": 10.0})
    text = report.format_report()
    assert "PERFORMANCE REPORT: op" in text
    assert "vertices: 10" in text
    assert text.index("] a") < text.index("] b")


@pytest.mark.unit
def test_zero_duration_has_empty_breakdown():
    assert PerformanceReport(operation="op", total_duration_ms=0.0).get_phase_breakdown() == {}


@pytest.mark.unit
def test_timing_metric_str():
    assert str(TimingMetric("phase", 1.5, 0.0, {"n": 2})) == "phase: 1.50ms (n=2)"
