from __future__ import annotations

import pytest

from shortsmith.services.timeline import (
    build_timeline,
    build_timeline_float,
    reconcile,
    scale_factor,
)


def test_lines_are_contiguous_from_zero() -> None:
    timeline = build_timeline(["a", "b", "c"], [1200, 800, 1500])
    assert [(line.start, line.end) for line in timeline] == [(0, 1200), (1200, 2000), (2000, 3500)]


def test_zero_duration_becomes_one_second() -> None:
    timeline = build_timeline(["a", "b"], [0, 500])
    assert timeline[0].duration == 1000
    assert timeline[1].start == 1000


def test_missing_durations_use_default() -> None:
    timeline = build_timeline_float(["a", "b"], [2.0])
    assert timeline[1].start == 2000
    assert timeline[1].end == 3000


def test_float_accumulation_does_not_drift() -> None:
    timeline = build_timeline_float(["a", "b", "c"], [2.7, 3.3, 2.0])
    assert abs(timeline[-1].end - 8000) <= 10
    for line, expected in zip(timeline, (2700, 3300, 2000)):
        assert abs(line.duration - expected) <= 10
    for prev, cur in zip(timeline, timeline[1:]):
        assert prev.end == cur.start


def test_reconcile_scales_last_line_to_measured_total() -> None:
    result = reconcile(["a", "b", "c"], [2.7, 3.3, 2.0], 8.4)
    assert result.scale_factor == pytest.approx(1.05)
    assert result.raw_sum == pytest.approx(8.0)
    assert result.end_ms == 8400
    assert result.lines[0].start == 0
    for prev, cur in zip(result.lines, result.lines[1:]):
        assert prev.end == cur.start
        assert cur.end > cur.start


def test_scale_factor_guards_non_positive_inputs() -> None:
    assert scale_factor(0.0, 5.0) == 1.0
    assert scale_factor(5.0, 0.0) == 1.0
    assert scale_factor(4.0, 5.0) == pytest.approx(1.25)


def test_reconcile_with_no_lines() -> None:
    result = reconcile([], [], 3.0)
    assert result.lines == []
    assert result.end_ms == 0
    assert result.scale_factor == 1.0
