"""
Pointer Processor Unit Tests

Tests for the pointer feature functions (straightness, velocity
consistency, teleportation, density, click regularity, diagnostics)
and for PointerProcessor's bounded buffers and tracking flag.
"""

import math

import pytest
from pydantic import ValidationError

from engine.config import PointerConfig, TeleportationConfig
from engine.processors.mouse import (
    ClickSample,
    PointerSample,
    acceleration_variation,
    angular_variation,
    classify_jump,
    click_pattern,
    detect_teleportation,
    movement_density,
    pause_frequency,
    straightness,
    velocity_consistency,
)
from engine.schemas.inputs import DetectionMode, PointerEvent, PointerEventType
from engine.schemas.outputs import Severity

from tests.conftest import make_pointer_event


def line(count=20, step_x=10.0, step_y=5.0, dt=16.0):
    return [PointerSample(i * step_x, i * step_y, i * dt) for i in range(count)]


def zigzag(count=20, step=10.0, amplitude=10.0, dt=16.0):
    return [PointerSample(i * step, (i % 2) * amplitude, i * dt) for i in range(count)]


def clicks_at(timestamps):
    return [ClickSample(100.0, 100.0, t) for t in timestamps]


# =============================================================================
# Straightness
# =============================================================================

class TestStraightness:
    """Share of sliding windows that are machine-straight."""

    def test_straight_sweep(self):
        """20 collinear samples at constant speed."""
        assert straightness(line()) > 0.9

    def test_basic_variant_on_straight_sweep(self):
        config = PointerConfig(enhanced_straightness=False)
        assert straightness(line(), config) == 1.0

    def test_zigzag_is_not_straight(self):
        assert straightness(zigzag()) == 0.0
        assert straightness(zigzag(), PointerConfig(enhanced_straightness=False)) == 0.0

    def test_needs_ten_points(self):
        assert straightness(line(count=9)) == 0.0

    def test_short_chords_are_skipped(self):
        """Sub-pixel jitter never counts as analyzed windows."""
        points = [PointerSample(i * 0.5, 0.0, i * 16.0) for i in range(20)]
        assert straightness(points) == 0.0

    def test_idempotent(self):
        points = line()
        assert straightness(points) == straightness(points)

    def test_enhanced_needs_more_than_efficiency(self):
        """Straight path with erratic timing: efficiency + linearity still suspicious."""
        points = [PointerSample(i * 10.0, 0.0, i * 16.0 + (i % 3) * 5) for i in range(20)]
        assert straightness(points) == 1.0


# =============================================================================
# Velocity Consistency
# =============================================================================

class TestVelocityConsistency:

    def test_constant_speed(self):
        assert velocity_consistency(line()) > 0.8

    def test_needs_ten_points(self):
        assert velocity_consistency(line(count=9)) == 0.0

    def test_ignores_fast_and_stale_pairs(self):
        """Pairs with dt <= 8 ms or >= 1000 ms do not count."""
        points = [PointerSample(i * 10.0, 0.0, i * 5.0) for i in range(20)]
        assert velocity_consistency(points) == 0.0

    def test_erratic_speed(self):
        points = []
        x, t = 0.0, 0.0
        for i in range(20):
            points.append(PointerSample(x, 0.0, t))
            x += 2.0 if i % 2 else 40.0
            t += 16.0
        assert velocity_consistency(points) < 0.2

    def test_stationary_pointer(self):
        points = [PointerSample(50.0, 50.0, i * 16.0) for i in range(20)]
        assert velocity_consistency(points) == 0.0


# =============================================================================
# Teleportation
# =============================================================================

class TestTeleportation:

    @pytest.mark.parametrize("distance,dt,expected", [
        (800.0, 10.0, Severity.CRITICAL),
        (450.0, 20.0, Severity.HIGH),
        (200.0, 10.0, Severity.MEDIUM),
        (200.0, 30.0, Severity.LOW),
        (200.0, 60.0, None),
        (100.0, 5.0, None),
    ])
    def test_classify_jump(self, distance, dt, expected):
        assert classify_jump(distance, dt, TeleportationConfig()) == expected

    def test_single_critical_jump(self):
        """One 800 px jump in 10 ms on an otherwise smooth path."""
        points = line(count=30, step_x=3.0, step_y=0.0)
        last = points[-1]
        points.append(PointerSample(last.x + 800.0, last.y, last.timestamp + 10.0))

        score, events = detect_teleportation(points)
        assert len(events) == 1
        assert events[0].severity == Severity.CRITICAL
        assert events[0].distance == 800.0
        assert score >= 0.3

    def test_gaps_over_a_second_are_ignored(self):
        points = [PointerSample(0.0, 0.0, 0.0), PointerSample(900.0, 0.0, 1500.0)]
        assert detect_teleportation(points) == (0.0, [])

    def test_mostly_jumps_saturates(self):
        points = [PointerSample((i % 2) * 600.0, 0.0, i * 10.0) for i in range(10)]
        score, events = detect_teleportation(points)
        assert len(events) == 9
        assert score == 1.0

    def test_smooth_path(self):
        assert detect_teleportation(line()) == (0.0, [])


# =============================================================================
# Density, Clicks, Diagnostics
# =============================================================================

class TestMovementDensity:

    def test_dense_sampling(self):
        assert movement_density(line(step_x=2.0, step_y=0.0)) == 0.0

    def test_sparse_sampling(self):
        points = [PointerSample(i * 100.0, 0.0, i * 16.0) for i in range(5)]
        assert movement_density(points) == pytest.approx(0.9)

    def test_no_movement(self):
        points = [PointerSample(10.0, 10.0, i * 16.0) for i in range(5)]
        assert movement_density(points) == 1.0

    def test_needs_five_points(self):
        assert movement_density(line(count=4)) == 0.0


class TestClickPattern:

    def test_metronomic_clicks(self):
        assert click_pattern(clicks_at([i * 200.0 for i in range(6)])) == 1.0

    def test_irregular_clicks(self):
        assert click_pattern(clicks_at([0.0, 310.0, 1150.0, 1420.0, 2900.0, 3630.0])) == 0.0

    def test_needs_five_clicks(self):
        assert click_pattern(clicks_at([i * 200.0 for i in range(4)])) == 0.0

    def test_out_of_range_intervals_dropped(self):
        """Double-clicks (<50 ms) and long idles are not intervals."""
        timestamps = [0.0, 20.0, 40.0, 60.0, 20000.0, 40000.0]
        assert click_pattern(clicks_at(timestamps)) == 0.0


class TestDiagnostics:

    def test_all_scores_bounded(self):
        degenerate = [PointerSample(0.0, 0.0, 0.0)] * 20
        for fn in (angular_variation, acceleration_variation, pause_frequency):
            for points in (line(), zigzag(), degenerate, []):
                value = fn(points)
                assert 0.0 <= value <= 1.0
                assert not math.isnan(value)

    def test_straight_line_has_no_turns(self):
        assert angular_variation(line()) == 0.0

    def test_pause_frequency(self):
        points = [PointerSample(i, 0.0, i * 200.0) for i in range(6)]
        assert pause_frequency(points) == 1.0


# =============================================================================
# Processor Buffers
# =============================================================================

class TestPointerProcessor:

    def test_trajectory_cap(self, pointer_processor):
        for i in range(1005):
            pointer_processor.process_event(make_pointer_event(i, 0, float(i)))
        points = pointer_processor.points
        assert len(points) == 1000
        assert points[0].x == 5
        assert points[-1].x == 1004

    def test_click_cap(self, pointer_processor):
        for i in range(510):
            pointer_processor.process_event(
                make_pointer_event(0, 0, float(i), PointerEventType.CLICK))
        assert len(pointer_processor.clicks) == 500
        assert pointer_processor.clicks[0].timestamp == 10.0

    def test_tracking_flag(self, pointer_processor):
        pointer_processor.stop_tracking()
        pointer_processor.process_event(make_pointer_event(1, 1, 1.0))
        assert pointer_processor.points == []

        pointer_processor.start_tracking()
        pointer_processor.process_event(make_pointer_event(1, 1, 2.0))
        assert len(pointer_processor.points) == 1

    def test_contextmenu_is_right_click(self, pointer_processor):
        pointer_processor.process_event(
            make_pointer_event(5, 5, 1.0, PointerEventType.CONTEXTMENU))
        assert pointer_processor.clicks[0].button == 2

    def test_mode_requirements(self, pointer_processor):
        for i in range(10):
            pointer_processor.process_event(make_pointer_event(i * 10, 0, i * 16.0))
        assert pointer_processor.has_enough_data(DetectionMode.MOVEMENT)
        assert not pointer_processor.has_enough_data(DetectionMode.CLICKS)
        assert not pointer_processor.has_enough_data(DetectionMode.COMBINED)

        for i in range(3):
            pointer_processor.process_event(
                make_pointer_event(0, 0, 500.0 + i * 300, PointerEventType.CLICK))
        assert pointer_processor.has_enough_data(DetectionMode.COMBINED)

    def test_extract_features_counts(self, pointer_processor):
        for event_data in line():
            pointer_processor.process_event(
                make_pointer_event(event_data.x, event_data.y, event_data.timestamp))
        metrics, teleportations = pointer_processor.extract_features()
        assert metrics.point_count == 20
        assert metrics.click_count == 0
        assert teleportations == []

    def test_reset(self, pointer_processor):
        pointer_processor.process_event(make_pointer_event(1, 1, 1.0))
        pointer_processor.process_event(make_pointer_event(1, 1, 2.0, PointerEventType.CLICK))
        pointer_processor.reset()
        assert pointer_processor.points == []
        assert pointer_processor.clicks == []

    def test_revision_ignores_untracked_events(self, pointer_processor):
        start = pointer_processor.revision
        pointer_processor.process_event(make_pointer_event(1, 1, 1.0))
        pointer_processor.stop_tracking()
        pointer_processor.process_event(make_pointer_event(2, 2, 2.0))
        assert pointer_processor.revision == start + 1


class TestEventValidation:

    @pytest.mark.parametrize("field", ["x", "y", "timestamp"])
    @pytest.mark.parametrize("value", [float("nan"), float("inf")])
    def test_non_finite_values_rejected(self, field, value):
        data = {"x": 1.0, "y": 1.0, "timestamp": 0.0, "event_type": PointerEventType.MOVE}
        data[field] = value
        with pytest.raises(ValidationError):
            PointerEvent(**data)
