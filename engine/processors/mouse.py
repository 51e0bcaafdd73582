"""
Pointer Trajectory Processor

Bounded trajectory/click buffers plus the feature functions that turn them
into per-signal scores in [0, 1] (higher = more bot-like).

Features:
- straightness: share of sliding windows that are implausibly straight
- velocity_consistency: 1 - normalized velocity CV
- teleportation: discontinuous jumps, with severity tiers
- movement_density: too few samples per pixel travelled
- click_pattern: metronomic click intervals

Diagnostics (reported, not weighted):
- angular_variation, acceleration_variation, pause_frequency

Every feature is a pure function of the buffer contents and returns 0.0
when there is too little data.
"""

import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from engine.config import PointerConfig, TeleportationConfig
from engine.schemas.inputs import DetectionMode, PointerEvent, PointerEventType
from engine.schemas.outputs import PointerMetrics, Severity, TeleportationEvent
from engine.stats import coefficient_of_variation, mean, std

logger = logging.getLogger(__name__)


# =============================================================================
# MINIMUM DATA REQUIREMENTS
# =============================================================================

MIN_STRAIGHTNESS_POINTS = 10
MIN_VELOCITY_POINTS = 10
MIN_VELOCITIES = 5
MIN_DENSITY_POINTS = 5
MIN_CLICKS = 5
MIN_CLICK_INTERVALS = 3
MIN_ACCELERATION_POINTS = 15

# Per detection mode: (points, clicks)
MODE_REQUIREMENTS = {
    DetectionMode.MOVEMENT: (5, 0),
    DetectionMode.CLICKS: (0, 5),
    DetectionMode.COMBINED: (10, 3),
}

# Diagnostic normalizers
ANGULAR_STD_NORMALIZER = 0.7       # rad
ACCELERATION_CV_NORMALIZER = 1.5
PAUSE_GAP_MS = 100.0
PAUSE_RATE_NORMALIZER = 0.8        # pauses per second


@dataclass
class PointerSample:
    """A pointer position captured during tracking."""
    x: float
    y: float
    timestamp: float


@dataclass
class ClickSample:
    """A click captured during tracking."""
    x: float
    y: float
    timestamp: float
    button: int = 0


def _as_array(points: Sequence[PointerSample]) -> NDArray[np.float64]:
    """(n, 3) array of x, y, timestamp."""
    if not points:
        return np.empty((0, 3), dtype=np.float64)
    return np.array([(p.x, p.y, p.timestamp) for p in points], dtype=np.float64)


def _step_lengths(arr: NDArray[np.float64]) -> NDArray[np.float64]:
    return np.hypot(np.diff(arr[:, 0]), np.diff(arr[:, 1]))


# =============================================================================
# Feature Functions
# =============================================================================

def straightness(points: Sequence[PointerSample], config: Optional[PointerConfig] = None) -> float:
    """
    Fraction of analyzed windows that look machine-straight.

    A window spans ``segment_size + 1`` consecutive points and slides one
    point at a time. Windows whose chord is shorter than ``min_chord_px``
    are not analyzed.
    """
    config = config or PointerConfig()
    if len(points) < MIN_STRAIGHTNESS_POINTS:
        return 0.0

    arr = _as_array(points)
    size = config.segment_size
    analyzed = 0
    suspicious = 0

    for i in range(len(arr) - size):
        window = arr[i:i + size + 1]
        chord = float(np.hypot(window[-1, 0] - window[0, 0], window[-1, 1] - window[0, 1]))
        if chord < config.min_chord_px:
            continue
        path = float(_step_lengths(window).sum())
        if path <= 0:
            continue

        analyzed += 1
        efficiency = chord / path
        if config.enhanced_straightness:
            if _window_suspicion(window, chord, efficiency, config) >= config.enhanced_suspicion_threshold:
                suspicious += 1
        elif efficiency > config.straightness_threshold:
            suspicious += 1

    if analyzed == 0:
        return 0.0
    return suspicious / analyzed


def _window_suspicion(
    window: NDArray[np.float64],
    chord: float,
    efficiency: float,
    config: PointerConfig,
) -> float:
    """Weighted vote of efficiency, linearity and velocity uniformity."""
    score = 0.0

    if efficiency > config.straightness_threshold:
        score += 0.4

    # Perpendicular distance of each point from the chord line
    start = window[0, :2]
    direction = (window[-1, :2] - start) / chord
    offsets = window[:, :2] - start
    deviations = np.abs(offsets[:, 0] * direction[1] - offsets[:, 1] * direction[0])
    if float(deviations.max()) / chord < config.linearity_threshold:
        score += 0.3

    steps = _step_lengths(window)
    dts = np.diff(window[:, 2])
    mask = dts > 0
    velocities = (steps[mask] / dts[mask]).tolist()
    if len(velocities) >= 2 and mean(velocities) > 0:
        if coefficient_of_variation(velocities) < config.uniformity_threshold:
            score += 0.3

    return score


def velocity_consistency(points: Sequence[PointerSample], config: Optional[PointerConfig] = None) -> float:
    """1.0 for perfectly constant speed, falling to 0.0 at CV >= normalizer."""
    config = config or PointerConfig()
    if len(points) < MIN_VELOCITY_POINTS:
        return 0.0

    arr = _as_array(points)
    steps = _step_lengths(arr)
    dts = np.diff(arr[:, 2])
    mask = (dts > config.min_velocity_dt_ms) & (dts < config.max_velocity_dt_ms)
    velocities = (steps[mask] / dts[mask]).tolist()
    if len(velocities) < MIN_VELOCITIES:
        return 0.0
    if mean(velocities) == 0:
        return 0.0

    cv = coefficient_of_variation(velocities)
    return max(0.0, 1.0 - min(1.0, cv / config.velocity_cv_normalizer))


def classify_jump(distance: float, time_delta: float, config: TeleportationConfig) -> Optional[Severity]:
    """Severity tier of a single jump, or None for ordinary motion."""
    if time_delta < config.max_normal_time_ms:
        if distance > config.critical_distance:
            return Severity.CRITICAL
        if distance > config.high_distance:
            return Severity.HIGH
    if distance > config.min_distance and time_delta < config.instantaneous_ms:
        return Severity.MEDIUM
    if distance > config.min_distance and time_delta < config.max_normal_time_ms:
        return Severity.LOW
    return None


def detect_teleportation(
    points: Sequence[PointerSample],
    config: Optional[TeleportationConfig] = None,
) -> Tuple[float, List[TeleportationEvent]]:
    """
    Score discontinuous jumps between consecutive samples.

    Pairs more than ``max_gap_ms`` apart are ignored (the pointer left the
    page). Critical jumps carry a floor of 0.3 each so a single one is
    never diluted by a long trajectory.
    """
    config = config or TeleportationConfig()
    if len(points) < 2:
        return 0.0, []

    events: List[TeleportationEvent] = []
    critical = 0
    for prev, cur in zip(points, points[1:]):
        dt = cur.timestamp - prev.timestamp
        if dt > config.max_gap_ms:
            continue
        distance = math.hypot(cur.x - prev.x, cur.y - prev.y)
        severity = classify_jump(distance, dt, config)
        if severity is None:
            continue
        if severity == Severity.CRITICAL:
            critical += 1
        events.append(TeleportationEvent(
            from_point=(prev.x, prev.y),
            to_point=(cur.x, cur.y),
            distance=round(distance, 2),
            time_delta=round(dt, 2),
            severity=severity,
        ))

    if not events:
        return 0.0, events

    ratio = len(events) / (len(points) - 1)
    score = max(ratio, min(1.0, critical * 0.3))
    if ratio > 0.3:
        score = min(1.0, score * 1.5)
    if ratio > 0.5:
        score = min(1.0, score * 2.0)

    logger.debug(f"Teleportation: {len(events)} jumps ({critical} critical), score={score:.3f}")
    return min(1.0, score), events


def movement_density(points: Sequence[PointerSample], config: Optional[PointerConfig] = None) -> float:
    """Sparse sampling over long distances suggests synthetic moves."""
    config = config or PointerConfig()
    if len(points) < MIN_DENSITY_POINTS:
        return 0.0

    path = float(_step_lengths(_as_array(points)).sum())
    if path == 0:
        return 1.0

    points_per_pixel = (len(points) - 1) / path
    if points_per_pixel < config.min_points_per_pixel:
        return min(1.0, (config.min_points_per_pixel - points_per_pixel) / config.min_points_per_pixel)
    return 0.0


def click_pattern(clicks: Sequence[ClickSample], config: Optional[PointerConfig] = None) -> float:
    """Regular or quantized click intervals."""
    config = config or PointerConfig()
    if len(clicks) < MIN_CLICKS:
        return 0.0

    intervals = [
        cur.timestamp - prev.timestamp
        for prev, cur in zip(clicks, clicks[1:])
        if config.min_click_interval_ms < cur.timestamp - prev.timestamp < config.max_click_interval_ms
    ]
    if len(intervals) < MIN_CLICK_INTERVALS:
        return 0.0

    score = 0.0
    if coefficient_of_variation(intervals) < config.click_cv_threshold:
        score += 0.6

    buckets: dict = {}
    for interval in intervals:
        bucket = round(interval / config.click_bucket_ms)
        buckets[bucket] = buckets.get(bucket, 0) + 1
    if max(buckets.values()) / len(intervals) >= config.click_bucket_share:
        score += 0.4

    return min(1.0, score)


def angular_variation(points: Sequence[PointerSample]) -> float:
    """Normalized spread of turning angles; humans wobble."""
    if len(points) < 3:
        return 0.0
    arr = _as_array(points)
    dx = np.diff(arr[:, 0])
    dy = np.diff(arr[:, 1])
    moving = (dx != 0) | (dy != 0)
    angles = np.arctan2(dy[moving], dx[moving])
    if len(angles) < 2:
        return 0.0
    turns = np.diff(angles)
    turns = (turns + np.pi) % (2 * np.pi) - np.pi
    return min(1.0, std(turns.tolist()) / ANGULAR_STD_NORMALIZER)


def acceleration_variation(points: Sequence[PointerSample]) -> float:
    """Normalized CV of acceleration magnitudes."""
    if len(points) < MIN_ACCELERATION_POINTS:
        return 0.0
    arr = _as_array(points)
    steps = _step_lengths(arr)
    dts = np.diff(arr[:, 2])
    mask = dts > 0
    velocities = steps[mask] / dts[mask]
    v_times = arr[1:, 2][mask]
    if len(velocities) < 3:
        return 0.0
    dv = np.abs(np.diff(velocities))
    dt = np.diff(v_times)
    valid = dt > 0
    accelerations = (dv[valid] / dt[valid]).tolist()
    if len(accelerations) < 2:
        return 0.0
    return min(1.0, coefficient_of_variation(accelerations) / ACCELERATION_CV_NORMALIZER)


def pause_frequency(points: Sequence[PointerSample]) -> float:
    """Normalized count of >100 ms hesitations per second of movement."""
    if len(points) < 2:
        return 0.0
    duration_s = (points[-1].timestamp - points[0].timestamp) / 1000.0
    if duration_s <= 0:
        return 0.0
    pauses = sum(
        1 for prev, cur in zip(points, points[1:])
        if cur.timestamp - prev.timestamp > PAUSE_GAP_MS
    )
    return min(1.0, (pauses / duration_s) / PAUSE_RATE_NORMALIZER)


# =============================================================================
# Pointer Processor
# =============================================================================

class PointerProcessor:
    """
    Owns the bounded trajectory and click buffers for one session.

    Events are only accepted while tracking is active; the oldest sample
    is dropped once a buffer is full.
    ``revision`` increases with every accepted event and every reset.
    """

    def __init__(self, config: Optional[PointerConfig] = None) -> None:
        self.config = config or PointerConfig()
        self._points: Deque[PointerSample] = deque(maxlen=self.config.max_points)
        self._clicks: Deque[ClickSample] = deque(maxlen=self.config.max_clicks)
        self.tracking = True
        self.revision = 0

    def start_tracking(self) -> None:
        self.tracking = True

    def stop_tracking(self) -> None:
        self.tracking = False

    def reset(self) -> None:
        self._points.clear()
        self._clicks.clear()
        self.revision += 1

    def process_event(self, event: PointerEvent) -> None:
        if not self.tracking:
            return
        self.revision += 1
        if event.event_type == PointerEventType.MOVE:
            self._points.append(PointerSample(event.x, event.y, event.timestamp))
        else:
            # Context-menu opens are right clicks
            button = 2 if event.event_type == PointerEventType.CONTEXTMENU else event.button
            self._clicks.append(ClickSample(event.x, event.y, event.timestamp, button))

    @property
    def points(self) -> List[PointerSample]:
        return list(self._points)

    @property
    def clicks(self) -> List[ClickSample]:
        return list(self._clicks)

    def has_enough_data(self, mode: DetectionMode) -> bool:
        min_points, min_clicks = MODE_REQUIREMENTS[mode]
        return len(self._points) >= min_points and len(self._clicks) >= min_clicks

    def extract_features(self) -> Tuple[PointerMetrics, List[TeleportationEvent]]:
        """Compute every pointer signal over the current buffers."""
        points = self.points
        clicks = self.clicks
        teleport_score, teleportations = detect_teleportation(points, self.config.teleportation)

        metrics = PointerMetrics(
            straightness=round(straightness(points, self.config), 4),
            velocity_consistency=round(velocity_consistency(points, self.config), 4),
            teleportation=round(teleport_score, 4),
            movement_density=round(movement_density(points, self.config), 4),
            click_pattern=round(click_pattern(clicks, self.config), 4),
            angular_variation=round(angular_variation(points), 4),
            acceleration_variation=round(acceleration_variation(points), 4),
            pause_frequency=round(pause_frequency(points), 4),
            point_count=len(points),
            click_count=len(clicks),
        )
        return metrics, teleportations
