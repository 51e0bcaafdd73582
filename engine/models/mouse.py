"""
Pointer Bot-Likelihood Model

Deterministic fusion of the pointer signals into a 0-100 bot score.

Architecture:
    PointerEvent -> PointerProcessor -> PointerMetrics -> PointerBotModel -> (score, reasons)

Scoring:
    1. Weighted sum of the signals selected by the detection mode
    2. Compounding multipliers for strong teleportation / sparse density /
       any single extreme signal, each step capped at 1.0
    3. round(raw * 100)
"""

import logging
from typing import Dict, List, Optional, Tuple

from engine.schemas.inputs import DetectionMode
from engine.schemas.outputs import PointerAnalysis, PointerMetrics, Severity, TeleportationEvent

logger = logging.getLogger(__name__)


# Signal weights per detection mode
MODE_WEIGHTS: Dict[DetectionMode, Dict[str, float]] = {
    DetectionMode.MOVEMENT: {
        "straightness": 0.4,
        "velocity_consistency": 0.2,
        "teleportation": 0.4,
        "movement_density": 0.2,
    },
    DetectionMode.CLICKS: {
        "click_pattern": 1.0,
    },
    DetectionMode.COMBINED: {
        "straightness": 0.25,
        "velocity_consistency": 0.15,
        "click_pattern": 0.2,
        "teleportation": 0.4,
        "movement_density": 0.2,
    },
}


class PointerBotModel:
    """Weighted pointer-signal fusion with compounding multipliers."""

    # ==========================================================================
    # MULTIPLIER THRESHOLDS
    # ==========================================================================
    TELEPORT_THRESHOLD: float = 0.3       # >= : reached by a single critical jump
    TELEPORT_MULTIPLIER: float = 1.5
    SEVERE_TELEPORT_THRESHOLD: float = 0.6
    SEVERE_TELEPORT_MULTIPLIER: float = 1.8
    SPARSE_DENSITY_THRESHOLD: float = 0.5
    SPARSE_DENSITY_MULTIPLIER: float = 1.4
    COMBINED_THRESHOLD: float = 0.4       # teleportation AND density
    COMBINED_MULTIPLIER: float = 2.0
    EXTREME_STRAIGHTNESS: float = 0.8
    EXTREME_VELOCITY: float = 0.9
    EXTREME_CLICKS: float = 0.7
    EXTREME_MULTIPLIER: float = 1.3

    # ==========================================================================
    # REASON THRESHOLDS
    # ==========================================================================
    REASON_THRESHOLD: float = 0.5

    def score_one(
        self,
        metrics: PointerMetrics,
        mode: DetectionMode = DetectionMode.COMBINED,
        teleportations: Optional[List[TeleportationEvent]] = None,
    ) -> Tuple[int, List[str]]:
        """
        Score pointer metrics.

        Returns:
            (bot_score in [0, 100], reasons)
        """
        weights = MODE_WEIGHTS[mode]
        raw = sum(getattr(metrics, name) * weight for name, weight in weights.items())
        raw = min(1.0, raw)

        uses_movement = mode != DetectionMode.CLICKS
        uses_clicks = mode != DetectionMode.MOVEMENT
        tele = metrics.teleportation if uses_movement else 0.0
        density = metrics.movement_density if uses_movement else 0.0
        straight = metrics.straightness if uses_movement else 0.0
        velocity = metrics.velocity_consistency if uses_movement else 0.0
        clicks = metrics.click_pattern if uses_clicks else 0.0

        if tele >= self.TELEPORT_THRESHOLD:
            raw = min(1.0, raw * self.TELEPORT_MULTIPLIER)
        if tele > self.SEVERE_TELEPORT_THRESHOLD:
            raw = min(1.0, raw * self.SEVERE_TELEPORT_MULTIPLIER)
        if density > self.SPARSE_DENSITY_THRESHOLD:
            raw = min(1.0, raw * self.SPARSE_DENSITY_MULTIPLIER)
        if tele > self.COMBINED_THRESHOLD and density > self.COMBINED_THRESHOLD:
            raw = min(1.0, raw * self.COMBINED_MULTIPLIER)
        if (straight > self.EXTREME_STRAIGHTNESS
                or velocity > self.EXTREME_VELOCITY
                or clicks > self.EXTREME_CLICKS):
            raw = min(1.0, raw * self.EXTREME_MULTIPLIER)

        reasons: List[str] = []
        if straight > self.REASON_THRESHOLD:
            reasons.append(f"Suspiciously straight movement ({straight:.2f})")
        if velocity > self.REASON_THRESHOLD:
            reasons.append(f"Constant pointer velocity ({velocity:.2f})")
        if clicks > self.REASON_THRESHOLD:
            reasons.append(f"Regular click intervals ({clicks:.2f})")
        if density > self.REASON_THRESHOLD:
            reasons.append(f"Sparse pointer movement ({density:.2f})")
        if uses_movement and teleportations:
            critical = sum(1 for t in teleportations if t.severity == Severity.CRITICAL)
            reasons.append(f"Pointer teleportation detected ({len(teleportations)} jumps, {critical} critical)")

        return int(round(min(1.0, max(0.0, raw)) * 100)), reasons

    def analyze(
        self,
        metrics: PointerMetrics,
        mode: DetectionMode = DetectionMode.COMBINED,
        teleportations: Optional[List[TeleportationEvent]] = None,
    ) -> PointerAnalysis:
        score, reasons = self.score_one(metrics, mode, teleportations)
        logger.debug(f"Pointer analysis ({mode.value}): score={score} reasons={reasons}")
        return PointerAnalysis(
            bot_score=score,
            mode=mode,
            metrics=metrics,
            teleportations=list(teleportations or []),
            reasons=reasons,
        )
