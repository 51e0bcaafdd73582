"""
Keystroke Bot-Likelihood Model

Deterministic rule table over the keystroke timing buffers. Scripted
typing shows up as implausibly uniform dwell, flight and n-gram timing;
each rule that fires adds points and a flag.

Architecture:
    KeyboardEvent -> KeystrokeProcessor -> KeystrokeSnapshot
                  -> KeystrokeBotModel -> KeystrokeAnalysis(score, flags)

"Variance" in the thresholds below is the population standard deviation
in milliseconds.
"""

import logging
from typing import List, Optional, Tuple

from engine.schemas.outputs import KeystrokeAnalysis, KeystrokeMetrics, KeystrokeSnapshot
from engine.stats import mean, std

logger = logging.getLogger(__name__)


class KeystrokeBotModel:
    """Additive rule table producing a 0-100 bot score."""

    # ==========================================================================
    # DWELL RULES
    # ==========================================================================
    DWELL_STD_MAX: float = 15.0
    DWELL_STD_MIN_SAMPLES: int = 10
    DWELL_STD_POINTS: int = 25

    UNIQUE_DWELL_RATIO_MAX: float = 0.3
    UNIQUE_DWELL_MIN_SAMPLES: int = 15
    UNIQUE_DWELL_POINTS: int = 15

    DWELL_RANGE_MAX: float = 50.0
    DWELL_RANGE_MIN_SAMPLES: int = 10
    DWELL_RANGE_POINTS: int = 10

    # ==========================================================================
    # FLIGHT RULES
    # ==========================================================================
    FAST_FLIGHT_MAX: float = 80.0
    FLIGHT_MIN_SAMPLES: int = 5
    FAST_FLIGHT_POINTS: int = 20

    FLIGHT_STD_MAX: float = 20.0
    FLIGHT_STD_POINTS: int = 20

    # ==========================================================================
    # N-GRAM RULE
    # ==========================================================================
    NGRAM_STD_MAX: float = 25.0
    NGRAM_MIN_BUCKETS: int = 3
    NGRAM_POINTS: int = 15

    # ==========================================================================
    # HUMAN BONUS
    # ==========================================================================
    HUMAN_DWELL_STD: float = 30.0
    HUMAN_FLIGHT_STD: float = 40.0
    HUMAN_BONUS: int = 10

    MAX_SCORE: int = 100

    def score_one(self, snapshot: KeystrokeSnapshot) -> Tuple[int, List[str]]:
        """
        Score a keystroke snapshot.

        Returns:
            (bot_score in [0, 100], flags in rule order)
        """
        dwells = [v for samples in snapshot.dwell_times.values() for v in samples]
        flights = [v for samples in snapshot.flight_times.values() for v in samples]

        score = 0
        flags: List[str] = []

        dwell_std = std(dwells)
        flight_std = std(flights)

        if len(dwells) > self.DWELL_STD_MIN_SAMPLES and dwell_std < self.DWELL_STD_MAX:
            score += self.DWELL_STD_POINTS
            flags.append("Extremely consistent dwell times")

        if len(flights) > self.FLIGHT_MIN_SAMPLES and mean(flights) < self.FAST_FLIGHT_MAX:
            score += self.FAST_FLIGHT_POINTS
            flags.append("Unrealistically fast typing")

        if len(flights) > self.FLIGHT_MIN_SAMPLES and flight_std < self.FLIGHT_STD_MAX:
            score += self.FLIGHT_STD_POINTS
            flags.append("Highly consistent flight times")

        if len(dwells) > self.UNIQUE_DWELL_MIN_SAMPLES:
            unique_ratio = len(set(dwells)) / len(dwells)
            if unique_ratio < self.UNIQUE_DWELL_RATIO_MAX:
                score += self.UNIQUE_DWELL_POINTS
                flags.append("Limited dwell time variation")

        if len(dwells) > self.DWELL_RANGE_MIN_SAMPLES:
            if max(dwells) - min(dwells) < self.DWELL_RANGE_MAX:
                score += self.DWELL_RANGE_POINTS
                flags.append("Narrow dwell time range")

        buckets = list(snapshot.ngram_times.values())
        if len(buckets) > self.NGRAM_MIN_BUCKETS:
            # Buckets with fewer than two samples contribute zero spread
            avg_bucket_std = mean([std(samples) for samples in buckets])
            if avg_bucket_std < self.NGRAM_STD_MAX:
                score += self.NGRAM_POINTS
                flags.append("Highly consistent n-gram timing")

        if dwell_std > self.HUMAN_DWELL_STD and flight_std > self.HUMAN_FLIGHT_STD:
            score = max(0, score - self.HUMAN_BONUS)
            flags.append("Good variation in timing (human-like)")

        return min(score, self.MAX_SCORE), flags

    @staticmethod
    def confidence(snapshot: KeystrokeSnapshot) -> int:
        """More samples, more confidence; saturates at 100."""
        dwell_count = sum(len(v) for v in snapshot.dwell_times.values())
        flight_count = sum(len(v) for v in snapshot.flight_times.values())
        return min((dwell_count + flight_count) * 2, 100)

    def analyze(
        self,
        snapshot: KeystrokeSnapshot,
        metrics: Optional[KeystrokeMetrics] = None,
    ) -> KeystrokeAnalysis:
        bot_score, flags = self.score_one(snapshot)
        confidence = self.confidence(snapshot)
        logger.debug(f"Keystroke analysis: score={bot_score} confidence={confidence} flags={flags}")
        return KeystrokeAnalysis(
            bot_score=bot_score,
            confidence=confidence,
            flags=flags,
            metrics=metrics or KeystrokeMetrics(),
        )
