"""
Trust Fusion Engine

Fuses the per-channel evidence into one 0-100 trust score (higher =
more trustworthy) with an ordered list of risk factors.

Components:
    device         (0.5) - inverse of the device risk score, adjusted
    bot_detection  (0.4) - fixed-weight blend of the behavioral inputs:
                           external classifier, keystroke channel,
                           pointer channel, remote keystroke classifier
    consistency    (0.1) - stability of recent overall scores

Every component falls back to a neutral 50 with a descriptive factor
when it cannot be computed; the overall score is never NaN.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from engine.config import TrustConfig
from engine.schemas.inputs import BotVerdict
from engine.schemas.outputs import DeviceFingerprint, TrustComponents, TrustLevel, TrustScore
from engine.stats import mean, variance
from persistence.trust_history import InMemoryTrustHistory

logger = logging.getLogger(__name__)


@dataclass
class BehavioralSignals:
    """Everything the bot_detection component may draw on. All optional."""
    verdict: Optional[BotVerdict] = None
    classifier_error: Optional[str] = None
    keystroke_bot_score: Optional[float] = None
    pointer_bot_score: Optional[float] = None
    remote_probability: Optional[float] = None


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


class TrustFusionEngine:
    """
    Weighted fusion of device, behavioral and history components.

    The engine owns the rolling history store; everything else is passed
    in per computation.
    """

    # ==========================================================================
    # DEVICE COMPONENT
    # ==========================================================================
    HIGH_RISK_THRESHOLD: int = 70
    RICH_FONT_COUNT: int = 20
    RICH_EXTENSION_COUNT: int = 15
    RICHNESS_BONUS: int = 5
    HIDDEN_PLUGIN_PENALTY: int = 10

    # ==========================================================================
    # BOT DETECTION COMPONENT
    # ==========================================================================
    HUMAN_BASE: float = 50.0
    HUMAN_CONFIDENCE_SPAN: float = 40.0
    AUTOMATION_TOOL_PENALTY: int = 40
    SEARCH_BOT_PENALTY: int = 20
    CHANNEL_FLAG_THRESHOLD: int = 50

    # ==========================================================================
    # CONSISTENCY COMPONENT
    # ==========================================================================
    STABLE_VARIANCE: float = 100.0
    UNSTABLE_VARIANCE: float = 500.0
    STABLE_BONUS: int = 10
    UNSTABLE_PENALTY: int = 20

    SUSPICIOUS_COMPONENT: int = 50

    def __init__(self, config: Optional[TrustConfig] = None, history=None) -> None:
        self.config = config or TrustConfig()
        self.history = history if history is not None else InMemoryTrustHistory(self.config.history_size)

    # -------------------------------------------------------------------------
    # Components
    # -------------------------------------------------------------------------

    def device_component(self, fingerprint: Optional[DeviceFingerprint]) -> Tuple[float, List[str]]:
        if fingerprint is None:
            return self.config.neutral_score, ["Device fingerprint unavailable"]

        factors: List[str] = []
        score = 100.0 - fingerprint.risk_score
        if fingerprint.risk_score > self.HIGH_RISK_THRESHOLD:
            factors.append("High automation risk")
        if fingerprint.fonts.count > self.RICH_FONT_COUNT:
            score += self.RICHNESS_BONUS
        if len(fingerprint.graphics.webgl_extensions) > self.RICH_EXTENSION_COUNT:
            score += self.RICHNESS_BONUS
        if fingerprint.privacy.plugins_hidden:
            score -= self.HIDDEN_PLUGIN_PENALTY
            factors.append("Browser plugins hidden")
        return _clamp(score), factors

    def verdict_trust(self, verdict: BotVerdict) -> Tuple[float, List[str]]:
        """Map an external classifier verdict onto the 0-100 trust scale."""
        factors: List[str] = []
        if verdict.bot:
            score = (1.0 - verdict.confidence) * 100.0
            factors.append("Bot classifier detected automation")
        else:
            score = self.HUMAN_BASE + self.HUMAN_CONFIDENCE_SPAN * verdict.confidence
        if verdict.automation_tool:
            score -= self.AUTOMATION_TOOL_PENALTY
            factors.append(f"Automation tool detected: {verdict.automation_tool}")
        if verdict.search_bot:
            score -= self.SEARCH_BOT_PENALTY
            factors.append("Search engine crawler")
        return _clamp(score), factors

    def bot_detection_component(
        self,
        signals: BehavioralSignals,
    ) -> Tuple[float, List[str], Dict[str, float]]:
        """
        Fixed-weight average over the behavioral inputs that are present.

        Returns:
            (score, factors, per-channel trust values)
        """
        factors: List[str] = []
        channels: Dict[str, float] = {}
        weights: Dict[str, float] = {}

        if signals.classifier_error:
            factors.append(f"Bot classifier analysis failed: {signals.classifier_error}")
        elif signals.verdict is not None:
            channels["classifier"], verdict_factors = self.verdict_trust(signals.verdict)
            weights["classifier"] = self.config.classifier_weight
            factors.extend(verdict_factors)

        if signals.keystroke_bot_score is not None:
            channels["keystroke"] = _clamp(100.0 - signals.keystroke_bot_score)
            weights["keystroke"] = self.config.keystroke_weight
            if signals.keystroke_bot_score >= self.CHANNEL_FLAG_THRESHOLD:
                factors.append(f"Suspicious typing pattern (score {signals.keystroke_bot_score:.0f})")

        if signals.pointer_bot_score is not None:
            channels["pointer"] = _clamp(100.0 - signals.pointer_bot_score)
            weights["pointer"] = self.config.pointer_weight
            if signals.pointer_bot_score >= self.CHANNEL_FLAG_THRESHOLD:
                factors.append(f"Suspicious pointer movement (score {signals.pointer_bot_score:.0f})")

        if signals.remote_probability is not None:
            probability = _clamp(signals.remote_probability, 0.0, 1.0)
            channels["remote"] = 100.0 - probability * 100.0
            weights["remote"] = self.config.remote_weight
            if probability >= 0.5:
                factors.append(f"Remote classifier flagged typing ({probability:.2f})")

        total_weight = sum(weights.values())
        if total_weight <= 0:
            return self.config.neutral_score, factors, channels

        score = sum(channels[name] * weight for name, weight in weights.items()) / total_weight
        return _clamp(score), factors, {k: round(v, 2) for k, v in channels.items()}

    def consistency_component(self, history: List[float]) -> float:
        recent = history[-self.config.consistency_window:]
        if len(recent) < 2:
            return self.config.neutral_score

        avg = mean(recent)
        spread = variance(recent)
        if spread < self.STABLE_VARIANCE:
            return _clamp(avg + self.STABLE_BONUS)
        if spread > self.UNSTABLE_VARIANCE:
            return _clamp(avg - self.UNSTABLE_PENALTY)
        return _clamp(avg)

    # -------------------------------------------------------------------------
    # Fusion
    # -------------------------------------------------------------------------

    def _safe(self, label: str, compute: Callable[[], float], factors: List[str]) -> float:
        """Run a component, substituting the neutral score on failure or NaN."""
        try:
            value = float(compute())
        except Exception as e:
            logger.warning(f"{label} component failed: {e}")
            factors.append(f"{label} analysis failed: {e}")
            return self.config.neutral_score
        if not math.isfinite(value):
            logger.warning(f"{label} component produced a non-finite value")
            factors.append(f"{label} analysis produced an invalid value")
            return self.config.neutral_score
        return value

    def compute(
        self,
        history_key: str,
        fingerprint: Optional[DeviceFingerprint] = None,
        signals: Optional[BehavioralSignals] = None,
    ) -> TrustScore:
        """
        Compute a fresh trust score and append it to the history.

        Args:
            history_key: Identity the history is tracked under (device hash
                when available, else the session id)
            fingerprint: Latest device fingerprint, if any
            signals: Behavioral evidence for the bot_detection component
        """
        signals = signals or BehavioralSignals()
        factors: List[str] = []
        channels: Dict[str, float] = {}

        def device() -> float:
            score, device_factors = self.device_component(fingerprint)
            factors.extend(device_factors)
            return score

        def bot_detection() -> float:
            score, bot_factors, channel_values = self.bot_detection_component(signals)
            factors.extend(bot_factors)
            channels.update(channel_values)
            return score

        def consistency() -> float:
            return self.consistency_component(self.history.get(history_key))

        device_score = self._safe("Device", device, factors)
        bot_score = self._safe("Bot detection", bot_detection, factors)
        consistency_score = self._safe("Consistency", consistency, factors)

        overall = round(
            device_score * self.config.device_weight
            + bot_score * self.config.bot_detection_weight
            + consistency_score * self.config.consistency_weight
        )
        overall = int(_clamp(overall))

        if device_score < self.SUSPICIOUS_COMPONENT:
            factors.append("Device fingerprint suspicious")
        if consistency_score < self.SUSPICIOUS_COMPONENT:
            factors.append("Inconsistent session history")

        self.history.append(history_key, overall)

        trust = TrustScore(
            overall=overall,
            level=TrustLevel.from_score(overall),
            components=TrustComponents(
                device=int(round(device_score)),
                bot_detection=int(round(bot_score)),
                consistency=int(round(consistency_score)),
            ),
            channels=channels,
            risk_factors=factors,
        )
        logger.info(f"Trust score for {history_key[:12]}: {overall} ({trust.level.value})")
        return trust
