"""
Behavioral Engine Configuration

Frozen dataclasses holding every tunable constant used by the capture
context, the feature extractors and the fusion engine. Defaults are the
canonical production values; timer cadences may be overridden through
environment variables (see ``SessionConfig.from_env``).
"""

import os
import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


# =============================================================================
# Keystroke Channel
# =============================================================================

@dataclass(frozen=True)
class KeystrokeConfig:
    """Timing buffers and n-gram gating."""
    per_key_limit: int = 50           # dwell/flight samples kept per key
    ngram_total_limit: int = 50       # n-gram samples kept across all buckets
    context_size: int = 5             # K - rolling context of previous keys
    burst_gap_ms: float = 1000.0      # n-gram gap must be below this
    hard_cap_ms: float = 1500.0       # ...and never above this
    round_samples: bool = True        # store whole milliseconds


# =============================================================================
# Pointer Channel
# =============================================================================

@dataclass(frozen=True)
class TeleportationConfig:
    """Distance/time thresholds for discontinuous jumps."""
    min_distance: float = 150.0
    high_distance: float = 400.0
    critical_distance: float = 500.0
    max_normal_time_ms: float = 50.0
    instantaneous_ms: float = 16.0
    max_gap_ms: float = 1000.0        # pairs further apart are ignored


@dataclass(frozen=True)
class PointerConfig:
    """Trajectory buffer limits and feature thresholds."""
    max_points: int = 1000
    max_clicks: int = 500

    # Straightness
    segment_size: int = 8
    min_chord_px: float = 10.0
    straightness_threshold: float = 0.95
    enhanced_straightness: bool = True
    linearity_threshold: float = 0.02     # max deviation / chord
    uniformity_threshold: float = 0.2     # velocity CV inside a window
    enhanced_suspicion_threshold: float = 0.6

    # Velocity
    min_velocity_dt_ms: float = 8.0
    max_velocity_dt_ms: float = 1000.0
    velocity_cv_normalizer: float = 0.5

    # Density
    min_points_per_pixel: float = 0.1

    # Clicks
    min_click_interval_ms: float = 50.0
    max_click_interval_ms: float = 10000.0
    click_cv_threshold: float = 0.15
    click_bucket_ms: float = 50.0
    click_bucket_share: float = 0.4

    teleportation: TeleportationConfig = field(default_factory=TeleportationConfig)


# =============================================================================
# Fusion
# =============================================================================

@dataclass(frozen=True)
class TrustConfig:
    """Component weights and history policy for the trust score."""
    device_weight: float = 0.5
    bot_detection_weight: float = 0.4
    consistency_weight: float = 0.1
    history_size: int = 10
    consistency_window: int = 5
    neutral_score: float = 50.0

    # Behavioral inputs folded into the bot_detection component
    classifier_weight: float = 0.4
    keystroke_weight: float = 0.2
    pointer_weight: float = 0.2
    remote_weight: float = 0.2


# =============================================================================
# Capture Session
# =============================================================================

@dataclass(frozen=True)
class SessionConfig:
    """Periodic task cadences (seconds) and their minimum-data gates."""
    keystroke_interval: float = 3.0
    keystroke_min_keys: int = 10
    pointer_interval: float = 2.0
    push_interval: float = 5.0
    push_min_keys: int = 15
    fingerprint_interval: float = 30.0
    trust_interval: float = 30.0

    keystroke: KeystrokeConfig = field(default_factory=KeystrokeConfig)
    pointer: PointerConfig = field(default_factory=PointerConfig)
    trust: TrustConfig = field(default_factory=TrustConfig)

    @classmethod
    def from_env(cls) -> "SessionConfig":
        """
        Build a config honouring ENGINE_* environment overrides.

        Recognised variables: ENGINE_KEYSTROKE_INTERVAL, ENGINE_POINTER_INTERVAL,
        ENGINE_PUSH_INTERVAL, ENGINE_PUSH_MIN_KEYS, ENGINE_TRUST_INTERVAL.
        """
        overrides = {}
        for attr, var, cast in (
            ("keystroke_interval", "ENGINE_KEYSTROKE_INTERVAL", float),
            ("pointer_interval", "ENGINE_POINTER_INTERVAL", float),
            ("push_interval", "ENGINE_PUSH_INTERVAL", float),
            ("push_min_keys", "ENGINE_PUSH_MIN_KEYS", int),
            ("trust_interval", "ENGINE_TRUST_INTERVAL", float),
        ):
            raw = os.getenv(var)
            if raw is None:
                continue
            try:
                overrides[attr] = cast(raw)
            except ValueError:
                logger.warning(f"Ignoring invalid {var}={raw!r}")
        return cls(**overrides)


# =============================================================================
# Service
# =============================================================================

@dataclass(frozen=True)
class RegistryConfig:
    """Bounds on the live-session map held by the service."""
    max_sessions: int = 1000
    idle_ttl: float = 1800.0          # seconds without a request before eviction

    @classmethod
    def from_env(cls) -> "RegistryConfig":
        """Honour ENGINE_MAX_SESSIONS and ENGINE_SESSION_IDLE_TTL."""
        overrides = {}
        for attr, var, cast in (
            ("max_sessions", "ENGINE_MAX_SESSIONS", int),
            ("idle_ttl", "ENGINE_SESSION_IDLE_TTL", float),
        ):
            raw = os.getenv(var)
            if raw is None:
                continue
            try:
                overrides[attr] = cast(raw)
            except ValueError:
                logger.warning(f"Ignoring invalid {var}={raw!r}")
        return cls(**overrides)
