"""
Behavioral Engine Output Schemas

Pydantic V2 models for the results the engine exposes: keystroke
snapshots and metrics, pointer analyses, device fingerprints and the
fused trust score.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from engine.schemas.inputs import DetectionMode


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================

class Severity(str, Enum):
    """Teleportation severity tier."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Decision(str, Enum):
    """Recommended action for a device."""
    ALLOW = "ALLOW"
    CHALLENGE = "CHALLENGE"
    BLOCK = "BLOCK"


class TrustLevel(str, Enum):
    """Human-readable band for the overall trust score."""
    VERY_HIGH = "very-high"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    VERY_LOW = "very-low"

    @classmethod
    def from_score(cls, score: float) -> "TrustLevel":
        if score >= 90:
            return cls.VERY_HIGH
        if score >= 75:
            return cls.HIGH
        if score >= 50:
            return cls.MEDIUM
        if score >= 25:
            return cls.LOW
        return cls.VERY_LOW


# =============================================================================
# Keystroke Channel
# =============================================================================

class KeystrokeSnapshot(BaseModel):
    """Copy of the timing buffers."""
    dwell_times: Dict[str, List[float]] = Field(default_factory=dict)
    flight_times: Dict[str, List[float]] = Field(default_factory=dict)
    ngram_times: Dict[str, List[float]] = Field(default_factory=dict)
    total_keystrokes: int = 0


class KeystrokeMetrics(BaseModel):
    """Aggregate typing statistics."""
    avg_dwell_time: float = 0.0
    avg_flight_time: float = 0.0
    dwell_variability: float = Field(0.0, description="Coefficient of variation of dwell times")
    flight_variability: float = Field(0.0, description="Coefficient of variation of flight times")
    typing_rhythm: float = Field(0.0, ge=0.0, le=1.0)
    typing_speed: float = Field(0.0, description="Estimated words per minute")
    total_keystrokes: int = 0
    unique_keys: int = 0


class KeystrokeCounters(BaseModel):
    """Sample counts for debugging the capture pipeline."""
    total_keys: int = 0
    dwell_samples: int = 0
    flight_samples: int = 0
    ngram_samples: int = 0
    ngram_buckets: int = 0


class KeystrokeAnalysis(BaseModel):
    """Local bot-likelihood verdict for the keystroke channel."""
    bot_score: int = Field(0, ge=0, le=100)
    confidence: int = Field(0, ge=0, le=100)
    flags: List[str] = Field(default_factory=list)
    metrics: KeystrokeMetrics = Field(default_factory=KeystrokeMetrics)
    analyzed_at: datetime = Field(default_factory=_utcnow)


# =============================================================================
# Pointer Channel
# =============================================================================

class TeleportationEvent(BaseModel):
    """A discontinuous pointer jump."""
    from_point: Tuple[float, float]
    to_point: Tuple[float, float]
    distance: float
    time_delta: float
    severity: Severity


class PointerMetrics(BaseModel):
    """Per-signal pointer scores, each in [0, 1]."""
    straightness: float = 0.0
    velocity_consistency: float = 0.0
    teleportation: float = 0.0
    movement_density: float = 0.0
    click_pattern: float = 0.0

    # Diagnostics, not weighted into the bot score
    angular_variation: float = 0.0
    acceleration_variation: float = 0.0
    pause_frequency: float = 0.0

    point_count: int = 0
    click_count: int = 0


class PointerAnalysis(BaseModel):
    """Combined pointer bot score with its supporting evidence."""
    bot_score: int = Field(0, ge=0, le=100)
    mode: DetectionMode = DetectionMode.COMBINED
    metrics: PointerMetrics = Field(default_factory=PointerMetrics)
    teleportations: List[TeleportationEvent] = Field(default_factory=list)
    reasons: List[str] = Field(default_factory=list)
    analyzed_at: datetime = Field(default_factory=_utcnow)


# =============================================================================
# Device Fingerprint
# =============================================================================

class BasicInfo(BaseModel):
    user_agent: str = ""
    language: str = "unknown"
    languages: List[str] = Field(default_factory=list)
    platform: str = "unknown"
    vendor: str = ""
    cookie_enabled: bool = True
    do_not_track: Optional[str] = None
    hardware_concurrency: int = 0
    device_memory: Optional[float] = None
    max_touch_points: int = 0
    webdriver: bool = False


class ScreenInfo(BaseModel):
    width: int = 0
    height: int = 0
    avail_width: int = 0
    avail_height: int = 0
    color_depth: int = 0
    pixel_depth: int = 0
    device_pixel_ratio: float = 1.0
    orientation: str = "unknown"


class GraphicsInfo(BaseModel):
    webgl_vendor: str = "unknown"
    webgl_renderer: str = "unknown"
    webgl_version: str = "unknown"
    shading_language_version: str = "unknown"
    webgl_extensions: List[str] = Field(default_factory=list)
    canvas_fingerprint: str = "no-canvas"
    webgl_fingerprint: str = "unknown"


class AudioInfo(BaseModel):
    fingerprint: str = "audio-unavailable"
    sample_rate: float = 0.0


class FontInfo(BaseModel):
    available: List[str] = Field(default_factory=list)
    count: int = 0
    fingerprint: str = ""


class NetworkInfo(BaseModel):
    effective_type: str = "unknown"
    downlink: float = 0.0
    rtt: float = 0.0
    save_data: bool = False
    online: bool = True


class SensorInfo(BaseModel):
    accelerometer: bool = False
    gyroscope: bool = False
    magnetometer: bool = False
    ambient_light: bool = False
    device_motion: bool = False
    device_orientation: bool = False

    def any_available(self) -> bool:
        return any(self.model_dump().values())


class TimezoneInfo(BaseModel):
    timezone: str = "unknown"
    offset: int = 0
    locale: str = "unknown"


class PerformanceInfo(BaseModel):
    timing_precision: int = 0
    memory_used: float = 0.0
    memory_total: float = 0.0
    memory_limit: float = 0.0


class PrivacyInfo(BaseModel):
    ad_blocker: bool = False
    private_browsing: bool = False
    plugins_hidden: bool = False
    local_storage: bool = True
    session_storage: bool = True
    indexed_db: bool = True


class DeviceFingerprint(BaseModel):
    """Normalized device record, replaced wholesale on each collection."""
    basic: BasicInfo = Field(default_factory=BasicInfo)
    screen: ScreenInfo = Field(default_factory=ScreenInfo)
    graphics: GraphicsInfo = Field(default_factory=GraphicsInfo)
    audio: AudioInfo = Field(default_factory=AudioInfo)
    fonts: FontInfo = Field(default_factory=FontInfo)
    network: NetworkInfo = Field(default_factory=NetworkInfo)
    sensors: SensorInfo = Field(default_factory=SensorInfo)
    timezone: TimezoneInfo = Field(default_factory=TimezoneInfo)
    performance: PerformanceInfo = Field(default_factory=PerformanceInfo)
    privacy: PrivacyInfo = Field(default_factory=PrivacyInfo)

    hash: str = Field("", description="Digest of the stable sections")
    risk_score: int = Field(0, ge=0, le=100)
    risk_factors: List[str] = Field(default_factory=list)
    collected_at: datetime = Field(default_factory=_utcnow)


class DeviceAnalysis(BaseModel):
    """Server-side interpretation of a fingerprint."""
    device_type: str = Field(..., description="desktop, mobile, tablet or bot")
    browser_type: str = Field(..., description="Browser family")
    automation_risk: float = Field(..., ge=0.0, le=1.0)
    uniqueness_score: int = Field(..., ge=0, le=100)
    geo_consistency: bool
    risk_score: int = Field(..., ge=0, le=100)
    risk_factors: List[str] = Field(default_factory=list)
    recommended_action: Decision
    confidence: float = Field(..., ge=0.0, le=1.0)


# =============================================================================
# Trust Score
# =============================================================================

class TrustComponents(BaseModel):
    model_config = ConfigDict(frozen=True)

    device: int = Field(..., ge=0, le=100)
    bot_detection: int = Field(..., ge=0, le=100)
    consistency: int = Field(..., ge=0, le=100)


class TrustScore(BaseModel):
    """Fused trust score. Immutable; a refresh produces a new instance."""
    model_config = ConfigDict(frozen=True)

    overall: int = Field(..., ge=0, le=100)
    level: TrustLevel
    components: TrustComponents
    channels: Dict[str, float] = Field(
        default_factory=dict,
        description="Behavioral inputs folded into bot_detection, as 0-100 trust"
    )
    risk_factors: List[str] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=_utcnow)
