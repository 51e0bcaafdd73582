"""
Behavioral Engine Input Schemas

Pydantic V2 models for everything that enters the engine:
- Raw keyboard and pointer events (single events and HTTP batches)
- The raw device probe report produced by the browser-side collector
- The verdict of the external bot classifier
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Enums
# =============================================================================

class KeyEventType(str, Enum):
    """Keyboard event type for dwell/flight time calculation."""
    DOWN = "DOWN"
    UP = "UP"


class PointerEventType(str, Enum):
    """Pointer event type for trajectory/click tracking."""
    MOVE = "MOVE"
    CLICK = "CLICK"
    CONTEXTMENU = "CONTEXTMENU"


class DetectionMode(str, Enum):
    """Which pointer signals feed the combined bot score."""
    MOVEMENT = "movement"
    CLICKS = "clicks"
    COMBINED = "combined"


# =============================================================================
# Behavioral Events
# =============================================================================

class KeyboardEvent(BaseModel):
    """Single keyboard event captured by the client wrapper."""
    key: str = Field(..., min_length=1, description="Key identifier as reported by the client")
    event_type: KeyEventType = Field(..., description="DOWN or UP event")
    timestamp: float = Field(..., allow_inf_nan=False, description="High-resolution timestamp in milliseconds")


class PointerEvent(BaseModel):
    """Single pointer event captured by the client wrapper."""
    x: float = Field(..., allow_inf_nan=False, description="X coordinate in CSS pixels")
    y: float = Field(..., allow_inf_nan=False, description="Y coordinate in CSS pixels")
    event_type: PointerEventType = Field(..., description="MOVE, CLICK or CONTEXTMENU")
    timestamp: float = Field(..., allow_inf_nan=False, description="High-resolution timestamp in milliseconds")
    button: int = Field(0, ge=0, description="Mouse button index (0 = primary)")


class KeyboardBatch(BaseModel):
    """Batch of keyboard events for one capture session."""
    events: List[KeyboardEvent] = Field(..., description="Events in arrival order")


class PointerBatch(BaseModel):
    """Batch of pointer events for one capture session."""
    events: List[PointerEvent] = Field(..., description="Events in arrival order")


class SessionCreateRequest(BaseModel):
    """Options for a new capture session."""
    detection_mode: DetectionMode = Field(
        DetectionMode.COMBINED,
        description="Pointer signals used for the combined score"
    )
    auto_analysis: bool = Field(
        False,
        description="Start periodic analysis tasks for this session"
    )


# =============================================================================
# Device Probe Report
# =============================================================================

class ScreenProbe(BaseModel):
    """Raw screen properties."""
    width: int = 0
    height: int = 0
    avail_width: int = 0
    avail_height: int = 0
    color_depth: int = 0
    pixel_depth: int = 0
    device_pixel_ratio: float = 1.0
    orientation: str = "unknown"


class WebGLProbe(BaseModel):
    """Unmasked WebGL parameters and the rendered scene."""
    vendor: Optional[str] = None
    renderer: Optional[str] = None
    version: Optional[str] = None
    shading_language_version: Optional[str] = None
    extensions: List[str] = Field(default_factory=list)
    data_url: Optional[str] = None


class NetworkProbe(BaseModel):
    """Network Information API values (absent on most desktop browsers)."""
    effective_type: str = "unknown"
    downlink: Optional[float] = None
    rtt: Optional[float] = None
    save_data: bool = False


class SensorProbe(BaseModel):
    """Availability of device sensor APIs."""
    accelerometer: bool = False
    gyroscope: bool = False
    magnetometer: bool = False
    ambient_light: bool = False
    device_motion: bool = False
    device_orientation: bool = False


class TimezoneProbe(BaseModel):
    """Resolved Intl options."""
    timezone: str = "unknown"
    offset: int = Field(0, description="UTC offset in minutes as reported by getTimezoneOffset()")
    locale: str = "unknown"


class PerformanceProbe(BaseModel):
    """Timer resolution samples and heap statistics."""
    timing_samples: List[float] = Field(
        default_factory=list,
        description="Raw performance.now() readings"
    )
    memory_used: Optional[float] = Field(None, description="usedJSHeapSize in bytes")
    memory_total: Optional[float] = Field(None, description="totalJSHeapSize in bytes")
    memory_limit: Optional[float] = Field(None, description="jsHeapSizeLimit in bytes")


class PrivacyProbe(BaseModel):
    """Results of the ad-block bait and storage probes."""
    bait_height: Optional[float] = Field(
        None,
        description="offsetHeight of the ad bait element (0 when hidden by a blocker)"
    )
    storage_write_ok: Optional[bool] = Field(
        None,
        description="Whether a test write to localStorage succeeded"
    )
    local_storage: bool = True
    session_storage: bool = True
    indexed_db: bool = True


class DeviceProbe(BaseModel):
    """
    Raw device report posted by the browser-side collector.

    Every section is optional: a probe that could not run is omitted and
    the collector substitutes sentinel values.
    """
    user_agent: str = ""
    platform: str = "unknown"
    language: str = "unknown"
    languages: List[str] = Field(default_factory=list)
    vendor: str = ""
    cookie_enabled: bool = True
    do_not_track: Optional[str] = None
    hardware_concurrency: Optional[int] = None
    device_memory: Optional[float] = None
    max_touch_points: int = 0
    webdriver: bool = False
    online: bool = True
    plugin_count: Optional[int] = None

    screen: Optional[ScreenProbe] = None
    webgl: Optional[WebGLProbe] = None
    canvas_data_url: Optional[str] = None
    audio_samples: Optional[List[float]] = None
    audio_sample_rate: Optional[float] = None
    audio_error: Optional[str] = None
    font_widths: Dict[str, float] = Field(
        default_factory=dict,
        description="Measured text width per candidate font"
    )
    fallback_width: Optional[float] = Field(
        None,
        description="Measured width of the same text in the generic fallback font"
    )
    network: Optional[NetworkProbe] = None
    sensors: Optional[SensorProbe] = None
    timezone: Optional[TimezoneProbe] = None
    performance: Optional[PerformanceProbe] = None
    privacy: Optional[PrivacyProbe] = None


# =============================================================================
# External Classifier
# =============================================================================

class BotVerdict(BaseModel):
    """Black-box verdict from an external bot classifier."""
    bot: bool = Field(..., description="Whether the classifier believes the client is automated")
    confidence: float = Field(1.0, ge=0.0, le=1.0, description="Classifier confidence")
    automation_tool: Optional[str] = Field(None, description="Detected automation framework, if any")
    search_bot: bool = Field(False, description="Whether the client is a known crawler")

    @field_validator("automation_tool")
    @classmethod
    def empty_tool_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v
