"""
Behavioral Engine Schemas

Public exports for input and output Pydantic models.
"""

# Input schemas - events and batches
from engine.schemas.inputs import (
    DetectionMode,
    KeyboardBatch,
    KeyboardEvent,
    KeyEventType,
    PointerBatch,
    PointerEvent,
    PointerEventType,
    SessionCreateRequest,
)

# Input schemas - device probe and external classifier
from engine.schemas.inputs import (
    BotVerdict,
    DeviceProbe,
)

# Output schemas
from engine.schemas.outputs import (
    Decision,
    DeviceAnalysis,
    DeviceFingerprint,
    KeystrokeAnalysis,
    KeystrokeMetrics,
    KeystrokeSnapshot,
    PointerAnalysis,
    PointerMetrics,
    Severity,
    TeleportationEvent,
    TrustLevel,
    TrustScore,
)

__all__ = [
    # Input - Events
    "KeyEventType",
    "PointerEventType",
    "DetectionMode",
    "KeyboardEvent",
    "PointerEvent",
    "KeyboardBatch",
    "PointerBatch",
    "SessionCreateRequest",
    # Input - Device / classifier
    "DeviceProbe",
    "BotVerdict",
    # Output
    "KeystrokeSnapshot",
    "KeystrokeMetrics",
    "KeystrokeAnalysis",
    "Severity",
    "TeleportationEvent",
    "PointerMetrics",
    "PointerAnalysis",
    "Decision",
    "DeviceFingerprint",
    "DeviceAnalysis",
    "TrustLevel",
    "TrustScore",
]
