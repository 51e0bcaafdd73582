"""
Behavioral Trust Engine

Keystroke, pointer and device telemetry reduced to per-channel bot scores
and fused into a 0-100 trust score.
"""

from engine.session import CaptureSession

__all__ = [
    "CaptureSession",
]
