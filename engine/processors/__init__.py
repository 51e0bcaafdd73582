"""
Behavioral Engine Processors

Public exports for the per-channel feature extractors.
"""

from engine.processors.device import DeviceSignalCollector
from engine.processors.keyboard import KeystrokeProcessor
from engine.processors.mouse import PointerProcessor

__all__ = [
    "DeviceSignalCollector",
    "KeystrokeProcessor",
    "PointerProcessor",
]
