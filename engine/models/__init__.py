"""
Behavioral Engine Models

Deterministic per-channel scoring and trust fusion.
"""

from engine.models.device import DeviceAnalyzer, DeviceRiskModel
from engine.models.keyboard import KeystrokeBotModel
from engine.models.mouse import PointerBotModel
from engine.models.trust import BehavioralSignals, TrustFusionEngine

__all__ = [
    "BehavioralSignals",
    "DeviceAnalyzer",
    "DeviceRiskModel",
    "KeystrokeBotModel",
    "PointerBotModel",
    "TrustFusionEngine",
]
