"""
Behavioral Engine Test Suite - Shared Pytest Fixtures

This conftest.py provides:
- Event builders for keyboard and pointer streams
- Typing / trajectory generators (uniform bot, noisy human)
- Device probe reports (ordinary desktop browser, headless automation)
- Processor, model and engine instances

Usage:
    pytest tests/ -v
"""

import random
from typing import List, Sequence, Tuple
from unittest.mock import MagicMock

import pytest

from engine.schemas.inputs import (
    DeviceProbe,
    KeyboardEvent,
    KeyEventType,
    NetworkProbe,
    PerformanceProbe,
    PointerEvent,
    PointerEventType,
    PrivacyProbe,
    ScreenProbe,
    SensorProbe,
    TimezoneProbe,
    WebGLProbe,
)


# =============================================================================
# Event Builders
# =============================================================================

def make_key_event(key: str, event_type: KeyEventType, timestamp: float) -> KeyboardEvent:
    return KeyboardEvent(key=key, event_type=event_type, timestamp=timestamp)


def make_pointer_event(
    x: float,
    y: float,
    timestamp: float,
    event_type: PointerEventType = PointerEventType.MOVE,
    button: int = 0,
) -> PointerEvent:
    return PointerEvent(x=x, y=y, event_type=event_type, timestamp=timestamp, button=button)


def type_keys(
    processor,
    keys: Sequence[str],
    dwell: float = 50.0,
    flight: float = 60.0,
    start: float = 0.0,
) -> float:
    """
    Feed DOWN/UP pairs with constant dwell and flight times.

    Returns the timestamp of the last key-up.
    """
    t = start
    for i, key in enumerate(keys):
        if i > 0:
            t += flight
        processor.process_event(make_key_event(key, KeyEventType.DOWN, t))
        t += dwell
        processor.process_event(make_key_event(key, KeyEventType.UP, t))
    return t


def type_keys_timed(processor, strokes: Sequence[Tuple[str, float, float]], start: float = 0.0) -> float:
    """Feed (key, dwell, flight-before) triples."""
    t = start
    for key, dwell, flight in strokes:
        t += flight
        processor.process_event(make_key_event(key, KeyEventType.DOWN, t))
        t += dwell
        processor.process_event(make_key_event(key, KeyEventType.UP, t))
    return t


def human_strokes(text: str, seed: int = 7) -> List[Tuple[str, float, float]]:
    """Irregular dwell (40-200 ms) and flight (80-450 ms) per key."""
    rng = random.Random(seed)
    return [(ch, rng.uniform(40, 200), rng.uniform(80, 450)) for ch in text]


def straight_line(count: int = 20, step_x: float = 10.0, step_y: float = 5.0, dt: float = 16.0):
    return [make_pointer_event(i * step_x, i * step_y, i * dt) for i in range(count)]


def noisy_path(count: int = 30, seed: int = 42, start: Tuple[float, float, float] = (100.0, 100.0, 0.0)):
    """Wobbly, irregularly sampled pointer path."""
    rng = random.Random(seed)
    x, y, t = start
    events = []
    for _ in range(count):
        events.append(make_pointer_event(x, y, t))
        x += 5 + rng.uniform(-2, 2)
        y += rng.uniform(-4, 4)
        t += 16 + rng.uniform(-5, 10)
    return events


# =============================================================================
# Device Probes
# =============================================================================

DESKTOP_CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
HEADLESS_CHROME_UA = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) HeadlessChrome/120.0.0.0 Safari/537.36"
)

DESKTOP_FONTS = {
    "Arial": 112.0, "Arial Black": 131.0, "Calibri": 98.0, "Cambria": 104.0,
    "Comic Sans MS": 121.0, "Consolas": 117.0, "Courier New": 120.5,
    "Georgia": 109.0, "Impact": 95.0, "Segoe UI": 106.0, "Tahoma": 108.0,
    "Times New Roman": 101.0, "Verdana": 123.0,
    # Not installed: same width as the fallback
    "Menlo": 100.0, "Ubuntu": 100.0,
}


def desktop_probe(**overrides) -> DeviceProbe:
    data = dict(
        user_agent=DESKTOP_CHROME_UA,
        platform="Win32",
        language="en-US",
        languages=["en-US", "en"],
        vendor="Google Inc.",
        cookie_enabled=True,
        hardware_concurrency=8,
        device_memory=8,
        max_touch_points=0,
        webdriver=False,
        online=True,
        plugin_count=5,
        screen=ScreenProbe(
            width=1920, height=1080, avail_width=1920, avail_height=1040,
            color_depth=24, pixel_depth=24, device_pixel_ratio=1.0,
            orientation="landscape-primary",
        ),
        webgl=WebGLProbe(
            vendor="Google Inc. (NVIDIA)",
            renderer="ANGLE (NVIDIA, NVIDIA GeForce RTX 3060 Direct3D11 vs_5_0 ps_5_0, D3D11)",
            version="WebGL 1.0 (OpenGL ES 2.0 Chromium)",
            shading_language_version="WebGL GLSL ES 1.0",
            extensions=[f"EXT_ext_{i}" for i in range(20)],
            data_url="data:image/png;base64," + "QUJD" * 40,
        ),
        canvas_data_url="data:image/png;base64," + "iVBORw0KGgoAAAANSUhEUgAA" * 6,
        audio_samples=[0.0001 * i for i in range(150)],
        audio_sample_rate=48000.0,
        font_widths=dict(DESKTOP_FONTS),
        fallback_width=100.0,
        network=NetworkProbe(effective_type="4g", downlink=10.0, rtt=50.0),
        sensors=SensorProbe(device_motion=True, device_orientation=True),
        timezone=TimezoneProbe(timezone="America/New_York", offset=300, locale="en-US"),
        performance=PerformanceProbe(
            timing_samples=[1234.5, 1240.1, 1251.3],
            memory_used=12_000_000,
            memory_total=20_000_000,
            memory_limit=4_000_000_000,
        ),
        privacy=PrivacyProbe(bait_height=1.0, storage_write_ok=True),
    )
    data.update(overrides)
    return DeviceProbe(**data)


def headless_probe() -> DeviceProbe:
    return desktop_probe(
        user_agent=HEADLESS_CHROME_UA,
        platform="Linux x86_64",
        languages=[],
        webdriver=True,
        plugin_count=0,
        webgl=WebGLProbe(vendor="Google Inc.", renderer="Google SwiftShader", extensions=[]),
        font_widths={"Arial": 100.0, "DejaVu Sans": 104.0},
    )


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def keystroke_processor():
    from engine.processors.keyboard import KeystrokeProcessor
    return KeystrokeProcessor()


@pytest.fixture
def keystroke_model():
    from engine.models.keyboard import KeystrokeBotModel
    return KeystrokeBotModel()


@pytest.fixture
def pointer_processor():
    from engine.processors.mouse import PointerProcessor
    return PointerProcessor()


@pytest.fixture
def pointer_model():
    from engine.models.mouse import PointerBotModel
    return PointerBotModel()


@pytest.fixture
def device_collector():
    from engine.processors.device import DeviceSignalCollector
    return DeviceSignalCollector()


@pytest.fixture
def device_analyzer():
    from engine.models.device import DeviceAnalyzer
    return DeviceAnalyzer()


@pytest.fixture
def trust_engine():
    from engine.models.trust import TrustFusionEngine
    return TrustFusionEngine()


@pytest.fixture
def capture_session():
    from engine.session import CaptureSession
    return CaptureSession(session_id="test-session")


@pytest.fixture
def mock_redis():
    """MagicMock standing in for a redis.Redis client."""
    client = MagicMock()
    client.get.return_value = None
    return client
