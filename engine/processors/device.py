"""
Device Signal Collector

Turns the raw report of the browser-side probes into a normalized
DeviceFingerprint. The probes themselves run in the client; this module
makes the extraction decisions:

- font availability from measured widths against the fallback font
- canvas / WebGL / audio fingerprints from the rendered output
- timer precision from raw performance.now() readings
- ad-block and private-browsing verdicts from the bait/storage probes

A probe that failed or never ran yields a sentinel ("no-canvas",
"audio-unavailable", "unknown") instead of an exception.
"""

import hashlib
import json
import logging
from typing import Dict, List, Optional, Sequence

from engine.models.device import DeviceRiskModel
from engine.schemas.inputs import DeviceProbe
from engine.schemas.outputs import (
    AudioInfo,
    BasicInfo,
    DeviceFingerprint,
    FontInfo,
    GraphicsInfo,
    NetworkInfo,
    PerformanceInfo,
    PrivacyInfo,
    ScreenInfo,
    SensorInfo,
    TimezoneInfo,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

NO_CANVAS = "no-canvas"
AUDIO_UNAVAILABLE = "audio-unavailable"
UNKNOWN = "unknown"

# Candidate fonts measured by the client probe
TEST_FONTS = [
    "Arial", "Arial Black", "Calibri", "Cambria", "Comic Sans MS",
    "Consolas", "Courier New", "Georgia", "Helvetica", "Impact",
    "Lucida Console", "Lucida Sans Unicode", "Monaco", "Palatino Linotype",
    "Segoe UI", "Tahoma", "Times New Roman", "Trebuchet MS", "Verdana",
    "Menlo", "Ubuntu", "DejaVu Sans",
]

CANVAS_TAIL_LENGTH = 50
AUDIO_SAMPLE_COUNT = 100
AUDIO_FINGERPRINT_LENGTH = 50

# Sections that identify the device across sessions. Audio, network,
# sensors, performance and privacy drift between visits.
STABLE_SECTIONS = ("basic", "screen", "graphics", "fonts", "timezone")
HASH_LENGTH = 32


# =============================================================================
# Extraction helpers
# =============================================================================

def _digest(text: str, length: int = 16) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:length]


def detect_fonts(font_widths: Dict[str, float], fallback_width: Optional[float]) -> List[str]:
    """A font is installed iff its rendered width differs from the fallback's."""
    if fallback_width is None:
        return []
    return [font for font, width in font_widths.items() if width != fallback_width]


def canvas_fingerprint(data_url: Optional[str]) -> str:
    if not data_url:
        return NO_CANVAS
    return data_url[-CANVAS_TAIL_LENGTH:]


def audio_fingerprint(samples: Optional[Sequence[float]], error: Optional[str] = None) -> str:
    """Rounded leading samples of an offline-rendered oscillator."""
    if error or not samples:
        return AUDIO_UNAVAILABLE
    head = samples[:AUDIO_SAMPLE_COUNT]
    return ",".join(str(round(s * 1000)) for s in head)[:AUDIO_FINGERPRINT_LENGTH]


def timing_precision(samples: Sequence[float]) -> int:
    """Largest number of fractional digits across timer readings."""
    precision = 0
    for sample in samples:
        text = repr(float(sample))
        if "e" in text or "E" in text:
            continue
        fraction = text.split(".", 1)[1].rstrip("0") if "." in text else ""
        precision = max(precision, len(fraction))
    return precision


def fingerprint_hash(fingerprint: DeviceFingerprint) -> str:
    """Order-independent digest of the stable sections."""
    stable = {
        name: getattr(fingerprint, name).model_dump(mode="json")
        for name in STABLE_SECTIONS
    }
    canonical = json.dumps(stable, sort_keys=True, separators=(",", ":"))
    return _digest(canonical, HASH_LENGTH)


# =============================================================================
# Collector
# =============================================================================

class DeviceSignalCollector:
    """One-shot extraction of a probe report into a scored fingerprint."""

    def __init__(self, risk_model: Optional[DeviceRiskModel] = None) -> None:
        self.risk_model = risk_model or DeviceRiskModel()

    def collect(self, probe: DeviceProbe) -> DeviceFingerprint:
        fingerprint = DeviceFingerprint(
            basic=self._basic(probe),
            screen=ScreenInfo(**probe.screen.model_dump()) if probe.screen else ScreenInfo(),
            graphics=self._graphics(probe),
            audio=self._audio(probe),
            fonts=self._fonts(probe),
            network=self._network(probe),
            sensors=SensorInfo(**probe.sensors.model_dump()) if probe.sensors else SensorInfo(),
            timezone=TimezoneInfo(**probe.timezone.model_dump()) if probe.timezone else TimezoneInfo(),
            performance=self._performance(probe),
            privacy=self._privacy(probe),
        )

        risk_score, risk_factors = self.risk_model.score_one(fingerprint)
        fingerprint = fingerprint.model_copy(update={
            "hash": fingerprint_hash(fingerprint),
            "risk_score": risk_score,
            "risk_factors": risk_factors,
        })
        logger.info(
            f"Collected device fingerprint {fingerprint.hash[:8]}: "
            f"risk={risk_score} factors={len(risk_factors)}"
        )
        return fingerprint

    @staticmethod
    def _basic(probe: DeviceProbe) -> BasicInfo:
        return BasicInfo(
            user_agent=probe.user_agent,
            language=probe.language,
            languages=list(probe.languages),
            platform=probe.platform,
            vendor=probe.vendor,
            cookie_enabled=probe.cookie_enabled,
            do_not_track=probe.do_not_track,
            hardware_concurrency=probe.hardware_concurrency or 0,
            device_memory=probe.device_memory,
            max_touch_points=probe.max_touch_points,
            webdriver=probe.webdriver,
        )

    @staticmethod
    def _graphics(probe: DeviceProbe) -> GraphicsInfo:
        graphics = GraphicsInfo(canvas_fingerprint=canvas_fingerprint(probe.canvas_data_url))
        webgl = probe.webgl
        if webgl is None:
            logger.debug("WebGL probe missing, using sentinels")
            return graphics
        return graphics.model_copy(update={
            "webgl_vendor": webgl.vendor or UNKNOWN,
            "webgl_renderer": webgl.renderer or UNKNOWN,
            "webgl_version": webgl.version or UNKNOWN,
            "shading_language_version": webgl.shading_language_version or UNKNOWN,
            "webgl_extensions": list(webgl.extensions),
            "webgl_fingerprint": _digest(webgl.data_url) if webgl.data_url else UNKNOWN,
        })

    @staticmethod
    def _audio(probe: DeviceProbe) -> AudioInfo:
        fingerprint = audio_fingerprint(probe.audio_samples, probe.audio_error)
        if probe.audio_error:
            logger.debug(f"Audio probe failed: {probe.audio_error}")
        sample_rate = probe.audio_sample_rate or 0.0
        if fingerprint == AUDIO_UNAVAILABLE:
            sample_rate = 0.0
        return AudioInfo(fingerprint=fingerprint, sample_rate=sample_rate)

    @staticmethod
    def _fonts(probe: DeviceProbe) -> FontInfo:
        available = detect_fonts(probe.font_widths, probe.fallback_width)
        pairs = ";".join(f"{font}:{probe.font_widths[font]}" for font in sorted(available))
        return FontInfo(
            available=available,
            count=len(available),
            fingerprint=_digest(pairs) if available else "",
        )

    @staticmethod
    def _network(probe: DeviceProbe) -> NetworkInfo:
        if probe.network is None:
            return NetworkInfo(online=probe.online)
        return NetworkInfo(
            effective_type=probe.network.effective_type,
            downlink=probe.network.downlink or 0.0,
            rtt=probe.network.rtt or 0.0,
            save_data=probe.network.save_data,
            online=probe.online,
        )

    @staticmethod
    def _performance(probe: DeviceProbe) -> PerformanceInfo:
        perf = probe.performance
        if perf is None:
            return PerformanceInfo()
        return PerformanceInfo(
            timing_precision=timing_precision(perf.timing_samples),
            memory_used=perf.memory_used or 0.0,
            memory_total=perf.memory_total or 0.0,
            memory_limit=perf.memory_limit or 0.0,
        )

    @staticmethod
    def _privacy(probe: DeviceProbe) -> PrivacyInfo:
        privacy = probe.privacy
        plugins_hidden = probe.plugin_count == 0
        if privacy is None:
            return PrivacyInfo(plugins_hidden=plugins_hidden)
        return PrivacyInfo(
            ad_blocker=privacy.bait_height is not None and privacy.bait_height == 0,
            private_browsing=privacy.storage_write_ok is False,
            plugins_hidden=plugins_hidden,
            local_storage=privacy.local_storage,
            session_storage=privacy.session_storage,
            indexed_db=privacy.indexed_db,
        )
