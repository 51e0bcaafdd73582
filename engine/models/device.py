"""
Device Risk Model

Pure business logic for device risk assessment.
This module is STATELESS and DETERMINISTIC.

DeviceRiskModel:
    Additive rule table over a DeviceFingerprint. Each rule that fires
    contributes its points and a human-readable factor; the total is
    capped at 100.

DeviceAnalyzer:
    Server-side interpretation of a fingerprint: device class, browser
    family, automation risk, uniqueness, timezone/language consistency
    and a recommended ALLOW / CHALLENGE / BLOCK action.
"""

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from user_agents import parse as parse_user_agent

from engine.schemas.outputs import Decision, DeviceAnalysis, DeviceFingerprint


# =============================================================================
# Patterns
# =============================================================================

AUTOMATION_UA = re.compile(
    r"headless|phantomjs|selenium|webdriver|puppeteer|playwright|slimerjs",
    re.IGNORECASE,
)
SOFTWARE_VENDOR = re.compile(r"brian paul|mesa|software|swiftshader|llvmpipe", re.IGNORECASE)
VIRTUAL_RENDERER = re.compile(
    r"swiftshader|llvmpipe|software|emulation|virtual|vmware|virtualbox",
    re.IGNORECASE,
)

# Default resolutions of automation frameworks and bare VMs
AUTOMATION_RESOLUTIONS = {(800, 600), (1024, 768)}
STANDARD_COLOR_DEPTHS = {24, 30, 32, 48}
STANDARD_SAMPLE_RATES = {22050.0, 44100.0, 48000.0, 96000.0}
BASIC_FONTS = {"Arial", "Times New Roman", "Courier New", "Helvetica"}

# Language region -> timezone prefixes considered consistent
REGION_TIMEZONES = {
    "US": ("America/", "Pacific/Honolulu"),
    "CA": ("America/",),
    "MX": ("America/",),
    "BR": ("America/",),
    "GB": ("Europe/London",),
    "IE": ("Europe/Dublin",),
    "DE": ("Europe/",),
    "FR": ("Europe/",),
    "ES": ("Europe/", "Atlantic/Canary"),
    "IT": ("Europe/",),
    "NL": ("Europe/",),
    "RU": ("Europe/", "Asia/"),
    "JP": ("Asia/Tokyo",),
    "KR": ("Asia/Seoul",),
    "CN": ("Asia/",),
    "IN": ("Asia/Kolkata", "Asia/Calcutta"),
    "AU": ("Australia/",),
}

# Bare languages expected under America/* timezones
AMERICAS_LANGUAGES = {"en", "es"}

ONE_MEGABYTE = 1024 * 1024


def _is_mobile(fp: DeviceFingerprint) -> bool:
    ua = parse_user_agent(fp.basic.user_agent)
    return ua.is_mobile or ua.is_tablet


def _primary_language_matches(primary: str, tz: str) -> bool:
    """Coarse continent check for a language without a region subtag."""
    if tz.startswith("America/"):
        return primary in AMERICAS_LANGUAGES
    if tz.startswith("Europe/"):
        return primary != "zh"
    if tz.startswith("Asia/"):
        return primary != "en" or tz == "Asia/Singapore"
    return True


def timezone_matches_language(fp: DeviceFingerprint) -> bool:
    """False only when both values are known and clearly disagree."""
    tz = fp.timezone.timezone
    language = fp.basic.language
    if tz == "unknown" or not language or language == "unknown":
        return True
    parts = language.replace("_", "-").split("-")
    if len(parts) < 2:
        return _primary_language_matches(parts[0].lower(), tz)
    prefixes = REGION_TIMEZONES.get(parts[-1].upper())
    if prefixes is None:
        return True
    return tz.startswith(prefixes)


# =============================================================================
# Rule Table
# =============================================================================

@dataclass(frozen=True)
class RiskRule:
    """A single additive risk heuristic."""
    category: str
    description: str
    points: int
    check: Callable[[DeviceFingerprint], bool]


RISK_RULES: List[RiskRule] = [
    # Browser
    RiskRule("browser", "Automation tool in user agent", 40,
             lambda fp: bool(AUTOMATION_UA.search(fp.basic.user_agent))),
    RiskRule("browser", "navigator.webdriver is set", 40,
             lambda fp: fp.basic.webdriver),
    RiskRule("browser", "Unusual user agent length", 15,
             lambda fp: len(fp.basic.user_agent) < 50 or len(fp.basic.user_agent) > 500),
    RiskRule("browser", "Missing browser vendor", 10,
             lambda fp: not fp.basic.vendor),
    RiskRule("browser", "Single language configured", 5,
             lambda fp: len(fp.basic.languages) <= 1),
    # Hardware
    RiskRule("hardware", "Single-core CPU on a desktop device", 20,
             lambda fp: fp.basic.hardware_concurrency == 1 and not _is_mobile(fp)),
    RiskRule("hardware", "Unusually high CPU core count", 15,
             lambda fp: fp.basic.hardware_concurrency > 32),
    RiskRule("hardware", "Unusual device memory", 10,
             lambda fp: fp.basic.device_memory is not None
             and (fp.basic.device_memory < 1 or fp.basic.device_memory > 64)),
    RiskRule("hardware", "Mobile user agent without touch support", 20,
             lambda fp: _is_mobile(fp) and fp.basic.max_touch_points == 0),
    # Screen
    RiskRule("screen", "Common automation screen resolution", 10,
             lambda fp: (fp.screen.width, fp.screen.height) in AUTOMATION_RESOLUTIONS
             or fp.screen.width == 0 or fp.screen.height == 0),
    RiskRule("screen", "Unusual color depth", 15,
             lambda fp: fp.screen.color_depth not in STANDARD_COLOR_DEPTHS),
    # Graphics
    RiskRule("graphics", "Software WebGL vendor", 30,
             lambda fp: bool(SOFTWARE_VENDOR.search(fp.graphics.webgl_vendor))),
    RiskRule("graphics", "Virtualized or software renderer", 25,
             lambda fp: bool(VIRTUAL_RENDERER.search(fp.graphics.webgl_renderer))),
    RiskRule("graphics", "Few WebGL extensions", 20,
             lambda fp: len(fp.graphics.webgl_extensions) < 10),
    RiskRule("graphics", "Canvas fingerprinting unavailable", 25,
             lambda fp: fp.graphics.canvas_fingerprint == "no-canvas"
             or len(fp.graphics.canvas_fingerprint) < 50),
    # Audio
    RiskRule("audio", "Audio context unavailable", 20,
             lambda fp: fp.audio.fingerprint == "audio-unavailable"),
    RiskRule("audio", "Unusual audio sample rate", 10,
             lambda fp: fp.audio.fingerprint != "audio-unavailable"
             and fp.audio.sample_rate not in STANDARD_SAMPLE_RATES),
    # Fonts
    RiskRule("fonts", "Very few system fonts", 30, lambda fp: fp.fonts.count < 5),
    RiskRule("fonts", "Few system fonts", 15, lambda fp: 5 <= fp.fonts.count < 10),
    RiskRule("fonts", "Missing common system fonts", 15,
             lambda fp: fp.fonts.count > 0 and not BASIC_FONTS.intersection(fp.fonts.available)),
    # Locale
    RiskRule("locale", "Timezone inconsistent with language", 20,
             lambda fp: not timezone_matches_language(fp)),
    # Environment
    RiskRule("environment", "Unusual timer precision", 10,
             lambda fp: fp.performance.timing_precision > 5),
    RiskRule("environment", "Unusually small JS heap", 15,
             lambda fp: 0 < fp.performance.memory_used < ONE_MEGABYTE),
    RiskRule("environment", "Plugins hidden", 15, lambda fp: fp.privacy.plugins_hidden),
    RiskRule("environment", "Cookies disabled", 5, lambda fp: not fp.basic.cookie_enabled),
    RiskRule("environment", "Browser reports offline", 5, lambda fp: not fp.network.online),
    RiskRule("environment", "No device sensors", 10, lambda fp: not fp.sensors.any_available()),
    RiskRule("privacy", "Private browsing mode", 10, lambda fp: fp.privacy.private_browsing),
    RiskRule("privacy", "Ad blocker detected", 5, lambda fp: fp.privacy.ad_blocker),
]


class DeviceRiskModel:
    """Additive rule table producing a 0-100 device risk score."""

    MAX_SCORE: int = 100

    def __init__(self, rules: Optional[List[RiskRule]] = None) -> None:
        self.rules = rules if rules is not None else RISK_RULES

    def score_one(self, fingerprint: DeviceFingerprint) -> Tuple[int, List[str]]:
        """
        Returns:
            (risk_score in [0, 100], factors in rule order)
        """
        score = 0
        factors: List[str] = []
        for rule in self.rules:
            if rule.check(fingerprint):
                score += rule.points
                factors.append(rule.description)
        return min(score, self.MAX_SCORE), factors


# =============================================================================
# Analyzer
# =============================================================================

class DeviceAnalyzer:
    """
    Interprets a fingerprint and recommends an action.

    Decision Logic:
        BLOCK: risk_score > 80 or automation_risk > 0.8
        CHALLENGE: risk_score > 50 or automation_risk > 0.5
        ALLOW: otherwise
    """

    BLOCK_RISK: int = 80
    BLOCK_AUTOMATION: float = 0.8
    CHALLENGE_RISK: int = 50
    CHALLENGE_AUTOMATION: float = 0.5

    def __init__(self, risk_model: Optional[DeviceRiskModel] = None) -> None:
        self.risk_model = risk_model or DeviceRiskModel()

    def analyze(self, fingerprint: DeviceFingerprint) -> DeviceAnalysis:
        risk_score, risk_factors = self.risk_model.score_one(fingerprint)
        automation = self.automation_risk(fingerprint)

        if risk_score > self.BLOCK_RISK or automation > self.BLOCK_AUTOMATION:
            action = Decision.BLOCK
            confidence = max(risk_score / 100, automation)
        elif risk_score > self.CHALLENGE_RISK or automation > self.CHALLENGE_AUTOMATION:
            action = Decision.CHALLENGE
            confidence = max(risk_score / 100, automation)
        else:
            action = Decision.ALLOW
            confidence = 1.0 - max(risk_score / 100, automation)

        return DeviceAnalysis(
            device_type=self.device_type(fingerprint),
            browser_type=self.browser_type(fingerprint),
            automation_risk=round(automation, 3),
            uniqueness_score=self.uniqueness(fingerprint),
            geo_consistency=timezone_matches_language(fingerprint),
            risk_score=risk_score,
            risk_factors=risk_factors,
            recommended_action=action,
            confidence=round(min(1.0, max(0.0, confidence)), 3),
        )

    @staticmethod
    def device_type(fp: DeviceFingerprint) -> str:
        ua = parse_user_agent(fp.basic.user_agent)
        if ua.is_bot:
            return "bot"
        if ua.is_tablet:
            return "tablet"
        if ua.is_mobile:
            return "mobile"
        return "desktop"

    @staticmethod
    def browser_type(fp: DeviceFingerprint) -> str:
        family = parse_user_agent(fp.basic.user_agent).browser.family
        if not family or family == "Other":
            return "unknown"
        return family.lower()

    @staticmethod
    def automation_risk(fp: DeviceFingerprint) -> float:
        risk = 0.0
        if fp.basic.webdriver:
            risk += 0.4
        if AUTOMATION_UA.search(fp.basic.user_agent):
            risk += 0.4
        if VIRTUAL_RENDERER.search(fp.graphics.webgl_renderer):
            risk += 0.2
        if fp.privacy.plugins_hidden:
            risk += 0.1
        if not fp.basic.languages:
            risk += 0.1
        return min(1.0, risk)

    @staticmethod
    def uniqueness(fp: DeviceFingerprint) -> int:
        """How much identifying entropy the fingerprint carries."""
        score = 0
        if fp.graphics.canvas_fingerprint != "no-canvas":
            score += 25
        if fp.graphics.webgl_fingerprint != "unknown":
            score += 25
        if fp.audio.fingerprint != "audio-unavailable":
            score += 20
        score += min(20, fp.fonts.count)
        if (fp.screen.width, fp.screen.height) not in AUTOMATION_RESOLUTIONS and fp.screen.width:
            score += 10
        return min(score, 100)
