"""
Capture Session

Per-session context that owns every channel buffer, the latest device
fingerprint, the latest analyses and the trust score.

Architecture:
    input sources ──attach()──> CaptureSession
        ├── KeystrokeProcessor ──> KeystrokeBotModel ──┐
        ├── PointerProcessor   ──> PointerBotModel   ──┼──> TrustFusionEngine ──> TrustScore
        ├── DeviceSignalCollector ─────────────────────┤
        └── KeystrokeClassifierClient (remote, opt.) ──┘

All handlers run synchronously on one event loop. ``start()`` launches
the periodic analysis tasks; ``stop()`` cancels them and releases every
subscription.
"""

import asyncio
import logging
import uuid
from typing import Any, Callable, List, Optional

from engine.classifier import (
    ClassifierUnavailableError,
    KeystrokeClassifierClient,
    Transport,
    resolve,
)
from engine.config import SessionConfig
from engine.events import (
    CLICK,
    CONTEXTMENU,
    KEYDOWN,
    KEYUP,
    POINTERMOVE,
    Subscription,
    subscribe,
)
from engine.models.keyboard import KeystrokeBotModel
from engine.models.mouse import PointerBotModel
from engine.models.trust import BehavioralSignals, TrustFusionEngine
from engine.processors.device import DeviceSignalCollector
from engine.processors.keyboard import KeystrokeProcessor
from engine.processors.mouse import PointerProcessor
from engine.schemas.inputs import (
    BotVerdict,
    DetectionMode,
    DeviceProbe,
    KeyboardEvent,
    KeyEventType,
    PointerEvent,
    PointerEventType,
)
from engine.schemas.outputs import (
    DeviceFingerprint,
    KeystrokeAnalysis,
    KeystrokeCounters,
    KeystrokeMetrics,
    KeystrokeSnapshot,
    PointerAnalysis,
    TrustScore,
)

logger = logging.getLogger(__name__)

BotClassifier = Callable[[], Any]
ProbeProvider = Callable[[], Any]

INSUFFICIENT_POINTER_DATA = "Insufficient pointer data"


def _as_key_event(event: Any, event_type: KeyEventType) -> KeyboardEvent:
    if isinstance(event, KeyboardEvent):
        return event
    data = dict(event)
    data["event_type"] = event_type
    return KeyboardEvent.model_validate(data)


def _as_pointer_event(event: Any, event_type: PointerEventType) -> PointerEvent:
    if isinstance(event, PointerEvent):
        return event
    data = dict(event)
    data["event_type"] = event_type
    return PointerEvent.model_validate(data)


class CaptureSession:
    """
    One user's behavioral capture context.

    Args:
        session_id: Identifier (random when omitted)
        config: Tunables; defaults to ``SessionConfig()``
        detection_mode: Pointer signals used for the combined score
        transport: ``submit(payload) -> score`` for the remote classifier
        bot_classifier: ``detect() -> BotVerdict`` external classifier
        probe_provider: ``() -> DeviceProbe`` for periodic fingerprinting
        history: Trust history store shared across sessions
    """

    def __init__(
        self,
        session_id: Optional[str] = None,
        config: Optional[SessionConfig] = None,
        detection_mode: DetectionMode = DetectionMode.COMBINED,
        transport: Optional[Transport] = None,
        bot_classifier: Optional[BotClassifier] = None,
        probe_provider: Optional[ProbeProvider] = None,
        history=None,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self.config = config or SessionConfig()
        self.detection_mode = detection_mode

        self.keystrokes = KeystrokeProcessor(self.config.keystroke)
        self.pointer = PointerProcessor(self.config.pointer)
        self.collector = DeviceSignalCollector()

        self.keystroke_model = KeystrokeBotModel()
        self.pointer_model = PointerBotModel()
        self.trust_engine = TrustFusionEngine(self.config.trust, history)

        self.classifier = KeystrokeClassifierClient(transport) if transport else None
        self.bot_classifier = bot_classifier
        self.probe_provider = probe_provider

        self._keystroke_analysis: Optional[KeystrokeAnalysis] = None
        self._pointer_analysis: Optional[PointerAnalysis] = None
        self._keystroke_revision = -1
        self._pointer_revision = -1
        self._remote_score: Optional[float] = None
        self._fingerprint: Optional[DeviceFingerprint] = None
        self._trust_score: Optional[TrustScore] = None

        self._subscriptions: List[Subscription] = []
        self._tasks: List[asyncio.Task] = []

        logger.info(f"Capture session {self.session_id} created ({detection_mode.value})")

    # -------------------------------------------------------------------------
    # Event intake
    # -------------------------------------------------------------------------

    def handle_key_event(self, event: KeyboardEvent) -> None:
        self.keystrokes.process_event(event)

    def handle_pointer_event(self, event: PointerEvent) -> None:
        self.pointer.process_event(event)

    def attach(self, source: Any) -> Subscription:
        """Listen for keydown/keyup on ``source``."""
        subscription = subscribe(source, [
            (KEYDOWN, lambda e: self.handle_key_event(_as_key_event(e, KeyEventType.DOWN))),
            (KEYUP, lambda e: self.handle_key_event(_as_key_event(e, KeyEventType.UP))),
        ])
        self._subscriptions.append(subscription)
        return subscription

    def attach_pointer(self, source: Any) -> Subscription:
        """Listen for pointer moves, clicks and context-menu opens on ``source``."""
        subscription = subscribe(source, [
            (POINTERMOVE, lambda e: self.handle_pointer_event(_as_pointer_event(e, PointerEventType.MOVE))),
            (CLICK, lambda e: self.handle_pointer_event(_as_pointer_event(e, PointerEventType.CLICK))),
            (CONTEXTMENU, lambda e: self.handle_pointer_event(
                _as_pointer_event(e, PointerEventType.CONTEXTMENU))),
        ])
        self._subscriptions.append(subscription)
        return subscription

    def start_tracking(self) -> None:
        self.pointer.start_tracking()

    def stop_tracking(self) -> None:
        self.pointer.stop_tracking()

    def set_detection_mode(self, mode: DetectionMode) -> None:
        self.detection_mode = mode
        self._pointer_revision = -1

    # -------------------------------------------------------------------------
    # Keystroke channel
    # -------------------------------------------------------------------------

    def get_snapshot(self) -> KeystrokeSnapshot:
        return self.keystrokes.snapshot()

    def get_metrics(self) -> KeystrokeMetrics:
        return self.keystrokes.metrics()

    def get_counters(self) -> KeystrokeCounters:
        return self.keystrokes.counters()

    def analyze_keystrokes(self) -> KeystrokeAnalysis:
        self._keystroke_revision = self.keystrokes.revision
        self._keystroke_analysis = self.keystroke_model.analyze(
            self.keystrokes.snapshot(), self.keystrokes.metrics()
        )
        return self._keystroke_analysis

    def get_keystroke_analysis(self) -> KeystrokeAnalysis:
        """Latest keystroke analysis, re-scored when keys arrived since the last one."""
        if self._keystroke_analysis is None or self._keystroke_revision != self.keystrokes.revision:
            return self.analyze_keystrokes()
        return self._keystroke_analysis

    async def send_keystrokes(self) -> float:
        """
        Push the n-gram buffer to the remote classifier.

        Transport errors propagate to the caller.
        """
        if self.classifier is None:
            raise ClassifierUnavailableError("No classifier transport configured")
        score = await self.classifier.submit(self.keystrokes.snapshot())
        self._remote_score = score
        return score

    @property
    def remote_score(self) -> Optional[float]:
        return self._remote_score

    # -------------------------------------------------------------------------
    # Pointer channel
    # -------------------------------------------------------------------------

    def analyze_pointer(self) -> PointerAnalysis:
        """Re-score the pointer buffers; below the mode minimum the last result stands."""
        self._pointer_revision = self.pointer.revision
        if not self.pointer.has_enough_data(self.detection_mode):
            return self._last_pointer_analysis()
        metrics, teleportations = self.pointer.extract_features()
        self._pointer_analysis = self.pointer_model.analyze(
            metrics, self.detection_mode, teleportations
        )
        return self._pointer_analysis

    def get_pointer_score(self) -> PointerAnalysis:
        if self._pointer_revision != self.pointer.revision:
            return self.analyze_pointer()
        return self._last_pointer_analysis()

    def _last_pointer_analysis(self) -> PointerAnalysis:
        if self._pointer_analysis is None:
            return PointerAnalysis(mode=self.detection_mode, reasons=[INSUFFICIENT_POINTER_DATA])
        return self._pointer_analysis

    # -------------------------------------------------------------------------
    # Device channel
    # -------------------------------------------------------------------------

    def collect_device(self, probe: DeviceProbe) -> DeviceFingerprint:
        self._fingerprint = self.collector.collect(probe)
        return self._fingerprint

    async def refresh_fingerprint(self) -> Optional[DeviceFingerprint]:
        if self.probe_provider is None:
            return self._fingerprint
        probe = await resolve(self.probe_provider())
        if not isinstance(probe, DeviceProbe):
            probe = DeviceProbe.model_validate(probe)
        return self.collect_device(probe)

    def get_device_fingerprint(self) -> Optional[DeviceFingerprint]:
        return self._fingerprint

    # -------------------------------------------------------------------------
    # Trust
    # -------------------------------------------------------------------------

    @property
    def history_key(self) -> str:
        if self._fingerprint is not None and self._fingerprint.hash:
            return self._fingerprint.hash
        return self.session_id

    async def _classifier_signals(self) -> BehavioralSignals:
        signals = BehavioralSignals()
        if self.bot_classifier is not None:
            try:
                verdict = await resolve(self.bot_classifier())
                if not isinstance(verdict, BotVerdict):
                    verdict = BotVerdict.model_validate(verdict)
                signals.verdict = verdict
            except Exception as e:
                logger.warning(f"[{self.session_id}] Bot classifier failed: {e}")
                signals.classifier_error = str(e)

        enough_keys = self.keystrokes.total_keystrokes >= self.config.keystroke_min_keys
        if enough_keys or self._keystroke_analysis is not None:
            signals.keystroke_bot_score = self.get_keystroke_analysis().bot_score
        self.get_pointer_score()
        if self._pointer_analysis is not None:
            signals.pointer_bot_score = self._pointer_analysis.bot_score
        if self._remote_score is not None:
            signals.remote_probability = self._remote_score
        return signals

    async def refresh_trust_score(self) -> TrustScore:
        signals = await self._classifier_signals()
        trust = self.trust_engine.compute(self.history_key, self._fingerprint, signals)
        # Single assignment: readers see either the old or the new score
        self._trust_score = trust
        return trust

    def get_trust_score(self) -> Optional[TrustScore]:
        return self._trust_score

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def clear(self) -> None:
        """Reset the buffers, counters and channel analyses of every channel."""
        self.keystrokes.reset()
        self.pointer.reset()
        self._keystroke_analysis = None
        self._pointer_analysis = None
        self._remote_score = None
        logger.info(f"Capture session {self.session_id} cleared")

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        """Launch the periodic tasks on the running event loop."""
        if self._tasks:
            return
        cfg = self.config
        self._tasks = [
            asyncio.create_task(self._every(cfg.keystroke_interval, self._auto_keystrokes, "keystroke analysis")),
            asyncio.create_task(self._every(cfg.pointer_interval, self._auto_pointer, "pointer analysis")),
            asyncio.create_task(self._every(cfg.trust_interval, self.refresh_trust_score, "trust refresh",
                                            immediate=True)),
        ]
        if self.classifier is not None:
            self._tasks.append(asyncio.create_task(
                self._every(cfg.push_interval, self._auto_push, "keystroke push")))
        if self.probe_provider is not None:
            self._tasks.append(asyncio.create_task(
                self._every(cfg.fingerprint_interval, self.refresh_fingerprint, "fingerprint refresh",
                            immediate=True)))
        logger.info(f"Capture session {self.session_id} started ({len(self._tasks)} tasks)")

    async def stop(self) -> None:
        """Cancel every periodic task and release every subscription."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for subscription in self._subscriptions:
            subscription.release()
        self._subscriptions.clear()
        if tasks:
            logger.info(f"Capture session {self.session_id} stopped")

    async def __aenter__(self) -> "CaptureSession":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def _every(
        self,
        interval: float,
        job: Callable[[], Any],
        name: str,
        immediate: bool = False,
    ) -> None:
        if not immediate:
            await asyncio.sleep(interval)
        while True:
            try:
                await resolve(job())
            except Exception as e:
                # Timer-driven work must not kill the loop; direct calls still raise
                logger.error(f"[{self.session_id}] {name} failed: {e}")
            await asyncio.sleep(interval)

    def _auto_keystrokes(self) -> None:
        if self.keystrokes.total_keystrokes >= self.config.keystroke_min_keys:
            self.analyze_keystrokes()

    def _auto_pointer(self) -> None:
        self.analyze_pointer()

    async def _auto_push(self) -> None:
        if self.keystrokes.total_keystrokes >= self.config.push_min_keys:
            await self.send_keystrokes()
