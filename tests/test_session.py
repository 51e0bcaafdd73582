"""
Capture Session Tests

Tests for CaptureSession: source subscriptions, keystroke push to the
remote classifier, pointer re-scoring, device collection, trust refresh
and the periodic task lifecycle.

Async paths are driven with asyncio.run so no plugin is required.
"""

import asyncio

import pytest

from engine.classifier import ClassifierUnavailableError, coerce_score
from engine.config import SessionConfig
from engine.events import CLICK, KEYDOWN, KEYUP, POINTERMOVE, EventSource, subscribe
from engine.schemas.inputs import DetectionMode, DeviceProbe, PointerEventType
from engine.session import CaptureSession

from tests.conftest import desktop_probe, make_pointer_event, type_keys


def fast_config(**overrides) -> SessionConfig:
    """Every cadence at 10 ms, every gate at one key."""
    values = dict(
        keystroke_interval=0.01,
        keystroke_min_keys=1,
        pointer_interval=0.01,
        push_interval=0.01,
        push_min_keys=1,
        fingerprint_interval=0.01,
        trust_interval=0.01,
    )
    values.update(overrides)
    return SessionConfig(**values)


# =============================================================================
# Subscriptions
# =============================================================================

class TestAttach:
    """attach() wires source listeners into the channel processors."""

    def test_keyboard_source(self, capture_session):
        source = EventSource()
        capture_session.attach(source)

        source.dispatch(KEYDOWN, {"key": "a", "timestamp": 0.0})
        source.dispatch(KEYUP, {"key": "a", "timestamp": 85.0})

        assert capture_session.get_snapshot().dwell_times == {"<a>": [85.0]}
        assert capture_session.get_counters().total_keys == 1

    def test_pointer_source(self, capture_session):
        source = EventSource()
        capture_session.attach_pointer(source)

        source.dispatch(POINTERMOVE, {"x": 10, "y": 20, "timestamp": 1.0})
        source.dispatch(CLICK, {"x": 10, "y": 20, "timestamp": 2.0})

        assert len(capture_session.pointer.points) == 1
        assert len(capture_session.pointer.clicks) == 1

    def test_malformed_event_is_dropped(self, capture_session):
        source = EventSource()
        capture_session.attach(source)

        source.dispatch(KEYDOWN, {"timestamp": 0.0})
        assert capture_session.get_counters().total_keys == 0

    def test_release_is_idempotent(self, capture_session):
        source = EventSource()
        subscription = capture_session.attach(source)
        assert source.listener_count(KEYDOWN) == 1

        subscription.release()
        subscription.release()

        assert subscription.released
        assert source.listener_count(KEYDOWN) == 0
        source.dispatch(KEYDOWN, {"key": "a", "timestamp": 0.0})
        assert capture_session.get_counters().total_keys == 0

    def test_subscription_context_manager(self):
        source = EventSource()
        received = []
        with subscribe(source, [(KEYDOWN, received.append)]) as subscription:
            source.dispatch(KEYDOWN, "x")
        source.dispatch(KEYDOWN, "y")

        assert subscription.released
        assert received == ["x"]

    def test_stop_releases_subscriptions(self, capture_session):
        source = EventSource()
        capture_session.attach(source)
        capture_session.attach_pointer(source)

        asyncio.run(capture_session.stop())

        assert source.listener_count(KEYUP) == 0
        assert source.listener_count(POINTERMOVE) == 0


# =============================================================================
# Remote Classifier
# =============================================================================

class TestSendKeystrokes:

    def test_without_transport(self, capture_session):
        with pytest.raises(ClassifierUnavailableError):
            asyncio.run(capture_session.send_keystrokes())

    def test_sync_transport_and_string_score(self):
        payloads = []

        def transport(payload):
            payloads.append(payload)
            return "0.7"

        session = CaptureSession(transport=transport)
        type_keys(session.keystrokes, "abc")

        assert asyncio.run(session.send_keystrokes()) == 0.7
        assert session.remote_score == 0.7
        assert set(payloads[0]) == {"ngram_times"}
        assert "[<a>]->[<b>]" in payloads[0]["ngram_times"]

    def test_async_transport(self):
        async def transport(payload):
            return {"score": 0.42}

        session = CaptureSession(transport=transport)
        assert asyncio.run(session.send_keystrokes()) == 0.42

    def test_transport_errors_propagate(self):
        def transport(payload):
            raise ConnectionError("classifier unreachable")

        session = CaptureSession(transport=transport)
        with pytest.raises(ConnectionError):
            asyncio.run(session.send_keystrokes())
        assert session.remote_score is None

    @pytest.mark.parametrize("raw,expected", [
        (0.25, 0.25),
        (1, 1.0),
        (" 0.9 ", 0.9),
        ("abc", 0.0),
        (None, 0.0),
        (True, 1.0),
        ({"score": "0.3"}, 0.3),
        (float("nan"), 0.0),
    ])
    def test_coerce_score(self, raw, expected):
        assert coerce_score(raw) == expected


# =============================================================================
# Channel Analyses
# =============================================================================

class TestAnalyses:

    def test_keystroke_analysis_is_cached(self, capture_session):
        type_keys(capture_session.keystrokes, "a" * 30)
        first = capture_session.get_keystroke_analysis()
        assert capture_session.get_keystroke_analysis() is first
        assert capture_session.analyze_keystrokes() is not first

    def test_keystroke_analysis_follows_new_keys(self, capture_session):
        end = type_keys(capture_session.keystrokes, "a" * 10)
        first = capture_session.get_keystroke_analysis()

        type_keys(capture_session.keystrokes, "b" * 20, start=end + 60.0)
        latest = capture_session.get_keystroke_analysis()

        assert latest is not first
        assert latest.metrics.total_keystrokes == 30

    def test_pointer_default(self, capture_session):
        analysis = capture_session.get_pointer_score()
        assert analysis.bot_score == 0
        assert analysis.mode == DetectionMode.COMBINED
        assert analysis.reasons == ["Insufficient pointer data"]

    def test_pointer_score_follows_new_points(self):
        session = CaptureSession(detection_mode=DetectionMode.MOVEMENT)
        assert session.get_pointer_score().metrics.point_count == 0

        for i in range(12):
            session.handle_pointer_event(make_pointer_event(i * 10, i * 5, i * 16.0))

        assert session.get_pointer_score().metrics.point_count == 12

    def test_insufficient_pointer_data_keeps_previous(self, capture_session):
        for i in range(10):
            capture_session.handle_pointer_event(make_pointer_event(i * 10, i * 5, i * 16.0))
        for i in range(3):
            capture_session.handle_pointer_event(
                make_pointer_event(0, 0, 500.0 + i * 300, PointerEventType.CLICK))

        previous = capture_session.analyze_pointer()
        assert previous.metrics.point_count == 10

        # Clicks mode needs five clicks
        capture_session.set_detection_mode(DetectionMode.CLICKS)
        assert capture_session.analyze_pointer() is previous

    def test_stop_tracking_ignores_pointer(self, capture_session):
        capture_session.stop_tracking()
        capture_session.handle_pointer_event(make_pointer_event(1, 1, 1.0))
        assert capture_session.pointer.points == []

    def test_clear(self):
        session = CaptureSession(transport=lambda payload: 0.9)
        type_keys(session.keystrokes, "hello")
        session.handle_pointer_event(make_pointer_event(1, 1, 1.0))
        session.analyze_keystrokes()
        asyncio.run(session.send_keystrokes())

        session.clear()

        assert session.get_snapshot().total_keystrokes == 0
        assert session.pointer.points == []
        assert session.remote_score is None
        assert session.get_pointer_score().bot_score == 0


# =============================================================================
# Device and Trust
# =============================================================================

class TestDeviceAndTrust:

    def test_history_keyed_by_device_hash(self, capture_session):
        assert capture_session.history_key == "test-session"

        fp = capture_session.collect_device(desktop_probe())
        trust = asyncio.run(capture_session.refresh_trust_score())

        assert capture_session.history_key == fp.hash
        assert capture_session.trust_engine.history.get(fp.hash) == [float(trust.overall)]
        assert capture_session.get_trust_score() is trust

    def test_sessions_share_device_history(self):
        from persistence.trust_history import InMemoryTrustHistory

        history = InMemoryTrustHistory()
        first = CaptureSession(history=history)
        second = CaptureSession(history=history)
        fp = first.collect_device(desktop_probe())
        second.collect_device(desktop_probe())

        asyncio.run(first.refresh_trust_score())
        asyncio.run(second.refresh_trust_score())
        assert len(history.get(fp.hash)) == 2

    def test_bot_classifier_verdict(self):
        async def detect():
            return {"bot": False, "confidence": 1.0}

        session = CaptureSession(bot_classifier=detect)
        trust = asyncio.run(session.refresh_trust_score())
        assert trust.channels["classifier"] == 90.0

    def test_bot_classifier_failure_is_neutral(self):
        def detect():
            raise RuntimeError("boom")

        session = CaptureSession(bot_classifier=detect)
        trust = asyncio.run(session.refresh_trust_score())

        assert trust.components.bot_detection == 50
        assert "Bot classifier analysis failed: boom" in trust.risk_factors

    def test_channel_scores_feed_trust(self, capture_session):
        type_keys(capture_session.keystrokes, "a" * 30)
        capture_session.analyze_keystrokes()
        trust = asyncio.run(capture_session.refresh_trust_score())
        assert "keystroke" in trust.channels

    def test_trust_scores_unanalyzed_channels(self):
        session = CaptureSession(detection_mode=DetectionMode.MOVEMENT)
        type_keys(session.keystrokes, "a" * 30)
        for i in range(12):
            session.handle_pointer_event(make_pointer_event(i * 10, i * 5, i * 16.0))

        trust = asyncio.run(session.refresh_trust_score())

        assert trust.channels["keystroke"] == 100 - session.get_keystroke_analysis().bot_score
        assert "pointer" in trust.channels

    def test_few_keys_stay_out_of_trust(self, capture_session):
        type_keys(capture_session.keystrokes, "abc")
        trust = asyncio.run(capture_session.refresh_trust_score())
        assert "keystroke" not in trust.channels
        assert trust.overall == 50

    def test_refresh_fingerprint_from_provider(self):
        async def provider():
            return desktop_probe().model_dump()

        session = CaptureSession(probe_provider=provider)
        fp = asyncio.run(session.refresh_fingerprint())
        assert fp is session.get_device_fingerprint()
        assert fp.risk_score == 0

    def test_refresh_fingerprint_without_provider(self, capture_session):
        assert asyncio.run(capture_session.refresh_fingerprint()) is None
        capture_session.collect_device(DeviceProbe())
        assert asyncio.run(capture_session.refresh_fingerprint()) is not None


# =============================================================================
# Lifecycle
# =============================================================================

class TestLifecycle:

    def test_start_and_stop(self):
        async def scenario():
            session = CaptureSession(config=fast_config())
            type_keys(session.keystrokes, "a" * 20)
            session.start()
            running = session.running
            await asyncio.sleep(0.1)
            await session.stop()
            return session, running

        session, running = asyncio.run(scenario())
        assert running
        assert not session.running
        assert session.get_trust_score() is not None
        assert "keystroke" in session.get_trust_score().channels

    def test_failed_push_does_not_stop_timers(self):
        calls = []

        def transport(payload):
            calls.append(payload)
            raise ConnectionError("down")

        async def scenario():
            session = CaptureSession(config=fast_config(), transport=transport)
            type_keys(session.keystrokes, "abc")
            session.start()
            await asyncio.sleep(0.1)
            still_running = session.running
            await session.stop()
            return session, still_running

        session, still_running = asyncio.run(scenario())
        assert still_running
        assert len(calls) >= 2
        assert session.remote_score is None

    def test_push_waits_for_enough_keys(self):
        calls = []

        async def scenario():
            session = CaptureSession(
                config=fast_config(push_min_keys=15),
                transport=lambda payload: calls.append(payload) or 0.5,
            )
            type_keys(session.keystrokes, "abc")
            session.start()
            await asyncio.sleep(0.05)
            await session.stop()

        asyncio.run(scenario())
        assert calls == []

    def test_async_context_manager(self):
        async def scenario():
            async with CaptureSession(config=fast_config()) as session:
                inside = session.running
            return session, inside

        session, inside = asyncio.run(scenario())
        assert inside
        assert not session.running

    def test_stop_without_start(self, capture_session):
        asyncio.run(capture_session.stop())
        assert not capture_session.running
