"""
Session Registry Tests

Idle-TTL and capacity eviction of live capture sessions. The clock is
injected so no test sleeps.
"""

import asyncio

import pytest

from engine.config import RegistryConfig
from engine.events import KEYDOWN, EventSource
from engine.registry import SessionRegistry
from engine.session import CaptureSession


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def make_registry(clock, max_sessions=10, idle_ttl=60.0) -> SessionRegistry:
    return SessionRegistry(RegistryConfig(max_sessions=max_sessions, idle_ttl=idle_ttl), clock=clock)


class TestSessionRegistry:

    def test_add_and_get(self, clock):
        registry = make_registry(clock)
        session = CaptureSession(session_id="a")
        asyncio.run(registry.add(session))

        assert registry.get("a") is session
        assert registry.get("missing") is None
        assert len(registry) == 1

    def test_idle_session_is_stopped_and_dropped(self, clock):
        registry = make_registry(clock, idle_ttl=60.0)
        source = EventSource()

        async def scenario():
            session = CaptureSession(session_id="idle")
            session.attach(source)
            session.start()
            await registry.add(session)
            clock.now = 61.0
            evicted = await registry.evict_idle()
            return session, evicted

        session, evicted = asyncio.run(scenario())

        assert evicted == ["idle"]
        assert "idle" not in registry
        assert not session.running
        assert source.listener_count(KEYDOWN) == 0

    def test_access_keeps_session_alive(self, clock):
        registry = make_registry(clock, idle_ttl=60.0)
        asyncio.run(registry.add(CaptureSession(session_id="busy")))

        clock.now = 50.0
        registry.get("busy")
        clock.now = 100.0

        assert asyncio.run(registry.evict_idle()) == []
        assert "busy" in registry

    def test_capacity_evicts_least_recently_used(self, clock):
        registry = make_registry(clock, max_sessions=2)

        async def scenario():
            await registry.add(CaptureSession(session_id="first"))
            clock.now = 1.0
            await registry.add(CaptureSession(session_id="second"))
            clock.now = 2.0
            registry.get("first")
            await registry.add(CaptureSession(session_id="third"))

        asyncio.run(scenario())

        assert "second" not in registry
        assert "first" in registry
        assert "third" in registry
        assert len(registry) == 2

    def test_remove(self, clock):
        registry = make_registry(clock)
        asyncio.run(registry.add(CaptureSession(session_id="a")))

        assert asyncio.run(registry.remove("a")) is True
        assert asyncio.run(registry.remove("a")) is False

    def test_close_stops_everything(self, clock):
        registry = make_registry(clock)
        source = EventSource()
        session = CaptureSession(session_id="a")
        session.attach(source)
        asyncio.run(registry.add(session))

        asyncio.run(registry.close())

        assert len(registry) == 0
        assert source.listener_count(KEYDOWN) == 0

    def test_rejects_empty_capacity(self):
        with pytest.raises(ValueError):
            SessionRegistry(RegistryConfig(max_sessions=0))


class TestRegistryConfig:

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("ENGINE_MAX_SESSIONS", "5")
        monkeypatch.setenv("ENGINE_SESSION_IDLE_TTL", "not-a-number")
        config = RegistryConfig.from_env()
        assert config.max_sessions == 5
        assert config.idle_ttl == RegistryConfig().idle_ttl
