"""
Session Registry

Live capture sessions keyed by id, bounded two ways:
- sessions idle for longer than ``idle_ttl`` are evicted
- past ``max_sessions`` the least recently used session is evicted

Eviction stops the session's periodic tasks and releases its
subscriptions.
"""

import logging
import time
from collections import OrderedDict
from typing import Callable, List, Optional

from engine.config import RegistryConfig
from engine.session import CaptureSession

logger = logging.getLogger(__name__)


class SessionRegistry:

    def __init__(
        self,
        config: Optional[RegistryConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or RegistryConfig()
        if self.config.max_sessions < 1:
            raise ValueError("max_sessions must be >= 1")
        self._clock = clock
        # session_id -> (session, last access); oldest access first
        self._sessions: "OrderedDict[str, tuple]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Optional[CaptureSession]:
        """Look up a session and mark it as used."""
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        session = entry[0]
        self._sessions[session_id] = (session, self._clock())
        self._sessions.move_to_end(session_id)
        return session

    async def add(self, session: CaptureSession) -> None:
        await self.evict_idle()
        while len(self._sessions) >= self.config.max_sessions:
            session_id, (oldest, _) = self._sessions.popitem(last=False)
            logger.warning(f"Session limit reached; evicting {session_id}")
            await oldest.stop()
        self._sessions[session.session_id] = (session, self._clock())

    async def remove(self, session_id: str) -> bool:
        entry = self._sessions.pop(session_id, None)
        if entry is None:
            return False
        await entry[0].stop()
        return True

    async def evict_idle(self) -> List[str]:
        """Stop and drop every session idle past the TTL; returns their ids."""
        cutoff = self._clock() - self.config.idle_ttl
        expired = [sid for sid, (_, seen) in self._sessions.items() if seen < cutoff]
        for session_id in expired:
            session, _ = self._sessions.pop(session_id)
            await session.stop()
        if expired:
            logger.info(f"Evicted {len(expired)} idle session(s)")
        return expired

    async def close(self) -> None:
        for session, _ in list(self._sessions.values()):
            await session.stop()
        self._sessions.clear()
