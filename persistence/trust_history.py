"""
Trust Score History

Rolling history of overall trust scores, keyed by device hash so that
consistency can be judged across sessions of the same device.

Backends:
    InMemoryTrustHistory - thread-safe dict, process lifetime
    RedisTrustHistory    - JSON list per key with a sliding TTL

Key Schema (Redis):
    TRUST_HISTORY:{key} → JSON array of the last N overall scores
"""

from __future__ import annotations

import json
import logging
import os
import threading
from typing import Dict, List, Optional

import redis
from redis.exceptions import RedisError

from .connection import get_redis_client

logger = logging.getLogger(__name__)


DEFAULT_HISTORY_SIZE = 10


def _check_size(max_size: int) -> int:
    if max_size < 1:
        raise ValueError(f"max_size must be positive, got {max_size}")
    return max_size


class InMemoryTrustHistory:
    """Thread-safe in-process history store."""

    def __init__(self, max_size: int = DEFAULT_HISTORY_SIZE) -> None:
        self.max_size = _check_size(max_size)
        self._store: Dict[str, List[float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> List[float]:
        with self._lock:
            return list(self._store.get(key, []))

    def append(self, key: str, score: float) -> List[float]:
        with self._lock:
            history = self._store.setdefault(key, [])
            history.append(float(score))
            # Keep only the last N scores
            del history[:-self.max_size]
            return list(history)

    def clear(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._store.clear()
            else:
                self._store.pop(key, None)


class RedisTrustHistory:
    """
    Redis-backed history store.

    Read failures degrade to an empty history and write failures are
    logged; trust scoring never fails because Redis is down.
    """

    HISTORY_TTL: int = 7 * 24 * 3600  # 7 days

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        max_size: int = DEFAULT_HISTORY_SIZE,
    ) -> None:
        self.max_size = _check_size(max_size)
        self.client = client if client is not None else get_redis_client()

    def _key(self, key: str) -> str:
        return f"TRUST_HISTORY:{key}"

    def get(self, key: str) -> List[float]:
        try:
            data = self.client.get(self._key(key))
            if data is None:
                return []
            return [float(v) for v in json.loads(data)]
        except (RedisError, json.JSONDecodeError, TypeError, ValueError) as e:
            logger.error(f"Failed to get trust history {key}: {e}")
            return []

    def append(self, key: str, score: float) -> List[float]:
        history = self.get(key)
        history.append(float(score))
        history = history[-self.max_size:]
        try:
            self.client.setex(self._key(key), self.HISTORY_TTL, json.dumps(history))
        except RedisError as e:
            logger.error(f"Failed to save trust history {key}: {e}")
        return history

    def clear(self, key: Optional[str] = None) -> None:
        if key is None:
            return
        try:
            self.client.delete(self._key(key))
        except RedisError as e:
            logger.warning(f"Failed to clear trust history {key}: {e}")


def get_trust_history(max_size: int = DEFAULT_HISTORY_SIZE):
    """
    History store selected by TRUST_HISTORY_BACKEND ("memory" or "redis").
    """
    backend = os.getenv("TRUST_HISTORY_BACKEND", "memory").lower()
    if backend == "redis":
        return RedisTrustHistory(max_size=max_size)
    if backend != "memory":
        logger.warning(f"Unknown TRUST_HISTORY_BACKEND={backend!r}, using memory")
    return InMemoryTrustHistory(max_size=max_size)
