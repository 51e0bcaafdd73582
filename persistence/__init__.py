"""
Behavioral Engine Persistence Layer

Public exports for the Redis connection and the trust-history stores.
"""

from .connection import get_redis_client, reset_redis_client
from .trust_history import (
    InMemoryTrustHistory,
    RedisTrustHistory,
    get_trust_history,
)

__all__ = [
    "get_redis_client",
    "reset_redis_client",
    "InMemoryTrustHistory",
    "RedisTrustHistory",
    "get_trust_history",
]
