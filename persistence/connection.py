"""
Redis Connection

Process-wide client for the Redis trust-history backend. The connection
is opened lazily the first time the backend is selected, so the engine
runs without Redis when TRUST_HISTORY_BACKEND=memory.
"""

import os
import logging
from functools import lru_cache

import redis
from redis.exceptions import RedisError, AuthenticationError

logger = logging.getLogger(__name__)

POOL_SIZE = 20
SOCKET_TIMEOUT_S = 2.0


def _build_client() -> redis.Redis:
    url = os.getenv("REDIS_URL")
    if url:
        return redis.Redis.from_url(
            url,
            decode_responses=True,
            max_connections=POOL_SIZE,
            socket_timeout=SOCKET_TIMEOUT_S,
        )

    password = os.getenv("REDIS_PASSWORD") or None
    if password is None:
        logger.warning("REDIS_PASSWORD is not set; connecting without authentication")

    pool = redis.ConnectionPool(
        host=os.getenv("REDIS_HOST", "localhost"),
        port=int(os.getenv("REDIS_PORT", 6379)),
        db=int(os.getenv("REDIS_DB", 0)),
        password=password,
        decode_responses=True,
        max_connections=POOL_SIZE,
        socket_timeout=SOCKET_TIMEOUT_S,
    )
    return redis.Redis(connection_pool=pool)


@lru_cache(maxsize=1)
def get_redis_client() -> redis.Redis:
    """
    Shared Redis client, verified with a PING.

    Configuration (environment):
    - REDIS_URL: full connection URL; takes precedence when set
    - REDIS_HOST / REDIS_PORT / REDIS_DB: defaults localhost / 6379 / 0
    - REDIS_PASSWORD: optional
    """
    client = _build_client()
    try:
        client.ping()
    except AuthenticationError:
        logger.critical("Redis rejected the credentials for the trust-history store")
        raise
    except RedisError as e:
        logger.critical(f"Trust-history Redis unreachable: {e}")
        raise

    kwargs = client.connection_pool.connection_kwargs
    logger.info(f"Trust history using Redis at {kwargs.get('host')}:{kwargs.get('port')}/{kwargs.get('db')}")
    return client


def reset_redis_client() -> None:
    """Forget the cached client (after changing REDIS_* variables)."""
    get_redis_client.cache_clear()
