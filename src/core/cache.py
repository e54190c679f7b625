import json
import logging
from typing import Any, Optional

import redis

from src.core.config import ORDERS_CACHE_TTL_SECONDS, REDIS_URL

logger = logging.getLogger(__name__)


def generation_key(key: str) -> str:
    return f"{key}:generation"


class RedisCache:
    """
    JSON cache on top of Redis.

    Every ``remove`` bumps a per-key generation counter. A reader takes the
    generation before loading from the database and passes it to ``set``; the
    write is dropped if an invalidation happened in between, so a slow reader
    cannot put back data older than a committed change.

    The cache is an optimization only: Redis errors are logged and reported as
    a miss (reads) or ignored (writes and invalidations).
    """

    def __init__(self, client: redis.Redis, default_ttl: int = ORDERS_CACHE_TTL_SECONDS):
        self.client = client
        self.default_ttl = default_ttl

    def get(self, key: str) -> Optional[Any]:
        try:
            cached = self.client.get(key)
        except redis.RedisError as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None
        if cached is None:
            return None
        return json.loads(cached)

    def generation(self, key: str) -> Optional[int]:
        """Current invalidation count of ``key``; None when Redis is unavailable"""
        try:
            return int(self.client.get(generation_key(key)) or 0)
        except redis.RedisError as e:
            logger.warning(f"Cache generation read failed for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None, generation: Optional[int] = None) -> None:
        payload = json.dumps(value, default=str)
        expiry = ttl or self.default_ttl
        try:
            if generation is None:
                self.client.set(key, payload, ex=expiry)
                return

            with self.client.pipeline() as pipe:
                pipe.watch(generation_key(key))
                current = int(pipe.get(generation_key(key)) or 0)
                if current != generation:
                    logger.info(f"Cache write for {key} dropped: invalidated while loading")
                    return
                pipe.multi()
                pipe.set(key, payload, ex=expiry)
                pipe.execute()
        except redis.WatchError:
            logger.info(f"Cache write for {key} dropped: invalidated during write")
        except redis.RedisError as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    def remove(self, key: str) -> None:
        try:
            with self.client.pipeline() as pipe:
                pipe.incr(generation_key(key))
                pipe.delete(key)
                pipe.execute()
        except redis.RedisError as e:
            logger.warning(f"Cache invalidation failed for {key}: {e}")


redis_client = redis.Redis.from_url(REDIS_URL, decode_responses=True, socket_connect_timeout=1)


def get_cache() -> RedisCache:
    """Cache dependency for FastAPI"""
    return RedisCache(redis_client)
