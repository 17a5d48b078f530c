import json
import hashlib
from typing import Dict, Optional

import redis

from timeblock.config.settings import get_settings

settings = get_settings()


class ScheduleCache:
    def __init__(self, redis_url: str = settings.redis_url, ttl_seconds: int = settings.cache_ttl_seconds):
        self.redis_client = redis.from_url(redis_url, decode_responses=True)
        self.ttl_seconds = ttl_seconds

    def get(self, request_hash: str) -> Optional[Dict]:
        """Retrieve cached scheduling response by request hash."""
        cached = self.redis_client.get(f"timeblocks:{request_hash}")
        if cached:
            return json.loads(cached)
        return None

    def set(self, request_hash: str, response: Dict, ttl_seconds: Optional[int] = None) -> None:
        """Cache a scheduling response with TTL (default from settings)."""
        self.redis_client.setex(
            f"timeblocks:{request_hash}",
            ttl_seconds or self.ttl_seconds,
            json.dumps(response, default=str)
        )

    def delete(self, request_hash: str) -> None:
        """Invalidate cache entry."""
        self.redis_client.delete(f"timeblocks:{request_hash}")

    @staticmethod
    def hash_request(payload: Dict) -> str:
        """
        Hash of a full scheduling request, including "now" and the busy
        intervals, so identical inputs map to the same key.
        """
        data = json.dumps(payload, sort_keys=True, default=str)
        return hashlib.sha256(data.encode()).hexdigest()[:16]


_cache: Optional[ScheduleCache] = None


def get_cache() -> Optional[ScheduleCache]:
    """FastAPI dependency; None when caching is disabled."""
    global _cache
    if not settings.cache_enabled:
        return None
    if _cache is None:
        _cache = ScheduleCache()
    return _cache
