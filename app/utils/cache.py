"""
Redis cache utility for redacted question views
"""
import redis
import json
import logging
from functools import lru_cache
from typing import Optional, Any
from app.config import settings

logger = logging.getLogger(__name__)


class CacheService:
    """
    Redis-based read-through cache

    A missing or unreachable redis disables caching; callers always fall
    back to the database, so cache failures never fail a request.
    """

    def __init__(self, redis_client=None, ttl: Optional[int] = None):
        self.redis_client = redis_client
        self.ttl = ttl or settings.QUESTION_CACHE_TTL

    @classmethod
    def from_settings(cls) -> "CacheService":
        if not settings.CACHE_ENABLED:
            logger.info("Caching disabled by configuration")
            return cls(redis_client=None)

        try:
            client = redis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
                socket_connect_timeout=5
            )
            # Test connection
            client.ping()
            logger.info("Redis connection established")
            return cls(redis_client=client)
        except redis.RedisError as e:
            logger.warning(f"Redis connection failed: {str(e)}. Caching disabled.")
            return cls(redis_client=None)

    @property
    def enabled(self) -> bool:
        return self.redis_client is not None

    @staticmethod
    def question_view_key(quiz_id: str) -> str:
        """Cache key for a quiz's redacted question list"""
        return f"quiz:{quiz_id}:questions:public"

    def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache

        Args:
            key: Cache key

        Returns:
            Cached value or None
        """
        if not self.redis_client:
            return None

        try:
            value = self.redis_client.get(key)
            if value:
                logger.debug(f"Cache hit: {key}")
                return json.loads(value)
            logger.debug(f"Cache miss: {key}")
            return None
        except (redis.RedisError, ValueError) as e:
            logger.error(f"Cache get error: {str(e)}")
            return None

    def set(self, key: str, value: Any, ttl: int = None) -> bool:
        """
        Set value in cache

        Args:
            key: Cache key
            value: Value to cache (must be JSON serializable)
            ttl: Time to live in seconds (default from settings)

        Returns:
            Success status
        """
        if not self.redis_client:
            return False

        try:
            ttl = ttl or self.ttl
            self.redis_client.setex(key, ttl, json.dumps(value))
            logger.debug(f"Cache set: {key} (TTL: {ttl}s)")
            return True
        except (redis.RedisError, TypeError) as e:
            logger.error(f"Cache set error: {str(e)}")
            return False

    def delete(self, key: str) -> bool:
        """Delete key from cache"""
        if not self.redis_client:
            return False

        try:
            self.redis_client.delete(key)
            logger.info(f"Cache delete: {key}")
            return True
        except redis.RedisError as e:
            logger.error(f"Cache delete error: {str(e)}")
            return False

    def invalidate_quiz(self, quiz_id: str) -> bool:
        """Drop cached question views after the quiz's bank changes"""
        return self.delete(self.question_view_key(quiz_id))


@lru_cache
def get_cache_service() -> CacheService:
    """Process-wide cache, built on first use"""
    return CacheService.from_settings()
