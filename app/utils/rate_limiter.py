"""
Rate limiting middleware for API endpoints
"""
import time
from collections import defaultdict, deque
from fastapi import Request, HTTPException
from typing import Deque, Dict, Optional
import jwt
import logging

from app.config import settings

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    In-memory sliding-window rate limiter, per actor (or client IP)

    Counts are per process; a multi-worker deployment needs a shared store.
    """

    def __init__(
        self,
        requests_per_minute: int = 60,
        requests_per_hour: int = 1000,
        secret: Optional[str] = None
    ):
        self.requests_per_minute = requests_per_minute
        self.requests_per_hour = requests_per_hour
        self.secret = secret or settings.AUTH_SECRET

        # {client_id: deque of request timestamps within the last hour}
        self.history: Dict[str, Deque[float]] = defaultdict(deque)

    def _get_client_id(self, request: Request) -> str:
        """Subject of a validly signed token, client IP otherwise"""
        auth = request.headers.get("authorization", "")
        if auth.lower().startswith("bearer "):
            try:
                claims = jwt.decode(auth[7:], self.secret, algorithms=["HS256"])
                if claims.get("sub"):
                    return f"user:{claims['sub']}"
            except jwt.PyJWTError:
                pass

        return request.client.host if request.client else "unknown"

    def _cleanup_old_entries(self, now: float):
        """Drop timestamps older than the hour window and clients left with none"""
        cutoff = now - 3600
        for client_id in list(self.history.keys()):
            history = self.history[client_id]
            while history and history[0] <= cutoff:
                history.popleft()
            if not history:
                del self.history[client_id]

    def _reject(self, client_id: str, limit: int, window: str, retry_after: int):
        logger.warning(f"Rate limit exceeded ({window}): {client_id}")
        raise HTTPException(
            status_code=429,
            detail={
                "error": "rate_limit_exceeded",
                "message": f"Too many requests. Limit: {limit} requests per {window}",
                "retry_after": retry_after
            }
        )

    async def check_rate_limit(self, request: Request) -> None:
        """
        Check if request exceeds rate limits

        Raises:
            HTTPException: 429 if rate limit exceeded
        """
        client_id = self._get_client_id(request)
        now = time.time()

        self._cleanup_old_entries(now)
        history = self.history[client_id]

        minute_requests = sum(1 for ts in history if ts > now - 60)
        if minute_requests >= self.requests_per_minute:
            self._reject(client_id, self.requests_per_minute, "minute", 60)

        if len(history) >= self.requests_per_hour:
            self._reject(client_id, self.requests_per_hour, "hour", 3600)

        history.append(now)
        logger.debug(f"Rate limit check passed: {client_id} (minute: {minute_requests+1}, hour: {len(history)})")


# Global instance
rate_limiter = RateLimiter(
    requests_per_minute=settings.RATE_LIMIT_PER_MINUTE,
    requests_per_hour=settings.RATE_LIMIT_PER_HOUR
)
