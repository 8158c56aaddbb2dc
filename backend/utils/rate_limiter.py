"""Rate limiting for assistant messages"""
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

logger = logging.getLogger(__name__)

ASSISTANT_MESSAGES_PER_MINUTE = 30

class RateLimiter:
    def __init__(self):
        # In-memory sliding window per key, per process
        self.attempts = {}

    async def check_rate_limit(
        self,
        key: str,
        max_attempts: int,
        window_minutes: int
    ) -> tuple[bool, Optional[str]]:
        """
        Check and record one attempt for key.

        Returns:
            (allowed: bool, error_message: Optional[str])
        """
        now = datetime.now(timezone.utc)
        window = timedelta(minutes=window_minutes)

        recent = [ts for ts in self.attempts.get(key, []) if now - ts < window]
        self.attempts[key] = recent

        if len(recent) >= max_attempts:
            wait_seconds = max(1, int((min(recent) + window - now).total_seconds()))
            logger.warning(f"Rate limit hit for {key}: {len(recent)} attempts in {window_minutes}m")
            return False, f"Too many messages. Try again in {wait_seconds} seconds"

        recent.append(now)
        return True, None

    def reset(self, key: Optional[str] = None):
        """Forget recorded attempts for one key, or all keys."""
        if key is None:
            self.attempts.clear()
        else:
            self.attempts.pop(key, None)

rate_limiter = RateLimiter()
