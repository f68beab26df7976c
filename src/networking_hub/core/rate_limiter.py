"""Token bucket rate limiting for outbound Gmail API calls.

Gmail allows 250 quota units per user per second, and a full message
fetch costs 5 units. The default bucket keeps well under that so a burst
of push notifications cannot trip 429 responses.

Usage:
    from networking_hub.core.rate_limiter import get_bucket

    bucket = get_bucket("gmail", rate=10.0, capacity=10)
    bucket.consume_sync()  # blocks briefly when empty
"""

import threading
import time

from networking_hub.core.errors import RateLimitExceeded
from networking_hub.core.logging import get_logger

logger = get_logger(__name__)

# Longest a caller will block waiting for a token
MAX_WAIT_SECONDS = 20.0


class TokenBucket:
    """Token bucket rate limiter.

    Tokens refill continuously at ``rate`` per second up to ``capacity``.
    Each request consumes one token and sleeps when none is available.
    """

    def __init__(
        self,
        rate: float = 1.0,
        capacity: int = 1,
        initial_tokens: float | None = None,
    ):
        """Initialize a token bucket rate limiter.

        Args:
            rate: Token refill rate per second
            capacity: Maximum number of tokens in the bucket
            initial_tokens: Initial number of tokens in the bucket (defaults to capacity)
        """
        self.rate = rate
        self.capacity = capacity
        self.tokens = float(capacity if initial_tokens is None else initial_tokens)
        self.last_refill = time.monotonic()
        self._lock = threading.Lock()

    def consume_sync(self, tokens: int = 1) -> bool:
        """Consume tokens, sleeping until they are available.

        Args:
            tokens: Number of tokens to consume

        Returns:
            True if tokens were consumed

        Raises:
            RateLimitExceeded: If the request exceeds capacity or the wait
                would be longer than MAX_WAIT_SECONDS
        """
        if tokens > self.capacity:
            raise RateLimitExceeded(
                f"Requested tokens ({tokens}) exceed bucket capacity ({self.capacity})"
            )

        with self._lock:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return True

            wait_time = (tokens - self.tokens) / self.rate
            if wait_time > MAX_WAIT_SECONDS:
                logger.warning("rate_limit_wait_too_long", wait_time=wait_time)
                raise RateLimitExceeded(f"Rate limit exceeded, would require {wait_time:.2f}s wait")

        logger.debug("rate_limit_waiting", wait_time=wait_time)
        time.sleep(wait_time)

        with self._lock:
            self._refill()
            if self.tokens < tokens:
                raise RateLimitExceeded("Failed to get enough tokens even after waiting")
            self.tokens -= tokens
            return True

    def _refill(self) -> None:
        """Refill tokens based on elapsed time."""
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
        self.last_refill = now


# Shared buckets keyed by service name
_buckets: dict[str, TokenBucket] = {}
_buckets_lock = threading.Lock()


def get_bucket(name: str = "default", rate: float = 1.0, capacity: int = 1) -> TokenBucket:
    """Get or create a token bucket for the given name.

    Args:
        name: Bucket name/identifier
        rate: Token refill rate if creating a new bucket
        capacity: Token capacity if creating a new bucket

    Returns:
        TokenBucket instance
    """
    with _buckets_lock:
        if name not in _buckets:
            _buckets[name] = TokenBucket(rate=rate, capacity=capacity)
        return _buckets[name]
