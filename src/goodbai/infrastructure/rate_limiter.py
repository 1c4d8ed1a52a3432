"""
Rate limiting for external API calls.

Two different tools live here:

1. RetryPolicy - REACTIVE handling of Spotify 429s. Reads Retry-After (seconds or an
   HTTP date), falls back to exponential backoff (base * 2^attempt), and refuses to
   sleep longer than a ceiling. Spotify can send Retry-After of an HOUR after heavy use;
   sleeping that long would freeze the scan, so we fail fast with RateLimited instead.

2. RateLimiter - PROACTIVE token bucket used for Deezer (50 requests / 5 seconds per IP).
   Deezer reports its rate limit as error code 4 inside a 200 response, so the client
   calls handle_rate_limit_response() itself.

USAGE:
    limiter = RateLimiter.for_deezer()
    async with limiter:
        response = await client.get(url)

    policy = RetryPolicy()
    wait = policy.wait_for(response.headers.get("Retry-After"), attempt)
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime

logger = logging.getLogger(__name__)


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """Parse a Retry-After header into seconds.

    Accepts delta-seconds ("10", "2.5") or an HTTP date, in which case the wait is the
    date minus now (never negative). Returns None if absent or unparsable.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None

    try:
        return max(0.0, float(value))
    except ValueError:
        pass

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug("Unparsable Retry-After header: %r", value)
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=UTC)
    now = now or datetime.now(UTC)
    return max(0.0, (retry_at - now).total_seconds())


@dataclass(frozen=True)
class RetryPolicy:
    """How many times and how long to wait on HTTP 429.

    Attributes:
        max_attempts: Total attempts including the first request
        max_retry_after_seconds: Waits above this fail immediately instead of sleeping
        backoff_base_seconds: Base for exponential backoff when Retry-After is absent
    """

    max_attempts: int = 3
    max_retry_after_seconds: float = 30.0
    backoff_base_seconds: float = 5.0

    def backoff_for(self, attempt: int) -> float:
        """Exponential backoff for a zero-based attempt number."""
        return self.backoff_base_seconds * (2**attempt)

    def wait_for(
        self, retry_after: str | None, attempt: int, now: datetime | None = None
    ) -> float:
        """Seconds to wait before retrying after a 429 on the given attempt."""
        parsed = parse_retry_after(retry_after, now=now)
        return parsed if parsed is not None else self.backoff_for(attempt)

    def exceeds_ceiling(self, wait_seconds: float) -> bool:
        return wait_seconds > self.max_retry_after_seconds

    def has_attempts_left(self, attempt: int) -> bool:
        """Whether a retry may follow the zero-based attempt that just failed."""
        return attempt + 1 < self.max_attempts


@dataclass
class RateLimiterConfig:
    """Configuration for the token bucket."""

    max_tokens: int = 10  # Bucket size
    refill_rate: float = 2.0  # Tokens per second
    max_backoff_seconds: float = 30.0
    initial_backoff_seconds: float = 1.0
    backoff_multiplier: float = 2.0


@dataclass
class RateLimiter:
    """Token bucket rate limiter with adaptive backoff.

    Use as an async context manager; a clean exit resets the backoff.
    """

    config: RateLimiterConfig = field(default_factory=RateLimiterConfig)
    name: str = "default"

    _tokens: float = field(default=0.0, init=False)
    _last_refill: float = field(default_factory=time.monotonic, init=False)
    _current_backoff: float = field(default=0.0, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    def __post_init__(self) -> None:
        self._tokens = float(self.config.max_tokens)
        self._current_backoff = self.config.initial_backoff_seconds

    @classmethod
    def for_deezer(cls) -> "RateLimiter":
        """Limiter tuned for Deezer: ~50 requests / 5 seconds, we use half."""
        return cls(
            config=RateLimiterConfig(
                max_tokens=15,
                refill_rate=5.0,
                max_backoff_seconds=30.0,
                initial_backoff_seconds=0.5,
            ),
            name="deezer",
        )

    def _refill_tokens(self) -> None:
        now = time.monotonic()
        elapsed = now - self._last_refill
        self._tokens = min(self.config.max_tokens, self._tokens + elapsed * self.config.refill_rate)
        self._last_refill = now

    async def acquire(self) -> None:
        """Acquire one token, waiting if the bucket is empty."""
        async with self._lock:
            self._refill_tokens()

            while self._tokens < 1.0:
                wait_time = (1.0 - self._tokens) / self.config.refill_rate
                logger.debug(
                    "RateLimiter[%s]: no tokens available, waiting %.2fs", self.name, wait_time
                )
                # Release lock while waiting
                self._lock.release()
                try:
                    await asyncio.sleep(wait_time)
                finally:
                    await self._lock.acquire()
                self._refill_tokens()

            self._tokens -= 1.0

    async def handle_rate_limit_response(self, retry_after: float | None = None) -> float:
        """Back off after the upstream signalled a rate limit.

        Returns:
            The wait time actually used
        """
        async with self._lock:
            wait_time = retry_after if retry_after is not None else self._current_backoff
            wait_time = min(wait_time, self.config.max_backoff_seconds)

            logger.warning(
                "RateLimiter[%s]: rate limited, waiting %.1fs (backoff level %.1fs)",
                self.name,
                wait_time,
                self._current_backoff,
            )

            self._current_backoff = min(
                self._current_backoff * self.config.backoff_multiplier,
                self.config.max_backoff_seconds,
            )
            self._tokens = 0.0

        await asyncio.sleep(wait_time)
        return wait_time

    def reset_backoff(self) -> None:
        self._current_backoff = self.config.initial_backoff_seconds

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: Exception | None, exc_tb: object
    ) -> None:
        if exc_type is None:
            self.reset_backoff()

    @property
    def available_tokens(self) -> float:
        self._refill_tokens()
        return self._tokens


__all__ = [
    "RateLimiter",
    "RateLimiterConfig",
    "RetryPolicy",
    "parse_retry_after",
]
