"""
Send-surface resilience.

- IdempotencyCache: replays the first response recorded for a client token;
  a token is claimed while its first request is in flight
- RateLimiter: fixed-window admission control shared by every send route

Both stores are process-wide and shared across concurrent requests;
each guards its state with a lock.
"""

import asyncio
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class IdempotencyEntry:
    """Recorded response for one idempotency token."""

    status_code: int
    body: Any
    expires_at: float


class IdempotencyCache:
    """
    In-memory idempotency store.

    Entries are honored while now < expires_at and never overwritten
    while live (first response wins). A token whose first request is still
    running is claimed: duplicates wait in acquire() for its outcome.

    Args:
        ttl_s: Lifetime of an entry in seconds
        clock: Monotonic time source (injectable for tests)
    """

    DEFAULT_TTL_S = 5 * 60

    def __init__(self, ttl_s: float = DEFAULT_TTL_S, clock: Clock = time.monotonic):
        self.ttl_s = ttl_s
        self._clock = clock
        self._entries: Dict[str, IdempotencyEntry] = {}
        self._in_flight: Dict[str, asyncio.Event] = {}
        self._lock = threading.Lock()

    def get(self, key: Optional[str]) -> Optional[IdempotencyEntry]:
        """Live entry for a token, None on miss or expiry."""
        if not key:
            return None
        with self._lock:
            return self._live(key)

    async def acquire(self, key: Optional[str]) -> Optional[IdempotencyEntry]:
        """
        Live entry for a token, or None once the caller holds the token's claim.

        While another request holds the claim this waits for it to finish.
        A caller that gets None must call release(key) when done.
        """
        if not key:
            return None
        while True:
            with self._lock:
                entry = self._live(key)
                if entry is not None:
                    return entry
                done = self._in_flight.get(key)
                if done is None:
                    self._in_flight[key] = asyncio.Event()
                    return None
            logger.info(f"Waiting for in-flight request with idempotency key {key}")
            await done.wait()

    def release(self, key: Optional[str]) -> None:
        """Drop the claim on a token and wake requests waiting on it."""
        if not key:
            return
        with self._lock:
            done = self._in_flight.pop(key, None)
        if done is not None:
            done.set()

    def put(self, key: Optional[str], status_code: int, body: Any) -> None:
        """Record a response unless a live entry already exists."""
        if not key:
            return
        with self._lock:
            now = self._clock()
            self._purge(now)
            if key in self._entries:
                logger.debug(f"Idempotency key already recorded: {key}")
                return
            self._entries[key] = IdempotencyEntry(
                status_code=status_code,
                body=body,
                expires_at=now + self.ttl_s,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _live(self, key: str) -> Optional[IdempotencyEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry

    def _purge(self, now: float) -> None:
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]


class RateLimiter:
    """
    Global fixed-window limiter.

    Admits at most max_requests within any trailing window_ms; rejected
    requests are not recorded.

    Args:
        window_ms: Window length in milliseconds
        max_requests: Requests admitted per window
        clock: Monotonic time source in seconds (injectable for tests)
    """

    def __init__(self, window_ms: int = 1000, max_requests: int = 3, clock: Clock = time.monotonic):
        self.window_ms = window_ms
        self.max_requests = max_requests
        self._clock = clock
        self._timestamps: Deque[float] = deque()
        self._lock = threading.Lock()

    def try_acquire(self) -> bool:
        """Admit and record one request, or refuse it."""
        with self._lock:
            now = self._clock()
            window_start = now - self.window_ms / 1000
            while self._timestamps and self._timestamps[0] <= window_start:
                self._timestamps.popleft()

            if len(self._timestamps) >= self.max_requests:
                logger.warning(
                    "Send rate limit exceeded",
                    extra={"window_ms": self.window_ms, "max_requests": self.max_requests},
                )
                return False

            self._timestamps.append(now)
            return True
