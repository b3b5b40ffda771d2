#
# SPDX-License-Identifier: AGPL-3.0-only
# Copyright (c) 2026 m2-eng
# Author: m2-eng
# Co-Author: GitHub Copilot
# License: GNU Affero General Public License v3.0 (AGPL-3.0-only)
# Purpose: Fixed-window rate limiting for sensitive routes.
#
"""
Fixed-window rate limiting for sensitive routes.

Counters are ephemeral. They live either in process memory or in Redis
when several workers must share one budget. If the counter backend is
unreachable the limiter fails open: the request is allowed and a warning
is logged, so login and refresh stay reachable in degraded mode.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_MS = 5 * 60 * 1000


@dataclass(frozen=True)
class RateLimitPolicy:
    """Per-route limit: ``limit`` hits per ``window_ms`` for one client."""

    limit: int = 3
    window_ms: int = 2000
    key_prefix: str = "auth"
    backoff: bool = True
    max_backoff_ms: int = 60_000

    def __post_init__(self):
        if self.limit < 1:
            raise ValueError("Rate limit must allow at least one request")
        if self.window_ms <= 0:
            raise ValueError("Rate limit window must be positive")

    def key_for(self, identity: str) -> str:
        return f"{self.key_prefix}:{identity}"


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after_ms: int = 0


class InMemoryCounterBackend:
    """
    Process-local fixed-window counters.

    Buckets whose window has elapsed are dropped every 5 minutes.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.monotonic
        self._buckets: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()
        self._last_cleanup = self._now_ms()

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def hit(self, key: str, window_ms: int) -> Tuple[int, int]:
        """
        Counts one hit.

        Returns:
            (hits in the current window, milliseconds until the window resets)
        """
        now = self._now_ms()
        with self._lock:
            if now - self._last_cleanup >= CLEANUP_INTERVAL_MS:
                self._cleanup(now)
            count, window_end = self._buckets.get(key, (0, 0.0))
            if window_end <= now:
                count, window_end = 0, now + window_ms
            count += 1
            self._buckets[key] = (count, window_end)
        return count, max(1, int(window_end - now))

    def reset(self, key: str) -> None:
        with self._lock:
            self._buckets.pop(key, None)

    def _cleanup(self, now: float) -> None:
        expired = [key for key, (_, window_end) in self._buckets.items() if window_end <= now]
        for key in expired:
            del self._buckets[key]
        self._last_cleanup = now
        if expired:
            logger.debug("Rate limiter: dropped %s elapsed buckets", len(expired))

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)


class RedisCounterBackend:
    """Counters shared through Redis (INCR + PTTL, PEXPIRE on the first hit)."""

    def __init__(self, client, namespace: str = "rate_limit"):
        self.client = client
        self.namespace = namespace

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisCounterBackend":
        from redis import Redis

        return cls(Redis.from_url(url, socket_timeout=0.5, socket_connect_timeout=0.5), **kwargs)

    def hit(self, key: str, window_ms: int) -> Tuple[int, int]:
        redis_key = f"{self.namespace}:{key}"
        pipe = self.client.pipeline()
        pipe.incr(redis_key)
        pipe.pttl(redis_key)
        count, ttl_ms = pipe.execute()
        ttl_ms = int(ttl_ms)
        if ttl_ms < 0:
            # First hit of the window (or a key that lost its expiry)
            self.client.pexpire(redis_key, window_ms)
            ttl_ms = window_ms
        return int(count), max(1, ttl_ms)

    def reset(self, key: str) -> None:
        self.client.delete(f"{self.namespace}:{key}")


class RateLimiter:
    """Checks hits against a limit/window policy on top of a counter backend."""

    def __init__(self, backend):
        self.backend = backend

    def check(
        self,
        key: str,
        limit: int,
        window_ms: int,
        backoff: bool = False,
        max_backoff_ms: int = 60_000,
    ) -> RateLimitDecision:
        """
        Counts one hit for ``key`` and decides whether it may proceed.

        Denied hits also count. With ``backoff`` the retry hint doubles per
        further denial inside the same window, capped at ``max_backoff_ms``
        but never below the time left in the window.

        Returns:
            RateLimitDecision (allowed when the backend fails)
        """
        try:
            count, window_left_ms = self.backend.hit(key, window_ms)
        except Exception as exc:
            logger.warning("Rate limiter backend unavailable, allowing request (%s): %s", key, exc)
            return RateLimitDecision(allowed=True, remaining=limit)

        if count <= limit:
            return RateLimitDecision(allowed=True, remaining=limit - count)

        retry_after_ms = window_left_ms
        if backoff:
            denials = count - limit
            hinted = min(window_left_ms * 2 ** (denials - 1), max_backoff_ms)
            retry_after_ms = max(window_left_ms, hinted)
        return RateLimitDecision(allowed=False, remaining=0, retry_after_ms=int(retry_after_ms))

    def check_policy(self, policy: RateLimitPolicy, identity: str) -> RateLimitDecision:
        return self.check(
            policy.key_for(identity),
            policy.limit,
            policy.window_ms,
            backoff=policy.backoff,
            max_backoff_ms=policy.max_backoff_ms,
        )

    def reset(self, policy: RateLimitPolicy, identity: str) -> None:
        try:
            self.backend.reset(policy.key_for(identity))
        except Exception as exc:
            logger.warning("Rate limiter reset failed for %s: %s", policy.key_for(identity), exc)
