"""
Health endpoint reporting database reachability and pool usage.
"""

import logging
import threading
import time
from typing import Callable, Optional

from fastapi import APIRouter, Depends

from api.auth_context import AuthContext, get_auth_context

logger = logging.getLogger("uvicorn.error")

router = APIRouter(tags=["health"])

OK = "ok"
UNAVAILABLE = "unavailable"
NOT_CONFIGURED = "not_configured"


class DatabaseHealth:
    """
    Cached SELECT 1 probe through the pool.

    The probe result is reused for ``cache_seconds`` so health polling
    does not compete with request traffic for connections.
    """

    def __init__(
        self,
        pool=None,
        cache_seconds: float = 5.0,
        probe_timeout: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.pool = pool
        self.cache_seconds = cache_seconds
        self.probe_timeout = probe_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._status: Optional[str] = None
        self._checked_at = 0.0

    def status(self) -> str:
        if self.pool is None:
            return NOT_CONFIGURED

        with self._lock:
            now = self._clock()
            if self._status is not None and now - self._checked_at < self.cache_seconds:
                return self._status

            healthy = self.pool.is_open and self.pool.health_check(timeout=self.probe_timeout)
            self._status = OK if healthy else UNAVAILABLE
            self._checked_at = now
            if not healthy:
                logger.warning("Database health check failed: %s", getattr(self.pool, "last_error", None))
            return self._status


@router.get("/health")
def health(context: AuthContext = Depends(get_auth_context)):
    pool = context.pool_manager
    return {
        "status": "ok",
        "database": context.health.status(),
        "pool": pool.stats() if pool is not None else None,
    }
