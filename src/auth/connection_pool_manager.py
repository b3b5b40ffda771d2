#
# SPDX-License-Identifier: AGPL-3.0-only
# Copyright (c) 2026 m2-eng
# Author: m2-eng
# Co-Author: GitHub Copilot
# License: GNU Affero General Public License v3.0 (AGPL-3.0-only)
# Purpose: Bounded MySQL connection pool for session persistence.
#
"""
Bounded MySQL connection pool for session persistence.
"""

import logging
import math
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Iterator, Optional, Set

import mysql.connector
from mysql.connector import Error
from mysql.connector.errors import InterfaceError, OperationalError

from .errors import (
    AuthError,
    BackingStoreUnavailableError,
    PoolAcquireTimeoutError,
    PoolExhaustedError,
)
from .network import resolve_host, should_use_tls

logger = logging.getLogger(__name__)


@dataclass
class PoolSettings:
    """Connection and sizing parameters of a pool. Durations are in seconds."""

    host: str
    user: str
    database: str
    password: str = ""
    port: int = 3306
    min_size: int = 1
    max_size: int = 5
    acquire_timeout: float = 10.0
    connect_timeout: float = 10.0
    statement_timeout_ms: int = 15000
    idle_timeout: float = 30.0
    reap_interval: float = 10.0
    keepalive_interval: float = 60.0
    require_tls: Optional[bool] = None
    tls_verify: bool = True
    # Off only by explicit opt-in; connecting to the resolved address then skips the host name check.
    tls_verify_identity: bool = True
    tls_ca: Optional[str] = None

    def validate(self) -> None:
        if self.max_size < 1:
            raise ValueError("max_size must be at least 1")
        if self.min_size < 0 or self.min_size > self.max_size:
            raise ValueError("min_size must be between 0 and max_size")
        if self.acquire_timeout < 0:
            raise ValueError("acquire_timeout must not be negative")


class PooledConnection:
    """Leased handle around a driver connection."""

    def __init__(self, raw, created_at: float):
        self.raw = raw
        self.created_at = created_at
        self.last_used = created_at
        self.broken = False

    def cursor(self, *args, **kwargs):
        return self.raw.cursor(*args, **kwargs)

    def commit(self) -> None:
        self.raw.commit()

    def rollback(self) -> None:
        self.raw.rollback()

    def mark_broken(self) -> None:
        """Flags the connection so release() discards it."""
        self.broken = True


class ConnectionPoolManager:
    """
    Owns a bounded set of MySQL connections.

    Lifecycle is explicit: open() resolves the host once and decides on
    TLS, warmup() establishes the minimum connections in parallel and
    close() tears everything down. acquire() never waits longer than its
    timeout and never retries on its own.
    """

    def __init__(
        self,
        settings: PoolSettings,
        connect_fn: Optional[Callable[..., object]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initializes the pool manager.

        Args:
            settings: Pool settings
            connect_fn: Driver connect function (default: mysql.connector.connect)
            clock: Monotonic clock used for idle bookkeeping
        """
        settings.validate()
        self.settings = settings
        self._connect_fn = connect_fn or mysql.connector.connect
        self._clock = clock
        self._cond = threading.Condition()
        self._idle: Deque[PooledConnection] = deque()
        self._leased: Set[PooledConnection] = set()
        # Connections being opened or keep-alive probed; they count towards the total.
        self._pending = 0
        self._waiting = 0
        self._opened = False
        self._closed = False
        self._ready = False
        self._resolved_host: Optional[str] = None
        self._use_tls = False
        self._stop = threading.Event()
        self._maintenance: Optional[threading.Thread] = None
        self.last_error: Optional[str] = None

    @property
    def resolved_host(self) -> Optional[str]:
        return self._resolved_host

    @property
    def uses_tls(self) -> bool:
        return self._use_tls

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    def open(self) -> None:
        """Resolves the target host and starts idle maintenance."""
        with self._cond:
            if self._closed:
                raise BackingStoreUnavailableError("Connection pool is closed")
            if self._opened:
                return

        settings = self.settings
        resolved = resolve_host(settings.host, settings.port)
        use_tls = should_use_tls(settings.host, resolved, settings.require_tls)

        with self._cond:
            self._resolved_host = resolved
            self._use_tls = use_tls
            self._opened = True

        if use_tls and not settings.tls_verify:
            logger.warning("TLS certificate validation is disabled for %s", settings.host)
        elif use_tls and not settings.tls_verify_identity:
            logger.warning("TLS host name verification is disabled for %s", settings.host)

        if settings.reap_interval > 0:
            self._maintenance = threading.Thread(
                target=self._run_maintenance,
                name="pool-maintenance",
                daemon=True,
            )
            self._maintenance.start()

        logger.info(
            "Connection pool opened for %s:%s (resolved %s, tls=%s, min=%s, max=%s)",
            settings.host, settings.port, resolved, use_tls, settings.min_size, settings.max_size,
        )

    def warmup(self) -> int:
        """
        Establishes the minimum number of connections in parallel.

        Failures are logged and do not abort; the pool then opens
        connections on demand.

        Returns:
            Number of connections established
        """
        with self._cond:
            self._check_usable()
            missing = self.settings.min_size - self._total()
            count = max(0, min(missing, self.settings.max_size - self._total()))
            self._pending += count

        established = 0
        if count:
            with ThreadPoolExecutor(max_workers=count, thread_name_prefix="pool-warmup") as executor:
                futures = [executor.submit(self._open_connection) for _ in range(count)]
                for future in futures:
                    conn = None
                    try:
                        conn = future.result()
                    except BackingStoreUnavailableError as e:
                        logger.warning("Pool warmup connection failed: %s", e)
                    with self._cond:
                        self._pending -= 1
                        if conn is not None and not self._closed:
                            self._idle.append(conn)
                            established += 1
                            conn = None
                        self._cond.notify()
                    if conn is not None:
                        self._close_raw(conn)

        with self._cond:
            self._ready = True

        if established < count:
            logger.warning("Pool warmup incomplete: %s/%s connections established", established, count)
        else:
            logger.info("Pool warmup complete: %s connections established", established)
        return established

    def acquire(self, timeout: Optional[float] = None) -> PooledConnection:
        """
        Leases a connection.

        Args:
            timeout: Seconds to wait for capacity (default: settings.acquire_timeout)

        Returns:
            Pooled connection, owned by the caller until release()

        Raises:
            PoolExhaustedError: No capacity and timeout is zero
            PoolAcquireTimeoutError: No capacity within the timeout
            BackingStoreUnavailableError: Pool closed/not open or connect failed
        """
        if timeout is None:
            timeout = self.settings.acquire_timeout
        deadline = self._clock() + timeout

        with self._cond:
            while True:
                self._check_usable()
                if self._idle:
                    conn = self._idle.pop()
                    self._leased.add(conn)
                    return conn
                if self._total() < self.settings.max_size:
                    self._pending += 1
                    break
                remaining = deadline - self._clock()
                if remaining <= 0:
                    if timeout <= 0:
                        raise PoolExhaustedError("All pooled connections are leased")
                    raise PoolAcquireTimeoutError(
                        f"Timed out after {timeout:.3f}s waiting for a pooled connection"
                    )
                self._waiting += 1
                try:
                    self._cond.wait(remaining)
                finally:
                    self._waiting -= 1

        conn = None
        closed = False
        try:
            conn = self._open_connection(connect_timeout=max(deadline - self._clock(), 0))
        finally:
            with self._cond:
                self._pending -= 1
                closed = self._closed
                if conn is not None and not closed:
                    self._leased.add(conn)
                self._cond.notify()

        if closed:
            self._close_raw(conn)
            raise BackingStoreUnavailableError("Connection pool is closed")
        return conn

    def release(self, conn: PooledConnection) -> None:
        """Returns a connection to the pool, or discards it when broken."""
        discard = False
        with self._cond:
            if conn not in self._leased:
                logger.warning("Ignoring release of a connection that is not leased from this pool")
                return
            self._leased.discard(conn)
            if conn.broken or self._closed:
                discard = True
            else:
                conn.last_used = self._clock()
                self._idle.append(conn)
            self._cond.notify()

        if discard:
            if conn.broken:
                logger.warning("Discarding broken pooled connection")
            self._close_raw(conn)

    @contextmanager
    def connection(self, timeout: Optional[float] = None) -> Iterator[PooledConnection]:
        """Leases a connection for the duration of a with block."""
        conn = self.acquire(timeout)
        try:
            yield conn
        except (OperationalError, InterfaceError):
            conn.mark_broken()
            raise
        finally:
            self.release(conn)

    def stats(self) -> Dict[str, int]:
        """Returns total, idle, waiting and active connection counts."""
        with self._cond:
            idle = len(self._idle)
            active = len(self._leased)
            return {
                "total": idle + active + self._pending,
                "idle": idle,
                "waiting": self._waiting,
                "active": active,
            }

    def health_check(self, timeout: float = 1.0) -> bool:
        """Runs SELECT 1 on a pooled connection."""
        try:
            conn = self.acquire(timeout)
        except AuthError as e:
            self.last_error = str(e)
            logger.warning("Pool health check failed: %s", e)
            return False

        try:
            cursor = conn.cursor()
            try:
                cursor.execute("SELECT 1")
                cursor.fetchone()
            finally:
                cursor.close()
            return True
        except (Error, OSError) as e:
            conn.mark_broken()
            self.last_error = str(e)
            logger.warning("Pool health check query failed: %s", e)
            return False
        finally:
            self.release(conn)

    def reap_idle(self) -> int:
        """
        Closes connections idle longer than idle_timeout, never going
        below min_size.

        Returns:
            Number of connections closed
        """
        now = self._clock()
        victims = []
        with self._cond:
            total = self._total()
            keep: Deque[PooledConnection] = deque()
            # Left end holds the least recently used connections.
            while self._idle:
                conn = self._idle.popleft()
                expired = now - conn.last_used >= self.settings.idle_timeout
                if expired and total - len(victims) > self.settings.min_size:
                    victims.append(conn)
                else:
                    keep.append(conn)
            self._idle = keep

        for conn in victims:
            self._close_raw(conn)
        if victims:
            logger.info("Reaped %s idle connections", len(victims))
        return len(victims)

    def probe_idle(self) -> int:
        """
        Pings connections idle longer than keepalive_interval and discards
        those that fail.

        Returns:
            Number of connections discarded
        """
        now = self._clock()
        with self._cond:
            due = [c for c in self._idle if now - c.last_used >= self.settings.keepalive_interval]
            for conn in due:
                self._idle.remove(conn)
            self._pending += len(due)

        failed = 0
        for conn in due:
            alive = True
            try:
                conn.raw.ping(reconnect=False)
            except (Error, OSError) as e:
                alive = False
                failed += 1
                self.last_error = str(e)
                logger.warning("Keep-alive probe failed, discarding connection: %s", e)

            with self._cond:
                self._pending -= 1
                keep = alive and not self._closed
                if keep:
                    conn.last_used = self._clock()
                    self._idle.append(conn)
                self._cond.notify()
            if not keep:
                self._close_raw(conn)
        return failed

    def close(self) -> None:
        """Closes idle connections; leased ones are closed on release."""
        with self._cond:
            if self._closed:
                return
            self._closed = True
            idle = list(self._idle)
            self._idle.clear()
            self._cond.notify_all()

        self._stop.set()
        if self._maintenance is not None:
            self._maintenance.join(timeout=5)

        for conn in idle:
            self._close_raw(conn)
        logger.info("Connection pool closed (%s idle connections closed)", len(idle))

    def _run_maintenance(self) -> None:
        while not self._stop.wait(self.settings.reap_interval):
            try:
                self.reap_idle()
                self.probe_idle()
            except Exception as e:
                self.last_error = str(e)
                logger.exception("Connection pool maintenance failed")

    def _total(self) -> int:
        return len(self._idle) + len(self._leased) + self._pending

    def _check_usable(self) -> None:
        if self._closed:
            raise BackingStoreUnavailableError("Connection pool is closed")
        if not self._opened:
            raise BackingStoreUnavailableError("Connection pool is not open")

    def _connection_kwargs(self, connect_timeout: Optional[float] = None) -> dict:
        settings = self.settings
        timeout = settings.connect_timeout
        if connect_timeout is not None:
            timeout = min(timeout, connect_timeout)

        host = self._resolved_host or settings.host
        verify_identity = self._use_tls and settings.tls_verify and settings.tls_verify_identity
        if verify_identity:
            # The certificate names the host, never the address it resolved to.
            host = settings.host
        kwargs = {
            "host": host,
            "port": settings.port,
            "user": settings.user,
            "password": settings.password,
            "database": settings.database,
            "connection_timeout": max(1, int(math.ceil(timeout))),
            "autocommit": True,  # single-statement conditional updates rely on it
            "use_pure": True,
        }
        if self._use_tls:
            kwargs["ssl_disabled"] = False
            kwargs["ssl_verify_cert"] = settings.tls_verify
            kwargs["ssl_verify_identity"] = verify_identity
            if settings.tls_ca:
                kwargs["ssl_ca"] = settings.tls_ca
        else:
            kwargs["ssl_disabled"] = True
        return kwargs

    def _open_connection(self, connect_timeout: Optional[float] = None) -> PooledConnection:
        kwargs = self._connection_kwargs(connect_timeout)
        try:
            raw = self._connect_fn(**kwargs)
        except (Error, OSError) as e:
            self.last_error = str(e)
            raise BackingStoreUnavailableError(
                f"Could not connect to {self.settings.host}:{self.settings.port}: {e}"
            ) from e

        if self.settings.statement_timeout_ms:
            try:
                cursor = raw.cursor()
                cursor.execute(f"SET SESSION max_execution_time = {int(self.settings.statement_timeout_ms)}")
                cursor.close()
            except Error as e:
                logger.warning("Could not set statement timeout: %s", e)

        return PooledConnection(raw, self._clock())

    def _close_raw(self, conn: Optional[PooledConnection]) -> None:
        if conn is None:
            return
        try:
            conn.raw.close()
        except (Error, OSError) as e:
            logger.debug("Error closing pooled connection: %s", e)
