"""
Pytest Configuration and Shared Fixtures for the auth service test suite.

This module provides:
- Fake mysql-connector connections for the pool and MySQL repositories
- Fake Redis client for the shared rate limit counters
- Manual clocks
- Composed FastAPI app and TestClient
"""

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from dotenv import load_dotenv
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from api.main import create_app
from auth.connection_pool_manager import ConnectionPoolManager, PoolSettings
from auth.rate_limiter import InMemoryCounterBackend, RateLimitPolicy
from auth.session_store import SessionStore
from auth.token_issuer import TokenIssuer, TokenSettings
from config import AppConfig, RateLimitSettings, SessionSettings
from repositories.session_repository import InMemorySessionRepository
from repositories.user_repository import InMemoryUserDirectory

# Load test environment
env_file = Path(__file__).parent.parent / ".env.test"
if env_file.exists():
    load_dotenv(env_file)

logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

TEST_SECRET = "test-secret-0123456789abcdef0123456789abcdef"
TEST_EMAIL = "alice@example.com"
TEST_PASSWORD = "correct horse battery"


# ============================================================================
# CLOCKS
# ============================================================================

class ManualClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


# ============================================================================
# FAKE MYSQL CONNECTOR
# ============================================================================

Handler = Callable[[str, Optional[tuple]], Tuple[int, List[tuple]]]


def normalize_sql(query: str) -> str:
    return " ".join(query.split())


class FakeCursor:
    def __init__(self, connection: "FakeConnection"):
        self.connection = connection
        self.rowcount = -1
        self._rows: List[tuple] = []
        self.closed = False

    def execute(self, query: str, params: Optional[tuple] = None) -> None:
        if self.connection.execute_error is not None:
            raise self.connection.execute_error
        sql = normalize_sql(query)
        self.connection.executed.append((sql, params))
        rowcount, rows = self.connection.handler(sql, params)
        self.rowcount = rowcount
        self._rows = list(rows)

    def fetchone(self):
        return self._rows.pop(0) if self._rows else None

    def fetchall(self):
        rows, self._rows = self._rows, []
        return rows

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    def __init__(self, handler: Optional[Handler] = None, **kwargs):
        self.kwargs = kwargs
        self.handler = handler or (lambda sql, params: (1, [(1,)]))
        self.executed: List[Tuple[str, Optional[tuple]]] = []
        self.execute_error: Optional[Exception] = None
        self.ping_error: Optional[Exception] = None
        self.commit_error: Optional[Exception] = None
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def cursor(self):
        return FakeCursor(self)

    def commit(self) -> None:
        if self.commit_error is not None:
            raise self.commit_error
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1

    def ping(self, reconnect: bool = False) -> None:
        if self.ping_error is not None:
            raise self.ping_error

    def close(self) -> None:
        self.closed = True


class FakeConnector:
    """Stand-in for mysql.connector.connect recording every connection."""

    def __init__(self, handler: Optional[Handler] = None):
        self.handler = handler
        self.connections: List[FakeConnection] = []
        self.calls: List[Dict[str, Any]] = []
        self.failures_left = 0
        self.error: Optional[Exception] = None
        self._lock = threading.Lock()

    def fail_next(self, count: int, error: Exception) -> None:
        self.failures_left = count
        self.error = error

    def connect(self, **kwargs) -> FakeConnection:
        with self._lock:
            self.calls.append(kwargs)
            if self.failures_left > 0:
                self.failures_left -= 1
                raise self.error
            conn = FakeConnection(self.handler, **kwargs)
            self.connections.append(conn)
            return conn


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


def make_pool_settings(**overrides) -> PoolSettings:
    values = dict(
        host="localhost",
        user="auth",
        database="auth_test",
        min_size=1,
        max_size=2,
        acquire_timeout=0.5,
        statement_timeout_ms=0,
        reap_interval=0,
    )
    values.update(overrides)
    return PoolSettings(**values)


@pytest.fixture
def make_pool(connector, monkeypatch):
    """Factory for opened pools on top of the fake connector."""
    monkeypatch.setattr(
        "auth.connection_pool_manager.resolve_host",
        lambda host, port: "127.0.0.1" if host == "localhost" else host,
    )
    pools: List[ConnectionPoolManager] = []

    def factory(clock=None, **overrides) -> ConnectionPoolManager:
        kwargs = {"connect_fn": connector.connect}
        if clock is not None:
            kwargs["clock"] = clock
        pool = ConnectionPoolManager(make_pool_settings(**overrides), **kwargs)
        pool.open()
        pools.append(pool)
        return pool

    yield factory
    for pool in pools:
        pool.close()


# ============================================================================
# FAKE REDIS
# ============================================================================

class FakeRedisPipeline:
    def __init__(self, client: "FakeRedis"):
        self.client = client
        self.commands: List[Tuple[str, str]] = []

    def incr(self, key: str):
        self.commands.append(("incr", key))
        return self

    def pttl(self, key: str):
        self.commands.append(("pttl", key))
        return self

    def execute(self) -> list:
        self.client.check()
        results = [getattr(self.client, name)(key) for name, key in self.commands]
        self.commands = []
        return results


class FakeRedis:
    """In-process Redis covering INCR, PTTL, PEXPIRE and DELETE with a manual clock."""

    def __init__(self, clock: ManualClock):
        self.clock = clock
        self.values: Dict[str, int] = {}
        self.expiry_ms: Dict[str, float] = {}
        self.down = False

    def check(self) -> None:
        if self.down:
            raise RedisConnectionError("Connection refused")

    def _now_ms(self) -> float:
        return self.clock() * 1000

    def _expire_keys(self) -> None:
        for key, at in list(self.expiry_ms.items()):
            if at <= self._now_ms():
                self.values.pop(key, None)
                del self.expiry_ms[key]

    def pipeline(self) -> FakeRedisPipeline:
        return FakeRedisPipeline(self)

    def incr(self, key: str) -> int:
        self._expire_keys()
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    def pttl(self, key: str) -> int:
        self._expire_keys()
        if key not in self.values:
            return -2
        if key not in self.expiry_ms:
            return -1
        return int(self.expiry_ms[key] - self._now_ms())

    def pexpire(self, key: str, ms: int) -> bool:
        self.check()
        self.expiry_ms[key] = self._now_ms() + ms
        return True

    def delete(self, key: str) -> int:
        self.check()
        self.expiry_ms.pop(key, None)
        return 1 if self.values.pop(key, None) is not None else 0


@pytest.fixture
def fake_redis(clock) -> FakeRedis:
    return FakeRedis(clock)


# ============================================================================
# AUTH COMPONENTS
# ============================================================================

@pytest.fixture
def token_settings() -> TokenSettings:
    return TokenSettings(secret=TEST_SECRET, access_ttl_seconds=60, refresh_ttl_seconds=3600)


@pytest.fixture
def issuer(token_settings) -> TokenIssuer:
    return TokenIssuer(token_settings)


@pytest.fixture
def session_repository() -> InMemorySessionRepository:
    return InMemorySessionRepository()


@pytest.fixture
def session_store(session_repository, token_settings) -> SessionStore:
    return SessionStore(session_repository, token_settings.refresh_ttl_seconds)


@pytest.fixture
def users():
    """User directory with one registered user (bcrypt cost kept low for speed)."""
    directory = InMemoryUserDirectory(bcrypt_rounds=4)
    directory.create_user(TEST_EMAIL, TEST_PASSWORD, "Alice")
    return directory


# ============================================================================
# API
# ============================================================================

def make_app_config(
    token_settings: TokenSettings,
    login_policy: Optional[RateLimitPolicy] = None,
    trust_forwarded_for: bool = False,
) -> AppConfig:
    relaxed = RateLimitPolicy(limit=1000, window_ms=60_000, backoff=False)
    routes = {"login": relaxed, "signup": relaxed, "refresh": relaxed}
    if login_policy is not None:
        routes["login"] = login_policy
    return AppConfig(
        env="test",
        tokens=token_settings,
        sessions=SessionSettings(sweep_interval_seconds=0),
        rate_limit=RateLimitSettings(default=relaxed, routes=routes, trust_forwarded_for=trust_forwarded_for),
        bcrypt_rounds=4,
    )


@pytest.fixture
def app(token_settings, session_repository, users):
    return create_app(
        make_app_config(token_settings),
        session_repository=session_repository,
        user_directory=users,
        counter_backend=InMemoryCounterBackend(),
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line("markers", "unit: Unit tests without external services")
    config.addinivalue_line("markers", "integration: API tests through the FastAPI TestClient")
    config.addinivalue_line("markers", "concurrency: Tests racing several threads")
    logger.info("=" * 70)
    logger.info("Auth service test suite")
    logger.info("=" * 70)
