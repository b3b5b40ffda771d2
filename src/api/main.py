"""
FastAPI application for the auth service.

The app is composed explicitly: the pool, repositories, limiter and
service are built here and attached to ``app.state``; the pool lifecycle
(open, warmup, close) and the session sweep run in the lifespan.
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.auth_context import set_auth_context
from api.error_handling import register_exception_handlers
from api.routers import auth as auth_router
from api.routers import health, session
from api.routers.health import DatabaseHealth
from auth.connection_pool_manager import ConnectionPoolManager
from auth.errors import AuthError
from auth.rate_limiter import InMemoryCounterBackend, RateLimiter, RedisCounterBackend
from auth.service import AuthService
from auth.session_store import SessionStore
from auth.token_issuer import TokenIssuer
from config import AppConfig, ConfigError, load_app_config
from repositories.session_repository import InMemorySessionRepository, MySQLSessionRepository
from repositories.user_repository import InMemoryUserDirectory, MySQLUserDirectory

logger = logging.getLogger("uvicorn.error")


async def _sweep_sessions(store: SessionStore, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(store.cleanup_expired_sessions)
        except AuthError as e:
            logger.warning("Session sweep failed: %s", e)


def create_app(
    config: Optional[AppConfig] = None,
    *,
    pool: Optional[ConnectionPoolManager] = None,
    session_repository=None,
    user_directory=None,
    counter_backend=None,
) -> FastAPI:
    """
    Builds the application.

    Args:
        config: Application config (default: load_app_config())
        pool: Connection pool to use instead of one built from config.database
        session_repository: Session storage override
        user_directory: User directory override
        counter_backend: Rate limit counter backend override
    """
    config = config or load_app_config()
    owns_pool = pool is None and config.database is not None
    if owns_pool:
        pool = ConnectionPoolManager(config.database)

    if session_repository is None:
        if pool is not None:
            session_repository = MySQLSessionRepository(pool)
        elif config.is_production:
            raise ConfigError("In-memory sessions are not allowed in production")
        else:
            logger.warning("No database configured, sessions are kept in memory")
            session_repository = InMemorySessionRepository()

    if user_directory is None:
        if pool is not None:
            user_directory = MySQLUserDirectory(pool, bcrypt_rounds=config.bcrypt_rounds)
        else:
            user_directory = InMemoryUserDirectory(bcrypt_rounds=config.bcrypt_rounds)

    if counter_backend is None:
        if config.rate_limit.redis_url:
            counter_backend = RedisCounterBackend.from_url(config.rate_limit.redis_url)
        else:
            counter_backend = InMemoryCounterBackend()

    issuer = TokenIssuer(config.tokens)
    store = SessionStore(session_repository, config.tokens.refresh_ttl_seconds)
    service = AuthService(issuer, store, user_directory)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if pool is not None:
            await asyncio.to_thread(pool.open)
            await asyncio.to_thread(pool.warmup)

        sweeper = None
        if config.sessions.sweep_interval_seconds > 0:
            sweeper = asyncio.create_task(_sweep_sessions(store, config.sessions.sweep_interval_seconds))

        logger.info("Auth service started (env=%s, database=%s)", config.env, pool is not None)
        try:
            yield
        finally:
            if sweeper is not None:
                sweeper.cancel()
                with suppress(asyncio.CancelledError):
                    await sweeper
            if owns_pool:
                await asyncio.to_thread(pool.close)
            logger.info("Auth service stopped")

    app = FastAPI(
        title="Auth Service API",
        description="Credential and session lifecycle",
        version="1.0.0",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    set_auth_context(
        app,
        service=service,
        session_store=store,
        pool_manager=pool,
        rate_limiter=RateLimiter(counter_backend),
        health=DatabaseHealth(pool),
        config=config,
    )

    app.include_router(auth_router.build_router(config.rate_limit))
    app.include_router(session.router)
    app.include_router(health.router)
    return app
