"""
Composed auth components, stored on ``app.state`` by create_app().
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from auth.connection_pool_manager import ConnectionPoolManager
from auth.errors import BackingStoreUnavailableError
from auth.rate_limiter import RateLimiter
from auth.service import AuthService
from auth.session_store import SessionStore


@dataclass(frozen=True)
class AuthContext:
    service: AuthService
    session_store: SessionStore
    rate_limiter: RateLimiter
    # DatabaseHealth probe behind GET /health
    health: object
    config: object
    # None when sessions are kept in memory
    pool_manager: Optional[ConnectionPoolManager] = None


def set_auth_context(app, **components) -> AuthContext:
    """Builds the context from keyword components and attaches it to the app."""
    context = AuthContext(**components)
    app.state.auth_context = context
    return context


def get_auth_context(request: Request) -> AuthContext:
    """Dependency: the app's AuthContext (503 until the app is composed)."""
    context: Optional[AuthContext] = getattr(request.app.state, "auth_context", None)
    if context is None:
        raise BackingStoreUnavailableError("Authentication service not initialized")
    return context
