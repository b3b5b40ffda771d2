"""
Authentication API Router - login, signup, refresh and logout.
"""

import logging

from fastapi import APIRouter, Depends, status

from api.auth_context import AuthContext, get_auth_context
from api.auth_middleware import RateLimitGuard, get_access_claims
from api.models import LoginRequest, LogoutRequest, RefreshRequest, SignupRequest, success
from auth.errors import InvalidRequestError
from auth.token_issuer import AccessClaims

logger = logging.getLogger("uvicorn.error")


def build_router(rate_limits) -> APIRouter:
    """
    Creates the /auth router.

    Args:
        rate_limits: RateLimitSettings; each sensitive route gets its policy attached here
    """
    router = APIRouter(prefix="/auth", tags=["authentication"])

    @router.post(
        "/login",
        dependencies=[Depends(RateLimitGuard(rate_limits.policy_for("login")))],
    )
    def login(credentials: LoginRequest, context: AuthContext = Depends(get_auth_context)):
        """Login with email or username and password. Opens a new session."""
        identifier = credentials.identifier
        if not identifier:
            raise InvalidRequestError("Login without email or username", "email or username is required")
        envelope = context.service.login(identifier, credentials.password)
        logger.info("User %s logged in (session %s...)", envelope.user.user_id, envelope.session.session_id[:8])
        return success(envelope.to_dict(), "Login successful")

    @router.post(
        "/signup",
        status_code=status.HTTP_201_CREATED,
        dependencies=[Depends(RateLimitGuard(rate_limits.policy_for("signup")))],
    )
    def signup(body: SignupRequest, context: AuthContext = Depends(get_auth_context)):
        envelope = context.service.signup(body.email, body.password, body.name)
        return success(envelope.to_dict(), "Signup successful", code=status.HTTP_201_CREATED)

    @router.post(
        "/refresh",
        dependencies=[Depends(RateLimitGuard(rate_limits.policy_for("refresh")))],
    )
    def refresh(body: RefreshRequest, context: AuthContext = Depends(get_auth_context)):
        """
        Exchanges a refresh token for a new token pair.

        The presented token is single-use; presenting it again answers
        401 with kind ``session_already_rotated``.
        """
        envelope = context.service.refresh(body.refresh_token)
        return success(envelope.to_dict(), "Token refreshed")

    @router.post("/logout")
    def logout(
        body: LogoutRequest,
        claims: AccessClaims = Depends(get_access_claims),
        context: AuthContext = Depends(get_auth_context),
    ):
        context.service.logout(body.session_id, claims.subject)
        return success({"sessionId": body.session_id}, "Logout successful")

    return router
