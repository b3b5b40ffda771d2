"""
Authentication and rate limiting dependencies.
"""

import logging
from typing import Optional

from fastapi import Depends, Header, Request

from api.auth_context import AuthContext, get_auth_context
from auth.errors import RateLimitExceededError, TokenMalformedError
from auth.rate_limiter import RateLimitPolicy
from auth.token_issuer import AccessClaims, TokenType

logger = logging.getLogger("uvicorn.error")


def client_identity(request: Request, trust_forwarded_for: bool = False) -> str:
    """
    Client address used as the rate limit key.

    X-Forwarded-For is client controlled; its first hop is only used when
    the service is configured to run behind a trusted proxy.
    """
    forwarded = request.headers.get("X-Forwarded-For") if trust_forwarded_for else None
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def get_access_claims(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    context: AuthContext = Depends(get_auth_context),
) -> AccessClaims:
    """
    Dependency: verifies the Bearer access token.

    Raises:
        TokenMalformedError: Header missing or not a Bearer token
        TokenExpiredError, TokenWrongTypeError: Rejected by the issuer
    """
    if not authorization:
        raise TokenMalformedError("No authorization header")

    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise TokenMalformedError("Authorization header is not a Bearer token")

    return context.service.issuer.verify(token.strip(), TokenType.ACCESS)


class RateLimitGuard:
    """
    Dependency enforcing one route's rate limit policy.

    The policy is bound when the route is registered, e.g.
    ``dependencies=[Depends(RateLimitGuard(policy))]``.
    """

    def __init__(self, policy: RateLimitPolicy):
        self.policy = policy

    def __call__(self, request: Request, context: AuthContext = Depends(get_auth_context)) -> None:
        identity = client_identity(request, context.config.rate_limit.trust_forwarded_for)
        decision = context.rate_limiter.check_policy(self.policy, identity)
        if not decision.allowed:
            logger.warning(
                "Rate limit exceeded for %s on %s (retry after %sms)",
                identity, self.policy.key_prefix, decision.retry_after_ms,
            )
            raise RateLimitExceededError(decision.retry_after_ms)
