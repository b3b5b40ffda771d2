"""
Refresh token rotation.

    PRESENTED -> VERIFIED -> INVALIDATED -> REISSUED
         \            \            \
          +------------+------------+--> REJECTED

Invalidating the presented token and binding its successor is one
conditional update in the session store, so of several concurrent
exchanges of the same token exactly one reaches REISSUED.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import AuthError, SessionNotFoundError
from .models import Session, UserProfile
from .token_issuer import RefreshClaims, TokenIssuer, TokenPair, TokenType
from .utils import new_token_id, utcnow

logger = logging.getLogger(__name__)


class RotationState(str, Enum):
    PRESENTED = "presented"
    VERIFIED = "verified"
    INVALIDATED = "invalidated"
    REISSUED = "reissued"
    REJECTED = "rejected"


@dataclass(frozen=True)
class RotationResult:
    session: Session
    tokens: TokenPair
    user: UserProfile
    state: RotationState = RotationState.REISSUED


class RefreshRotation:
    def __init__(self, issuer: TokenIssuer, store, users):
        self.issuer = issuer
        self.store = store
        self.users = users

    def rotate(self, refresh_token: str) -> RotationResult:
        """
        Exchanges a refresh token for a new token pair on the same session.

        Raises:
            TokenExpiredError, TokenMalformedError, TokenWrongTypeError: Verification failed
            SessionNotFoundError: Session gone, expired or user no longer exists
            SessionAlreadyRotatedError: Token was already exchanged (replay)
            BackingStoreUnavailableError, PoolExhaustedError: Persistence unavailable
        """
        state = RotationState.PRESENTED
        try:
            claims: RefreshClaims = self.issuer.verify(refresh_token, TokenType.REFRESH)
            state = RotationState.VERIFIED

            profile = self._load_profile(claims)
            now = utcnow()
            session = self.store.rotate(
                claims.session_id,
                claims.subject,
                claims.token_id,
                new_token_id(),
                now=now,
            )
            state = RotationState.INVALIDATED

            tokens = self.issuer.issue_token_pair(
                profile.user_id,
                session.session_id,
                session.refresh_token_id,
                claims=profile.token_claims(),
                now=now,
            )
        except AuthError as exc:
            failed_at, state = state, RotationState.REJECTED
            logger.info("Refresh %s after %s: %s", state.value, failed_at.value, exc.kind)
            raise

        return RotationResult(session=session, tokens=tokens, user=profile)

    def _load_profile(self, claims: RefreshClaims) -> UserProfile:
        profile: Optional[UserProfile] = self.users.get_user(claims.subject)
        if profile is None:
            # Owner is gone, nothing may be refreshed on this session any more
            self.store.invalidate(claims.session_id)
            raise SessionNotFoundError(f"User {claims.subject} no longer exists")
        return profile
