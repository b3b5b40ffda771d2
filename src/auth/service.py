#
# SPDX-License-Identifier: AGPL-3.0-only
# Copyright (c) 2026 m2-eng
# Author: m2-eng
# Co-Author: GitHub Copilot
# License: GNU Affero General Public License v3.0 (AGPL-3.0-only)
# Purpose: Login, signup, refresh and logout on top of the auth components.
#
"""
Login, signup, refresh and logout on top of the auth components.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .errors import SessionNotFoundError
from .models import LoginType, Session, UserProfile
from .rotation import RefreshRotation
from .session_store import SessionStore
from .token_issuer import TokenIssuer, TokenPair
from .utils import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthEnvelope:
    session: Session
    tokens: TokenPair
    user: UserProfile

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accessToken": self.tokens.access_token,
            "refreshToken": self.tokens.refresh_token,
            "tokenType": "Bearer",
            "expiresAt": self.tokens.access_expires_at.isoformat(),
            "refreshExpiresAt": self.tokens.refresh_expires_at.isoformat(),
            "sessionId": self.session.session_id,
            "loginType": self.session.login_type.value,
            "user": self.user.to_dict(),
        }


class AuthService:
    """Composes user directory, session store, token issuer and rotation."""

    def __init__(self, issuer: TokenIssuer, store: SessionStore, users):
        self.issuer = issuer
        self.store = store
        self.users = users
        self.rotation = RefreshRotation(issuer, store, users)

    def login(self, identifier: str, password: str) -> AuthEnvelope:
        """
        Authenticates by email or username and opens a new session.

        Raises:
            InvalidCredentialsError: Unknown user or wrong password
            BackingStoreUnavailableError: Session could not be persisted
        """
        profile = self.users.authenticate(identifier, password)
        login_type = LoginType.EMAIL if "@" in identifier else LoginType.USERNAME
        return self.start_session(profile, login_type)

    def signup(self, email: str, password: str, name: Optional[str] = None) -> AuthEnvelope:
        profile = self.users.create_user(email, password, name)
        logger.info("User %s signed up", profile.user_id)
        return self.start_session(profile, LoginType.SIGNUP)

    def start_session(self, profile: UserProfile, login_type: LoginType) -> AuthEnvelope:
        """
        Opens a session for an already authenticated user (also used by OAuth logins).

        Tokens are only issued after the session row is stored.
        """
        now = utcnow()
        session = self.store.create(profile.user_id, login_type, now=now)
        tokens = self.issuer.issue_token_pair(
            profile.user_id,
            session.session_id,
            session.refresh_token_id,
            claims=profile.token_claims(),
            now=now,
        )
        return AuthEnvelope(session=session, tokens=tokens, user=profile)

    def refresh(self, refresh_token: str) -> AuthEnvelope:
        result = self.rotation.rotate(refresh_token)
        return AuthEnvelope(session=result.session, tokens=result.tokens, user=result.user)

    def logout(self, session_id: str, subject: str) -> None:
        """
        Ends a session of the calling user.

        Raises:
            SessionNotFoundError: Session unknown, expired or owned by someone else
        """
        session = self.store.get(session_id)
        if session.user_id != str(subject):
            raise SessionNotFoundError(f"Session not found: {session_id}")
        self.store.invalidate(session_id)
