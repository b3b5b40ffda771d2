#
# SPDX-License-Identifier: AGPL-3.0-only
# Copyright (c) 2026 m2-eng
# Author: m2-eng
# Co-Author: GitHub Copilot
# License: GNU Affero General Public License v3.0 (AGPL-3.0-only)
# Purpose: Signed access and refresh token issuance and verification.
#
"""
Signed access and refresh token issuance and verification.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

import jwt

from .errors import TokenExpiredError, TokenMalformedError, TokenWrongTypeError
from .utils import utcnow

RESERVED_CLAIMS = {"sub", "exp", "iat", "typ", "sid", "jti"}


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class AccessClaims:
    subject: str
    expires_at: datetime
    issued_at: datetime
    email: Optional[str] = None
    name: Optional[str] = None
    token_type: TokenType = field(default=TokenType.ACCESS, init=False)


@dataclass(frozen=True)
class RefreshClaims:
    subject: str
    session_id: str
    token_id: str
    expires_at: datetime
    issued_at: datetime
    token_type: TokenType = field(default=TokenType.REFRESH, init=False)


Claims = Union[AccessClaims, RefreshClaims]


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    access_expires_at: datetime
    refresh_token: str
    refresh_expires_at: datetime


@dataclass
class TokenSettings:
    secret: str
    algorithm: str = "HS256"
    access_ttl_seconds: int = 15 * 60
    refresh_ttl_seconds: int = 14 * 24 * 3600

    def validate(self) -> None:
        if not self.secret:
            raise ValueError("JWT secret must not be empty")
        if self.access_ttl_seconds <= 0:
            raise ValueError("Access token TTL must be positive")
        if self.refresh_ttl_seconds <= self.access_ttl_seconds:
            raise ValueError("Access token TTL must be strictly shorter than refresh token TTL")


class TokenIssuer:
    """
    Mints and verifies HS256-signed tokens.

    Both token kinds carry a ``typ`` claim. Verification checks signature,
    then expiration (strictly, no leeway), then the type, so an access
    token can never be exchanged as a refresh token.
    """

    def __init__(self, settings: TokenSettings):
        settings.validate()
        self.settings = settings

    @property
    def access_ttl(self) -> timedelta:
        return timedelta(seconds=self.settings.access_ttl_seconds)

    @property
    def refresh_ttl(self) -> timedelta:
        return timedelta(seconds=self.settings.refresh_ttl_seconds)

    def issue_access_token(
        self,
        user_id: str,
        claims: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """
        Creates an access token.

        Args:
            user_id: Subject
            claims: Extra public claims (email, name); reserved names are ignored
            now: Issue time (default: current UTC second)

        Returns:
            Encoded token
        """
        now = now or utcnow()
        payload: Dict[str, Any] = {
            key: value
            for key, value in (claims or {}).items()
            if key not in RESERVED_CLAIMS and value is not None
        }
        payload.update({
            "sub": str(user_id),
            "typ": TokenType.ACCESS.value,
            "iat": now,
            "exp": now + self.access_ttl,
        })
        return self._encode(payload)

    def issue_refresh_token(
        self,
        user_id: str,
        session_id: str,
        token_id: str,
        now: Optional[datetime] = None,
    ) -> str:
        """
        Creates a refresh token bound to one session.

        Args:
            user_id: Subject
            session_id: Session the token belongs to
            token_id: Current refresh token ID of that session
            now: Issue time (default: current UTC second)

        Returns:
            Encoded token
        """
        now = now or utcnow()
        payload = {
            "sub": str(user_id),
            "typ": TokenType.REFRESH.value,
            "sid": session_id,
            "jti": token_id,
            "iat": now,
            "exp": now + self.refresh_ttl,
        }
        return self._encode(payload)

    def issue_token_pair(
        self,
        user_id: str,
        session_id: str,
        token_id: str,
        claims: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> TokenPair:
        """Issues both tokens from one timestamp so access expiry precedes refresh expiry."""
        now = now or utcnow()
        return TokenPair(
            access_token=self.issue_access_token(user_id, claims, now=now),
            access_expires_at=now + self.access_ttl,
            refresh_token=self.issue_refresh_token(user_id, session_id, token_id, now=now),
            refresh_expires_at=now + self.refresh_ttl,
        )

    def verify(self, token: str, expected_type: TokenType) -> Claims:
        """
        Verifies a token and returns its typed claims.

        Raises:
            TokenExpiredError: Expiration has passed
            TokenMalformedError: Undecodable, bad signature or missing claims
            TokenWrongTypeError: ``typ`` missing or not ``expected_type``
        """
        if not token:
            raise TokenMalformedError("Empty token")

        try:
            payload = jwt.decode(
                token,
                self.settings.secret,
                algorithms=[self.settings.algorithm],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredError(str(e)) from e
        except jwt.InvalidTokenError as e:
            raise TokenMalformedError(str(e)) from e

        token_type = payload.get("typ")
        if token_type != expected_type.value:
            raise TokenWrongTypeError(f"Expected {expected_type.value} token, got {token_type!r}")

        expires_at = datetime.fromtimestamp(payload["exp"], timezone.utc)
        issued_at = datetime.fromtimestamp(payload.get("iat", payload["exp"]), timezone.utc)

        if expected_type is TokenType.REFRESH:
            session_id = payload.get("sid")
            token_id = payload.get("jti")
            if not session_id or not token_id:
                raise TokenMalformedError("Refresh token is not bound to a session")
            return RefreshClaims(
                subject=payload["sub"],
                session_id=session_id,
                token_id=token_id,
                expires_at=expires_at,
                issued_at=issued_at,
            )

        return AccessClaims(
            subject=payload["sub"],
            expires_at=expires_at,
            issued_at=issued_at,
            email=payload.get("email"),
            name=payload.get("name"),
        )

    def _encode(self, payload: Dict[str, Any]) -> str:
        token = jwt.encode(payload, self.settings.secret, algorithm=self.settings.algorithm)
        return token if isinstance(token, str) else token.decode("utf-8")
