#
# SPDX-License-Identifier: AGPL-3.0-only
# Copyright (c) 2026 m2-eng
# Author: m2-eng
# Co-Author: GitHub Copilot
# License: GNU Affero General Public License v3.0 (AGPL-3.0-only)
# Purpose: Error taxonomy for the credential and session lifecycle.
#
"""
Error taxonomy for the credential and session lifecycle.

Every error carries a stable machine-readable ``kind`` and the HTTP status
the API layer answers with. ``public_message`` is the only text that ever
leaves the process; the exception message itself is for logs.
"""

from typing import Optional


class AuthError(Exception):
    """Base class for all credential, session, pool and limiter errors."""

    kind = "auth_error"
    status_code = 401
    public_message = "Unauthorized"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.public_message)


class TokenExpiredError(AuthError):
    """Token signature is valid but its expiration has passed."""

    kind = "token_expired"
    public_message = "Token expired"


class TokenMalformedError(AuthError):
    """Token cannot be decoded, has a bad signature or lacks required claims."""

    kind = "token_malformed"
    public_message = "Invalid token"


class TokenWrongTypeError(AuthError):
    """Token type claim is missing or does not match the expected type."""

    kind = "token_wrong_type"
    public_message = "Invalid token type"


class SessionNotFoundError(AuthError):
    """Session does not exist, has expired or was invalidated."""

    kind = "session_not_found"
    public_message = "Invalid or expired session"


class SessionAlreadyRotatedError(AuthError):
    """Refresh token was already exchanged (replay)."""

    kind = "session_already_rotated"
    public_message = "Refresh token already used"


class InvalidRequestError(AuthError):
    """Required parameter missing or malformed."""

    kind = "invalid_request"
    status_code = 400
    public_message = "Invalid request"

    def __init__(self, message: Optional[str] = None, public_message: Optional[str] = None):
        super().__init__(message)
        if public_message:
            self.public_message = public_message


class InvalidCredentialsError(AuthError):
    """Identifier/password pair was rejected by the user directory."""

    kind = "invalid_credentials"
    public_message = "Invalid credentials"


class UserAlreadyExistsError(AuthError):
    """Signup with an email or username that is already registered."""

    kind = "user_already_exists"
    status_code = 409
    public_message = "User already exists"


class PoolExhaustedError(AuthError):
    """No pooled connection is available."""

    kind = "pool_exhausted"
    status_code = 503
    public_message = "Service temporarily unavailable"


class PoolAcquireTimeoutError(PoolExhaustedError, TimeoutError):
    """Waiting for a pooled connection exceeded the acquire timeout."""

    kind = "pool_acquire_timeout"


class BackingStoreUnavailableError(AuthError):
    """Persistence backend (or the pool in front of it) is unreachable."""

    kind = "backing_store_unavailable"
    status_code = 503
    public_message = "Service temporarily unavailable"


class RateLimitExceededError(AuthError):
    """Request was denied by the rate limiter."""

    kind = "rate_limit_exceeded"
    status_code = 429
    public_message = "Too many attempts"

    def __init__(self, retry_after_ms: int, message: Optional[str] = None):
        super().__init__(message)
        self.retry_after_ms = retry_after_ms

    @property
    def retry_after_seconds(self) -> int:
        """Retry hint rounded up to whole seconds (minimum 1)."""
        return max(1, -(-self.retry_after_ms // 1000))
