"""
Utility functions for authentication.
"""

import secrets
from datetime import datetime, timezone

import bcrypt


def utcnow() -> datetime:
    """Current UTC time truncated to whole seconds (JWT exp granularity)."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def new_session_id() -> str:
    """
    Generates a session ID.

    256 bits from the OS CSPRNG, hex encoded. Nothing user-visible goes
    into it, so it cannot be derived or enumerated.
    """
    return secrets.token_hex(32)


def new_token_id() -> str:
    """Generates the identifier (jti) binding a refresh token to its session."""
    return secrets.token_urlsafe(24)


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash password with bcrypt. Bytes truncated to 72 (bcrypt limit)."""
    pwd_bytes = password.encode("utf-8")[:72]
    return bcrypt.hashpw(pwd_bytes, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify password with bcrypt. Plain password truncated to 72 bytes."""
    plain_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(plain_bytes, password_hash.encode("utf-8"))
    except ValueError:
        # Stored hash is not a bcrypt hash
        return False
