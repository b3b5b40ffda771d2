"""
Session and user records shared by the auth components and repositories.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class LoginType(str, Enum):
    EMAIL = "email"
    USERNAME = "username"
    SIGNUP = "signup"
    APPLE = "apple"
    GOOGLE = "google"
    KAKAO = "kakao"


@dataclass
class Session:
    """Server-side record of one completed login."""

    session_id: str
    user_id: str
    login_type: LoginType
    created_at: datetime
    last_seen_at: datetime
    expires_at: datetime
    # jti of the only refresh token currently valid for this session
    refresh_token_id: str = field(repr=False, default="")

    def is_active(self, now: datetime) -> bool:
        return self.expires_at > now

    def to_dict(self) -> Dict[str, Any]:
        """Public view of the session (never includes the refresh token ID)."""
        return {
            "sessionId": self.session_id,
            "userId": self.user_id,
            "loginType": self.login_type.value,
            "createdAt": self.created_at.isoformat(),
            "lastSeenAt": self.last_seen_at.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
        }


@dataclass(frozen=True)
class UserProfile:
    user_id: str
    email: str
    name: Optional[str] = None
    username: Optional[str] = None

    def token_claims(self) -> Dict[str, Any]:
        return {"email": self.email, "name": self.name}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.user_id,
            "email": self.email,
            "name": self.name,
            "username": self.username,
        }
