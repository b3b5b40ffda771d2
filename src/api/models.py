"""
Pydantic models for API request validation and the response envelope
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    """Login by email address or username"""
    email: Optional[str] = None
    username: Optional[str] = None
    password: str = Field(..., min_length=1)

    @property
    def identifier(self) -> Optional[str]:
        value = (self.email or self.username or "").strip()
        return value or None


class SignupRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=8, max_length=128)
    name: Optional[str] = Field(None, max_length=100)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., alias="refreshToken", min_length=1)

    class Config:
        populate_by_name = True


class LogoutRequest(BaseModel):
    session_id: str = Field(..., alias="sessionId", min_length=1)

    class Config:
        populate_by_name = True


def success(data: Any, message: str = "OK", code: int = 200) -> dict:
    """Response envelope used by every successful endpoint."""
    return {"code": code, "data": data, "message": message}
