"""
Session store with expiry, last-seen tracking and atomic refresh rotation.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from .errors import SessionAlreadyRotatedError, SessionNotFoundError
from .models import LoginType, Session
from .utils import new_session_id, new_token_id, utcnow

logger = logging.getLogger(__name__)


class SessionStore:
    """
    Session store on top of a session repository.

    Expired, invalidated and never-issued session IDs all surface as
    SessionNotFoundError, so callers cannot tell them apart.
    """

    def __init__(self, repository, ttl_seconds: int):
        """
        Initializes the session store.

        Args:
            repository: SessionRepository implementation (in-memory or MySQL)
            ttl_seconds: Session lifetime, equal to the refresh token lifetime
        """
        self.repository = repository
        self.ttl = timedelta(seconds=ttl_seconds)

    def create(self, user_id: str, login_type: LoginType, now: Optional[datetime] = None) -> Session:
        """
        Creates a new session with a fresh refresh token ID.

        Args:
            user_id: Owner of the session
            login_type: How the user authenticated
            now: Creation time (default: current UTC second)

        Returns:
            Created session

        Raises:
            BackingStoreUnavailableError: Session could not be persisted
        """
        now = now or utcnow()
        session = Session(
            session_id=new_session_id(),
            user_id=str(user_id),
            login_type=LoginType(login_type),
            created_at=now,
            last_seen_at=now,
            expires_at=now + self.ttl,
            refresh_token_id=new_token_id(),
        )
        self.repository.insert(session)
        return session

    def get(self, session_id: str) -> Session:
        """
        Returns a live session.

        Raises:
            SessionNotFoundError: Unknown, expired or invalidated
        """
        session = self.repository.find_active(session_id, utcnow()) if session_id else None
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return session

    def touch_last_seen(self, session_id: str) -> Session:
        """
        Updates last_seen_at and returns the current session in one step.

        Concurrent touches are last-write-wins.

        Raises:
            SessionNotFoundError: Unknown, expired or invalidated
        """
        session = self.repository.touch(session_id, utcnow()) if session_id else None
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return session

    def invalidate(self, session_id: str) -> None:
        """Deletes a session. Unknown IDs are ignored."""
        if session_id and self.repository.delete(session_id):
            logger.info("Session invalidated")

    def rotate(
        self,
        session_id: str,
        user_id: str,
        expected_token_id: str,
        new_token_id: str,
        now: Optional[datetime] = None,
    ) -> Session:
        """
        Swaps the session's refresh token ID in one conditional update.

        The old token ID stops being valid in the same write that binds
        the successor, and the session expiry slides to now + TTL.

        Raises:
            SessionAlreadyRotatedError: Session is live but the token ID is stale (replay)
            SessionNotFoundError: Session unknown, expired or owned by another user
        """
        now = now or utcnow()
        session = self.repository.rotate(
            session_id,
            str(user_id),
            expected_token_id,
            new_token_id,
            now + self.ttl,
            now,
        )
        if session is not None:
            return session

        current = self.repository.find_active(session_id, now)
        if current is not None and current.user_id == str(user_id):
            raise SessionAlreadyRotatedError(f"Refresh token for session {session_id} was already used")
        raise SessionNotFoundError(f"Session not found: {session_id}")

    def cleanup_expired_sessions(self) -> int:
        """
        Removes expired sessions.

        Should be called periodically (e.g. every 5 minutes).

        Returns:
            Number of deleted sessions
        """
        removed = self.repository.delete_expired(utcnow())
        if removed:
            logger.info("Removed %s expired sessions", removed)
        return removed
