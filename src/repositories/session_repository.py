#
# SPDX-License-Identifier: AGPL-3.0-only
# Copyright (c) 2026 m2-eng
# Author: m2-eng
# Co-Author: GitHub Copilot
# License: GNU Affero General Public License v3.0 (AGPL-3.0-only)
# Purpose: Persistence for server-side sessions.
#
"""
Persistence for server-side sessions.

Datetimes are stored as naive UTC in DATETIME columns and tagged as UTC
again when read back.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, Optional

from auth.models import LoginType, Session
from repositories.base import BaseRepository
from repositories.error_handling import handle_repository_errors

SESSION_COLUMNS = "session_id, user_id, login_type, refresh_token_id, created_at, last_seen_at, expires_at"


class SessionRepository(ABC):
    """Storage contract used by SessionStore."""

    @abstractmethod
    def insert(self, session: Session) -> None:
        ...

    @abstractmethod
    def find_active(self, session_id: str, now: datetime) -> Optional[Session]:
        ...

    @abstractmethod
    def touch(self, session_id: str, now: datetime) -> Optional[Session]:
        """Sets last_seen_at on a live session and returns it (None if not live)."""

    @abstractmethod
    def rotate(
        self,
        session_id: str,
        user_id: str,
        expected_token_id: str,
        new_token_id: str,
        new_expires_at: datetime,
        now: datetime,
    ) -> Optional[Session]:
        """
        Compare-and-swap of the refresh token ID.

        Succeeds only if the session is live, owned by user_id and still
        bound to expected_token_id. Returns the updated session, or None.
        """

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        ...

    @abstractmethod
    def delete_expired(self, now: datetime) -> int:
        ...


class InMemorySessionRepository(SessionRepository):
    """Process-local session storage for development and tests."""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def insert(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.session_id] = replace(session)

    def find_active(self, session_id: str, now: datetime) -> Optional[Session]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or not session.is_active(now):
                return None
            return replace(session)

    def touch(self, session_id: str, now: datetime) -> Optional[Session]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or not session.is_active(now):
                return None
            session.last_seen_at = now
            return replace(session)

    def rotate(self, session_id, user_id, expected_token_id, new_token_id, new_expires_at, now):
        with self._lock:
            session = self._sessions.get(session_id)
            if (
                session is None
                or not session.is_active(now)
                or session.user_id != user_id
                or session.refresh_token_id != expected_token_id
            ):
                return None
            session.refresh_token_id = new_token_id
            session.expires_at = new_expires_at
            session.last_seen_at = now
            return replace(session)

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def delete_expired(self, now: datetime) -> int:
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if not s.is_active(now)]
            for sid in expired:
                del self._sessions[sid]
            return len(expired)


def _to_db(value: datetime) -> datetime:
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _row_to_session(row) -> Session:
    return Session(
        session_id=row[0],
        user_id=str(row[1]),
        login_type=LoginType(row[2]),
        refresh_token_id=row[3],
        created_at=_from_db(row[4]),
        last_seen_at=_from_db(row[5]),
        expires_at=_from_db(row[6]),
    )


class MySQLSessionRepository(BaseRepository, SessionRepository):
    """Session storage in the ``user_sessions`` table."""

    @handle_repository_errors("insert session")
    def insert(self, session: Session) -> None:
        query = f"""
            INSERT INTO user_sessions ({SESSION_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s)
        """
        with self.unit_of_work() as uow:
            uow.cursor.execute(
                query,
                (
                    session.session_id,
                    session.user_id,
                    session.login_type.value,
                    session.refresh_token_id,
                    _to_db(session.created_at),
                    _to_db(session.last_seen_at),
                    _to_db(session.expires_at),
                ),
            )

    @handle_repository_errors("find session")
    def find_active(self, session_id: str, now: datetime) -> Optional[Session]:
        with self.unit_of_work() as uow:
            return self._select_active(uow.cursor, session_id, now)

    @handle_repository_errors("touch session")
    def touch(self, session_id: str, now: datetime) -> Optional[Session]:
        # rowcount reports changed rows only, so read back instead of trusting it
        with self.unit_of_work() as uow:
            uow.cursor.execute(
                "UPDATE user_sessions SET last_seen_at = %s WHERE session_id = %s AND expires_at > %s",
                (_to_db(now), session_id, _to_db(now)),
            )
            return self._select_active(uow.cursor, session_id, now)

    @handle_repository_errors("rotate session")
    def rotate(self, session_id, user_id, expected_token_id, new_token_id, new_expires_at, now):
        query = """
            UPDATE user_sessions
            SET refresh_token_id = %s, expires_at = %s, last_seen_at = %s
            WHERE session_id = %s AND user_id = %s AND refresh_token_id = %s AND expires_at > %s
        """
        with self.unit_of_work() as uow:
            uow.cursor.execute(
                query,
                (
                    new_token_id,
                    _to_db(new_expires_at),
                    _to_db(now),
                    session_id,
                    user_id,
                    expected_token_id,
                    _to_db(now),
                ),
            )
            # The token ID always changes, so a matched row is also a changed row
            if uow.cursor.rowcount != 1:
                return None
            return self._select_active(uow.cursor, session_id, now)

    @handle_repository_errors("delete session")
    def delete(self, session_id: str) -> bool:
        with self.unit_of_work() as uow:
            uow.cursor.execute("DELETE FROM user_sessions WHERE session_id = %s", (session_id,))
            return uow.cursor.rowcount > 0

    @handle_repository_errors("delete expired sessions")
    def delete_expired(self, now: datetime) -> int:
        with self.unit_of_work() as uow:
            uow.cursor.execute("DELETE FROM user_sessions WHERE expires_at <= %s", (_to_db(now),))
            return uow.cursor.rowcount

    def _select_active(self, cursor, session_id: str, now: datetime) -> Optional[Session]:
        cursor.execute(
            f"SELECT {SESSION_COLUMNS} FROM user_sessions WHERE session_id = %s AND expires_at > %s",
            (session_id, _to_db(now)),
        )
        row = cursor.fetchone()
        return _row_to_session(row) if row else None
