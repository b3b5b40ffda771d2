import logging
from datetime import datetime, timedelta, timezone

import pytest
from mysql.connector.errors import IntegrityError, OperationalError, ProgrammingError

from auth.errors import BackingStoreUnavailableError, InvalidCredentialsError, UserAlreadyExistsError
from auth.models import LoginType, Session
from auth.utils import hash_password
from repositories.session_repository import MySQLSessionRepository
from repositories.user_repository import MySQLUserDirectory

logger = logging.getLogger(__name__)

pytestmark = pytest.mark.unit

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def session_row(token_id="jti-1", expires=NOW + timedelta(days=14)):
    naive = NOW.replace(tzinfo=None)
    return ("sid-1", "user-1", "email", token_id, naive, naive, expires.replace(tzinfo=None))


class TestMySQLSessionRepository:
    """SQL issued through the pool and row mapping."""

    def test_insert_stores_naive_utc(self, make_pool, connector):
        repo = MySQLSessionRepository(make_pool())
        repo.insert(Session("sid-1", "user-1", LoginType.EMAIL, NOW, NOW, NOW + timedelta(days=14), "jti-1"))

        sql, params = connector.connections[0].executed[0]
        assert sql.startswith("INSERT INTO user_sessions")
        assert params[:4] == ("sid-1", "user-1", "email", "jti-1")
        assert params[4] == datetime(2026, 3, 1, 12, 0, 0)
        assert connector.connections[0].commits == 1

    def test_failed_commit_discards_connection(self, make_pool, connector):
        pool = make_pool()
        repo = MySQLSessionRepository(pool)
        session = Session("sid-1", "user-1", LoginType.EMAIL, NOW, NOW, NOW + timedelta(days=14), "jti-1")
        repo.insert(session)
        first = connector.connections[0]
        first.commit_error = OperationalError("Lost connection to MySQL server during query")

        with pytest.raises(BackingStoreUnavailableError):
            repo.insert(session)

        assert first.closed
        assert pool.stats()["idle"] == 0
        repo.insert(session)
        assert len(connector.connections) == 2
        assert connector.connections[1].commits == 1

    def test_find_active_maps_row(self, make_pool, connector):
        connector.handler = lambda sql, params: (1, [session_row()])
        repo = MySQLSessionRepository(make_pool())

        session = repo.find_active("sid-1", NOW)

        assert session.session_id == "sid-1"
        assert session.login_type is LoginType.EMAIL
        assert session.expires_at.tzinfo is timezone.utc
        assert session.refresh_token_id == "jti-1"

    def test_find_active_missing(self, make_pool, connector):
        connector.handler = lambda sql, params: (0, [])
        repo = MySQLSessionRepository(make_pool())
        assert repo.find_active("nope", NOW) is None

    def test_rotate_is_single_conditional_update(self, make_pool, connector):
        def handler(sql, params):
            if sql.startswith("UPDATE"):
                return 1, []
            return 1, [session_row(token_id="jti-2")]

        connector.handler = handler
        repo = MySQLSessionRepository(make_pool())

        rotated = repo.rotate("sid-1", "user-1", "jti-1", "jti-2", NOW + timedelta(days=14), NOW)

        update_sql, params = connector.connections[0].executed[0]
        assert "WHERE session_id = %s AND user_id = %s AND refresh_token_id = %s AND expires_at > %s" in update_sql
        assert params[0] == "jti-2"
        assert params[3:6] == ("sid-1", "user-1", "jti-1")
        assert rotated.refresh_token_id == "jti-2"
        logger.info("✓ Rotation is one compare-and-swap UPDATE")

    def test_rotate_lost_race_returns_none(self, make_pool, connector):
        connector.handler = lambda sql, params: (0, [])
        repo = MySQLSessionRepository(make_pool())
        assert repo.rotate("sid-1", "user-1", "stale", "jti-3", NOW + timedelta(days=14), NOW) is None
        assert len(connector.connections[0].executed) == 1

    def test_touch_reads_back_after_update(self, make_pool, connector):
        def handler(sql, params):
            if sql.startswith("UPDATE"):
                # Same second twice: MySQL reports 0 changed rows
                return 0, []
            return 1, [session_row()]

        connector.handler = handler
        repo = MySQLSessionRepository(make_pool())
        assert repo.touch("sid-1", NOW).session_id == "sid-1"

    def test_delete_expired_returns_rowcount(self, make_pool, connector):
        connector.handler = lambda sql, params: (7, [])
        repo = MySQLSessionRepository(make_pool())
        assert repo.delete_expired(NOW) == 7
        assert repo.delete("sid-1") is True

    def test_driver_error_fails_closed_and_discards_connection(self, make_pool, connector):
        pool = make_pool()
        repo = MySQLSessionRepository(pool)

        def handler(sql, params):
            raise OperationalError("Lost connection to MySQL server during query")

        connector.handler = handler
        with pytest.raises(BackingStoreUnavailableError):
            repo.find_active("sid-1", NOW)

        assert connector.connections[0].closed
        assert pool.stats()["total"] == 0

    def test_statement_error_rolls_back_and_keeps_connection(self, make_pool, connector):
        pool = make_pool()
        repo = MySQLSessionRepository(pool)

        def handler(sql, params):
            raise ProgrammingError("Table 'auth.user_sessions' doesn't exist")

        connector.handler = handler
        with pytest.raises(BackingStoreUnavailableError):
            repo.insert(Session("sid-1", "user-1", LoginType.EMAIL, NOW, NOW, NOW, "jti-1"))

        assert connector.connections[0].rollbacks == 1
        assert pool.stats() == {"total": 1, "idle": 1, "waiting": 0, "active": 0}


class TestMySQLUserDirectory:
    def test_authenticate_by_username(self, make_pool, connector):
        stored = hash_password("pw-123456", rounds=4)
        connector.handler = lambda sql, params: (1, [("user-1", "a@example.com", "Alice", "alice", stored)])
        directory = MySQLUserDirectory(make_pool(), bcrypt_rounds=4)

        profile = directory.authenticate("alice", "pw-123456")

        sql, params = connector.connections[0].executed[0]
        assert "WHERE username = %s" in sql
        assert params == ("alice",)
        assert profile.email == "a@example.com"

    def test_authenticate_wrong_password(self, make_pool, connector):
        stored = hash_password("pw-123456", rounds=4)
        connector.handler = lambda sql, params: (1, [("user-1", "a@example.com", "Alice", "alice", stored)])
        directory = MySQLUserDirectory(make_pool(), bcrypt_rounds=4)

        with pytest.raises(InvalidCredentialsError):
            directory.authenticate("A@Example.com", "nope")
        assert "WHERE email = %s" in connector.connections[0].executed[0][0]

    def test_create_user_duplicate(self, make_pool, connector):
        def handler(sql, params):
            raise IntegrityError("Duplicate entry 'a@example.com' for key 'uq_users_email'")

        connector.handler = handler
        directory = MySQLUserDirectory(make_pool(), bcrypt_rounds=4)
        with pytest.raises(UserAlreadyExistsError):
            directory.create_user("a@example.com", "pw-123456")

    def test_get_user_missing(self, make_pool, connector):
        connector.handler = lambda sql, params: (0, [])
        directory = MySQLUserDirectory(make_pool())
        assert directory.get_user("user-404") is None
