"""
User directory: credential checks and profile lookup for token claims.
"""

import threading
import uuid
from abc import ABC, abstractmethod
from typing import Dict, Optional

from mysql.connector.errors import IntegrityError

from auth.errors import InvalidCredentialsError, UserAlreadyExistsError
from auth.models import UserProfile
from auth.utils import hash_password, verify_password
from repositories.base import BaseRepository
from repositories.error_handling import handle_repository_errors


def is_email(identifier: str) -> bool:
    return "@" in identifier


class UserDirectory(ABC):
    @abstractmethod
    def authenticate(self, identifier: str, password: str) -> UserProfile:
        """
        Checks a password against the stored hash.

        Args:
            identifier: Email address or username
            password: Plain password

        Raises:
            InvalidCredentialsError: Unknown user or wrong password
        """

    @abstractmethod
    def create_user(self, email: str, password: str, name: Optional[str] = None) -> UserProfile:
        """
        Raises:
            UserAlreadyExistsError: Email already registered
        """

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[UserProfile]:
        ...


class InMemoryUserDirectory(UserDirectory):
    def __init__(self, bcrypt_rounds: int = 12):
        self.bcrypt_rounds = bcrypt_rounds
        self._users: Dict[str, UserProfile] = {}
        self._hashes: Dict[str, str] = {}
        self._lock = threading.Lock()

    def authenticate(self, identifier: str, password: str) -> UserProfile:
        with self._lock:
            profile = self._find(identifier)
            password_hash = self._hashes.get(profile.user_id) if profile else None
        if profile is None or not verify_password(password, password_hash):
            raise InvalidCredentialsError(f"Login failed for {identifier!r}")
        return profile

    def create_user(self, email: str, password: str, name: Optional[str] = None) -> UserProfile:
        password_hash = hash_password(password, rounds=self.bcrypt_rounds)
        email = email.strip().lower()
        with self._lock:
            if any(user.email == email for user in self._users.values()):
                raise UserAlreadyExistsError(f"Email already registered: {email}")
            user_id = str(uuid.uuid4())
            username = email.split("@", 1)[0]
            if any(user.username == username for user in self._users.values()):
                username = f"{username}-{user_id[:8]}"
            profile = UserProfile(user_id=user_id, email=email, name=name, username=username)
            self._users[user_id] = profile
            self._hashes[user_id] = password_hash
        return profile

    def get_user(self, user_id: str) -> Optional[UserProfile]:
        with self._lock:
            return self._users.get(str(user_id))

    def _find(self, identifier: str) -> Optional[UserProfile]:
        identifier = identifier.strip()
        if is_email(identifier):
            identifier = identifier.lower()
            return next((u for u in self._users.values() if u.email == identifier), None)
        return next((u for u in self._users.values() if u.username == identifier), None)


class MySQLUserDirectory(BaseRepository, UserDirectory):
    """Users in the ``users`` table (id, email, username, name, password_hash)."""

    def __init__(self, pool, acquire_timeout=None, bcrypt_rounds: int = 12):
        super().__init__(pool, acquire_timeout)
        self.bcrypt_rounds = bcrypt_rounds

    @handle_repository_errors("authenticate user")
    def authenticate(self, identifier: str, password: str) -> UserProfile:
        identifier = identifier.strip()
        column = "email" if is_email(identifier) else "username"
        if column == "email":
            identifier = identifier.lower()
        with self.unit_of_work() as uow:
            uow.cursor.execute(
                f"SELECT id, email, name, username, password_hash FROM users WHERE {column} = %s",
                (identifier,),
            )
            row = uow.cursor.fetchone()
        if not row or not verify_password(password, row[4] or ""):
            raise InvalidCredentialsError(f"Login failed for {identifier!r}")
        return UserProfile(user_id=str(row[0]), email=row[1], name=row[2], username=row[3])

    @handle_repository_errors("create user")
    def create_user(self, email: str, password: str, name: Optional[str] = None) -> UserProfile:
        email = email.strip().lower()
        user_id = str(uuid.uuid4())
        profile = UserProfile(
            user_id=user_id,
            email=email,
            name=name,
            username=f"{email.split('@', 1)[0]}-{user_id[:8]}",
        )
        try:
            self._insert(profile, hash_password(password, rounds=self.bcrypt_rounds))
        except IntegrityError as exc:
            raise UserAlreadyExistsError(f"Email already registered: {email}") from exc
        return profile

    @handle_repository_errors("get user")
    def get_user(self, user_id: str) -> Optional[UserProfile]:
        with self.unit_of_work() as uow:
            uow.cursor.execute(
                "SELECT id, email, name, username FROM users WHERE id = %s",
                (str(user_id),),
            )
            row = uow.cursor.fetchone()
        if not row:
            return None
        return UserProfile(user_id=str(row[0]), email=row[1], name=row[2], username=row[3])

    def _insert(self, profile: UserProfile, password_hash: str) -> None:
        with self.unit_of_work() as uow:
            uow.cursor.execute(
                """
                INSERT INTO users (id, email, username, name, password_hash)
                VALUES (%s, %s, %s, %s, %s)
                """,
                (profile.user_id, profile.email, profile.username, profile.name, password_hash),
            )
