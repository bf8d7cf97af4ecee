import logging
import sqlite3
import time
from typing import Any, Dict, List, Optional

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from library_tracker.book import utcnow
from library_tracker.config import settings
from library_tracker.database import get_db_connection
from library_tracker.user import User, UserStats
from library_tracker.validators import RegistrationPayload

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"


class DuplicateUserError(ValueError):
    """Username or email is already registered."""


class InvalidCredentials(Exception):
    """Login failed. Deliberately says nothing about which part was wrong."""

    def __init__(self) -> None:
        super().__init__(INVALID_CREDENTIALS_MESSAGE)


class UserNotFound(LookupError):
    pass


class TokenError(Exception):
    """A bearer token could not be accepted.

    ``reason`` is one of ``expired``, ``malformed``, ``verification_failed`` or
    ``invalid_claims`` and is meant for logs only.
    """

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Over-long passwords and corrupt hashes never match
        return False


class UserStore:
    """Persists accounts and hashed credentials, issues bearer tokens."""

    # ------------------------- Registration & login ------------------------- #
    def register(self, payload: RegistrationPayload) -> User:
        if self._exists(payload.username, payload.email):
            raise DuplicateUserError("User already exists with this email or username")

        user = User(
            username=payload.username,
            email=payload.email,
            password_hash=hash_password(payload.password),
            first_name=payload.first_name,
            last_name=payload.last_name,
        )
        conn = get_db_connection()
        try:
            conn.execute(
                """
                INSERT INTO users (
                    id, username, email, password_hash, first_name, last_name,
                    avatar, theme, default_book_status, is_admin, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (user.id, user.username, user.email, user.password_hash, user.first_name, user.last_name,
                 user.avatar, user.theme, user.default_book_status, int(user.is_admin),
                 user.created_at, user.updated_at),
            )
            conn.commit()
        except sqlite3.IntegrityError as e:
            raise DuplicateUserError("User already exists with this email or username") from e
        finally:
            conn.close()

        logger.info(f"Registered user {user.username} ({user.id})")
        return user

    def authenticate(self, email: str, password: str) -> User:
        user = self.find_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            logger.info("Failed login attempt")
            raise InvalidCredentials()
        return user

    # ------------------------- Tokens ------------------------- #
    def issue_token(self, user: User) -> str:
        now = int(time.time())
        claims = {
            "sub": user.id,
            "iat": now,
            "exp": now + settings.jwt_expiration_minutes * 60,
        }
        return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)

    def decode_token(self, token: str) -> str:
        """Return the user id bound to a token or raise TokenError."""
        try:
            payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        except ExpiredSignatureError as e:
            raise TokenError("expired", "Token has expired") from e
        except JWTClaimsError as e:
            raise TokenError("invalid_claims", "Token verification failed") from e
        except JWTError as e:
            reason = "verification_failed" if "signature" in str(e).lower() else "malformed"
            raise TokenError(reason, "Invalid token") from e

        user_id = payload.get("sub")
        if not user_id:
            raise TokenError("invalid_claims", "Token verification failed")
        return user_id

    # ------------------------- Lookups ------------------------- #
    def get_user(self, user_id: str) -> Optional[User]:
        return self._fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))

    def find_by_email(self, email: str) -> Optional[User]:
        return self._fetch_one("SELECT * FROM users WHERE email = ?", ((email or "").strip().lower(),))

    def list_users(self) -> List[User]:
        conn = get_db_connection()
        try:
            rows = conn.execute("SELECT * FROM users ORDER BY created_at").fetchall()
            return [User.from_row(dict(row)) for row in rows]
        finally:
            conn.close()

    # ------------------------- Updates ------------------------- #
    def update_profile(self, user_id: str, changes: Dict[str, Any]) -> User:
        user = self.get_user(user_id)
        if user is None:
            raise UserNotFound(f"User {user_id} not found")

        if changes.get("first_name"):
            user.first_name = changes["first_name"]
        if changes.get("last_name"):
            user.last_name = changes["last_name"]
        if "avatar" in changes:
            user.avatar = changes["avatar"]
        preferences = changes.get("preferences") or {}
        if preferences.get("theme"):
            user.theme = preferences["theme"]
        if preferences.get("default_book_status"):
            user.default_book_status = preferences["default_book_status"]
        # The hash is rewritten only when a new plaintext password is supplied
        if changes.get("password"):
            user.password_hash = hash_password(changes["password"])
        user.updated_at = utcnow().isoformat()

        conn = get_db_connection()
        try:
            conn.execute(
                """
                UPDATE users SET first_name = ?, last_name = ?, avatar = ?, theme = ?,
                       default_book_status = ?, password_hash = ?, updated_at = ?
                WHERE id = ?
                """,
                (user.first_name, user.last_name, user.avatar, user.theme,
                 user.default_book_status, user.password_hash, user.updated_at, user.id),
            )
            conn.commit()
        finally:
            conn.close()
        return user

    def set_admin(self, email: str, is_admin: bool = True) -> User:
        user = self.find_by_email(email)
        if user is None:
            raise UserNotFound(f"No user with email {email}")
        conn = get_db_connection()
        try:
            conn.execute("UPDATE users SET is_admin = ?, updated_at = ? WHERE id = ?",
                         (int(is_admin), utcnow().isoformat(), user.id))
            conn.commit()
        finally:
            conn.close()
        user.is_admin = is_admin
        return user

    def recompute_stats(self, user_id: str) -> Optional[UserStats]:
        """Rebuild the user's stats snapshot from their books.

        The snapshot is always overwritten from a fresh count, never patched.
        A user that no longer exists is logged and skipped.
        """
        conn = get_db_connection()
        try:
            if conn.execute("SELECT 1 FROM users WHERE id = ?", (user_id,)).fetchone() is None:
                logger.warning(f"Skipping stats update: user {user_id} no longer exists")
                return None

            rows = conn.execute(
                "SELECT status, COUNT(*) AS count FROM books WHERE user_id = ? GROUP BY status",
                (user_id,),
            ).fetchall()
            stats = UserStats.from_status_counts({row["status"]: row["count"] for row in rows})

            conn.execute(
                """
                UPDATE users SET stats_total_books = ?, stats_books_read = ?,
                       stats_currently_reading = ?, stats_to_read = ?
                WHERE id = ?
                """,
                (stats.total_books, stats.books_read, stats.currently_reading, stats.to_read, user_id),
            )
            conn.commit()
            return stats
        finally:
            conn.close()

    # ------------------------- Internals ------------------------- #
    def _exists(self, username: str, email: str) -> bool:
        conn = get_db_connection()
        try:
            row = conn.execute(
                "SELECT 1 FROM users WHERE username = ? OR email = ?", (username, email)
            ).fetchone()
            return row is not None
        finally:
            conn.close()

    def _fetch_one(self, query: str, params: tuple) -> Optional[User]:
        conn = get_db_connection()
        try:
            row = conn.execute(query, params).fetchone()
            return User.from_row(dict(row)) if row else None
        finally:
            conn.close()
