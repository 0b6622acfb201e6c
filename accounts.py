import logging
import sqlite3
from typing import List, Optional

from database import transaction
from user import User, hash_password, verify_password

logger = logging.getLogger(__name__)

USER_COLUMNS = "id, name, email, password_hash, admin, violations"


class AccountService:
    """User store: identity, credentials and the violation counter."""

    def authenticate(self, email: str, password: str) -> Optional[User]:
        """Return the user if the email and password match, else None."""
        user = self.find_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            logger.warning(f"Authentication failed for {email!r}")
            return None
        return user

    def get_by_id(self, user_id: int, conn: Optional[sqlite3.Connection] = None) -> Optional[User]:
        with transaction(conn) as c:
            row = c.execute(f"SELECT {USER_COLUMNS} FROM users WHERE id = ?", (user_id,)).fetchone()
        return User.from_dict(dict(row)) if row else None

    def find_by_email(self, email: str) -> Optional[User]:
        if not email:
            return None
        with transaction() as conn:
            row = conn.execute(
                f"SELECT {USER_COLUMNS} FROM users WHERE email = ?", (email.strip().lower(),)
            ).fetchone()
        return User.from_dict(dict(row)) if row else None

    def list_users(self) -> List[User]:
        with transaction() as conn:
            rows = conn.execute(f"SELECT {USER_COLUMNS} FROM users ORDER BY email").fetchall()
        return [User.from_dict(dict(row)) for row in rows]

    def add_user(self, name: str, email: str, password: str, admin: bool = False) -> User:
        if not name or not name.strip():
            raise ValueError("Name cannot be empty.")
        if not email or "@" not in email:
            raise ValueError("Invalid email.")
        if not password:
            raise ValueError("Password cannot be empty.")

        user = User(name=name, email=email, password_hash=hash_password(password), admin=admin)
        try:
            with transaction() as conn:
                cursor = conn.execute(
                    "INSERT INTO users (name, email, password_hash, admin, violations) VALUES (?, ?, ?, ?, ?)",
                    (user.name, user.email, user.password_hash, user.admin, user.violations),
                )
                user.id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise ValueError(f"User with email {user.email} already exists.") from e
        logger.info(f"User {user.id} added: {user.email}")
        return user

    def update_violations(self, user_id: int, violations: int, conn: Optional[sqlite3.Connection] = None) -> None:
        if violations < 0:
            raise ValueError("Violations cannot be negative.")
        with transaction(conn) as c:
            c.execute("UPDATE users SET violations = ? WHERE id = ?", (violations, user_id))
        logger.info(f"User {user_id} violations set to {violations}")
