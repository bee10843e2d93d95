"""
Users, credentials and the current-user session.

UserRepository holds the user rows and their aggregate stats. IdentityProvider
is one session on top of it: it knows who is logged in and scopes the
stats/config updates to that user.
"""

import logging
import sqlite3
from datetime import date
from typing import Any

from werkzeug.security import check_password_hash, generate_password_hash

from database.database import get_db
from utils.errors import NotFoundError, UnauthenticatedError, ValidationError
from utils.models import MAX_COUNT, User, UserStats
from utils.utils import new_id, to_db_time, utcnow

logger = logging.getLogger(__name__)

STATS_FIELDS = {
    'totalCards': 'total_cards',
    'mastered': 'mastered',
    'learning': 'learning',
    'streak': 'streak',
    'lastPractice': 'last_practice',
}
CONFIG_FIELDS = ('name', 'email', 'stats')


# PASSWORDS ==================================================

def hash_password(password: str) -> str:
    return generate_password_hash(password)


def check_password(password: str, stored: str | None) -> bool:
    if not stored:
        return False
    return check_password_hash(stored, password)


# ROW HELPERS (shared with the record store) =================

def load_user(conn: sqlite3.Connection, user_id: str) -> User | None:
    row = conn.execute('SELECT * FROM users WHERE user_id = ?', (user_id,)).fetchone()
    return User.from_row(row) if row else None


def save_stats(conn: sqlite3.Connection, user_id: str, stats: UserStats) -> None:
    conn.execute(
        """UPDATE users
           SET total_cards = ?, mastered = ?, learning = ?, streak = ?, last_practice = ?
           WHERE user_id = ?
        """,
        (
            stats.total_cards, stats.mastered, stats.learning, stats.streak,
            stats.last_practice.isoformat() if stats.last_practice else None,
            user_id,
        )
    )


def merge_stats(stats: UserStats, partial: dict[str, Any]) -> UserStats:
    """
    Overlay a partial stats mapping (camelCase or snake_case keys).
    Raises ValidationError on unknown keys or bad values.
    """
    merged = UserStats(**vars(stats))
    for key, value in partial.items():
        attr = STATS_FIELDS.get(key, key)
        if attr not in STATS_FIELDS.values():
            raise ValidationError(f"unknown stats field '{key}'")

        if attr == 'last_practice':
            if isinstance(value, str):
                try:
                    value = date.fromisoformat(value[:10])
                except ValueError as e:
                    raise ValidationError(f"bad lastPractice {value!r}") from e
            elif value is not None and not isinstance(value, date):
                raise ValidationError("lastPractice must be a date")
        elif isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= MAX_COUNT:
            raise ValidationError(f"'{key}' must be an integer between 0 and {MAX_COUNT}")

        setattr(merged, attr, value)
    return merged


def apply_config(conn: sqlite3.Connection, user_id: str, partial: dict[str, Any]) -> None:
    """
    Merge name, email and stats into a user row inside the caller's transaction.

    The id, password hash and telegram link are never touched. Raises
    ValidationError on bad values or an email that belongs to someone else,
    NotFoundError if the user is gone.
    """
    user = load_user(conn, user_id)
    if user is None:
        raise NotFoundError(f"unknown user {user_id}")

    name = partial.get('name', user.name)
    email = partial.get('email', user.email)
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name can't be blank")
    if email is not None and (not isinstance(email, str) or '@' not in email):
        raise ValidationError(f"bad email {email!r}")

    stats_partial = partial.get('stats') or {}
    if not isinstance(stats_partial, dict):
        raise ValidationError("stats must be an object")
    stats = merge_stats(user.stats, stats_partial)

    try:
        conn.execute(
            'UPDATE users SET name = ?, email = ? WHERE user_id = ?',
            (name.strip(), email, user_id)
        )
    except sqlite3.IntegrityError as e:
        raise ValidationError(f"email {email!r} is already registered") from e
    save_stats(conn, user_id, stats)


# USERS ======================================================

class UserRepository:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def create_user(self, name, email=None, password=None, telegram_id=None) -> User | None:
        """Returns None when the email or Telegram account is already registered."""
        if not name or not name.strip():
            if not email:
                return None
            name = email.split('@')[0]

        user_id = new_id()
        now = utcnow()
        with get_db(self.db_path, write=True) as conn:
            try:
                conn.execute(
                    """INSERT INTO users (user_id, email, name, password_hash, telegram_id, created_at)
                       VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user_id, email, name.strip(),
                        hash_password(password) if password else None,
                        telegram_id, to_db_time(now),
                    )
                )
            except sqlite3.IntegrityError:
                logger.info(f"User already registered: email={email} telegram_id={telegram_id}")
                return None
            user = load_user(conn, user_id)
        logger.info(f"Created user: {user_id}")
        return user

    def get_user(self, user_id) -> User | None:
        with get_db(self.db_path) as conn:
            return load_user(conn, user_id)

    def get_user_by_email(self, email) -> User | None:
        with get_db(self.db_path) as conn:
            row = conn.execute('SELECT * FROM users WHERE email = ?', (email,)).fetchone()
            return User.from_row(row) if row else None

    def get_user_by_telegram(self, telegram_id) -> User | None:
        with get_db(self.db_path) as conn:
            row = conn.execute('SELECT * FROM users WHERE telegram_id = ?', (telegram_id,)).fetchone()
            return User.from_row(row) if row else None

    def verify_password(self, email, password) -> User | None:
        with get_db(self.db_path) as conn:
            row = conn.execute('SELECT * FROM users WHERE email = ?', (email,)).fetchone()
            if row and check_password(password, row['password_hash']):
                return User.from_row(row)
        return None

    def update_stats(self, user_id, partial: dict[str, Any]) -> bool:
        with get_db(self.db_path, write=True) as conn:
            user = load_user(conn, user_id)
            if user is None:
                return False
            try:
                stats = merge_stats(user.stats, partial)
            except ValidationError as e:
                logger.warning(f"Rejected stats update for {user_id}: {e}")
                return False
            save_stats(conn, user_id, stats)
        return True

    def update_config(self, user_id, partial: dict[str, Any]) -> bool:
        if not isinstance(partial, dict):
            return False
        fields = {k: v for k, v in partial.items() if k in CONFIG_FIELDS}
        try:
            with get_db(self.db_path, write=True) as conn:
                apply_config(conn, user_id, fields)
        except (ValidationError, NotFoundError) as e:
            logger.warning(f"Rejected config update for {user_id}: {e}")
            return False
        logger.info(f"Updated config for user {user_id}: {sorted(fields)}")
        return True


# SESSION ====================================================

class IdentityProvider:
    """Who the current user is, for one client session."""

    def __init__(self, users: UserRepository):
        self.users = users
        self.current_user_id: str | None = None

    def signup(self, name, email, password) -> bool:
        if not email or '@' not in email or not password:
            return False
        user = self.users.create_user(name, email=email, password=password)
        if user is None:
            return False
        self.current_user_id = user.id
        return True

    def login(self, email, password) -> bool:
        user = self.users.verify_password(email, password)
        if user is None:
            return False
        self.current_user_id = user.id
        return True

    def login_telegram(self, telegram_id: int, name: str) -> User:
        """Resolve a Telegram account to its user, registering it on first contact."""
        user = self.users.get_user_by_telegram(telegram_id)
        if user is None:
            user = self.users.create_user(name or f"user{telegram_id}", telegram_id=telegram_id)
            if user is None:
                # lost a race with another update registering the same account
                user = self.users.get_user_by_telegram(telegram_id)
        self.current_user_id = user.id
        return user

    def logout(self) -> None:
        self.current_user_id = None

    def is_authenticated(self) -> bool:
        return self.current_user_id is not None

    def get_current_user(self) -> User | None:
        if self.current_user_id is None:
            return None
        return self.users.get_user(self.current_user_id)

    def require_user(self) -> User:
        user = self.get_current_user()
        if user is None:
            raise UnauthenticatedError("no user is logged in")
        return user

    def update_user_stats(self, partial: dict[str, Any]) -> bool:
        if self.current_user_id is None:
            return False
        return self.users.update_stats(self.current_user_id, partial)

    def update_user_config(self, partial: dict[str, Any]) -> bool:
        if self.current_user_id is None:
            return False
        return self.users.update_config(self.current_user_id, partial)
