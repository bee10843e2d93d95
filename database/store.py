"""
Owner-scoped storage for decks and cards.

Every call takes the owner id explicitly and filters on it; a record that
doesn't exist and a record that belongs to someone else look the same to the
caller (None / False / nothing listed). Mutations and the aggregate counter
changes they trigger share one write transaction.
"""

import json
import logging
import sqlite3
from datetime import date, datetime, timedelta
from typing import Any, Iterable

from database.database import get_db
from database.identity import load_user, save_stats
from utils import srs
from utils.errors import InvalidQualityError
from utils.models import Card, CardStats, Deck, StatsDrift, UserStats, DEFAULT_CARD_TYPE, DEFAULT_EASE_FACTOR
from utils.streak import next_streak
from utils.utils import as_utc, new_id, normalize_tags, to_db_time, utc_day, utcnow

logger = logging.getLogger(__name__)


def _now(now: datetime | None) -> datetime:
    return utcnow() if now is None else as_utc(now)


def _blank(value) -> bool:
    return not isinstance(value, str) or not value.strip()


def derive_stats(conn: sqlite3.Connection, owner_id, current: UserStats) -> UserStats:
    """Card counters recomputed from the owner's cards; streak fields are kept."""
    row = conn.execute(
        """SELECT COUNT(*) AS total,
                  COALESCE(SUM(CASE WHEN interval_days >= ? THEN 1 ELSE 0 END), 0) AS mastered
           FROM cards WHERE user_id = ?
        """,
        (srs.MASTERY_INTERVAL, owner_id)
    ).fetchone()
    return UserStats(
        total_cards=row['total'],
        mastered=row['mastered'],
        learning=row['total'] - row['mastered'],
        streak=current.streak,
        last_practice=current.last_practice,
    )


class RecordStore:
    def __init__(self, db_path: str):
        self.db_path = db_path

    # DECKS ==================================================

    def create_deck(self, owner_id, name, description='', now=None) -> Deck | None:
        if _blank(name):
            logger.warning(f"Rejected deck without a name for {owner_id}")
            return None
        now = _now(now)
        deck_id = new_id()

        with get_db(self.db_path, write=True) as conn:
            if load_user(conn, owner_id) is None:
                return None
            conn.execute(
                """INSERT INTO decks (deck_id, user_id, deck_name, description, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?)
                """,
                (deck_id, owner_id, name.strip(), description or '', to_db_time(now), to_db_time(now))
            )
            deck = self._load_deck(conn, owner_id, deck_id)
        logger.info(f"Created deck {deck_id} for user {owner_id}")
        return deck

    def list_decks(self, owner_id) -> list[Deck]:
        with get_db(self.db_path) as conn:
            rows = conn.execute(
                'SELECT * FROM decks WHERE user_id = ? ORDER BY rowid',
                (owner_id,)
            ).fetchall()
            return [Deck.from_row(row) for row in rows]

    def get_deck(self, owner_id, deck_id) -> Deck | None:
        with get_db(self.db_path) as conn:
            return self._load_deck(conn, owner_id, deck_id)

    def update_deck(self, owner_id, deck_id, name=None, description=None, now=None) -> Deck | None:
        if name is not None and _blank(name):
            return None
        now = _now(now)

        with get_db(self.db_path, write=True) as conn:
            deck = self._load_deck(conn, owner_id, deck_id)
            if deck is None:
                return None
            conn.execute(
                """UPDATE decks SET deck_name = ?, description = ?, updated_at = ?
                   WHERE deck_id = ? AND user_id = ?
                """,
                (
                    name.strip() if name is not None else deck.name,
                    description if description is not None else deck.description,
                    to_db_time(now), deck_id, owner_id,
                )
            )
            return self._load_deck(conn, owner_id, deck_id)

    def delete_deck(self, owner_id, deck_id) -> bool:
        """Delete the deck's cards, then the deck, in one transaction."""
        with get_db(self.db_path, write=True) as conn:
            if self._load_deck(conn, owner_id, deck_id) is None:
                return False
            removed = conn.execute(
                'DELETE FROM cards WHERE deck_id = ? AND user_id = ?',
                (deck_id, owner_id)
            ).rowcount
            conn.execute('DELETE FROM decks WHERE deck_id = ? AND user_id = ?', (deck_id, owner_id))
            self._bump_stats(conn, owner_id, total_cards=-removed, learning=-removed)
        logger.info(f"Deleted deck {deck_id} with {removed} cards for user {owner_id}")
        return True

    def list_decks_with_stats(self, owner_id, now=None) -> list[dict[str, Any]]:
        """Every deck with its card count and due count."""
        now = _now(now)
        with get_db(self.db_path) as conn:
            rows = conn.execute(
                """SELECT d.*,
                          COUNT(c.card_id) AS card_count,
                          COALESCE(SUM(CASE WHEN c.due_date <= ? THEN 1 ELSE 0 END), 0) AS due_count
                   FROM decks d
                   LEFT JOIN cards c ON c.deck_id = d.deck_id AND c.user_id = d.user_id
                   WHERE d.user_id = ?
                   GROUP BY d.deck_id
                   ORDER BY d.rowid
                """,
                (to_db_time(now), owner_id)
            ).fetchall()
            return [
                {'deck': Deck.from_row(row), 'card_count': row['card_count'], 'due_count': row['due_count']}
                for row in rows
            ]

    # CARDS ==================================================

    def create_card(
        self,
        owner_id,
        deck_id,
        question,
        answer,
        type: str = DEFAULT_CARD_TYPE,
        tags: Iterable[str] = (),
        now=None,
    ) -> Card | None:
        if _blank(question) or _blank(answer):
            logger.warning(f"Rejected card with an empty side for {owner_id}")
            return None
        now = _now(now)
        card_id = new_id()

        with get_db(self.db_path, write=True) as conn:
            if load_user(conn, owner_id) is None:
                return None
            if self._load_deck(conn, owner_id, deck_id) is None:
                return None
            conn.execute(
                """INSERT INTO cards (card_id, deck_id, user_id, question, answer, card_type, tags,
                                      repetitions, interval_days, ease_factor, due_date, last_review,
                                      created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, 0, 0, ?, ?, NULL, ?, ?)
                """,
                (
                    card_id, deck_id, owner_id, question, answer, type or DEFAULT_CARD_TYPE,
                    json.dumps(normalize_tags(tags)), DEFAULT_EASE_FACTOR,
                    to_db_time(now), to_db_time(now), to_db_time(now),
                )
            )
            self._bump_stats(conn, owner_id, total_cards=1, learning=1)
            card = self._load_card(conn, owner_id, card_id)
        logger.info(f"Created card {card_id} in deck {deck_id}")
        return card

    def list_cards(self, owner_id, deck_id=None) -> list[Card]:
        with get_db(self.db_path) as conn:
            if deck_id is None:
                rows = conn.execute(
                    'SELECT * FROM cards WHERE user_id = ? ORDER BY rowid',
                    (owner_id,)
                ).fetchall()
            else:
                rows = conn.execute(
                    'SELECT * FROM cards WHERE user_id = ? AND deck_id = ? ORDER BY rowid',
                    (owner_id, deck_id)
                ).fetchall()
            return [Card.from_row(row) for row in rows]

    def get_card(self, owner_id, card_id) -> Card | None:
        with get_db(self.db_path) as conn:
            return self._load_card(conn, owner_id, card_id)

    def get_due_cards(self, owner_id, now=None) -> list[Card]:
        now = _now(now)
        with get_db(self.db_path) as conn:
            rows = conn.execute(
                """SELECT * FROM cards
                   WHERE user_id = ? AND due_date <= ?
                   ORDER BY due_date, rowid
                """,
                (owner_id, to_db_time(now))
            ).fetchall()
            return [Card.from_row(row) for row in rows]

    def update_card(self, owner_id, card_id, question=None, answer=None, now=None) -> Card | None:
        """Edit content only; scheduling state is left alone."""
        if (question is not None and _blank(question)) or (answer is not None and _blank(answer)):
            return None
        now = _now(now)

        with get_db(self.db_path, write=True) as conn:
            card = self._load_card(conn, owner_id, card_id)
            if card is None:
                return None
            conn.execute(
                """UPDATE cards SET question = ?, answer = ?, updated_at = ?
                   WHERE card_id = ? AND user_id = ?
                """,
                (
                    question if question is not None else card.question,
                    answer if answer is not None else card.answer,
                    to_db_time(now), card_id, owner_id,
                )
            )
            return self._load_card(conn, owner_id, card_id)

    def delete_card(self, owner_id, card_id) -> bool:
        with get_db(self.db_path, write=True) as conn:
            deleted = conn.execute(
                'DELETE FROM cards WHERE card_id = ? AND user_id = ?',
                (card_id, owner_id)
            ).rowcount
            if not deleted:
                return False
            self._bump_stats(conn, owner_id, total_cards=-1, learning=-1)
        logger.info(f"Deleted card {card_id} for user {owner_id}")
        return True

    # REVIEW =================================================

    def apply_review(self, owner_id, card_id, quality, now=None) -> CardStats | None:
        """Schedule a reviewed card and persist the result with its counter changes."""
        now = _now(now)
        try:
            srs.validate_quality(quality)
        except InvalidQualityError as e:
            logger.warning(f"Rejected review of card {card_id}: {e}")
            return None

        with get_db(self.db_path, write=True) as conn:
            card = self._load_card(conn, owner_id, card_id)
            if card is None:
                return None

            result = srs.apply_review(card.stats, quality, now)
            stats = result.stats
            conn.execute(
                """UPDATE cards
                   SET repetitions = ?, interval_days = ?, ease_factor = ?,
                       due_date = ?, last_review = ?, updated_at = ?
                   WHERE card_id = ? AND user_id = ?
                """,
                (
                    stats.repetitions, stats.interval, stats.ease_factor,
                    to_db_time(stats.due_date), to_db_time(stats.last_review), to_db_time(now),
                    card_id, owner_id,
                )
            )
            if result.mastered:
                self._bump_stats(conn, owner_id, mastered=1, learning=-1)

        logger.info(
            f"Card {card_id}: quality {quality}, interval {stats.interval}d, "
            f"ease {stats.ease_factor:.2f}, next due {stats.due_date.isoformat()}"
        )
        return stats

    def record_practice(self, owner_id, now=None) -> UserStats | None:
        now = _now(now)
        with get_db(self.db_path, write=True) as conn:
            user = load_user(conn, owner_id)
            if user is None:
                return None
            stats = next_streak(user.stats, now)
            if stats != user.stats:
                save_stats(conn, owner_id, stats)
            return stats

    # STATS ==================================================

    def get_review_activity(self, owner_id, days=365, now=None) -> dict[date, int]:
        """Cards last reviewed on each UTC day of the window ending today, oldest first."""
        today = utc_day(_now(now))
        first = today - timedelta(days=days - 1)
        counts = {first + timedelta(d): 0 for d in range(days)}

        with get_db(self.db_path) as conn:
            rows = conn.execute(
                """SELECT date(last_review) AS day, COUNT(*) AS cnt
                   FROM cards
                   WHERE user_id = ? AND last_review IS NOT NULL
                   GROUP BY date(last_review)
                """,
                (owner_id,)
            ).fetchall()

        for row in rows:
            day = date.fromisoformat(row['day'])
            if day in counts:
                counts[day] = row['cnt']
        return counts

    def get_forecast(self, owner_id, days=7, now=None) -> list[dict[str, Any]]:
        """Number of cards falling due on each of the next `days` UTC days."""
        today = utc_day(_now(now))
        with get_db(self.db_path) as conn:
            rows = conn.execute(
                """SELECT date(due_date) AS day, COUNT(*) AS cnt
                   FROM cards
                   WHERE user_id = ? AND date(due_date) > ? AND date(due_date) <= ?
                   GROUP BY date(due_date)
                """,
                (owner_id, today.isoformat(), (today + timedelta(days=days)).isoformat())
            ).fetchall()
        found = {row['day']: row['cnt'] for row in rows}
        return [
            {'day': today + timedelta(d), 'count': found.get((today + timedelta(d)).isoformat(), 0)}
            for d in range(1, days + 1)
        ]

    def check_stats_drift(self, owner_id) -> StatsDrift | None:
        with get_db(self.db_path) as conn:
            user = load_user(conn, owner_id)
            if user is None:
                return None
            return StatsDrift(stored=user.stats, derived=derive_stats(conn, owner_id, user.stats))

    def reconcile_stats(self, owner_id) -> UserStats | None:
        """Overwrite the card counters with values recomputed from the cards."""
        with get_db(self.db_path, write=True) as conn:
            user = load_user(conn, owner_id)
            if user is None:
                return None
            derived = derive_stats(conn, owner_id, user.stats)
            if derived != user.stats:
                logger.info(f"Reconciled stats for user {owner_id}: {user.stats} -> {derived}")
                save_stats(conn, owner_id, derived)
            return derived

    # private helpers ────────────────────────────────────────

    @staticmethod
    def _load_deck(conn: sqlite3.Connection, owner_id, deck_id) -> Deck | None:
        row = conn.execute(
            'SELECT * FROM decks WHERE deck_id = ? AND user_id = ?',
            (deck_id, owner_id)
        ).fetchone()
        return Deck.from_row(row) if row else None

    @staticmethod
    def _load_card(conn: sqlite3.Connection, owner_id, card_id) -> Card | None:
        row = conn.execute(
            'SELECT * FROM cards WHERE card_id = ? AND user_id = ?',
            (card_id, owner_id)
        ).fetchone()
        return Card.from_row(row) if row else None

    @staticmethod
    def _bump_stats(conn: sqlite3.Connection, owner_id, **deltas: int) -> None:
        """Add deltas to the owner's counters, flooring each at 0."""
        user = load_user(conn, owner_id)
        if user is None:
            return
        stats = user.stats
        for name, delta in deltas.items():
            setattr(stats, name, max(0, getattr(stats, name) + delta))
        save_stats(conn, owner_id, stats)
