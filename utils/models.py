"""Record types shared by the store, the scheduler and the bot."""

import json
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from utils.errors import CorruptRecordError, ValidationError
from utils.utils import as_utc, from_db_time, normalize_tags, parse_iso

DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
# Longest gap between reviews; keeps due dates well inside datetime's range
MAX_INTERVAL = 36500
# SQLite stores 64-bit integers; counters are kept far below that
MAX_COUNT = 2 ** 31 - 1
DEFAULT_CARD_TYPE = 'code'

_ID_RE = re.compile(r'[\w-]{1,40}')


@dataclass
class UserStats:
    total_cards: int = 0
    mastered: int = 0
    learning: int = 0
    streak: int = 0
    last_practice: date | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            'totalCards': self.total_cards,
            'mastered': self.mastered,
            'learning': self.learning,
            'streak': self.streak,
            'lastPractice': self.last_practice.isoformat() if self.last_practice else None,
        }


@dataclass
class User:
    id: str
    name: str
    email: str | None
    created_at: datetime
    telegram_id: int | None = None
    stats: UserStats = field(default_factory=UserStats)

    @classmethod
    def from_row(cls, row) -> 'User':
        last_practice = row['last_practice']
        return cls(
            id=row['user_id'],
            name=row['name'],
            email=row['email'],
            created_at=from_db_time(row['created_at']),
            telegram_id=row['telegram_id'],
            stats=UserStats(
                total_cards=row['total_cards'],
                mastered=row['mastered'],
                learning=row['learning'],
                streak=row['streak'],
                last_practice=date.fromisoformat(last_practice) if last_practice else None,
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'createdAt': self.created_at.isoformat(),
            'stats': self.stats.to_dict(),
        }


@dataclass
class Deck:
    id: str
    owner_id: str
    name: str
    description: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row) -> 'Deck':
        return cls(
            id=row['deck_id'],
            owner_id=row['user_id'],
            name=row['deck_name'],
            description=row['description'],
            created_at=from_db_time(row['created_at']),
            updated_at=from_db_time(row['updated_at']),
        )

    @classmethod
    def from_dict(cls, data: Any) -> 'Deck':
        """Parse an exported deck. Raises ValidationError on a malformed entry."""
        if not isinstance(data, dict):
            raise ValidationError("deck entry must be an object")
        name = _required_str(data, 'name')
        if not name.strip():
            raise ValidationError("deck name can't be blank")
        return cls(
            id=_required_id(data, 'id'),
            owner_id=str(data.get('ownerId') or data.get('userId') or ''),
            name=name,
            description=_optional_str(data, 'description'),
            created_at=_timestamp(data, 'createdAt'),
            updated_at=_timestamp(data, 'updatedAt'),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'ownerId': self.owner_id,
            'createdAt': self.created_at.isoformat(),
            'updatedAt': self.updated_at.isoformat(),
        }


@dataclass
class CardStats:
    due_date: datetime
    repetitions: int = 0
    interval: int = 0
    ease_factor: float = DEFAULT_EASE_FACTOR
    last_review: datetime | None = None

    @classmethod
    def from_dict(cls, data: Any) -> 'CardStats':
        if not isinstance(data, dict):
            raise ValidationError("card stats must be an object")
        ease_factor = data.get('easeFactor', DEFAULT_EASE_FACTOR)
        if isinstance(ease_factor, bool) or not isinstance(ease_factor, (int, float)):
            raise ValidationError("easeFactor must be a number")
        if not math.isfinite(ease_factor):
            raise ValidationError("easeFactor must be a finite number")
        if ease_factor < MIN_EASE_FACTOR:
            raise ValidationError(f"easeFactor must be at least {MIN_EASE_FACTOR}")
        last_review = data.get('lastReview')
        return cls(
            due_date=_timestamp(data, 'dueDate'),
            repetitions=_non_negative_int(data, 'repetitions'),
            interval=_non_negative_int(data, 'interval', MAX_INTERVAL),
            ease_factor=float(ease_factor),
            last_review=_timestamp(data, 'lastReview') if last_review else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            'repetitions': self.repetitions,
            'interval': self.interval,
            'easeFactor': self.ease_factor,
            'dueDate': self.due_date.isoformat(),
            'lastReview': self.last_review.isoformat() if self.last_review else None,
        }


@dataclass
class Card:
    id: str
    deck_id: str
    owner_id: str
    question: str
    answer: str
    stats: CardStats
    created_at: datetime
    updated_at: datetime
    type: str = DEFAULT_CARD_TYPE
    tags: list[str] = field(default_factory=list)

    @classmethod
    def from_row(cls, row) -> 'Card':
        try:
            tags = json.loads(row['tags'])
        except (TypeError, ValueError) as e:
            raise CorruptRecordError(f"card {row['card_id']} has unreadable tags: {e}") from e
        if not isinstance(tags, list):
            raise CorruptRecordError(f"card {row['card_id']} tags are not a list")

        return cls(
            id=row['card_id'],
            deck_id=row['deck_id'],
            owner_id=row['user_id'],
            question=row['question'],
            answer=row['answer'],
            type=row['card_type'],
            tags=tags,
            created_at=from_db_time(row['created_at']),
            updated_at=from_db_time(row['updated_at']),
            stats=CardStats(
                repetitions=row['repetitions'],
                interval=row['interval_days'],
                ease_factor=row['ease_factor'],
                due_date=from_db_time(row['due_date']),
                last_review=from_db_time(row['last_review']),
            ),
        )

    @classmethod
    def from_dict(cls, data: Any) -> 'Card':
        """Parse an exported card. Raises ValidationError on a malformed entry."""
        if not isinstance(data, dict):
            raise ValidationError("card entry must be an object")
        tags = data.get('tags', [])
        if not isinstance(tags, list):
            raise ValidationError("card tags must be a list")
        return cls(
            id=_required_id(data, 'id'),
            deck_id=_required_id(data, 'deckId'),
            owner_id=str(data.get('ownerId') or data.get('userId') or ''),
            question=_required_str(data, 'question'),
            answer=_required_str(data, 'answer'),
            type=_optional_str(data, 'type') or DEFAULT_CARD_TYPE,
            tags=normalize_tags(tags),
            created_at=_timestamp(data, 'createdAt'),
            updated_at=_timestamp(data, 'updatedAt'),
            stats=CardStats.from_dict(data.get('stats')),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'deckId': self.deck_id,
            'ownerId': self.owner_id,
            'question': self.question,
            'answer': self.answer,
            'type': self.type,
            'tags': list(self.tags),
            'createdAt': self.created_at.isoformat(),
            'updatedAt': self.updated_at.isoformat(),
            'stats': self.stats.to_dict(),
        }


@dataclass
class StatsDrift:
    """Stored aggregate counters next to the values derived from the card set."""

    stored: UserStats
    derived: UserStats

    @property
    def drifted(self) -> bool:
        return (
            self.stored.total_cards != self.derived.total_cards
            or self.stored.mastered != self.derived.mastered
            or self.stored.learning != self.derived.learning
        )


# ── parsing helpers ─────────────────────────────────────────

def _required_str(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise ValidationError(f"'{key}' is required")
    return value


def _required_id(data: dict, key: str) -> str:
    value = _required_str(data, key)
    if not _ID_RE.fullmatch(value):
        raise ValidationError(f"'{key}' must be 1-40 letters, digits, '_' or '-'")
    return value


def _optional_str(data: dict, key: str) -> str:
    value = data.get(key)
    if value is None:
        return ''
    if not isinstance(value, str):
        raise ValidationError(f"'{key}' must be a string")
    return value


def _non_negative_int(data: dict, key: str, limit: int = MAX_COUNT) -> int:
    value = data.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"'{key}' must be a non-negative integer")
    if value > limit:
        raise ValidationError(f"'{key}' must be at most {limit}")
    return value


def _timestamp(data: dict, key: str) -> datetime:
    value = data.get(key)
    if isinstance(value, datetime):
        return as_utc(value)
    if not isinstance(value, str):
        raise ValidationError(f"'{key}' must be an ISO timestamp")
    try:
        return parse_iso(value)
    except ValueError as e:
        raise ValidationError(f"'{key}' is not an ISO timestamp: {value!r}") from e
