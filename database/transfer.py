"""
Bulk export and import of one owner's data.

The document is {"decks": [...], "cards": [...], "user": {...}} with the
camelCase field names of the exported records. Import is all-or-nothing: the
whole document is validated, then the owner's decks and cards are replaced and
the user fields applied inside a single transaction.
"""

import json
import logging
from typing import Any

from database.database import get_db
from database.identity import CONFIG_FIELDS, apply_config, load_user, save_stats
from database.store import RecordStore, derive_stats
from utils.errors import NotFoundError, ValidationError
from utils.models import Card, Deck
from utils.utils import new_id, to_db_time

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ('decks', 'cards', 'user')


# EXPORT =====================================================

def export_snapshot(store: RecordStore, owner_id) -> dict[str, Any] | None:
    with get_db(store.db_path) as conn:
        user = load_user(conn, owner_id)
        if user is None:
            return None
        decks = conn.execute(
            'SELECT * FROM decks WHERE user_id = ? ORDER BY rowid', (owner_id,)
        ).fetchall()
        cards = conn.execute(
            'SELECT * FROM cards WHERE user_id = ? ORDER BY rowid', (owner_id,)
        ).fetchall()

        return {
            'decks': [Deck.from_row(row).to_dict() for row in decks],
            'cards': [Card.from_row(row).to_dict() for row in cards],
            'user': user.to_dict(),
        }


def export_json(store: RecordStore, owner_id) -> str | None:
    snapshot = export_snapshot(store, owner_id)
    if snapshot is None:
        return None
    return json.dumps(snapshot, indent=2, ensure_ascii=False)


# IMPORT =====================================================

def validate_snapshot(document: Any) -> tuple[list[Deck], list[Card], dict[str, Any]]:
    """Parse a document into records. Raises ValidationError if anything is off."""
    if not isinstance(document, dict):
        raise ValidationError("document must be an object")

    missing = [key for key in REQUIRED_KEYS if key not in document]
    if missing:
        raise ValidationError(f"document is missing {', '.join(missing)}")
    if not isinstance(document['decks'], list) or not isinstance(document['cards'], list):
        raise ValidationError("'decks' and 'cards' must be lists")
    if not isinstance(document['user'], dict):
        raise ValidationError("'user' must be an object")

    decks = [Deck.from_dict(entry) for entry in document['decks']]
    cards = [Card.from_dict(entry) for entry in document['cards']]

    deck_ids = {deck.id for deck in decks}
    if len(deck_ids) != len(decks):
        raise ValidationError("duplicate deck ids")
    if len({card.id for card in cards}) != len(cards):
        raise ValidationError("duplicate card ids")
    for card in cards:
        if card.deck_id not in deck_ids:
            raise ValidationError(f"card {card.id} points at unknown deck {card.deck_id}")

    user = {k: v for k, v in document['user'].items() if k in CONFIG_FIELDS}
    return decks, cards, user


def import_snapshot(store: RecordStore, owner_id, document: Any) -> bool:
    """Replace the owner's decks and cards with the document's. False if rejected."""
    try:
        decks, cards, user = validate_snapshot(document)
    except ValidationError as e:
        logger.warning(f"Rejected import for {owner_id}: {e}")
        return False

    try:
        with get_db(store.db_path, write=True) as conn:
            if load_user(conn, owner_id) is None:
                raise NotFoundError(f"unknown user {owner_id}")

            conn.execute('DELETE FROM cards WHERE user_id = ?', (owner_id,))
            conn.execute('DELETE FROM decks WHERE user_id = ?', (owner_id,))

            deck_ids: dict[str, str] = {}
            for deck in decks:
                deck_ids[deck.id] = _free_id(conn, 'decks', 'deck_id', deck.id)
                conn.execute(
                    """INSERT INTO decks (deck_id, user_id, deck_name, description, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        deck_ids[deck.id], owner_id, deck.name.strip(), deck.description,
                        to_db_time(deck.created_at), to_db_time(deck.updated_at),
                    )
                )

            for card in cards:
                stats = card.stats
                conn.execute(
                    """INSERT INTO cards (card_id, deck_id, user_id, question, answer, card_type, tags,
                                          repetitions, interval_days, ease_factor, due_date, last_review,
                                          created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        _free_id(conn, 'cards', 'card_id', card.id), deck_ids[card.deck_id], owner_id,
                        card.question, card.answer, card.type, json.dumps(card.tags),
                        stats.repetitions, stats.interval, stats.ease_factor,
                        to_db_time(stats.due_date),
                        to_db_time(stats.last_review) if stats.last_review else None,
                        to_db_time(card.created_at), to_db_time(card.updated_at),
                    )
                )

            apply_config(conn, owner_id, user)
            if 'stats' not in user:
                # counters follow the replaced card set
                current = load_user(conn, owner_id).stats
                save_stats(conn, owner_id, derive_stats(conn, owner_id, current))
    except (ValidationError, NotFoundError) as e:
        logger.warning(f"Rejected import for {owner_id}: {e}")
        return False

    logger.info(f"Imported {len(decks)} decks and {len(cards)} cards for user {owner_id}")
    return True


def import_json(store: RecordStore, owner_id, text: str | bytes) -> bool:
    try:
        document = json.loads(text)
    except ValueError as e:
        logger.warning(f"Rejected import for {owner_id}: not JSON ({e})")
        return False
    return import_snapshot(store, owner_id, document)


def _free_id(conn, table: str, column: str, wanted: str) -> str:
    """Keep the exported id unless another owner's record already uses it."""
    taken = conn.execute(f'SELECT 1 FROM {table} WHERE {column} = ?', (wanted,)).fetchone()
    return new_id() if taken else wanted
