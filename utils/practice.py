"""
One practice run over an owner's due cards.

Picks the due cards (optionally from one deck), shuffles them, and for each
answer hands the quality to the store, which schedules and persists the card,
then records the practice day for the streak.
"""

import logging
import random
from datetime import datetime

from database.store import RecordStore
from utils.models import Card, CardStats
from utils.srs import PASSING_QUALITY


class PracticeSession:
    def __init__(
        self,
        store: RecordStore,
        owner_id: str,
        deck_id: str | None = None,
        now: datetime | None = None,
        shuffle: bool = True,
        rng: random.Random | None = None,
    ):
        self.store = store
        self.owner_id = owner_id

        cards = store.get_due_cards(owner_id, now=now)
        if deck_id is not None:
            cards = [c for c in cards if c.deck_id == deck_id]
        if shuffle:
            (rng or random).shuffle(cards)

        self.cards: list[Card] = cards
        self.index = 0
        self.recalled = 0

    @property
    def total(self) -> int:
        return len(self.cards)

    @property
    def reviewed(self) -> int:
        return self.index

    @property
    def remaining(self) -> int:
        return self.total - self.index

    @property
    def finished(self) -> bool:
        return self.index >= self.total

    @property
    def current(self) -> Card | None:
        return None if self.finished else self.cards[self.index]

    def answer(self, quality: int, now: datetime | None = None) -> CardStats | None:
        """
        Rate the current card and move on. Returns the new scheduling state, or
        None if the quality was rejected or the card is gone (e.g. deleted
        mid-session); a rejected quality keeps the session on the same card.
        """
        card = self.current
        if card is None:
            return None

        stats = self.store.apply_review(self.owner_id, card.id, quality, now=now)
        if stats is None:
            if self.store.get_card(self.owner_id, card.id) is not None:
                return None
            logging.info(f"Card {card.id} vanished during practice, skipping")
            self.index += 1
            return None

        self.store.record_practice(self.owner_id, now=now)
        if quality >= PASSING_QUALITY:
            self.recalled += 1
        self.index += 1
        return stats

    def skip(self) -> None:
        if not self.finished:
            self.index += 1
