"""
Tests for database/transfer.py: JSON export and all-or-nothing import.
"""
import json
from datetime import datetime, timezone

import pytest

from database.database import init_db
from database.identity import UserRepository
from database.store import RecordStore
from database.transfer import export_json, export_snapshot, import_json, import_snapshot, validate_snapshot
from utils.errors import ValidationError

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


# ── Fixture ───────────────────────────────────────────────────

@pytest.fixture()
def db_path(tmp_path):
    path = str(tmp_path / "test.db")
    init_db(path)
    return path


@pytest.fixture()
def store(db_path):
    return RecordStore(db_path)


@pytest.fixture()
def users(db_path):
    return UserRepository(db_path)


@pytest.fixture()
def alice(users, store):
    """Alice with one deck of two cards, one of them reviewed."""
    owner = users.create_user('Alice', email='alice@example.com', password='secret').id
    deck = store.create_deck(owner, 'Python', 'builtins', now=NOW)
    card = store.create_card(owner, deck.id, 'len([1, 2])', '2', tags=['py'], now=NOW)
    store.create_card(owner, deck.id, 'type(None)', 'NoneType', now=NOW)
    store.apply_review(owner, card.id, 5, now=NOW)
    store.record_practice(owner, now=NOW)
    return owner


@pytest.fixture()
def bob(users):
    return users.create_user('Bob', email='bob@example.com').id


def _summary(store, owner):
    return (
        [(d.id, d.name) for d in store.list_decks(owner)],
        [(c.id, c.question, c.stats) for c in store.list_cards(owner)],
    )


# ── Export ────────────────────────────────────────────────────

class TestExport:
    def test_shape(self, store, alice):
        doc = export_snapshot(store, alice)
        assert set(doc) == {'decks', 'cards', 'user'}
        assert len(doc['decks']) == 1
        assert len(doc['cards']) == 2

        card = doc['cards'][0]
        assert card['deckId'] == doc['decks'][0]['id']
        assert card['ownerId'] == alice
        assert card['tags'] == ['py']
        assert card['stats']['interval'] == 1
        assert card['stats']['easeFactor'] == pytest.approx(2.6)

        user = doc['user']
        assert user['email'] == 'alice@example.com'
        assert user['stats']['totalCards'] == 2
        assert user['stats']['streak'] == 1
        assert 'password_hash' not in user and 'passwordHash' not in user

    def test_json_is_parseable(self, store, alice):
        assert json.loads(export_json(store, alice)) == export_snapshot(store, alice)

    def test_unknown_user(self, store):
        assert export_snapshot(store, 'nobody') is None
        assert export_json(store, 'nobody') is None


# ── Import ────────────────────────────────────────────────────

class TestImport:
    def test_reimport_own_export_keeps_everything(self, store, users, alice):
        before = _summary(store, alice)
        stats_before = users.get_user(alice).stats

        assert import_json(store, alice, export_json(store, alice)) is True
        assert _summary(store, alice) == before
        assert users.get_user(alice).stats == stats_before

    def test_import_into_another_account(self, store, users, alice, bob):
        doc = export_snapshot(store, alice)
        assert import_snapshot(store, bob, doc) is False  # email belongs to alice

        doc['user']['email'] = 'bob@example.com'
        assert import_snapshot(store, bob, doc) is True

        bob_cards = store.list_cards(bob)
        alice_cards = store.list_cards(alice)
        assert [c.question for c in bob_cards] == [c.question for c in alice_cards]
        # ids held by alice are reissued, her records stay hers
        assert {c.id for c in bob_cards}.isdisjoint({c.id for c in alice_cards})
        assert all(c.owner_id == bob for c in bob_cards)
        assert len(store.list_decks(alice)) == 1
        assert users.get_user(bob).stats.total_cards == 2

    def test_replaces_existing_data(self, store, alice):
        doc = export_snapshot(store, alice)
        store.create_deck(alice, 'Extra')
        assert import_snapshot(store, alice, doc) is True
        assert [d.name for d in store.list_decks(alice)] == ['Python']

    def test_missing_user_key_changes_nothing(self, store, alice):
        before = _summary(store, alice)
        doc = export_snapshot(store, alice)
        del doc['user']
        doc['decks'] = []
        doc['cards'] = []
        assert import_snapshot(store, alice, doc) is False
        assert _summary(store, alice) == before

    def test_card_with_unknown_deck(self, store, alice):
        doc = export_snapshot(store, alice)
        doc['cards'][0]['deckId'] = 'missing'
        assert import_snapshot(store, alice, doc) is False

    def test_failure_inside_transaction_rolls_back(self, store, users, alice, bob):
        before = _summary(store, alice)
        doc = export_snapshot(store, alice)
        doc['user']['email'] = 'bob@example.com'
        assert import_snapshot(store, alice, doc) is False
        assert _summary(store, alice) == before
        assert users.get_user(alice).email == 'alice@example.com'

    def test_not_json(self, store, alice):
        assert import_json(store, alice, '{nope') is False

    def test_unknown_owner(self, store, alice):
        assert import_snapshot(store, 'nobody', export_snapshot(store, alice)) is False

    def test_user_fields_are_merged(self, store, users, alice):
        doc = export_snapshot(store, alice)
        doc['user']['name'] = 'Alice L.'
        doc['user']['stats']['streak'] = 12
        assert import_snapshot(store, alice, doc) is True
        user = users.get_user(alice)
        assert user.name == 'Alice L.'
        assert user.stats.streak == 12

    def test_counters_recomputed_without_user_stats(self, store, users, alice):
        doc = export_snapshot(store, alice)
        del doc['user']['stats']
        del doc['cards'][1]
        assert import_snapshot(store, alice, doc) is True

        stats = users.get_user(alice).stats
        assert (stats.total_cards, stats.learning, stats.mastered) == (1, 1, 0)
        assert stats.streak == 1
        assert store.check_stats_drift(alice).drifted is False

    @pytest.mark.parametrize('value', [float('inf'), float('nan')])
    def test_non_finite_ease_rejected(self, store, alice, value):
        before = _summary(store, alice)
        doc = export_snapshot(store, alice)
        doc['cards'][0]['stats']['easeFactor'] = value
        assert import_json(store, alice, json.dumps(doc)) is False
        assert _summary(store, alice) == before

    def test_huge_interval_rejected(self, store, alice):
        doc = export_snapshot(store, alice)
        doc['cards'][0]['stats']['interval'] = 10 ** 9
        assert import_snapshot(store, alice, doc) is False


# ── Validation ────────────────────────────────────────────────

class TestValidate:
    def _doc(self, **overrides):
        doc = {
            'decks': [{'id': 'd1', 'name': 'Py', 'createdAt': NOW.isoformat(), 'updatedAt': NOW.isoformat()}],
            'cards': [{
                'id': 'c1', 'deckId': 'd1', 'question': 'q', 'answer': 'a',
                'createdAt': NOW.isoformat(), 'updatedAt': NOW.isoformat(),
                'stats': {'dueDate': NOW.isoformat()},
            }],
            'user': {'name': 'X', 'password': 'ignored'},
        }
        doc.update(overrides)
        return doc

    def test_minimal_document(self):
        decks, cards, user = validate_snapshot(self._doc())
        assert decks[0].id == 'd1'
        assert cards[0].stats.ease_factor == 2.5
        assert cards[0].type == 'code'
        assert user == {'name': 'X'}

    @pytest.mark.parametrize('doc', [
        [],
        {'decks': [], 'cards': []},
        {'decks': {}, 'cards': [], 'user': {}},
        {'decks': [], 'cards': [], 'user': []},
    ])
    def test_bad_top_level(self, doc):
        with pytest.raises(ValidationError):
            validate_snapshot(doc)

    def test_bad_id(self):
        doc = self._doc()
        doc['decks'][0]['id'] = 'has spaces!'
        with pytest.raises(ValidationError):
            validate_snapshot(doc)

    def test_duplicate_ids(self):
        doc = self._doc()
        doc['decks'].append(dict(doc['decks'][0]))
        with pytest.raises(ValidationError):
            validate_snapshot(doc)

    def test_ease_below_floor(self):
        doc = self._doc()
        doc['cards'][0]['stats']['easeFactor'] = 1.0
        with pytest.raises(ValidationError):
            validate_snapshot(doc)

    def test_bad_timestamp(self):
        doc = self._doc()
        doc['cards'][0]['createdAt'] = 'yesterday'
        with pytest.raises(ValidationError):
            validate_snapshot(doc)

    @pytest.mark.parametrize('ease_factor', [float('inf'), float('nan')])
    def test_ease_not_finite(self, ease_factor):
        doc = self._doc()
        doc['cards'][0]['stats']['easeFactor'] = ease_factor
        with pytest.raises(ValidationError):
            validate_snapshot(doc)

    @pytest.mark.parametrize('key', ['interval', 'repetitions'])
    def test_counts_out_of_range(self, key):
        doc = self._doc()
        doc['cards'][0]['stats'][key] = 10 ** 19
        with pytest.raises(ValidationError):
            validate_snapshot(doc)

    def test_interval_cap(self):
        doc = self._doc()
        doc['cards'][0]['stats']['interval'] = 36500
        _, cards, _ = validate_snapshot(doc)
        assert cards[0].stats.interval == 36500

        doc['cards'][0]['stats']['interval'] = 36501
        with pytest.raises(ValidationError):
            validate_snapshot(doc)

    def test_user_counter_out_of_range(self, store, alice):
        doc = export_snapshot(store, alice)
        doc['user']['stats']['streak'] = 2 ** 63
        assert import_snapshot(store, alice, doc) is False
