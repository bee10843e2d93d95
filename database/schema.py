# ======================= USERS ==========================

user_schema = '''
    CREATE TABLE IF NOT EXISTS users (
        user_id TEXT PRIMARY KEY,
        email TEXT UNIQUE,
        name TEXT NOT NULL,
        password_hash TEXT,
        telegram_id INTEGER UNIQUE,

        -- Aggregate stats
        total_cards INTEGER NOT NULL DEFAULT 0,
        mastered INTEGER NOT NULL DEFAULT 0,
        learning INTEGER NOT NULL DEFAULT 0,
        streak INTEGER NOT NULL DEFAULT 0,
        last_practice DATE,

        created_at TIMESTAMP NOT NULL
    )
'''

# ======================= DECKS ==========================

deck_schema = '''
    CREATE TABLE IF NOT EXISTS decks (
        deck_id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        deck_name TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP NOT NULL,

        FOREIGN KEY (user_id) REFERENCES users(user_id)
    )
'''

# ======================= CARDS ==========================

card_schema = '''
    CREATE TABLE IF NOT EXISTS cards (
        card_id TEXT PRIMARY KEY,
        deck_id TEXT NOT NULL,
        user_id TEXT NOT NULL,

        -- Card content
        question TEXT NOT NULL,
        answer TEXT NOT NULL,
        card_type TEXT NOT NULL DEFAULT 'code',
        tags TEXT NOT NULL DEFAULT '[]',

        -- SRS parameters (SM-2)
        repetitions INTEGER NOT NULL DEFAULT 0,
        interval_days INTEGER NOT NULL DEFAULT 0,
        ease_factor REAL NOT NULL DEFAULT 2.5 CHECK (ease_factor >= 1.3),
        due_date TIMESTAMP NOT NULL,
        last_review TIMESTAMP,

        -- Metadata
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP NOT NULL,

        -- Foreign key relationship
        FOREIGN KEY (deck_id) REFERENCES decks(deck_id)
    )
'''

card_indexes = (
    'CREATE INDEX IF NOT EXISTS idx_cards_owner_due ON cards (user_id, due_date)',
    'CREATE INDEX IF NOT EXISTS idx_cards_deck ON cards (deck_id)',
    'CREATE INDEX IF NOT EXISTS idx_decks_owner ON decks (user_id)',
)
