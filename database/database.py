import logging
import sqlite3
from contextlib import contextmanager

from database.schema import user_schema, deck_schema, card_schema, card_indexes


# DB CONNECTION ==============================================

@contextmanager
def get_db(db_path, write=False):
    """
    Yield a connection; commit on success, roll back on any error.

    write=True opens the transaction with BEGIN IMMEDIATE so that the whole
    read-modify-write block holds the database write lock. That is what keeps
    one owner's card stats and aggregate counters from losing updates when two
    mutations race.
    """
    conn = sqlite3.connect(db_path, timeout=10.0, isolation_level=None)
    conn.row_factory = sqlite3.Row

    try:
        conn.execute('BEGIN IMMEDIATE' if write else 'BEGIN')
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db(db_path):
    with get_db(db_path, write=True) as conn:
        conn.execute(user_schema)
        conn.execute(deck_schema)
        conn.execute(card_schema)
        for statement in card_indexes:
            conn.execute(statement)
    logging.info(f"Database ready at {db_path}")
