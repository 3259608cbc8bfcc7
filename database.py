import logging
import sqlite3
from contextlib import contextmanager
from config import get_settings
from database_schemas import ALL_TABLE_SCHEMAS

logger = logging.getLogger(__name__)

BUSY_TIMEOUT_SECONDS = 10

@contextmanager
def get_db():
    conn = sqlite3.connect(get_settings().database_path, timeout=BUSY_TIMEOUT_SECONDS)
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()

@contextmanager
def write_transaction():
    """Hold the database write lock for a read-modify-write sequence.

    BEGIN IMMEDIATE takes the reserved lock up front, so two requests toggling
    the same like cannot both read the old state before either writes.
    """
    with get_db() as conn:
        conn.isolation_level = None
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except Exception:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")

def init_db():
    with get_db() as conn:
        cursor = conn.cursor()
        for schema in ALL_TABLE_SCHEMAS:
            cursor.execute(schema)
        conn.commit()
    logger.info("Database ready at %s", get_settings().database_path)

if __name__ == "__main__":
    init_db()
