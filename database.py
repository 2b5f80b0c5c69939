"""
Database module for AI Fitness Coach
Handles PostgreSQL and SQLite connections and schema
"""

import logging
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path

# psycopg2 is only needed when DATABASE_URL points at PostgreSQL
try:
    import psycopg2
    HAS_POSTGRES = True
except ImportError:
    HAS_POSTGRES = False

logger = logging.getLogger(__name__)

DEFAULT_SQLITE_URL = 'sqlite:///fitness_coach.db'

# Driver errors callers should treat as a failed read/write
# (ValueError covers a PostgreSQL URL without psycopg2 installed)
DB_ERRORS = (sqlite3.Error, ValueError) + ((psycopg2.Error,) if HAS_POSTGRES else ())


def get_db_url():
    """Get database URL from environment variable"""
    # Hosted deployments provide DATABASE_URL, local dev can use POSTGRES_URL
    db_url = os.getenv('DATABASE_URL') or os.getenv('POSTGRES_URL')
    if not db_url:
        # Fallback to SQLite for local development
        return DEFAULT_SQLITE_URL
    return db_url


def is_sqlite(db_url):
    """Check if database URL is SQLite"""
    return bool(db_url) and db_url.startswith('sqlite:///')


def placeholder(db_url=None):
    """Parameter marker for the active driver"""
    return '?' if is_sqlite(db_url or get_db_url()) else '%s'


def get_cursor(conn):
    """Get a cursor from connection - handles both SQLite and PostgreSQL"""
    if is_sqlite(get_db_url()):
        return SQLiteCursorWrapper(conn)
    return conn.cursor()


class SQLiteCursorWrapper:
    """Makes a sqlite3 connection look like a DB-API cursor"""

    def __init__(self, conn):
        self.conn = conn
        self._last_cursor = None

    def execute(self, query, params=None):
        if params:
            self._last_cursor = self.conn.execute(query, params)
        else:
            self._last_cursor = self.conn.execute(query)
        return self._last_cursor

    def fetchone(self):
        if self._last_cursor:
            return self._last_cursor.fetchone()
        return None

    def fetchall(self):
        if self._last_cursor:
            return self._last_cursor.fetchall()
        return []

    @property
    def lastrowid(self):
        if self._last_cursor:
            return self._last_cursor.lastrowid
        return None

    @property
    def rowcount(self):
        if self._last_cursor:
            return self._last_cursor.rowcount
        return 0


def sqlite_path(db_url):
    db_path = db_url.replace('sqlite:///', '', 1)
    # Relative paths live next to the app
    if not os.path.isabs(db_path):
        db_path = str(Path(__file__).parent / db_path)
    return db_path


@contextmanager
def get_db_connection():
    """Get a database connection with automatic commit/rollback and cleanup"""
    db_url = get_db_url()

    if is_sqlite(db_url):
        conn = sqlite3.connect(sqlite_path(db_url))
        conn.row_factory = sqlite3.Row  # Enable column access by name
    else:
        if not HAS_POSTGRES:
            raise ValueError("PostgreSQL URL provided but psycopg2 not installed. Install with: pip install psycopg2-binary")
        # Some hosts hand out postgres:// URLs (convert to postgresql://)
        if db_url.startswith('postgres://'):
            db_url = db_url.replace('postgres://', 'postgresql://', 1)
        conn = psycopg2.connect(db_url)

    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db():
    """Initialize database tables - works with both PostgreSQL and SQLite"""
    use_sqlite = is_sqlite(get_db_url())
    id_column = 'id INTEGER PRIMARY KEY AUTOINCREMENT' if use_sqlite else 'id SERIAL PRIMARY KEY'
    bool_type = 'INTEGER' if use_sqlite else 'BOOLEAN'
    false_value = '0' if use_sqlite else 'FALSE'

    with get_db_connection() as conn:
        cur = get_cursor(conn)

        # Workout library: plan body is JSON, metadata in columns
        cur.execute(f"""
            CREATE TABLE IF NOT EXISTS workouts (
                {id_column},
                user_id INTEGER NOT NULL,
                name TEXT NOT NULL,
                description TEXT,
                duration_minutes INTEGER,
                difficulty TEXT,
                exercises TEXT NOT NULL,
                tags TEXT NOT NULL DEFAULT '[]',
                target_muscle_groups TEXT NOT NULL DEFAULT '[]',
                estimated_calories INTEGER NOT NULL DEFAULT 0,
                auto_generated {bool_type} NOT NULL DEFAULT {false_value},
                times_completed INTEGER NOT NULL DEFAULT 0,
                last_completed_at TEXT,
                created_at TEXT NOT NULL
            )
        """)
        cur.execute("""
            CREATE INDEX IF NOT EXISTS idx_workouts_user_created ON workouts(user_id, created_at)
        """)

        # Trainer chat history
        cur.execute(f"""
            CREATE TABLE IF NOT EXISTS conversations (
                {id_column},
                user_id INTEGER NOT NULL,
                messages TEXT NOT NULL DEFAULT '[]',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        cur.execute("""
            CREATE INDEX IF NOT EXISTS idx_conversations_user_id ON conversations(user_id)
        """)

    logger.info("Database tables initialized")


def check_db_connection():
    """Check if database connection works"""
    try:
        with get_db_connection() as conn:
            get_cursor(conn).execute("SELECT 1")
        return True
    except Exception as e:
        logger.error("Database connection failed: %s", e)
        return False
