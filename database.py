import logging
import os
import re
import sqlite3
import tempfile
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

from dotenv import load_dotenv

from config import settings

# .env'den ortam değişkenlerinin okunmadan önce yüklendiğinden emin olun.
load_dotenv()

logger = logging.getLogger(__name__)

_OBJECT_ID_RE = re.compile(r"^[0-9a-f]{32}$")


class StoreUnavailableError(Exception):
    """The database could not be reached or stayed locked past the busy timeout."""


def resolve_database_file() -> str:
    """Pick the database file at call time.

    Priority:
    1) LIBRARY_DB_FILE (explicit override, read from the environment on every call)
    2) settings.database_file (.env / config)
    3) a per-process temp file
    """
    return (
        os.environ.get("LIBRARY_DB_FILE")
        or settings.database_file
        or os.path.join(tempfile.gettempdir(), f"library_{os.getpid()}.db")
    )


def new_object_id() -> str:
    """Store-native identity for new rows."""
    return uuid.uuid4().hex


def is_object_id(value: Optional[str]) -> bool:
    return bool(value) and bool(_OBJECT_ID_RE.match(value))


@contextmanager
def translate_store_errors(action: str) -> Iterator[None]:
    """Re-raise lock/IO failures from sqlite as StoreUnavailableError.

    Nothing is retried here; the caller decides whether to try again.
    """
    try:
        yield
    except sqlite3.OperationalError as exc:
        logger.error("Store failure during %s: %s", action, exc)
        raise StoreUnavailableError(f"Store unavailable during {action}: {exc}") from exc


def get_db_connection(db_file: Optional[str] = None) -> sqlite3.Connection:
    """Open a new connection to the SQLite database.

    Every operation uses its own connection; concurrent writers are serialized
    by SQLite itself and wait up to ``settings.database_timeout`` seconds.
    """
    path = db_file or resolve_database_file()
    with translate_store_errors("connect"):
        conn = sqlite3.connect(path, timeout=settings.database_timeout, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON;")
        conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


def create_tables(db_file: Optional[str] = None) -> None:
    """Create the tables if they do not exist yet."""
    conn = get_db_connection(db_file)
    try:
        with translate_store_errors("schema setup"):
            # WAL lets readers run alongside the single writer
            conn.execute("PRAGMA journal_mode=WAL;")
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS counters (
                    namespace TEXT PRIMARY KEY,
                    sequence INTEGER NOT NULL DEFAULT 0 CHECK(sequence >= 0)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS books (
                    id TEXT PRIMARY KEY,
                    code TEXT UNIQUE NOT NULL,
                    title TEXT NOT NULL DEFAULT '',
                    author TEXT NOT NULL DEFAULT '',
                    category TEXT NOT NULL DEFAULT '',
                    year INTEGER,
                    total_copies INTEGER NOT NULL DEFAULT 0 CHECK(total_copies >= 0),
                    available_copies INTEGER NOT NULL DEFAULT 0 CHECK(available_copies >= 0),
                    shelf_no TEXT NOT NULL DEFAULT '',
                    shelf TEXT NOT NULL DEFAULT '',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS members (
                    id TEXT PRIMARY KEY,
                    code TEXT UNIQUE NOT NULL,
                    name TEXT NOT NULL,
                    phone TEXT,
                    email TEXT,
                    member_type TEXT NOT NULL CHECK(member_type IN ('student', 'teacher', 'staff', 'foreigner')),
                    gender TEXT NOT NULL CHECK(gender IN ('male', 'female', 'other')),
                    active INTEGER NOT NULL DEFAULT 1,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            # Ordered borrower list per book; id order is issue order
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS book_borrowers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    book_id TEXT NOT NULL,
                    member_id TEXT NOT NULL,
                    issued_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (book_id) REFERENCES books(id) ON DELETE CASCADE
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_shelf_no ON books(shelf_no)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_shelf ON books(shelf)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_category ON books(category)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_created_at ON books(created_at)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_members_name ON members(name)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_book_borrowers_book_id ON book_borrowers(book_id)")
            conn.commit()
    finally:
        conn.close()


def initialize_database(db_file: Optional[str] = None) -> None:
    """Initialize the database, creating tables if needed."""
    create_tables(db_file)
