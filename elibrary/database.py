import logging
import sqlite3
from datetime import datetime, timezone
from typing import List, Tuple

from config import settings

logger = logging.getLogger(__name__)

# Books seeded into an empty catalog when seeding is enabled
SEED_BOOKS: List[Tuple[str, str, str, str, int, int]] = [
    ("c3984d72-57a4-432d-88b1-38290f93450e", "Empire of Silence", "Christopher Ruocchio", "9780756419264", 2018, 3),
    ("c3984d72-57a4-432d-88b1-38290f93450a", "Howling Dark", "Christopher Ruocchio", "9780756419271", 2019, 3),
    ("c3984d72-57a4-432d-88b1-38290f93450b", "Demon in White", "Christopher Ruocchio", "9780756419288", 2020, 3),
]


def utc_now() -> str:
    """Current UTC instant as an ISO-8601 string (sorts chronologically)."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def get_db_connection(db_file: str) -> sqlite3.Connection:
    """Opens a new connection to the SQLite database.

    Connections are in autocommit mode: transactions are started and ended
    explicitly by the unit of work. Each call returns a fresh connection, so
    concurrent requests never share one.
    """
    conn = sqlite3.connect(
        db_file,
        timeout=settings.db_busy_timeout,
        isolation_level=None,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute("PRAGMA synchronous = NORMAL;")
    return conn


def create_tables(db_file: str) -> None:
    """Creates the necessary tables, indexes and triggers if they don't exist."""
    conn = get_db_connection(db_file)
    try:
        # WAL lets readers proceed while a borrow/return is being written
        conn.execute("PRAGMA journal_mode = WAL;")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS books (
                id TEXT PRIMARY KEY,
                isbn TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL,
                author TEXT NOT NULL,
                publication_year INTEGER NOT NULL,
                available_quantity INTEGER NOT NULL DEFAULT 0 CHECK (available_quantity >= 0),
                row_version INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS borrow_book_records (
                id TEXT PRIMARY KEY,
                book_id TEXT NOT NULL,
                customer_name TEXT NOT NULL,
                action TEXT NOT NULL CHECK (action IN ('Borrowed', 'Returned')),
                timestamp TEXT NOT NULL,
                FOREIGN KEY (book_id) REFERENCES books(id) ON DELETE RESTRICT
            )
        """)
        # SQLite has no native row version column, so a trigger advances the
        # counter whenever the stock changes.
        conn.execute("""
            CREATE TRIGGER IF NOT EXISTS books_row_version_after_update
            AFTER UPDATE OF available_quantity ON books
            BEGIN
                UPDATE books SET row_version = row_version + 1 WHERE id = NEW.id;
            END
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_books_name ON books(name)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_books_author ON books(author)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_records_book_id ON borrow_book_records(book_id)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_records_timestamp ON borrow_book_records(timestamp DESC)")
    finally:
        conn.close()


def seed_books(db_file: str) -> int:
    """Inserts the seed catalog into an empty books table.

    Returns the number of books inserted (0 when the table already has data).
    """
    conn = get_db_connection(db_file)
    try:
        book_count = conn.execute("SELECT COUNT(*) FROM books").fetchone()[0]
        if book_count > 0:
            return 0
        now = utc_now()
        conn.execute("BEGIN")
        try:
            conn.executemany(
                """
                INSERT OR IGNORE INTO books
                    (id, name, author, isbn, publication_year, available_quantity, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [row + (now,) for row in SEED_BOOKS],
            )
            conn.execute("COMMIT")
        except sqlite3.Error:
            conn.execute("ROLLBACK")
            raise
        logger.info(f"Seeded {len(SEED_BOOKS)} books into {db_file}")
        return len(SEED_BOOKS)
    finally:
        conn.close()


def initialize_database(db_file: str, seed: bool = False) -> None:
    """Initializes the database, creating tables and seeding data if asked."""
    create_tables(db_file)
    if seed:
        seed_books(db_file)
