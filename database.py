import sqlite3
import json
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from config import settings
from user import hash_password

logger = logging.getLogger(__name__)

# Database file from LIBRARY_DB_FILE (config/.env); tests reassign this
# module attribute directly before opening connections.
DATABASE_FILE = settings.data_file
JSON_FILE = "library.json"


def get_db_connection() -> sqlite3.Connection:
    """Open a connection to the SQLite database with foreign keys enforced."""
    conn = sqlite3.connect(DATABASE_FILE)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def transaction(conn: Optional[sqlite3.Connection] = None) -> Iterator[sqlite3.Connection]:
    """Run a unit of work on one connection.

    Commits on success and rolls back on any exception. When ``conn`` is
    given the caller owns the transaction and nothing is committed here.
    """
    if conn is not None:
        yield conn
        return
    conn = get_db_connection()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def create_tables() -> None:
    """Create the users, books and checkouts tables if they don't exist."""
    conn = get_db_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                email TEXT UNIQUE NOT NULL,
                password_hash TEXT NOT NULL,
                admin BOOLEAN NOT NULL DEFAULT 0,
                violations INTEGER NOT NULL DEFAULT 0 CHECK(violations >= 0),
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS books (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                author TEXT NOT NULL,
                title TEXT NOT NULL,
                location TEXT,
                amount INTEGER NOT NULL DEFAULT 0 CHECK(amount >= 0),
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # A checkout is active while return_date_time is NULL
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS checkouts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                book_id INTEGER NOT NULL,
                checkout_date_time TEXT NOT NULL,
                return_date_time TEXT,
                FOREIGN KEY (user_id) REFERENCES users(id),
                FOREIGN KEY (book_id) REFERENCES books(id)
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_author ON books(author)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_title ON books(title)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_checkouts_user_active ON checkouts(user_id, return_date_time)")
        conn.commit()
    finally:
        conn.close()


def is_empty() -> bool:
    conn = get_db_connection()
    try:
        books = conn.execute("SELECT COUNT(*) FROM books").fetchone()[0]
        users = conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
        return books == 0 and users == 0
    finally:
        conn.close()


def seed_from_json(path: Optional[str] = None) -> Dict[str, int]:
    """Load books and users from a JSON seed file into the database.

    The file holds ``{"books": [...], "users": [...]}``; user entries carry a
    plain ``password`` that is hashed on insert. Entries missing required
    keys are skipped and users whose email already exists are ignored.
    Returns the number of inserted rows per table.
    """
    path = path or JSON_FILE
    with open(path, "r", encoding="utf-8") as f:
        data: Dict[str, List[Dict[str, Any]]] = json.load(f)

    books_to_insert = []
    for item in data.get("books", []):
        if all(k in item for k in ["author", "title"]):
            books_to_insert.append((
                item["author"],
                item["title"],
                item.get("location", ""),
                int(item.get("amount", 0)),
            ))

    users_to_insert = []
    for item in data.get("users", []):
        if all(k in item for k in ["name", "email", "password"]):
            users_to_insert.append((
                item["name"],
                item["email"].strip().lower(),
                hash_password(item["password"]),
                bool(item.get("admin", False)),
                int(item.get("violations", 0)),
            ))

    with transaction() as conn:
        conn.executemany(
            "INSERT INTO books (author, title, location, amount) VALUES (?, ?, ?, ?)",
            books_to_insert,
        )
        before = conn.total_changes
        conn.executemany(
            "INSERT OR IGNORE INTO users (name, email, password_hash, admin, violations) VALUES (?, ?, ?, ?, ?)",
            users_to_insert,
        )
        users_inserted = conn.total_changes - before

    logger.info(f"Seeded {len(books_to_insert)} books and {users_inserted} users from {path}")
    return {"books": len(books_to_insert), "users": users_inserted}


def initialize_database(seed_file: Optional[str] = None) -> None:
    """Create tables and, when a seed file is given and the database is empty, seed it."""
    create_tables()
    if seed_file and is_empty():
        seed_from_json(seed_file)
