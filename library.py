import logging
import sqlite3
from typing import List, Optional, Dict, Any

import database
from book import Book
from database import initialize_database, transaction

logger = logging.getLogger(__name__)

NO_BOOKS_FOUND = "No books found"
NO_BOOK_FOUND = "No book found"

BOOK_COLUMNS = "id, author, title, location, amount"


class UnprocessableRequestError(Exception):
    """A client-correctable condition; the message is the reason shown to the client."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class Library:
    """Book catalog: lookup, search and persistence of available copies."""

    def __init__(self, db_file: Optional[str] = None) -> None:
        # Callers (tests, CLI) may point every module-level helper in
        # database.py at a different file before the tables are created.
        if db_file:
            database.DATABASE_FILE = db_file
        initialize_database()

    # ------------------------- Catalog operations ------------------------- #
    def search(self, author: Optional[str] = None, text: Optional[str] = None) -> List[Book]:
        """Books by exact author plus books whose title contains ``text`` (ignoring case).

        Author matches come first, then title matches. A book matched by both
        filters is listed twice.
        """
        books: List[Book] = []
        if author is not None:
            books.extend(self.find_all_by_author(author))
        if text is not None:
            books.extend(self.find_all_by_substring_in_title(text))
        if not books:
            logger.info(f"No books matched author={author!r} text={text!r}")
            raise UnprocessableRequestError(NO_BOOKS_FOUND)
        return books

    def get_by_id(self, book_id: int) -> Book:
        book = self.find_book(book_id)
        if book is None:
            raise UnprocessableRequestError(NO_BOOK_FOUND)
        return book

    # ------------------------- Queries ------------------------- #
    def find_book(self, book_id: int, conn: Optional[sqlite3.Connection] = None) -> Optional[Book]:
        with transaction(conn) as c:
            row = c.execute(f"SELECT {BOOK_COLUMNS} FROM books WHERE id = ?", (book_id,)).fetchone()
        return Book.from_dict(dict(row)) if row else None

    def find_all_by_author(self, author: str) -> List[Book]:
        with transaction() as conn:
            rows = conn.execute(
                f"SELECT {BOOK_COLUMNS} FROM books WHERE author = ? ORDER BY title", (author,)
            ).fetchall()
        return [Book.from_dict(dict(row)) for row in rows]

    def find_all_by_substring_in_title(self, text: str) -> List[Book]:
        # instr() avoids treating % and _ in user input as LIKE wildcards
        with transaction() as conn:
            rows = conn.execute(
                f"SELECT {BOOK_COLUMNS} FROM books WHERE instr(lower(title), lower(?)) > 0 ORDER BY title",
                (text,),
            ).fetchall()
        return [Book.from_dict(dict(row)) for row in rows]

    def list_books(self) -> List[Book]:
        with transaction() as conn:
            rows = conn.execute(f"SELECT {BOOK_COLUMNS} FROM books ORDER BY title").fetchall()
        return [Book.from_dict(dict(row)) for row in rows]

    # ------------------------- Mutations ------------------------- #
    def add_book(self, author: str, title: str, location: Optional[str] = None, amount: int = 0) -> Book:
        """Insert a new catalog entry and return it with its assigned id."""
        if not author or not author.strip():
            raise ValueError("Author cannot be empty.")
        if not title or not title.strip():
            raise ValueError("Title cannot be empty.")
        if amount < 0:
            raise ValueError("Amount cannot be negative.")

        book = Book(author=author, title=title, location=location, amount=amount)
        with transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO books (author, title, location, amount) VALUES (?, ?, ?, ?)",
                (book.author, book.title, book.location, book.amount),
            )
            book.id = cursor.lastrowid
        logger.info(f"Book {book.id} added: {book.title} by {book.author}")
        return book

    def update_amount(self, book_id: int, amount: int, conn: Optional[sqlite3.Connection] = None) -> None:
        if amount < 0:
            raise ValueError("Amount cannot be negative.")
        with transaction(conn) as c:
            c.execute("UPDATE books SET amount = ? WHERE id = ?", (amount, book_id))

    def get_statistics(self) -> Dict[str, Any]:
        """Get catalog statistics."""
        with transaction() as conn:
            row = conn.execute(
                "SELECT COUNT(*), COUNT(DISTINCT author), COALESCE(SUM(amount), 0) FROM books"
            ).fetchone()
        return {
            "total_books": row[0],
            "unique_authors": row[1],
            "available_copies": row[2],
        }
