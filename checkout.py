from __future__ import annotations

from datetime import datetime

from book import Book


class Checkout:
    """A borrow record linking a user and a book.

    The checkout is active while ``return_date_time`` is ``None``.
    """

    def __init__(self, user_id: int, book: Book, checkout_date_time: datetime,
                 return_date_time: datetime | None = None, id: int | None = None) -> None:
        self.id = id
        self.user_id = user_id
        self.book = book
        self.checkout_date_time = checkout_date_time
        self.return_date_time = return_date_time

    @property
    def is_active(self) -> bool:
        return self.return_date_time is None

    def days_elapsed(self, now: datetime) -> int:
        """Whole days between checkout and ``now``."""
        return (now - self.checkout_date_time).days

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"#{self.id} {self.book.title} borrowed {self.checkout_date_time.isoformat()}"

    @staticmethod
    def from_row(row: dict) -> "Checkout":
        """Build a checkout from a ``checkouts`` row joined with its book columns."""
        book = Book(
            id=row["book_id"],
            author=row["author"],
            title=row["title"],
            location=row.get("location"),
            amount=int(row.get("amount") or 0),
        )
        returned = row.get("return_date_time")
        return Checkout(
            id=row["id"],
            user_id=row["user_id"],
            book=book,
            checkout_date_time=datetime.fromisoformat(row["checkout_date_time"]),
            return_date_time=datetime.fromisoformat(returned) if returned else None,
        )
