"""Checkout lifecycle: borrowing and returning books.

Borrowing is refused when the user's stored violations plus the violations
their overdue active checkouts will produce exceed ``max_violations``, or
when they already hold more than ``max_books_allowed_at_once`` books.

Borrowing does not decrement ``books.amount`` and returning does not set
``return_date_time``: a returned checkout stays active and every return adds
a copy back.
"""

import logging
import sqlite3
from datetime import datetime
from typing import Callable, List, Optional

from accounts import AccountService
from checkout import Checkout
from config import settings
from database import transaction
from library import Library, UnprocessableRequestError, NO_BOOK_FOUND
from user import User

logger = logging.getLogger(__name__)

NO_BOOKS_BORROWED = "No books borrowed"
NO_CHECKOUT_FOUND = "No checkout found"
BOOK_IS_TEMPORARY_UNAVAILABLE = "Book is temporary unavailable"
BORROWING_PROHIBITED = "Borrowing is prohibited because the violation limit exceeded"
CHECKOUT_OF_ANOTHER_USER = "Checkout of another user"


def borrowing_limit_reached_message(limit: int) -> str:
    return f"Borrowing is prohibited because the limit of {limit} books reached"


BORROWING_PROHIBITED_LIMIT_REACHED = borrowing_limit_reached_message(settings.max_books_allowed_at_once)

CHECKOUT_SELECT = """
    SELECT c.id, c.user_id, c.book_id, c.checkout_date_time, c.return_date_time,
           b.author, b.title, b.location, b.amount
    FROM checkouts c JOIN books b ON b.id = c.book_id
"""


class CirculationService:
    """Applies the borrowing rules and records checkouts."""

    def __init__(self, library: Library, accounts: AccountService,
                 max_books_allowed_at_once: int = settings.max_books_allowed_at_once,
                 max_violations: int = settings.max_violations,
                 max_borrow_duration_days: int = settings.max_borrow_duration_days,
                 clock: Callable[[], datetime] = datetime.now) -> None:
        self.library = library
        self.accounts = accounts
        self.max_books_allowed_at_once = max_books_allowed_at_once
        self.max_violations = max_violations
        self.max_borrow_duration_days = max_borrow_duration_days
        self.clock = clock

    # ------------------------- Queries ------------------------- #
    def find_all_active_by_user(self, user: User, conn: Optional[sqlite3.Connection] = None) -> List[Checkout]:
        with transaction(conn) as c:
            rows = c.execute(
                CHECKOUT_SELECT + " WHERE c.user_id = ? AND c.return_date_time IS NULL"
                                  " ORDER BY c.checkout_date_time, c.id",
                (user.id,),
            ).fetchall()
        return [Checkout.from_row(dict(row)) for row in rows]

    def find_checkout(self, checkout_id: int, conn: Optional[sqlite3.Connection] = None) -> Optional[Checkout]:
        with transaction(conn) as c:
            row = c.execute(CHECKOUT_SELECT + " WHERE c.id = ?", (checkout_id,)).fetchone()
        return Checkout.from_row(dict(row)) if row else None

    def list_active(self, user: User) -> List[Checkout]:
        checkouts = self.find_all_active_by_user(user)
        if not checkouts:
            raise UnprocessableRequestError(NO_BOOKS_BORROWED)
        return checkouts

    def is_overdue(self, checkout: Checkout) -> bool:
        return checkout.days_elapsed(self.clock()) > self.max_borrow_duration_days

    def count_future_violations(self, user: User, conn: Optional[sqlite3.Connection] = None) -> int:
        """Active checkouts that will count as violations when returned."""
        return sum(1 for ch in self.find_all_active_by_user(user, conn) if self.is_overdue(ch))

    # ------------------------- Lifecycle ------------------------- #
    def create(self, book_id: int, user: User) -> Checkout:
        """Borrow ``book_id`` for ``user``; raises UnprocessableRequestError when a rule forbids it."""
        with transaction() as conn:
            if user.violations + self.count_future_violations(user, conn) > self.max_violations:
                logger.warning(f"User {user.id} refused: violation limit exceeded")
                raise UnprocessableRequestError(BORROWING_PROHIBITED)

            if len(self.find_all_active_by_user(user, conn)) > self.max_books_allowed_at_once:
                logger.warning(f"User {user.id} refused: borrowing limit reached")
                raise UnprocessableRequestError(borrowing_limit_reached_message(self.max_books_allowed_at_once))

            book = self.library.find_book(book_id, conn)
            if book is None:
                raise UnprocessableRequestError(NO_BOOK_FOUND)
            if book.amount == 0:
                raise UnprocessableRequestError(BOOK_IS_TEMPORARY_UNAVAILABLE)

            created = Checkout(user_id=user.id, book=book, checkout_date_time=self.clock())
            cursor = conn.execute(
                "INSERT INTO checkouts (user_id, book_id, checkout_date_time, return_date_time) VALUES (?, ?, ?, NULL)",
                (created.user_id, book.id, created.checkout_date_time.isoformat()),
            )
            created.id = cursor.lastrowid

        logger.info(f"Checkout {created.id} created: user {user.id} borrowed book {book.id}")
        return created

    def checkin(self, checkout_id: int, user: User) -> None:
        """Return the book of ``checkout_id``; late returns add a violation to the user."""
        with transaction() as conn:
            checkout = self.find_checkout(checkout_id, conn)
            if checkout is None:
                raise UnprocessableRequestError(NO_CHECKOUT_FOUND)
            if checkout.user_id != user.id:
                logger.warning(f"User {user.id} tried to return checkout {checkout_id} of user {checkout.user_id}")
                raise UnprocessableRequestError(CHECKOUT_OF_ANOTHER_USER)

            if self.is_overdue(checkout):
                current = self.accounts.get_by_id(user.id, conn)
                self.accounts.update_violations(current.id, current.violations + 1, conn)

            book = self.library.find_book(checkout.book.id, conn)
            self.library.update_amount(book.id, book.amount + 1, conn)
            self._save_checkout(checkout, conn)

        logger.info(f"Checkout {checkout_id} checked in by user {user.id}")

    def _save_checkout(self, checkout: Checkout, conn: sqlite3.Connection) -> None:
        returned = checkout.return_date_time.isoformat() if checkout.return_date_time else None
        conn.execute(
            "UPDATE checkouts SET user_id = ?, book_id = ?, checkout_date_time = ?, return_date_time = ? WHERE id = ?",
            (checkout.user_id, checkout.book.id, checkout.checkout_date_time.isoformat(), returned, checkout.id),
        )
