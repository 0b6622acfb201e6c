from datetime import timedelta

import pytest

from circulation import (
    BOOK_IS_TEMPORARY_UNAVAILABLE,
    BORROWING_PROHIBITED,
    BORROWING_PROHIBITED_LIMIT_REACHED,
    CHECKOUT_OF_ANOTHER_USER,
    NO_BOOKS_BORROWED,
    NO_CHECKOUT_FOUND,
)
from database import get_db_connection
from library import UnprocessableRequestError, NO_BOOK_FOUND


@pytest.fixture
def hobbit(lib):
    return lib.add_book("J. R. R. Tolkien", "The Hobbit", "A-01", 3)


def _borrow_days_ago(circulation, clock, book_id, user, days):
    now = clock.now
    clock.now = now - timedelta(days=days)
    try:
        return circulation.create(book_id, user)
    finally:
        clock.now = now


def _checkout_row(checkout_id):
    conn = get_db_connection()
    try:
        return dict(conn.execute("SELECT * FROM checkouts WHERE id = ?", (checkout_id,)).fetchone())
    finally:
        conn.close()


def test_create_records_active_checkout(circulation, clock, hobbit, reader):
    created = circulation.create(hobbit.id, reader)

    assert created.id is not None
    assert created.user_id == reader.id
    assert created.book.title == "The Hobbit"
    assert created.checkout_date_time == clock.now
    assert created.is_active

    active = circulation.list_active(reader)
    assert [ch.id for ch in active] == [created.id]
    assert _checkout_row(created.id)["return_date_time"] is None


def test_create_does_not_change_book_amount(circulation, lib, hobbit, reader):
    circulation.create(hobbit.id, reader)
    assert lib.find_book(hobbit.id).amount == 3


def test_create_unknown_book(circulation, reader):
    with pytest.raises(UnprocessableRequestError) as exc:
        circulation.create(12345, reader)
    assert exc.value.reason == NO_BOOK_FOUND


def test_create_unavailable_book(circulation, lib, reader):
    book = lib.add_book("Fyodor Dostoevsky", "Crime and Punishment", "D-07", 0)
    with pytest.raises(UnprocessableRequestError) as exc:
        circulation.create(book.id, reader)
    assert exc.value.reason == BOOK_IS_TEMPORARY_UNAVAILABLE
    assert circulation.find_all_active_by_user(reader) == []


def test_list_active_without_checkouts(circulation, reader):
    with pytest.raises(UnprocessableRequestError, match=NO_BOOKS_BORROWED):
        circulation.list_active(reader)


def test_list_active_only_returns_own_checkouts(circulation, hobbit, reader, other_reader):
    mine = circulation.create(hobbit.id, reader)
    circulation.create(hobbit.id, other_reader)
    assert [ch.id for ch in circulation.list_active(reader)] == [mine.id]


def test_fourth_checkout_allowed_fifth_refused(circulation, hobbit, reader):
    for _ in range(4):
        circulation.create(hobbit.id, reader)
    assert len(circulation.list_active(reader)) == 4

    with pytest.raises(UnprocessableRequestError) as exc:
        circulation.create(hobbit.id, reader)
    assert exc.value.reason == BORROWING_PROHIBITED_LIMIT_REACHED
    assert exc.value.reason == "Borrowing is prohibited because the limit of 3 books reached"
    assert len(circulation.list_active(reader)) == 4


def test_count_future_violations(circulation, clock, hobbit, reader):
    _borrow_days_ago(circulation, clock, hobbit.id, reader, 15)
    _borrow_days_ago(circulation, clock, hobbit.id, reader, 14)
    circulation.create(hobbit.id, reader)

    # Exactly 14 whole days is still within the borrow duration
    assert circulation.count_future_violations(reader) == 1


def test_projected_violations_block_borrowing(circulation, accounts, clock, hobbit, reader):
    accounts.update_violations(reader.id, 2)
    _borrow_days_ago(circulation, clock, hobbit.id, reader, 20)
    user = accounts.get_by_id(reader.id)

    with pytest.raises(UnprocessableRequestError) as exc:
        circulation.create(hobbit.id, user)
    assert exc.value.reason == BORROWING_PROHIBITED


def test_violations_at_limit_still_allow_borrowing(circulation, accounts, hobbit, reader):
    accounts.update_violations(reader.id, 2)
    user = accounts.get_by_id(reader.id)
    assert circulation.create(hobbit.id, user).id is not None


def test_checkin_returns_copy(circulation, lib, accounts, hobbit, reader):
    created = circulation.create(hobbit.id, reader)

    circulation.checkin(created.id, reader)

    assert lib.find_book(hobbit.id).amount == hobbit.amount + 1
    assert accounts.get_by_id(reader.id).violations == 0


def test_checkin_leaves_checkout_active(circulation, lib, hobbit, reader):
    created = circulation.create(hobbit.id, reader)
    before = _checkout_row(created.id)

    circulation.checkin(created.id, reader)
    circulation.checkin(created.id, reader)

    assert _checkout_row(created.id) == before
    assert [ch.id for ch in circulation.list_active(reader)] == [created.id]
    assert lib.find_book(hobbit.id).amount == hobbit.amount + 2


def test_late_checkin_adds_violation(circulation, accounts, clock, hobbit, reader):
    created = _borrow_days_ago(circulation, clock, hobbit.id, reader, 15)

    circulation.checkin(created.id, reader)

    assert accounts.get_by_id(reader.id).violations == 1


def test_checkin_unknown_checkout(circulation, reader):
    with pytest.raises(UnprocessableRequestError) as exc:
        circulation.checkin(999, reader)
    assert exc.value.reason == NO_CHECKOUT_FOUND


def test_checkin_of_another_user_mutates_nothing(circulation, lib, accounts, clock, hobbit, reader, other_reader):
    created = _borrow_days_ago(circulation, clock, hobbit.id, reader, 30)

    with pytest.raises(UnprocessableRequestError) as exc:
        circulation.checkin(created.id, other_reader)

    assert exc.value.reason == CHECKOUT_OF_ANOTHER_USER
    assert lib.find_book(hobbit.id).amount == 3
    assert accounts.get_by_id(reader.id).violations == 0
    assert accounts.get_by_id(other_reader.id).violations == 0


def test_failed_checkin_rolls_back(circulation, lib, accounts, clock, hobbit, reader, monkeypatch):
    created = _borrow_days_ago(circulation, clock, hobbit.id, reader, 30)

    def broken_update(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(lib, "update_amount", broken_update)
    with pytest.raises(RuntimeError):
        circulation.checkin(created.id, reader)

    # The violation written before the failure is rolled back
    assert accounts.get_by_id(reader.id).violations == 0
