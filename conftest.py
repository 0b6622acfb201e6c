import os
from datetime import datetime

import pytest

import database
from accounts import AccountService
from circulation import CirculationService
from library import Library


class FakeClock:
    """Callable clock whose current time tests can move around."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def db_file(tmp_path, request, monkeypatch):
    # One database file per test; restored after the test
    path = str(tmp_path / f"test_{request.node.name}.db")
    monkeypatch.setattr(database, "DATABASE_FILE", path)
    yield path
    if os.path.exists(path):
        os.remove(path)


@pytest.fixture
def lib(db_file):
    return Library()


@pytest.fixture
def accounts(lib):
    return AccountService()


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 12, 0, 0))


@pytest.fixture
def circulation(lib, accounts, clock):
    return CirculationService(lib, accounts, clock=clock)


@pytest.fixture
def reader(accounts):
    return accounts.add_user(name="Reader", email="reader@example.com", password="secret")


@pytest.fixture
def other_reader(accounts):
    return accounts.add_user(name="Other", email="other@example.com", password="hunter2")
