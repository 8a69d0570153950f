import os
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

# Ensure we default to memory backend for tests to avoid filesystem dependencies
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

from chore_api.db import SQLiteRepository  # noqa: E402
from chore_api.main import create_app  # noqa: E402
from chore_api.repositories import InMemoryRepository  # noqa: E402
from chore_api.services import ChoreService  # noqa: E402
from chore_api.settings import Settings  # noqa: E402

START = datetime(2024, 1, 1, 9, 0, 0)


class FakeClock:
    """A settable clock; each call returns the current value."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, tmp_path, clock):
    if request.param == "sqlite":
        return SQLiteRepository(str(tmp_path / "chores.db"), clock=clock)
    return InMemoryRepository(clock=clock)


@pytest.fixture
def service(repo, clock):
    return ChoreService(repo, clock=clock)


@pytest.fixture
def client(clock):
    app = create_app(settings=Settings(), repository=InMemoryRepository(clock=clock), clock=clock)
    return TestClient(app)


def create_template_payload(
    title="Take out trash",
    amount="2.00",
    frequency="daily",
    start_date="2024-01-01",
    count=None,
):
    payload = {
        "title": title,
        "amount": amount,
        "frequency": frequency,
        "start_date": start_date,
    }
    if count is not None:
        payload["count"] = count
    return payload
