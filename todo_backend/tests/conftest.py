import os
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

# Ensure we default to memory backend for tests to avoid filesystem dependencies
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

from taskboard.gateways import InMemoryGateway  # noqa: E402
from taskboard.main import create_app  # noqa: E402
from taskboard.settings import Settings  # noqa: E402
from taskboard.store import TodoStore  # noqa: E402


class TickingClock:
    """Deterministic clock: every call is one second after the previous one."""

    def __init__(self, start=datetime(2025, 1, 1, 9, 0, 0)):
        self.current = start

    def __call__(self):
        self.current = self.current + timedelta(seconds=1)
        return self.current


@pytest.fixture()
def settings():
    return Settings(
        persistence_backend="memory",
        sqlite_db_path="./data/taskboard.db",
        remote_api_url=None,
        remote_api_key=None,
        remote_timeout=10.0,
        seed_default_categories=False,
        cors_allow_origins=["*"],
        log_level="DEBUG",
    )


@pytest.fixture()
def clock():
    return TickingClock()


@pytest.fixture()
def gateway():
    return InMemoryGateway()


@pytest.fixture()
def store(gateway, clock):
    s = TodoStore(gateway, clock=clock)
    s.load()
    return s


@pytest.fixture()
def client(store, settings):
    return TestClient(create_app(store=store, settings=settings))


@pytest.fixture()
def two_categories(store):
    """Categories A and B, created in that order."""
    a = store.add_category("A", "#3B82F6")
    b = store.add_category("B")
    return a, b
