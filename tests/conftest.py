# Shared fixtures: a throwaway SQLite file, Redis off unless a test asks for fake_redis,
# a fixed JWT secret, and an event recorder.
import os
import sys
from typing import Iterator, List

import fakeredis
import pytest
from fastapi.testclient import TestClient

# Must be set before the app modules read them at import time
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("VINHOUSING_JWT_SECRET", "test-secret")

# Make 'app' importable when pytest is launched from outside the repo root
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from app.db import Base, engine  # noqa: E402
from app.events import DomainEvent, bus  # noqa: E402
from app.main import app  # noqa: E402
from app.redis_client import use_redis  # noqa: E402


def _reset_schema() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


@pytest.fixture(scope="session", autouse=True)
def _database() -> Iterator[None]:
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _fresh_schema() -> Iterator[None]:
    """Every test starts from empty tables; the suite is small enough to rebuild the schema each time."""
    _reset_schema()
    yield


@pytest.fixture()
def client() -> Iterator[TestClient]:
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def events() -> Iterator[List[DomainEvent]]:
    """Domain events published on the process-wide bus while the test runs, in order."""
    recorded: List[DomainEvent] = []
    bus.subscribe(recorded.append)
    yield recorded
    bus.unsubscribe(recorded.append)


@pytest.fixture()
def redis_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture()
def fake_redis(monkeypatch, redis_server) -> Iterator[fakeredis.FakeRedis]:
    """Turn Redis on for one test, backed by an in-memory server (Lua enabled for lock release)."""
    r = fakeredis.FakeRedis(server=redis_server, decode_responses=True)
    monkeypatch.setenv("REDIS_ENABLED", "true")
    use_redis(r)
    yield r
    use_redis(None)
