from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ppcup.db import metadata
from ppcup.errors import ExternalFetchFailure
from ppcup.osu_client import UserStats
from ppcup.store import Store
import ppcup.models  # noqa: F401  (registers tables)


class FakeRatingSource:
    """Stands in for the osu! API: users keyed by id, unknown ids fail."""

    def __init__(self, users=None, scores=None, codes=None):
        self.users = dict(users or {})
        self.scores = dict(scores or {})
        self.codes = dict(codes or {})
        self.calls = []

    def add_user(self, user_id, username, rating, play_count=50000, avatar_url=""):
        self.users[user_id] = UserStats(user_id, username, avatar_url, rating, play_count)
        return self.users[user_id]

    def get_user_stats(self, user_id):
        self.calls.append(("stats", user_id))
        if user_id not in self.users:
            raise ExternalFetchFailure(user_id, "HTTP 404")
        return self.users[user_id]

    def get_user_recent_scores(self, user_id, map_id=None, since=None):
        self.calls.append(("scores", user_id))
        if user_id not in self.scores:
            raise ExternalFetchFailure(user_id, "HTTP 404")
        return [
            s for s in self.scores[user_id]
            if (map_id is None or s["map_id"] == map_id)
            and (since is None or s["achieved_at"] >= since)
        ]

    def exchange_code(self, code, redirect_uri=None):
        if code not in self.codes:
            raise ExternalFetchFailure(None, "bad code")
        return self.users[self.codes[code]]


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def store(engine) -> Store:
    return Store(sessionmaker(bind=engine, autoflush=False, autocommit=False))


@pytest.fixture
def source() -> FakeRatingSource:
    return FakeRatingSource()


@pytest.fixture
def t0() -> datetime:
    return datetime(2026, 1, 5, 12, 0, 0)
