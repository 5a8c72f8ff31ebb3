"""Shared fixtures: a fresh SQLite-backed store per test."""

from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./data/test-kpl.db")

import pytest
import pytest_asyncio

from services.timing.store import RaceStore
from shared.schemas.race import RaceClass, SessionCategory, SessionKind


def sqlite_url(path) -> str:
    return f"sqlite+aiosqlite:///{path}"


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "kpl.db"


@pytest_asyncio.fixture
async def store(db_path):
    race_store = RaceStore.from_url(sqlite_url(db_path))
    await race_store.init()
    yield race_store
    await race_store.close()


@pytest_asyncio.fixture
async def round_id(store) -> str:
    created = await store.create_round("Round 3")
    return created.id


@pytest_asyncio.fixture
async def qualifying_id(store, round_id) -> str:
    return await store.create_session(
        SessionCategory.QUALIFYING, SessionKind.QUALIFYING, RaceClass.PRO, "Qualifying Pro", round_id
    )


@pytest_asyncio.fixture
async def race_id(store, round_id) -> str:
    return await store.create_session(
        SessionCategory.HEATS_AND_RACE_1, SessionKind.HEAT, RaceClass.PRO, "Pro Heat 1", round_id
    )


class FakeConnection:
    """Stands in for a WebSocket: records every frame sent to it."""

    def __init__(self, fail: bool = False) -> None:
        self.sent = []
        self.fail = fail

    async def send_json(self, data) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    def events(self):
        return [frame["event"] for frame in self.sent]

    def last(self, event: str):
        for frame in reversed(self.sent):
            if frame["event"] == event:
                return frame["data"]
        raise AssertionError(f"no {event} frame received")
