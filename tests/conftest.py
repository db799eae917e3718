"""Shared fixtures: a file-backed SQLite tracker database per test."""
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from core.models.base import Base
from core.resilience import InFlightGuard
from patterns.domain_config import TrackerConfig
from verticals.agency.models.db_models import TABLES  # noqa: F401
from verticals.agency.repository import TrackerStore
from verticals.agency.service import TrackerService

NOW = datetime(2024, 6, 10, 12, 0, tzinfo=timezone.utc)

TEAM = [
    {"user_id": "admin", "name": "Farah", "phone": "012-000 1111", "role": "ADMIN"},
    {"user_id": "staff1", "name": "Aina", "phone": "012-345 6789", "role": "STAFF"},
    {"user_id": "staff2", "name": "Hafiz", "phone": None, "role": "STAFF"},
]


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'tracker.db'}"


@pytest_asyncio.fixture
async def session(db_url):
    engine = create_async_engine(db_url, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session
    await engine.dispose()


@pytest_asyncio.fixture
async def tracker(session):
    """A TrackerService over a seeded store with a fixed clock."""
    store = TrackerStore(session)
    await store.insert_many("team_users", TEAM)
    client = await store.insert("clients", {"name": "Kedai Kopi"})
    service = TrackerService(
        store,
        config=TrackerConfig.default(),
        sync_guard=InFlightGuard(),
        now=lambda: NOW,
    )
    return SimpleNamespace(service=service, store=store, client_id=client["id"])
