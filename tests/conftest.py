"""
Shared fixtures: a throwaway SQLite database per test and a core wired to it.
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from inspection_core.app import InspectionCore
from inspection_core.core.settings import AppSettings
from inspection_core.db.session import build_session_maker, create_schema


@pytest.fixture
def settings():
    return AppSettings(
        ENVIRONMENT="test",
        QUEUE_POLL_INTERVAL_SECONDS=0.01,
        QUEUE_BATCH_SIZE=5,
        QUEUE_MAX_RETRIES=3,
        QUEUE_RETENTION_HOURS=24,
        VOICE_HIGH_CONFIDENCE_THRESHOLD=0.8,
        VOICE_MAX_TEXT_LENGTH=5000,
    )


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'inspections.db'}")
    await create_schema(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
def core(session_maker, settings):
    return InspectionCore(session_maker, settings=settings)


@pytest.fixture
def tenant_id():
    return uuid.uuid4()


@pytest.fixture
def other_tenant_id():
    return uuid.uuid4()


@pytest.fixture
async def draft(core, tenant_id):
    """A fresh draft inspection created by tech-1."""
    return await core.create_inspection(tenant_id, "tech-1", "VIN-1HGCM82633A004352", ["grinding when braking"])


class FakeClock:
    """Settable clock shared by a core, its services and its queue."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **delta):
        self.now += timedelta(**delta)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc))


@pytest.fixture
def clocked_core(session_maker, settings, clock):
    return InspectionCore(session_maker, settings=settings, clock=clock)
