"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks all external services.
"""
import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB

from smartzap.database import Base
import smartzap.models  # noqa: F401  registers all tables on Base.metadata
from smartzap.models.inbox_conversation import InboxConversation
from smartzap.utils.kv_store import MemoryKeyValueStore


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


FIXED_NOW = datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
async def db():
    """In-memory SQLite database for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def clock():
    """Mutable clock: set clock.now to move time."""
    class _Clock:
        now = FIXED_NOW

        def __call__(self):
            return self.now

    return _Clock()


@pytest.fixture
def make_conversation(db):
    """Factory inserting an inbox conversation (open, bot mode by default)."""
    async def _make(**overrides):
        fields = {
            "id": uuid.uuid4(),
            "phone": "+5511999990000",
            "status": "open",
            "mode": "bot",
        }
        fields.update(overrides)
        conversation = InboxConversation(**fields)
        db.add(conversation)
        await db.flush()
        return conversation

    return _make


@pytest.fixture
def memory_store():
    return MemoryKeyValueStore()


@pytest.fixture
def mock_redis():
    """Mock for async Redis - prevents real Redis calls in tests."""
    with patch("smartzap.utils.kv_store.get_redis") as mock:
        redis_mock = AsyncMock()
        redis_mock.get = AsyncMock(return_value=None)
        redis_mock.set = AsyncMock(return_value=True)
        redis_mock.delete = AsyncMock(return_value=1)
        redis_mock.ping = AsyncMock(return_value=True)
        mock.return_value = redis_mock
        yield redis_mock
