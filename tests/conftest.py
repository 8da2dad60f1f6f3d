"""Test fixtures: config, in-memory database session, wired runtime, sample collections.

All tests should use these fixtures for consistency.
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from calcflow.config import CalcflowConfig
from calcflow.db.models import Base
from calcflow.expressions.engines import default_registry
from calcflow.runtime import build_runtime


@pytest.fixture
def config():
    """Test configuration with safe defaults and one system constant."""
    return CalcflowConfig(
        debug=False,
        database_url="sqlite+aiosqlite:///:memory:",
        system_variables={"no1": 1},
    )


@pytest.fixture
def engines():
    return default_registry()


@pytest_asyncio.fixture
async def session():
    """In-memory SQLite async session with all tables created."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as s:
        yield s
    await engine.dispose()


@pytest_asyncio.fixture
async def runtime(session, config):
    """Fully wired calcflow with ``posts`` and ``categories`` collections."""
    rt = build_runtime(session, config)
    rt.collections.define("posts", {"read": 0})
    rt.collections.define("categories")
    return rt


@pytest_asyncio.fixture
async def workflow(runtime):
    """Enabled workflow triggered when a post is created."""
    return await runtime.workflows.create(
        "test workflow",
        config={"collection": "posts", "mode": 1},
        enabled=True,
    )
