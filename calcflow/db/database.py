"""Async SQLAlchemy engine for the configured database."""

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from calcflow.config import config

engine = create_async_engine(config.database_url, echo=config.debug)


async def init_db(bind: AsyncEngine = None):
    """Create all tables. Called at startup."""
    from calcflow.db.models import Base
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
