from typing import Optional

from sqlmodel import SQLModel
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine
from sqlmodel.ext.asyncio.session import AsyncSession

from sharedrop.core.config import settings

# created on first use, reused for the life of the process
_engine: Optional[AsyncEngine] = None


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_async_engine(settings.database_url, echo=False, future=True)
    return _engine


async def dispose_engine():
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None


async def init_db():
    # table modules must be imported before create_all
    import sharedrop.models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session():
    async with AsyncSession(get_engine(), expire_on_commit=False) as session:
        yield session
