"""
Database session management and utilities.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from meeting_summarizer.db.engine import engine
from meeting_summarizer.models import Base


async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


@asynccontextmanager
async def get_db_session(
    session_factory: Optional[async_sessionmaker] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Transactional session scope: commits on success, rolls back on error.

    Args:
        session_factory: Factory to draw the session from (process default if None)
    """
    factory = session_factory or async_session_maker
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def create_tables(bind: Optional[AsyncEngine] = None):
    """Create all tables in the database."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_tables(bind: Optional[AsyncEngine] = None):
    """Drop all tables from the database."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
