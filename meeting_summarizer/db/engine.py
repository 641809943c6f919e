"""
Database engine configuration.
"""
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from meeting_summarizer.config import settings


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine; pooling options only apply to server databases."""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo)
    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_recycle=3600,
    )


engine = build_engine(settings.database_url, echo=settings.debug)
