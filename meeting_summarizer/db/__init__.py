"""
Database package - engine and session management.
"""
from meeting_summarizer.db.engine import build_engine, engine
from meeting_summarizer.db.session import (
    async_session_maker,
    get_db_session,
    create_tables,
    drop_tables
)

__all__ = [
    'build_engine',
    'engine',
    'async_session_maker',
    'get_db_session',
    'create_tables',
    'drop_tables'
]
