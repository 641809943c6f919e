#!/usr/bin/env python3
"""
Database initialization script for the summarization worker.
Run this to create the required database tables.
"""
import asyncio
import sys

from meeting_summarizer.config import settings
from meeting_summarizer.db import create_tables, drop_tables, engine
from meeting_summarizer.logging_config import get_logger, setup_logging
from meeting_summarizer.models import Base

logger = get_logger(__name__)


async def init_db():
    """Initialize database tables."""
    logger.info("creating_tables")
    try:
        await create_tables()
        logger.info("tables_created", tables=sorted(Base.metadata.tables))
    finally:
        await engine.dispose()


async def reset_db():
    """Drop and recreate all tables. WARNING: This deletes all data!"""
    logger.warning("reset_requested", database_url=engine.url.render_as_string(hide_password=True))

    response = input("This will DELETE ALL DATA in the summarization tables. Continue? (yes/no): ")
    if response.lower() != "yes":
        logger.info("reset_cancelled")
        return

    try:
        await drop_tables()
        logger.info("tables_dropped")
        await create_tables()
        logger.info("tables_created", tables=sorted(Base.metadata.tables))
    finally:
        await engine.dispose()


def main():
    setup_logging(settings.debug, json_logs=settings.json_logs)
    if len(sys.argv) > 1 and sys.argv[1] == "--reset":
        asyncio.run(reset_db())
    else:
        asyncio.run(init_db())


if __name__ == "__main__":
    main()
