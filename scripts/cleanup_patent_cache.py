"""
Delete expired patent cache entries.

Usage:
    uv run python -m scripts.cleanup_patent_cache
"""

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import the app to ensure all models are registered with SQLAlchemy
import src.main  # noqa: F401

from src.config import settings
from src.patents.store import PatentDocumentStore

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


async def cleanup_expired() -> int:
    engine = create_async_engine(settings.SQLALCHEMY_DATABASE_URI)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        deleted = await PatentDocumentStore(session_factory).sweep_expired()
        logger.info(f"Done. Deleted {deleted} expired patent cache entries.")
        return deleted
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(cleanup_expired())
