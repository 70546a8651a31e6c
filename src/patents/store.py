import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional
from weakref import WeakValueDictionary

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from src.config import settings
from src.patents.models import CachedPatent, INVALID_PATENT_INDEX
from src.patents.schemas import PatentMetadata
from src.shared.models import utcnow

logger = logging.getLogger(__name__)


class PatentDocumentStore:
    """Session-scoped, index-addressed cache of full patent documents.

    ``patent_index`` is only meaningful for the latest search batch of a chat
    session: every new search invalidates the previous indices before its own
    results are written. Entries are keyed by ``(session_id, patent_number)``
    and expire ``ttl`` after their last write; expired rows are ignored on
    read and removed by :meth:`sweep_expired`.

    Each operation opens its own database session so that parallel tool calls
    can share one store. Writes for the same chat session are serialised
    in-process.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        ttl: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.ttl = ttl or timedelta(minutes=settings.PATENT_CACHE_TTL_MINUTES)
        self.clock = clock
        self._locks: WeakValueDictionary[str, asyncio.Lock] = WeakValueDictionary()

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    async def invalidate_session_indices(self, session_id: str) -> int:
        """Mark every entry of the session as index-invalid. Content is kept."""
        async with self._lock_for(session_id):
            async with self.session_factory() as db:
                result = await db.execute(
                    update(CachedPatent)
                    .where(
                        CachedPatent.session_id == session_id,
                        CachedPatent.patent_index != INVALID_PATENT_INDEX,
                    )
                    .values(patent_index=INVALID_PATENT_INDEX)
                )
                await db.commit()
        invalidated = result.rowcount or 0
        logger.info(f"Invalidated {invalidated} patent indices for session {session_id[:8]}")
        return invalidated

    async def upsert_entry(
        self,
        session_id: str,
        patent_number: str,
        index: int,
        title: Optional[str],
        url: Optional[str],
        abstract: Optional[str],
        full_content: str,
        metadata: Optional[PatentMetadata] = None,
    ) -> bool:
        """Insert or refresh an entry. Returns False instead of raising on failure."""
        values = dict(
            patent_index=index,
            title=title,
            url=url,
            abstract=abstract,
            full_content=full_content,
            patent_metadata=metadata.to_payload() if metadata else None,
        )
        try:
            async with self._lock_for(session_id):
                try:
                    await self._write_entry(session_id, patent_number, values)
                except IntegrityError:
                    # Another worker inserted the same key first; update it instead
                    await self._write_entry(session_id, patent_number, values)
            return True
        except Exception as e:
            logger.error(
                f"Failed to cache patent {patent_number} at index {index} "
                f"for session {session_id[:8]}: {e}",
                exc_info=True,
            )
            return False

    async def _write_entry(self, session_id: str, patent_number: str, values: dict) -> None:
        now = self.clock()
        async with self.session_factory() as db:
            result = await db.execute(
                select(CachedPatent).where(
                    CachedPatent.session_id == session_id,
                    CachedPatent.patent_number == patent_number,
                )
            )
            entry = result.scalars().first()
            if entry is None:
                entry = CachedPatent(
                    session_id=session_id,
                    patent_number=patent_number,
                    created_at=now,
                )
                db.add(entry)
            for field, value in values.items():
                setattr(entry, field, value)
            entry.updated_at = now
            entry.expires_at = now + self.ttl
            await db.commit()

    async def get_by_index(self, session_id: str, index: int) -> Optional[CachedPatent]:
        """Live entry of the latest search batch at ``index``, or None.

        None covers three cases the caller cannot tell apart: nothing was
        cached at that index, a newer search superseded it, or it expired.
        """
        if index < 0:
            return None
        async with self.session_factory() as db:
            result = await db.execute(
                select(CachedPatent)
                .where(
                    CachedPatent.session_id == session_id,
                    CachedPatent.patent_index == index,
                    CachedPatent.expires_at > self.clock(),
                )
                .order_by(CachedPatent.updated_at.desc(), CachedPatent.created_at.desc())
                .limit(1)
            )
            return result.scalars().first()

    async def sweep_expired(self) -> int:
        """Delete expired entries across all sessions; returns the number removed."""
        async with self.session_factory() as db:
            result = await db.execute(
                delete(CachedPatent).where(CachedPatent.expires_at <= self.clock())
            )
            await db.commit()
        removed = result.rowcount or 0
        logger.info(f"Swept {removed} expired patent cache entries")
        return removed
