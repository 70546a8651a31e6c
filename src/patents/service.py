from typing import Iterable, Optional

from src.core.errors import CacheMissError
from src.patents.extraction import extract_sections
from src.patents.schemas import CachedPatentResponse, PatentMetadata, SectionName
from src.patents.store import PatentDocumentStore


def cache_miss_message(index: int) -> str:
    return (
        f"No patent is cached at index {index} for this session. It may have expired, "
        "been replaced by a newer search, or the index may be out of range. "
        "Run patentSearch again and use an index from its results."
    )


async def read_cached_patent(
    store: PatentDocumentStore,
    session_id: str,
    index: int,
    sections: Optional[Iterable[SectionName]] = None,
) -> CachedPatentResponse:
    """Cached document at ``index`` with the requested sections parsed out.

    Raises CacheMissError when the index does not address a live entry of the
    session's latest search.
    """
    entry = await store.get_by_index(session_id, index)
    if entry is None:
        raise CacheMissError(cache_miss_message(index))
    return CachedPatentResponse(
        session_id=entry.session_id,
        patent_index=entry.patent_index,
        patent_number=entry.patent_number,
        title=entry.title,
        url=entry.url,
        abstract=entry.abstract,
        metadata=PatentMetadata.model_validate(entry.patent_metadata or {}),
        sections=extract_sections(entry.full_content, sections),
        expires_at=entry.expires_at,
    )
