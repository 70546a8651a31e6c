import hashlib
import logging
from typing import List, Optional

from src.config import settings
from src.core.errors import CacheMissError
from src.patents.extraction import (
    UNKNOWN_PATENT_NUMBER,
    extract_abstract,
    extract_metadata,
    extract_patent_number,
)
from src.patents.service import read_cached_patent
from src.providers.search import SearchResult
from src.tools.registry import Tool, ToolContext
from src.tools.schemas import PatentSearchInput, ReadFullPatentInput

logger = logging.getLogger(__name__)

PATENT_SEARCH_DESCRIPTION = """Search patent databases (USPTO, EPO, PCT) for prior art, competitor portfolios and technology landscapes.

Results contain abstracts only. Each result has a patentIndex (0-based position in this search).
Full documents are cached for the current session: use readFullPatent with that patentIndex to get
claims, description and citations. Every new patentSearch replaces the indices of earlier searches."""

READ_FULL_PATENT_DESCRIPTION = """Retrieve full patent details (claims, description, citations, drawings) for a patent from
your MOST RECENT patentSearch, addressed by its patentIndex (0-19).

Use it for claim charts, freedom-to-operate reviews, invalidity analysis and detailed technical
comparison; abstracts alone are not sufficient for those. You may call it several times in parallel
for different indices. Optionally limit the output with sections, e.g. ["claims"]."""


def cache_key(patent_number: str, result: SearchResult) -> str:
    """Natural cache key. Unmatched documents get a content-derived suffix so they stay distinct."""
    if patent_number != UNKNOWN_PATENT_NUMBER:
        return patent_number
    seed = result.url or result.title or result.content[:500]
    digest = hashlib.sha256(seed.encode("utf-8")).hexdigest()[:12]
    return f"{UNKNOWN_PATENT_NUMBER}-{digest}"


async def patent_search(args: PatentSearchInput, ctx: ToolContext) -> dict:
    store = ctx.patent_store
    can_cache = bool(ctx.session_id and store and ctx.authenticated)

    # Indices from earlier searches must be dead before any new result is cached
    if can_cache:
        try:
            await store.invalidate_session_indices(ctx.session_id)
        except Exception as e:
            logger.error(
                f"Could not invalidate patent indices for session {ctx.session_id[:8]}, "
                f"skipping cache for this search: {e}",
                exc_info=True,
            )
            can_cache = False

    response = await ctx.search.search(
        args.query,
        max_results=args.max_results,
        included_sources=[settings.VALYU_PATENT_SOURCE],
    )

    results: List[dict] = []
    seen_keys = set()
    cached_count = 0
    for index, item in enumerate(response[: args.max_results]):
        abstract = extract_abstract(item.content)
        metadata = extract_metadata(item.content)
        key = cache_key(extract_patent_number(item.content, item.title), item)
        if key in seen_keys:
            key = f"{key}#{index}"
        seen_keys.add(key)

        if can_cache:
            cached = await store.upsert_entry(
                ctx.session_id,
                key,
                index,
                title=item.title,
                url=item.url,
                abstract=abstract,
                full_content=item.content,
                metadata=metadata,
            )
            cached_count += int(cached)

        entry = {
            "patentIndex": index,
            "patentNumber": key,
            "title": item.title,
            "abstract": abstract,
            "url": item.url,
            "assignees": [a.name for a in metadata.assignees or []],
            "filingDate": metadata.filing_date,
            "publicationDate": metadata.publication_date,
            "claimsCount": metadata.claims_count,
            "relevanceScore": item.relevance_score,
        }
        results.append({k: v for k, v in entry.items() if v is not None})

    if can_cache:
        note = (
            f"Abstracts only. Full text cached for {cached_count} of {len(results)} patents in this session. "
            "Use readFullPatent with a patentIndex from these results, e.g. readFullPatent({patentIndex: 0})."
        )
    else:
        note = "Abstracts only. Full-text reads are not available for this conversation."

    return {
        "type": "patents",
        "query": args.query,
        "resultCount": len(results),
        "results": results,
        "fullContentCached": can_cache and cached_count > 0,
        "note": note,
    }


async def read_full_patent(args: ReadFullPatentInput, ctx: ToolContext) -> dict:
    if not ctx.session_id or ctx.patent_store is None:
        raise CacheMissError("No active session: full patent text is only cached for saved conversations.")
    patent = await read_cached_patent(
        ctx.patent_store, ctx.session_id, args.patent_index, args.sections
    )
    return {
        "success": True,
        "patentIndex": patent.patent_index,
        "patentNumber": patent.patent_number,
        "title": patent.title,
        "url": patent.url,
        "metadata": patent.metadata.to_payload(),
        "sections": patent.sections.to_payload(),
    }


PATENT_SEARCH_TOOL = Tool(
    name="patentSearch",
    description=PATENT_SEARCH_DESCRIPTION,
    args_schema=PatentSearchInput,
    execute=patent_search,
    side_effects=("patent_cache:invalidate", "patent_cache:write"),
)

READ_FULL_PATENT_TOOL = Tool(
    name="readFullPatent",
    description=READ_FULL_PATENT_DESCRIPTION,
    args_schema=ReadFullPatentInput,
    execute=read_full_patent,
    requires_user=True,
)
