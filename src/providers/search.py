"""Search provider seam used by the patent and web search tools."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Protocol

from src.config import settings
from src.core.errors import ToolExecutionError

logger = logging.getLogger(__name__)


@dataclass
class SearchResult:
    title: str
    url: str
    content: str
    relevance_score: Optional[float] = None
    source: Optional[str] = None
    publication_date: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "url": self.url,
            "content": self.content,
            "relevanceScore": self.relevance_score,
            "source": self.source,
            "publicationDate": self.publication_date,
        }


class SearchProvider(Protocol):
    async def search(
        self,
        query: str,
        *,
        max_results: int,
        included_sources: Optional[List[str]] = None,
    ) -> List[SearchResult]:
        ...


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


class ValyuSearchProvider:
    """Valyu DeepSearch. The SDK is synchronous, so calls run in a worker thread."""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        self.api_key = api_key or settings.VALYU_API_KEY
        self.base_url = base_url or settings.VALYU_BASE_URL
        self._client = None

    def _get_client(self):
        if self._client is None:
            from valyu import Valyu

            if not self.api_key:
                raise ToolExecutionError("VALYU_API_KEY is required for search")
            self._client = Valyu(api_key=self.api_key, base_url=self.base_url)
        return self._client

    async def search(
        self,
        query: str,
        *,
        max_results: int,
        included_sources: Optional[List[str]] = None,
    ) -> List[SearchResult]:
        client = self._get_client()
        kwargs: dict = dict(
            search_type="all" if included_sources else "web",
            max_num_results=max_results,
            is_tool_call=True,
        )
        if included_sources:
            kwargs["included_sources"] = included_sources

        response = await asyncio.to_thread(client.search, query, **kwargs)
        if not _field(response, "success"):
            error = _field(response, "error") or "unknown error"
            raise ToolExecutionError(f"Search failed: {error}")

        results = [
            SearchResult(
                title=_field(item, "title") or "",
                url=_field(item, "url") or "",
                content=str(_field(item, "content") or ""),
                relevance_score=_field(item, "relevance_score"),
                source=_field(item, "source"),
                publication_date=_field(item, "publication_date"),
            )
            for item in (_field(response, "results") or [])
        ]
        logger.info(f"Search for {query[:60]!r} returned {len(results)} results")
        return results[:max_results]
