"""
Web lookup: DuckDuckGo search (ddgs) behind a one-hour result cache.

The cache is keyed by the exact query string and stored in SQLite. A fresh entry
is reused and only its hit counter is written back; a stale or missing entry
triggers a new search whose results replace the entry with hit_count = 1.

Concurrency: the freshness check and the write-back are separate awaits, so two
concurrent lookups of the same query can both search and one hit increment can
be lost. That race is accepted; readers still never see a half-written entry
because each write is a single statement.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Protocol

from ddgs import DDGS

from smart_dairy.agent.llm import CompletionClient, system_user
from smart_dairy.core.config import WEB_CACHE_TTL_SECONDS, WEB_SEARCH_QUALIFIER, WEB_SEARCH_RESULTS
from smart_dairy.core.database import FarmStore
from smart_dairy.core.errors import PersistenceError, SearchError
from smart_dairy.core.types import PathResult, SearchResult, SourceReference

logger = logging.getLogger(__name__)

NO_RESULTS_ANSWER = (
    "I couldn't find any relevant information from web search. "
    "Please try rephrasing your question or upload relevant documents."
)

WEB_INSTRUCTION = (
    "You are a Smart Dairy AI assistant. Use the web search results to provide accurate, "
    "up-to-date information about dairy farming."
)


class SearchProvider(Protocol):
    """Blocking web search; may return []. Raises SearchError."""

    def search(self, query: str, count: int) -> list[SearchResult]: ...


class DdgsSearchProvider:
    """Web search using the ddgs package."""

    def search(self, query: str, count: int) -> list[SearchResult]:
        q = (query or "").strip()
        if not q:
            return []
        try:
            with DDGS() as ddgs:
                raw = list(ddgs.text(q, max_results=count))
        except Exception as e:
            raise SearchError(f"Web search failed: {e}") from e
        results = []
        for r in raw[:count]:
            results.append(
                SearchResult(
                    title=(r.get("title") or "").strip(),
                    url=(r.get("href") or "").strip(),
                    snippet=(r.get("body") or "").strip(),
                )
            )
        logger.info("[web_lookup:ddgs] OUT results=%d", len(results))
        return results


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WebLookupCache:
    """web_lookup path: cached search, then LLM synthesis over titles and snippets."""

    def __init__(
        self,
        store: FarmStore,
        provider: SearchProvider,
        llm: CompletionClient,
        *,
        ttl_seconds: float = WEB_CACHE_TTL_SECONDS,
        result_count: int = WEB_SEARCH_RESULTS,
        qualifier: str = WEB_SEARCH_QUALIFIER,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.provider = provider
        self.llm = llm
        self.ttl_seconds = ttl_seconds
        self.result_count = result_count
        self.qualifier = qualifier
        self.clock = clock

    async def get_or_fetch(self, query: str) -> list[SearchResult]:
        """Cached results when younger than the TTL, else a fresh search stored back."""
        entry = await self.store.get_cache_entry(query)
        now = self.clock()
        if entry is not None and (now - entry.searched_at).total_seconds() < self.ttl_seconds:
            await self.store.set_cache_hits(query, entry.hit_count + 1)
            logger.info("[web_lookup:get_or_fetch] cache hit query=%r hits=%d", query, entry.hit_count + 1)
            return list(entry.results)

        search_query = f"{self.qualifier} {query}" if self.qualifier else query
        logger.info("[web_lookup:get_or_fetch] cache miss query=%r stale=%s", query, entry is not None)
        results = await asyncio.to_thread(self.provider.search, search_query, self.result_count)
        await self.store.upsert_cache_entry(query, results, now)
        return results

    async def lookup(self, query: str) -> PathResult:
        logger.info("[web_lookup:lookup] IN  query=%r", query)
        try:
            results = await self.get_or_fetch(query)
            if not results:
                return PathResult(text=NO_RESULTS_ANSWER, web_lookup_used=True)

            context = "\n\n---\n\n".join(f"{r.title}\n{r.snippet}" for r in results)
            sources = [SourceReference(label=r.title, kind="web", url=r.url) for r in results]
            prompt = (
                f"Web Search Results:\n\n{context}\n\nQuestion: {query}\n\n"
                "Provide a comprehensive answer based on these search results."
            )
            answer = await self.llm.complete(system_user(WEB_INSTRUCTION, prompt))
        except PersistenceError:
            raise
        except Exception as e:
            logger.warning("[web_lookup:lookup] failed: %s", e)
            return PathResult(
                text=f"I encountered an error searching the web: {e}. Please try again later.",
                web_lookup_used=True,
            )
        logger.info("[web_lookup:lookup] OUT answer_len=%d sources=%d", len(answer), len(sources))
        return PathResult(text=answer, sources=sources, web_lookup_used=True)
