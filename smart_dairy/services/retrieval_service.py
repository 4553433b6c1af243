"""
Retrieval: lexical scoring over document fragments and answer generation.

Responsibility: Rank fragments against the query, keep the top matches, and ask
the LLM to answer from them. Falls back to the web lookup when nothing matches.
score_fragments is the only scoring step; a semantic scorer can replace it
without changing retrieve().
"""

import logging
from collections.abc import Awaitable, Callable

from smart_dairy.agent.llm import CompletionClient, system_user
from smart_dairy.core.config import RETRIEVAL_TOP_K
from smart_dairy.core.types import DocumentFragment, PathResult, ScoredFragment, SourceReference
from smart_dairy.services.web_lookup import WebLookupCache

logger = logging.getLogger(__name__)

CONTEXT_DELIMITER = "\n\n---\n\n"

RAG_INSTRUCTION = (
    "You are a Smart Dairy AI assistant specializing in dairy farming. Use the provided "
    "document excerpts to answer the user's question accurately. Use only those excerpts. "
    "If the information is insufficient, acknowledge this limitation."
)


def score_fragments(
    query: str, fragments: list[DocumentFragment], top_k: int = RETRIEVAL_TOP_K
) -> list[ScoredFragment]:
    """
    Score each fragment by how many query terms occur in it as substrings.

    Terms are the lowercased whitespace-split query; each term position adds at
    most 1. Zero scores are dropped; ties keep input order (sorted() is stable).
    """
    terms = query.lower().split()
    if not terms:
        return []
    scored: list[ScoredFragment] = []
    for position, fragment in enumerate(fragments):
        text = fragment.content.lower()
        score = sum(1 for term in terms if term in text)
        if score > 0:
            scored.append(ScoredFragment(fragment=fragment, score=score, position=position))
    ranked = sorted(scored, key=lambda s: -s.score)
    return ranked[:top_k]


class DocumentRetriever:
    """document_retrieval path: score, build context, generate, attribute."""

    def __init__(
        self,
        llm: CompletionClient,
        web_lookup: WebLookupCache,
        top_k: int = RETRIEVAL_TOP_K,
    ) -> None:
        self.llm = llm
        self.web_lookup = web_lookup
        self.top_k = top_k

    async def retrieve(
        self,
        query: str,
        fragments: list[DocumentFragment],
        fallback: Callable[[], Awaitable[PathResult]] | None = None,
    ) -> PathResult:
        """fallback replaces the web lookup when the caller already has one in flight."""
        web = fallback or (lambda: self.web_lookup.lookup(query))
        logger.info("[retrieval:retrieve] IN  query=%r fragments=%d", query, len(fragments))
        if not fragments:
            logger.info("[retrieval:retrieve] no fragments; falling back to web lookup")
            return await web()

        ranked = score_fragments(query, fragments, self.top_k)
        if not ranked:
            logger.info("[retrieval:retrieve] no fragment matched; falling back to web lookup")
            return await web()

        logger.info(
            "[retrieval:retrieve] ranked=%d scores=%s",
            len(ranked),
            [(s.fragment.document_name, s.fragment.chunk_index, s.score) for s in ranked],
        )
        context = CONTEXT_DELIMITER.join(s.fragment.content for s in ranked)
        sources = [
            SourceReference(
                label=s.fragment.document_name,
                kind="document",
                chunk_index=s.fragment.chunk_index,
            )
            for s in ranked
        ]
        prompt = (
            f"Context from dairy farm manuals and scientific papers:\n\n{context}\n\n"
            f"Question: {query}\n\n"
            "Provide a comprehensive answer based only on the context above. Cite sources when possible."
        )
        try:
            answer = await self.llm.complete(system_user(RAG_INSTRUCTION, prompt))
        except Exception:
            logger.exception("[retrieval:retrieve] generation failed; falling back to web lookup")
            return await web()

        logger.info("[retrieval:retrieve] OUT answer_len=%d sources=%d", len(answer), len(sources))
        return PathResult(text=answer, sources=sources)
