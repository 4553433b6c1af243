"""
Response synthesis: run the path chosen by the classifier and return one answer.

Dispatch is a single match over StrategyLabel. Each path returns a PathResult;
the synthesizer adds the strategy and whether a web lookup ran. Hybrid runs the
document and web paths concurrently and merges them with one more LLM call.
"""

import asyncio
import logging
from typing import assert_never

from smart_dairy.agent.llm import CompletionClient, system_user
from smart_dairy.core.config import FRAGMENT_CANDIDATE_LIMIT
from smart_dairy.core.database import FarmStore
from smart_dairy.core.errors import PersistenceError
from smart_dairy.core.types import PathResult, Query, SourceReference, StrategyLabel, SynthesisResult
from smart_dairy.services.retrieval_service import DocumentRetriever
from smart_dairy.services.tabular_service import TabularDispatcher
from smart_dairy.services.web_lookup import WebLookupCache

logger = logging.getLogger(__name__)

GENERAL_INSTRUCTION = (
    "You are a helpful Smart Dairy AI assistant specializing in dairy farming. Provide helpful, "
    "accurate information about dairy operations, breeding, nutrition, management, and best practices."
)
GENERAL_APOLOGY = "I could not generate a response. Please try again later."

HYBRID_INSTRUCTION = (
    "You are a Smart Dairy AI assistant. Combine information from both uploaded documents "
    "and web search to provide comprehensive answers."
)


def _with_priority(sources: list[SourceReference], priority: str) -> list[SourceReference]:
    return [s.model_copy(update={"priority": priority}) for s in sources]


class ResponseSynthesizer:
    def __init__(
        self,
        store: FarmStore,
        llm: CompletionClient,
        retriever: DocumentRetriever,
        web_lookup: WebLookupCache,
        tabular: TabularDispatcher,
        fragment_limit: int = FRAGMENT_CANDIDATE_LIMIT,
    ) -> None:
        self.store = store
        self.llm = llm
        self.retriever = retriever
        self.web_lookup = web_lookup
        self.tabular = tabular
        self.fragment_limit = fragment_limit

    async def synthesize(self, query: Query, strategy: StrategyLabel) -> SynthesisResult:
        logger.info("[synthesizer:synthesize] IN  strategy=%s query=%r", strategy.value, query.text)
        match strategy:
            case StrategyLabel.TABULAR_ANALYSIS:
                result = await self.tabular.analyze(query.text, query.tabular_ids)
            case StrategyLabel.DOCUMENT_RETRIEVAL:
                result = await self._document_path(query)
            case StrategyLabel.WEB_LOOKUP:
                result = await self.web_lookup.lookup(query.text)
            case StrategyLabel.HYBRID:
                result = await self._hybrid(query)
            case StrategyLabel.GENERAL:
                result = await self._general(query.text)
            case _:
                assert_never(strategy)

        logger.info(
            "[synthesizer:synthesize] OUT strategy=%s sources=%d web_lookup_used=%s",
            strategy.value,
            len(result.sources),
            result.web_lookup_used,
        )
        return SynthesisResult(
            text=result.text,
            sources=result.sources,
            strategy=strategy,
            web_lookup_used=result.web_lookup_used,
        )

    async def _document_path(self, query: Query, fallback=None) -> PathResult:
        fragments = await self.store.get_fragments(query.document_ids, limit=self.fragment_limit)
        return await self.retriever.retrieve(query.text, fragments, fallback=fallback)

    async def _hybrid(self, query: Query) -> PathResult:
        # One lookup per hybrid turn; the document path's web fallback awaits the same task.
        web_task = asyncio.ensure_future(self.web_lookup.lookup(query.text))
        document_result, web_result = await asyncio.gather(
            self._document_path(query, fallback=lambda: web_task),
            web_task,
            return_exceptions=True,
        )
        for outcome in (document_result, web_result):
            if isinstance(outcome, PersistenceError):
                raise outcome

        if isinstance(web_result, BaseException):
            logger.warning("[synthesizer:hybrid] web path failed: %s", web_result)
            web_result = PathResult(
                text=f"I encountered an error searching the web: {web_result}. Please try again later.",
                web_lookup_used=True,
            )
        if isinstance(document_result, BaseException):
            logger.warning("[synthesizer:hybrid] document path failed: %s", document_result)
            document_result = PathResult(text=web_result.text, web_lookup_used=True)

        # A document fallback carries the web sources already listed at medium.
        document_sources = [s for s in document_result.sources if s.kind == "document"]
        sources = _with_priority(document_sources, "high") + _with_priority(web_result.sources, "medium")
        prompt = (
            f"Document-based Answer:\n{document_result.text}\n\n"
            f"Web Search Answer:\n{web_result.text}\n\n"
            f"Original Question: {query.text}\n\n"
            "Synthesize these answers into a comprehensive response that draws from both sources when applicable."
        )
        try:
            text = await self.llm.complete(system_user(HYBRID_INSTRUCTION, prompt))
        except Exception as e:
            logger.warning("[synthesizer:hybrid] merge failed (%s); returning document answer", e)
            text = document_result.text
        return PathResult(text=text, sources=sources, web_lookup_used=True)

    async def _general(self, text: str) -> PathResult:
        try:
            answer = await self.llm.complete(system_user(GENERAL_INSTRUCTION, text))
        except Exception as e:
            logger.warning("[synthesizer:general] completion failed: %s", e)
            return PathResult(text=GENERAL_APOLOGY)
        return PathResult(text=answer)
