"""
Tests for strategy dispatch in the response synthesizer, hybrid merging in particular.
"""

import pytest

from smart_dairy.agent.synthesizer import GENERAL_APOLOGY, GENERAL_INSTRUCTION, HYBRID_INSTRUCTION, ResponseSynthesizer
from smart_dairy.core.errors import CompletionError, PersistenceError
from smart_dairy.core.types import Query, StrategyLabel
from smart_dairy.services.retrieval_service import RAG_INSTRUCTION, DocumentRetriever
from smart_dairy.services.tabular_service import TabularDispatcher
from smart_dairy.services.web_lookup import WEB_INSTRUCTION, WebLookupCache

from tests.conftest import FakeCompletionClient, FakeSearchProvider, FakeTabularExecutor

MASTITIS_TEXT = (
    "Mastitis is an inflammation of the udder tissue. Clinical mastitis shows swelling, "
    "heat, and abnormal milk. Good udder hygiene before milking reduces new infections."
)


def _synthesizer(store, llm, provider, executor=None, clock=None) -> ResponseSynthesizer:
    kwargs = {"clock": clock} if clock else {}
    web = WebLookupCache(store, provider, llm, **kwargs)
    return ResponseSynthesizer(
        store,
        llm,
        DocumentRetriever(llm, web),
        web,
        TabularDispatcher(store, executor or FakeTabularExecutor(), llm),
    )


async def _document(store, text: str = MASTITIS_TEXT) -> str:
    doc_id = await store.add_document("mastitis_guide.pdf", "/data/mastitis_guide.pdf", "pdf", 1024)
    await store.add_chunks(doc_id, [text])
    return doc_id


class TestDispatch:
    @pytest.mark.asyncio
    async def test_document_retrieval_uses_fragments(self, store, search_results) -> None:
        doc_id = await _document(store)
        llm = FakeCompletionClient({RAG_INSTRUCTION: "Keep udders clean."})
        provider = FakeSearchProvider(search_results)

        result = await _synthesizer(store, llm, provider).synthesize(
            Query("how to prevent mastitis", document_ids=(doc_id,)), StrategyLabel.DOCUMENT_RETRIEVAL
        )

        assert result.strategy is StrategyLabel.DOCUMENT_RETRIEVAL
        assert result.text == "Keep udders clean."
        assert [(s.kind, s.label, s.chunk_index) for s in result.sources] == [
            ("document", "mastitis_guide.pdf", 0)
        ]
        assert result.web_lookup_used is False
        assert provider.queries == []

    @pytest.mark.asyncio
    async def test_document_retrieval_fallback_marks_web_lookup(self, store, search_results) -> None:
        doc_id = await _document(store)
        llm = FakeCompletionClient({WEB_INSTRUCTION: "From the web."})

        result = await _synthesizer(store, llm, FakeSearchProvider(search_results)).synthesize(
            Query("robotic feeders price", document_ids=(doc_id,)), StrategyLabel.DOCUMENT_RETRIEVAL
        )

        assert result.strategy is StrategyLabel.DOCUMENT_RETRIEVAL
        assert result.text == "From the web."
        assert {s.kind for s in result.sources} == {"web"}
        assert result.web_lookup_used is True

    @pytest.mark.asyncio
    async def test_tabular_analysis_goes_to_dispatcher(self, store) -> None:
        f = await store.add_farm_data_file("herd.csv", "/data/herd.csv", "csv", 4, ["cow_id"])
        executor = FakeTabularExecutor()

        result = await _synthesizer(store, FakeCompletionClient(), FakeSearchProvider(), executor).synthesize(
            Query("average yield", tabular_ids=(f.id,)), StrategyLabel.TABULAR_ANALYSIS
        )

        assert executor.calls == [("/data/herd.csv", "average yield")]
        assert [s.kind for s in result.sources] == ["tabular"]

    @pytest.mark.asyncio
    async def test_general_answers_without_sources(self, store) -> None:
        llm = FakeCompletionClient({GENERAL_INSTRUCTION: "Cows chew cud."})

        result = await _synthesizer(store, llm, FakeSearchProvider()).synthesize(
            Query("hello"), StrategyLabel.GENERAL
        )

        assert result.text == "Cows chew cud."
        assert result.sources == []
        assert result.web_lookup_used is False

    @pytest.mark.asyncio
    async def test_general_failure_gives_apology(self, store) -> None:
        llm = FakeCompletionClient({GENERAL_INSTRUCTION: CompletionError("offline")})

        result = await _synthesizer(store, llm, FakeSearchProvider()).synthesize(
            Query("hello"), StrategyLabel.GENERAL
        )

        assert result.text == GENERAL_APOLOGY


class TestHybrid:
    @pytest.mark.asyncio
    async def test_sources_are_tagged_by_priority(self, store, search_results) -> None:
        doc_id = await _document(store)
        llm = FakeCompletionClient(
            {
                RAG_INSTRUCTION: "Document answer.",
                WEB_INSTRUCTION: "Web answer.",
                HYBRID_INSTRUCTION: "Merged answer.",
            }
        )

        result = await _synthesizer(store, llm, FakeSearchProvider(search_results)).synthesize(
            Query("mastitis treatment", document_ids=(doc_id,)), StrategyLabel.HYBRID
        )

        assert result.text == "Merged answer."
        assert [(s.kind, s.priority) for s in result.sources] == [
            ("document", "high"),
            ("web", "medium"),
            ("web", "medium"),
        ]
        assert result.web_lookup_used is True
        (merge_prompt,) = llm.prompts_for(HYBRID_INSTRUCTION)
        assert "Document-based Answer:\nDocument answer." in merge_prompt
        assert "Web Search Answer:\nWeb answer." in merge_prompt

    @pytest.mark.asyncio
    async def test_merge_failure_returns_document_answer(self, store, search_results) -> None:
        doc_id = await _document(store)
        llm = FakeCompletionClient(
            {
                RAG_INSTRUCTION: "Document answer.",
                WEB_INSTRUCTION: "Web answer.",
                HYBRID_INSTRUCTION: CompletionError("offline"),
            }
        )

        result = await _synthesizer(store, llm, FakeSearchProvider(search_results)).synthesize(
            Query("mastitis treatment", document_ids=(doc_id,)), StrategyLabel.HYBRID
        )

        assert result.text == "Document answer."
        assert {s.priority for s in result.sources} == {"high", "medium"}

    @pytest.mark.asyncio
    async def test_web_failure_keeps_document_path(self, store) -> None:
        doc_id = await _document(store)
        llm = FakeCompletionClient({RAG_INSTRUCTION: "Document answer.", HYBRID_INSTRUCTION: "Merged."})

        result = await _synthesizer(store, llm, FakeSearchProvider(error="blocked")).synthesize(
            Query("mastitis treatment", document_ids=(doc_id,)), StrategyLabel.HYBRID
        )

        assert result.text == "Merged."
        assert [(s.kind, s.priority) for s in result.sources] == [("document", "high")]
        (merge_prompt,) = llm.prompts_for(HYBRID_INSTRUCTION)
        assert "blocked" in merge_prompt

    @pytest.mark.asyncio
    async def test_path_exception_does_not_cancel_the_other(self, store, search_results, monkeypatch) -> None:
        llm = FakeCompletionClient({WEB_INSTRUCTION: "Web answer.", HYBRID_INSTRUCTION: "Merged."})
        synthesizer = _synthesizer(store, llm, FakeSearchProvider(search_results))

        async def broken_retrieve(query, fragments, fallback=None):
            raise RuntimeError("retriever crashed")

        monkeypatch.setattr(synthesizer.retriever, "retrieve", broken_retrieve)

        result = await synthesizer.synthesize(Query("mastitis treatment"), StrategyLabel.HYBRID)

        assert result.text == "Merged."
        assert [(s.kind, s.priority) for s in result.sources] == [("web", "medium"), ("web", "medium")]

    @pytest.mark.asyncio
    async def test_persistence_failure_propagates(self, store, search_results, monkeypatch) -> None:
        synthesizer = _synthesizer(store, FakeCompletionClient(), FakeSearchProvider(search_results))

        async def broken_fragments(*args, **kwargs):
            raise PersistenceError("disk I/O error")

        monkeypatch.setattr(store, "get_fragments", broken_fragments)

        with pytest.raises(PersistenceError):
            await synthesizer.synthesize(Query("mastitis", document_ids=("d1",)), StrategyLabel.HYBRID)

    @pytest.mark.asyncio
    async def test_document_fallback_shares_the_web_lookup(self, store, search_results) -> None:
        llm = FakeCompletionClient({WEB_INSTRUCTION: "Web answer.", HYBRID_INSTRUCTION: "Merged."})
        provider = FakeSearchProvider(search_results)

        result = await _synthesizer(store, llm, provider).synthesize(Query("heat stress"), StrategyLabel.HYBRID)

        assert result.text == "Merged."
        assert len(provider.queries) == 1
        assert len(llm.prompts_for(WEB_INSTRUCTION)) == 1

    @pytest.mark.asyncio
    async def test_document_fallback_does_not_repeat_web_sources(self, store, search_results) -> None:
        llm = FakeCompletionClient({WEB_INSTRUCTION: "Web answer.", HYBRID_INSTRUCTION: "Merged."})

        result = await _synthesizer(store, llm, FakeSearchProvider(search_results)).synthesize(
            Query("heat stress"), StrategyLabel.HYBRID
        )

        assert [(s.kind, s.priority) for s in result.sources] == [("web", "medium"), ("web", "medium")]
        assert len({s.label for s in result.sources}) == len(result.sources)
