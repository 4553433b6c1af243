"""
Query classifier: one LLM call that picks a StrategyLabel.

The reply must name exactly one label after light normalization; anything else,
and any failure of the call, routes to general.
"""

import logging

from smart_dairy.agent.llm import CompletionClient, system_user
from smart_dairy.core.types import StrategyLabel

logger = logging.getLogger(__name__)

ROUTER_INSTRUCTION = "You are a query routing assistant. Respond with ONLY one word."

_LABELS = {label.value: label for label in StrategyLabel}


def _build_prompt(query: str, document_count: int, tabular_count: int) -> str:
    return f"""Analyze this query and determine the best approach:

Query: "{query}"

Available resources:
- {document_count} PDF documents (dairy manuals, scientific papers)
- {tabular_count} CSV/Excel files (farm data)

Determine if the query needs:
1. tabular_analysis: farm data analysis (keywords: cow, milk, production, average, data, file, csv, excel, herd, yield)
2. document_retrieval: answers from the uploaded documents (dairy farming domain knowledge)
3. web_lookup: web search (current information, latest trends)
4. hybrid: both documents and web search
5. general: general chat (no specific resources needed)

Respond with ONLY one word: {", ".join(_LABELS)}"""


def parse_label(raw: str) -> StrategyLabel | None:
    """Normalize an LLM reply and map it to a label; None when it names none exactly."""
    text = (raw or "").strip().lower()
    text = text.strip("\"'`").strip()
    if text.endswith("."):
        text = text[:-1].strip()
    text = text.strip("\"'`").strip()
    return _LABELS.get(text)


class QueryClassifier:
    def __init__(self, llm: CompletionClient) -> None:
        self.llm = llm

    async def classify(self, query: str, document_count: int, tabular_count: int) -> StrategyLabel:
        logger.info(
            "[classifier:classify] IN  query=%r documents=%d tabular=%d",
            query,
            document_count,
            tabular_count,
        )
        prompt = _build_prompt(query, document_count, tabular_count)
        try:
            raw = await self.llm.complete(system_user(ROUTER_INSTRUCTION, prompt), max_tokens=10)
        except Exception as e:
            logger.warning("[classifier:classify] completion failed (%s); using general", e)
            return StrategyLabel.GENERAL

        label = parse_label(raw)
        if label is None:
            logger.warning("[classifier:classify] unrecognized label %r; using general", raw)
            return StrategyLabel.GENERAL
        logger.info("[classifier:classify] OUT strategy=%s", label.value)
        return label
