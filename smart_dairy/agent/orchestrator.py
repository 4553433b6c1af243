"""
Orchestrator: one chat turn end to end.

persist user turn -> classify -> synthesize -> persist assistant turn
-> analytics row -> touch conversation. Anything escaping these steps is
reported as a single OrchestrationError; nothing is retried.
"""

import logging
import time

from smart_dairy.agent.classifier import QueryClassifier
from smart_dairy.agent.synthesizer import ResponseSynthesizer
from smart_dairy.core.config import TITLE_MAX_CHARS
from smart_dairy.core.database import FarmStore
from smart_dairy.core.errors import OrchestrationError
from smart_dairy.core.types import Query, SynthesisResult

logger = logging.getLogger(__name__)


def session_title(message: str, max_chars: int = TITLE_MAX_CHARS) -> str:
    """First max_chars characters of the message, with "..." when it was cut."""
    return message[:max_chars] + ("..." if len(message) > max_chars else "")


class Orchestrator:
    def __init__(
        self,
        store: FarmStore,
        classifier: QueryClassifier,
        synthesizer: ResponseSynthesizer,
    ) -> None:
        self.store = store
        self.classifier = classifier
        self.synthesizer = synthesizer

    async def handle(
        self,
        session_id: str,
        message: str,
        document_ids: list[str] | None = None,
        tabular_ids: list[str] | None = None,
    ) -> SynthesisResult:
        document_ids = list(document_ids or [])
        tabular_ids = list(tabular_ids or [])
        started = time.perf_counter()
        logger.info(
            "[orchestrator:handle] IN  session_id=%s message=%r documents=%d tabular=%d",
            session_id,
            message,
            len(document_ids),
            len(tabular_ids),
        )
        try:
            await self.store.add_message(session_id, "user", message)

            strategy = await self.classifier.classify(message, len(document_ids), len(tabular_ids))
            query = Query(text=message, document_ids=tuple(document_ids), tabular_ids=tuple(tabular_ids))
            result = await self.synthesizer.synthesize(query, strategy)

            elapsed = time.perf_counter() - started
            await self.store.add_message(
                session_id,
                "assistant",
                result.text,
                sources=result.sources,
                query_type=result.strategy.value,
                response_time=elapsed,
            )
            await self.store.add_query_log(
                session_id,
                message,
                result.strategy.value,
                document_ids,
                tabular_ids[0] if tabular_ids else None,
                result.web_lookup_used,
            )
            await self.store.touch_session(session_id, session_title(message))
        except Exception as e:
            logger.exception("[orchestrator:handle] failed session_id=%s", session_id)
            raise OrchestrationError("Failed to process message", str(e)) from e

        logger.info(
            "[orchestrator:handle] OUT strategy=%s sources=%d elapsed=%.2fs",
            result.strategy.value,
            len(result.sources),
            elapsed,
        )
        return result
