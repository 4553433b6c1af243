"""
Tabular dispatch: route a farm data question to the tabular executor.

Picks the most recently uploaded file among the supplied ids, runs the executor
off the event loop, and has the LLM turn the raw output into farmer-facing
guidance. The executor receives the path and the question as plain arguments.
"""

import asyncio
import logging

from smart_dairy.agent.llm import CompletionClient, system_user
from smart_dairy.core.database import FarmStore
from smart_dairy.core.types import PathResult, SourceReference
from smart_dairy.services.tabular_executor import TabularExecutor

logger = logging.getLogger(__name__)

NO_FARM_DATA_ANSWER = (
    "I don't have any farm data files to analyze. "
    "Please upload CSV or Excel files from your herd management software."
)

ANALYSIS_INSTRUCTION = (
    "You are a Smart Dairy AI assistant. Interpret farm data analysis results "
    "and provide actionable insights for dairy farmers."
)


class TabularDispatcher:
    """tabular_analysis path."""

    def __init__(self, store: FarmStore, executor: TabularExecutor, llm: CompletionClient) -> None:
        self.store = store
        self.executor = executor
        self.llm = llm

    async def analyze(self, query: str, file_ids: list[str] | tuple[str, ...]) -> PathResult:
        logger.info("[tabular:analyze] IN  query=%r file_ids=%d", query, len(file_ids))
        tabular_file = await self.store.get_latest_farm_data_file(file_ids)
        if tabular_file is None:
            logger.info("[tabular:analyze] no farm data file resolved")
            return PathResult(text=NO_FARM_DATA_ANSWER)

        try:
            output = await asyncio.to_thread(self.executor.analyze, tabular_file.file_path, query)
        except Exception as e:
            logger.exception("[tabular:analyze] executor failed file=%s", tabular_file.file_name)
            return PathResult(
                text=(
                    f"I encountered an error analyzing your farm data: {e}. "
                    "Please check that the file is properly formatted."
                )
            )

        prompt = (
            f"User Question: {query}\n\n"
            f"Analysis Results from {tabular_file.file_name}:\n{output}\n\n"
            "Provide a clear, actionable interpretation of these results for a dairy farmer."
        )
        try:
            answer = await self.llm.complete(system_user(ANALYSIS_INSTRUCTION, prompt))
        except Exception as e:
            logger.warning("[tabular:analyze] interpretation failed (%s); returning raw output", e)
            answer = output

        source = SourceReference(label=tabular_file.file_name, kind="tabular")
        logger.info("[tabular:analyze] OUT file=%s answer_len=%d", tabular_file.file_name, len(answer))
        return PathResult(text=answer, sources=[source])
