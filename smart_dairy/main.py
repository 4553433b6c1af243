# Run from project root: uvicorn smart_dairy.main:app --reload

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from smart_dairy.agent.classifier import QueryClassifier
from smart_dairy.agent.llm import CompletionClient, build_completion_client
from smart_dairy.agent.orchestrator import Orchestrator
from smart_dairy.agent.synthesizer import ResponseSynthesizer
from smart_dairy.api.handlers import orchestration_error_handler
from smart_dairy.api.routes import router
from smart_dairy.core.database import FarmStore
from smart_dairy.core.errors import OrchestrationError
from smart_dairy.services.retrieval_service import DocumentRetriever
from smart_dairy.services.tabular_executor import PandasTabularExecutor, TabularExecutor
from smart_dairy.services.tabular_service import TabularDispatcher
from smart_dairy.services.web_lookup import DdgsSearchProvider, SearchProvider, WebLookupCache

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def build_orchestrator(
    store: FarmStore,
    llm: CompletionClient | None = None,
    search_provider: SearchProvider | None = None,
    executor: TabularExecutor | None = None,
) -> Orchestrator:
    """Wire the classifier, the three paths, and the synthesizer around one completion client."""
    llm = llm or build_completion_client()
    web_lookup = WebLookupCache(store, search_provider or DdgsSearchProvider(), llm)
    synthesizer = ResponseSynthesizer(
        store,
        llm,
        DocumentRetriever(llm, web_lookup),
        web_lookup,
        TabularDispatcher(store, executor or PandasTabularExecutor(), llm),
    )
    return Orchestrator(store, QueryClassifier(llm), synthesizer)


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = FarmStore()
    store.init_db()
    app.state.store = store
    app.state.orchestrator = build_orchestrator(store)
    logger.info("Smart Dairy assistant booting... db=%s", store.db_path)
    yield


app = FastAPI(title="Smart Dairy Assistant", lifespan=lifespan)
app.include_router(router)
app.add_exception_handler(OrchestrationError, orchestration_error_handler)
