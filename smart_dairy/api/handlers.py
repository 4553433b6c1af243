"""
API handlers: read request data (e.g. UploadFile), call services, map results/errors to HTTP.

Responsibility: Bridge HTTP types and services. Marshalling and exception-to-HTTP mapping.
Lives in the API layer so services stay free of FastAPI/HTTP types.
"""

import logging

from fastapi import HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse

from smart_dairy.agent.orchestrator import Orchestrator
from smart_dairy.core.database import FarmStore
from smart_dairy.core.errors import OrchestrationError, PersistenceError
from smart_dairy.schemas.chat import ChatRequest, ChatResponse
from smart_dairy.schemas.upload import UploadResponse
from smart_dairy.services.ingestion_service import (
    NoFilesError,
    ingest_documents,
    ingest_farm_data,
)

logger = logging.getLogger(__name__)


def get_store(request: Request) -> FarmStore:
    return request.app.state.store


def get_orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


async def orchestration_error_handler(request: Request, exc: OrchestrationError) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": exc.message, "details": exc.detail})


async def _read_uploads(files: list[UploadFile]) -> list[tuple[str, bytes]]:
    items: list[tuple[str, bytes]] = []
    for upload in files:
        items.append((upload.filename or "", await upload.read()))
    return items


async def handle_chat(orchestrator: Orchestrator, body: ChatRequest) -> ChatResponse:
    """Validate the turn and run it; OrchestrationError is left to the app's handler (500)."""
    if not body.message.strip() or not body.session_id.strip():
        raise HTTPException(status_code=400, detail="Message and session_id are required")
    result = await orchestrator.handle(body.session_id, body.message, body.documents, body.csv_files)
    return ChatResponse(response=result.text, sources=result.sources, query_type=result.strategy.value)


async def handle_document_upload(store: FarmStore, files: list[UploadFile]) -> UploadResponse:
    """
    Read uploaded files, call ingestion service, map service errors to HTTP 400/500.
    Chunking runs inline so chunk_count is known in the response.
    """
    items = await _read_uploads(files)
    try:
        results = await ingest_documents(store, items)
    except NoFilesError as e:
        raise HTTPException(status_code=400, detail="No files provided") from e
    except (OSError, PersistenceError) as e:
        logger.exception("[api:upload_documents] failed")
        raise HTTPException(status_code=500, detail=f"Failed to upload files: {e!s}") from e
    return UploadResponse(results=results)


async def handle_farm_data_upload(store: FarmStore, files: list[UploadFile]) -> UploadResponse:
    """Read uploaded CSV/Excel files, profile and register them; 400 when none given."""
    items = await _read_uploads(files)
    try:
        results = await ingest_farm_data(store, items)
    except NoFilesError as e:
        raise HTTPException(status_code=400, detail="No files provided") from e
    except (OSError, PersistenceError) as e:
        logger.exception("[api:upload_farm_data] failed")
        raise HTTPException(status_code=500, detail=f"Failed to upload files: {e!s}") from e
    return UploadResponse(results=results)
