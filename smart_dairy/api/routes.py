"""
API route aggregator: register endpoints; no logic, only delegate to handlers and the store.
"""

import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from smart_dairy.agent.orchestrator import Orchestrator
from smart_dairy.api.handlers import (
    get_orchestrator,
    get_store,
    handle_chat,
    handle_document_upload,
    handle_farm_data_upload,
)
from smart_dairy.core.database import FarmStore
from smart_dairy.core.errors import PersistenceError
from smart_dairy.schemas.chat import ChatRequest, ChatResponse, SessionResponse
from smart_dairy.schemas.upload import DeleteResponse, DocumentInfo, FarmDataInfo, UploadResponse

logger = logging.getLogger(__name__)
router = APIRouter()


# --- System ---

@router.get("/health", tags=["system"])
def health():
    return {"ok": True}


# --- Chat ---

@router.post("/api/chat/session", response_model=SessionResponse, tags=["chat"], summary="Start a conversation")
async def create_session(store: FarmStore = Depends(get_store)) -> SessionResponse:
    try:
        session = await store.create_session()
    except PersistenceError as e:
        logger.exception("[api:create_session] failed")
        raise HTTPException(status_code=500, detail="Failed to create session") from e
    return SessionResponse(session_id=session["id"], title=session["title"])


@router.post(
    "/api/chat",
    response_model=ChatResponse,
    tags=["chat"],
    summary="Ask the assistant",
    description="Routes the message to farm data analysis, document retrieval, web lookup, hybrid, or general chat. 400 on missing message/session_id, 500 on processing failure.",
)
async def post_chat(body: ChatRequest, orchestrator: Orchestrator = Depends(get_orchestrator)) -> ChatResponse:
    logger.info("[api:post_chat] IN  session_id=%s message=%r", body.session_id, body.message)
    return await handle_chat(orchestrator, body)


# --- Documents ---

@router.get("/api/documents", tags=["documents"], summary="List uploaded documents")
async def list_documents(store: FarmStore = Depends(get_store)) -> dict:
    rows = await store.list_documents()
    return {"documents": [DocumentInfo(**{k: row[k] for k in DocumentInfo.model_fields}) for row in rows]}


@router.post(
    "/api/documents/upload",
    response_model=UploadResponse,
    tags=["documents"],
    summary="Upload and index documents",
    description="Accept .pdf and .txt files; other types are reported per file. 400 when no files are sent.",
)
async def upload_documents(
    files: list[UploadFile] | None = File(None, description="One or more .pdf or .txt files."),
    store: FarmStore = Depends(get_store),
) -> UploadResponse:
    return await handle_document_upload(store, files or [])


@router.delete("/api/documents/{document_id}", response_model=DeleteResponse, tags=["documents"])
async def delete_document(document_id: str, store: FarmStore = Depends(get_store)) -> DeleteResponse:
    if not await store.delete_document(document_id):
        raise HTTPException(status_code=404, detail=f"Document not found: {document_id}")
    return DeleteResponse()


# --- Farm data ---

@router.get("/api/farm-data", tags=["farm-data"], summary="List uploaded farm data files")
async def list_farm_data(store: FarmStore = Depends(get_store)) -> dict:
    files = await store.list_farm_data_files()
    return {
        "files": [
            FarmDataInfo(
                id=f.id,
                file_name=f.file_name,
                file_type=f.file_type,
                row_count=f.row_count,
                columns=list(f.columns),
                uploaded_at=f.uploaded_at.isoformat(),
            )
            for f in files
        ]
    }


@router.post(
    "/api/farm-data/upload",
    response_model=UploadResponse,
    tags=["farm-data"],
    summary="Upload farm data files",
    description="Accept .csv, .xlsx, .xls files; returns row count and columns per file. 400 when no files are sent.",
)
async def upload_farm_data(
    files: list[UploadFile] | None = File(None, description="One or more .csv, .xlsx, or .xls files."),
    store: FarmStore = Depends(get_store),
) -> UploadResponse:
    return await handle_farm_data_upload(store, files or [])


@router.delete("/api/farm-data/{file_id}", response_model=DeleteResponse, tags=["farm-data"])
async def delete_farm_data(file_id: str, store: FarmStore = Depends(get_store)) -> DeleteResponse:
    if not await store.delete_farm_data_file(file_id):
        raise HTTPException(status_code=404, detail=f"Farm data file not found: {file_id}")
    return DeleteResponse()
