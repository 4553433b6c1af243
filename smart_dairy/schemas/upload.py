"""Schemas for the document and farm data endpoints."""

from typing import Any

from pydantic import BaseModel, Field


class UploadResponse(BaseModel):
    """Per-file outcome of an upload; rejected files carry an error instead of an id."""

    success: bool = True
    results: list[dict[str, Any]] = Field(..., description="One entry per uploaded file.")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "success": True,
                    "results": [
                        {"id": "3f2a...", "file_name": "herd_manual.pdf", "chunk_count": 12},
                        {"file_name": "notes.docx", "error": "Only PDF and text files are allowed"},
                    ],
                }
            ]
        }
    }


class DocumentInfo(BaseModel):
    id: str
    file_name: str
    file_type: str
    file_size: int
    category: str
    uploaded_at: str
    chunk_count: int = 0


class FarmDataInfo(BaseModel):
    id: str
    file_name: str
    file_type: str
    row_count: int
    columns: list[str]
    uploaded_at: str


class DeleteResponse(BaseModel):
    success: bool = True
