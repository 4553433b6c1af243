"""Schemas for the chat endpoints."""

from pydantic import BaseModel, Field

from smart_dairy.core.types import SourceReference


class ChatRequest(BaseModel):
    """Request body for POST /api/chat. Turns are stored server-side by session_id."""

    message: str = Field("", description="User question.")
    session_id: str = Field("", description="Conversation id from POST /api/chat/session.")
    documents: list[str] = Field(default_factory=list, description="Document ids available to this turn.")
    csv_files: list[str] = Field(default_factory=list, description="Farm data file ids available to this turn.")


class ChatResponse(BaseModel):
    """Response for POST /api/chat."""

    response: str = Field(..., description="Final answer.")
    sources: list[SourceReference] = Field(default_factory=list, description="Attribution for the answer.")
    query_type: str = Field(..., description="Strategy used: tabular_analysis, document_retrieval, web_lookup, hybrid, general.")


class SessionResponse(BaseModel):
    session_id: str
    title: str
