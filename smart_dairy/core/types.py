"""
Shared domain types for routing, retrieval, and synthesis.

Dataclasses for in-process values; SourceReference is a frozen pydantic model
because it is serialized into persisted turns and API responses.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict


class StrategyLabel(str, Enum):
    """Routing decision for one query."""

    TABULAR_ANALYSIS = "tabular_analysis"
    DOCUMENT_RETRIEVAL = "document_retrieval"
    WEB_LOOKUP = "web_lookup"
    HYBRID = "hybrid"
    GENERAL = "general"


class SourceReference(BaseModel):
    """Attribution attached to a final answer. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    label: str
    kind: Literal["document", "web", "tabular"]
    url: str | None = None
    chunk_index: int | None = None
    priority: Literal["high", "medium"] | None = None


@dataclass(frozen=True)
class Query:
    """Free-text question plus the resource ids available for this turn."""

    text: str
    document_ids: tuple[str, ...] = ()
    tabular_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class DocumentFragment:
    """A chunk of a document's extracted text; read-only to retrieval."""

    document_id: str
    document_name: str
    chunk_index: int
    content: str


@dataclass(frozen=True)
class ScoredFragment:
    fragment: DocumentFragment
    score: int
    position: int


@dataclass(frozen=True)
class SearchResult:
    title: str
    url: str
    snippet: str


@dataclass(frozen=True)
class WebLookupCacheEntry:
    """Cached web search results for one exact query string."""

    query: str
    results: tuple[SearchResult, ...]
    searched_at: datetime
    hit_count: int


@dataclass(frozen=True)
class TabularFile:
    id: str
    file_name: str
    file_path: str
    file_type: str
    row_count: int
    columns: tuple[str, ...]
    uploaded_at: datetime


@dataclass
class PathResult:
    """Answer text and sources produced by one retrieval path."""

    text: str
    sources: list[SourceReference] = field(default_factory=list)
    web_lookup_used: bool = False


@dataclass
class SynthesisResult:
    text: str
    sources: list[SourceReference]
    strategy: StrategyLabel
    web_lookup_used: bool = False
