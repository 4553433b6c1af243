"""
SQLite persistence for conversations, turns, analytics, documents, farm data
files, and the web search cache.

Creates data/smart_dairy.db (relative to project root) unless another path is
given. Every public method is a single point read or write, runs in a worker
thread, and opens its own connection, so concurrent tasks never share one.
"""

import asyncio
import json
import logging
import sqlite3
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TypeVar

from smart_dairy.core.config import DB_PATH, DEFAULT_SESSION_TITLE
from smart_dairy.core.errors import PersistenceError
from smart_dairy.core.types import (
    DocumentFragment,
    SearchResult,
    SourceReference,
    TabularFile,
    WebLookupCacheEntry,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS chat_sessions (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS chat_messages (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL REFERENCES chat_sessions(id) ON DELETE CASCADE,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    sources TEXT,
    query_type TEXT,
    response_time REAL,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS query_logs (
    id TEXT PRIMARY KEY,
    session_id TEXT,
    query TEXT NOT NULL,
    query_type TEXT NOT NULL,
    documents TEXT NOT NULL,
    csv_file TEXT,
    triggered_web_search INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS documents (
    id TEXT PRIMARY KEY,
    file_name TEXT NOT NULL,
    file_path TEXT NOT NULL,
    file_type TEXT NOT NULL,
    file_size INTEGER NOT NULL,
    category TEXT NOT NULL DEFAULT 'General',
    uploaded_at TEXT NOT NULL,
    processed_at TEXT
);
CREATE TABLE IF NOT EXISTS document_chunks (
    id TEXT PRIMARY KEY,
    document_id TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    chunk_index INTEGER NOT NULL,
    content TEXT NOT NULL,
    metadata TEXT
);
CREATE TABLE IF NOT EXISTS farm_data_files (
    id TEXT PRIMARY KEY,
    file_name TEXT NOT NULL,
    file_path TEXT NOT NULL,
    file_type TEXT NOT NULL,
    row_count INTEGER NOT NULL DEFAULT 0,
    columns TEXT NOT NULL DEFAULT '[]',
    uploaded_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS web_search_cache (
    query TEXT PRIMARY KEY,
    results TEXT NOT NULL,
    searched_at TEXT NOT NULL,
    hit_count INTEGER NOT NULL DEFAULT 1
);
"""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


def _placeholders(values: list[Any] | tuple[Any, ...]) -> str:
    return ", ".join("?" for _ in values)


class FarmStore:
    """Point reads/writes over the SQLite database, awaited from the event loop."""

    def __init__(self, db_path: str | Path = DB_PATH) -> None:
        self.db_path = Path(db_path)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path))
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"Cannot open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(str(e)) from e
        finally:
            conn.close()

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        return await asyncio.to_thread(fn, *args)

    def init_db(self) -> None:
        """Create all tables if they do not exist."""
        with self._connect() as conn:
            conn.executescript(_SCHEMA)
        logger.info("[database:init_db] ready path=%s", self.db_path)

    # --- Conversations and turns ---

    async def create_session(self, title: str = DEFAULT_SESSION_TITLE) -> dict[str, str]:
        return await self._run(self._create_session, title)

    def _create_session(self, title: str) -> dict[str, str]:
        session_id = _new_id()
        now = _now().isoformat()
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO chat_sessions (id, title, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (session_id, title, now, now),
            )
        return {"id": session_id, "title": title}

    async def touch_session(self, session_id: str, title: str) -> None:
        await self._run(self._touch_session, session_id, title)

    def _touch_session(self, session_id: str, title: str) -> None:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE chat_sessions SET updated_at = ?, title = ? WHERE id = ?",
                (_now().isoformat(), title, session_id),
            )
            if cur.rowcount == 0:
                raise PersistenceError(f"Chat session not found: {session_id}")

    async def add_message(
        self,
        session_id: str,
        role: str,
        content: str,
        *,
        sources: list[SourceReference] | None = None,
        query_type: str | None = None,
        response_time: float | None = None,
    ) -> str:
        sources_json = (
            json.dumps([s.model_dump(exclude_none=True) for s in sources])
            if sources is not None
            else None
        )
        return await self._run(
            self._add_message, session_id, role, content, sources_json, query_type, response_time
        )

    def _add_message(
        self,
        session_id: str,
        role: str,
        content: str,
        sources_json: str | None,
        query_type: str | None,
        response_time: float | None,
    ) -> str:
        message_id = _new_id()
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO chat_messages "
                "(id, session_id, role, content, sources, query_type, response_time, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    message_id,
                    session_id,
                    role,
                    content,
                    sources_json,
                    query_type,
                    response_time,
                    _now().isoformat(),
                ),
            )
        return message_id

    async def get_messages(self, session_id: str) -> list[dict[str, Any]]:
        return await self._run(self._get_messages, session_id)

    def _get_messages(self, session_id: str) -> list[dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM chat_messages WHERE session_id = ? ORDER BY rowid ASC",
                (session_id,),
            ).fetchall()
        return [dict(row) for row in rows]

    async def get_session(self, session_id: str) -> dict[str, Any] | None:
        return await self._run(self._get_session, session_id)

    def _get_session(self, session_id: str) -> dict[str, Any] | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM chat_sessions WHERE id = ?", (session_id,)).fetchone()
        return dict(row) if row else None

    # --- Analytics ---

    async def add_query_log(
        self,
        session_id: str,
        query: str,
        query_type: str,
        document_ids: list[str],
        csv_file: str | None,
        triggered_web_search: bool,
    ) -> None:
        await self._run(
            self._add_query_log,
            session_id,
            query,
            query_type,
            json.dumps(document_ids),
            csv_file,
            triggered_web_search,
        )

    def _add_query_log(
        self,
        session_id: str,
        query: str,
        query_type: str,
        documents_json: str,
        csv_file: str | None,
        triggered_web_search: bool,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO query_logs "
                "(id, session_id, query, query_type, documents, csv_file, triggered_web_search, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    _new_id(),
                    session_id,
                    query,
                    query_type,
                    documents_json,
                    csv_file,
                    int(triggered_web_search),
                    _now().isoformat(),
                ),
            )

    async def get_query_logs(self) -> list[dict[str, Any]]:
        return await self._run(self._get_query_logs)

    def _get_query_logs(self) -> list[dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM query_logs ORDER BY rowid ASC").fetchall()
        return [dict(row) for row in rows]

    # --- Documents and fragments ---

    async def add_document(
        self, file_name: str, file_path: str, file_type: str, file_size: int, category: str = "General"
    ) -> str:
        return await self._run(self._add_document, file_name, file_path, file_type, file_size, category)

    def _add_document(
        self, file_name: str, file_path: str, file_type: str, file_size: int, category: str
    ) -> str:
        document_id = _new_id()
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO documents (id, file_name, file_path, file_type, file_size, category, uploaded_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (document_id, file_name, file_path, file_type, file_size, category, _now().isoformat()),
            )
        logger.info("[database:add_document] id=%s file_name=%s", document_id, file_name)
        return document_id

    async def add_chunks(self, document_id: str, chunks: list[str]) -> int:
        """Store chunks in order (chunk_index = position) and mark the document processed."""
        return await self._run(self._add_chunks, document_id, chunks)

    def _add_chunks(self, document_id: str, chunks: list[str]) -> int:
        total = len(chunks)
        rows = [
            (
                _new_id(),
                document_id,
                i,
                chunk,
                json.dumps({"chunk_size": len(chunk), "total_chunks": total}),
            )
            for i, chunk in enumerate(chunks)
        ]
        with self._connect() as conn:
            conn.executemany(
                "INSERT INTO document_chunks (id, document_id, chunk_index, content, metadata) "
                "VALUES (?, ?, ?, ?, ?)",
                rows,
            )
            conn.execute(
                "UPDATE documents SET processed_at = ? WHERE id = ?",
                (_now().isoformat(), document_id),
            )
        return total

    async def list_documents(self) -> list[dict[str, Any]]:
        return await self._run(self._list_documents)

    def _list_documents(self) -> list[dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT d.*, (SELECT COUNT(*) FROM document_chunks c WHERE c.document_id = d.id) "
                "AS chunk_count FROM documents d ORDER BY d.uploaded_at DESC, d.rowid DESC"
            ).fetchall()
        return [dict(row) for row in rows]

    async def delete_document(self, document_id: str) -> bool:
        return await self._run(self._delete_document, document_id)

    def _delete_document(self, document_id: str) -> bool:
        with self._connect() as conn:
            conn.execute("DELETE FROM document_chunks WHERE document_id = ?", (document_id,))
            cur = conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        return cur.rowcount > 0

    async def get_fragments(
        self, document_ids: list[str] | tuple[str, ...], limit: int | None = None
    ) -> list[DocumentFragment]:
        """Fragments of the given documents, in document then chunk order."""
        if not document_ids:
            return []
        return await self._run(self._get_fragments, list(document_ids), limit)

    def _get_fragments(self, document_ids: list[str], limit: int | None) -> list[DocumentFragment]:
        sql = (
            "SELECT c.document_id, d.file_name, c.chunk_index, c.content "
            "FROM document_chunks c JOIN documents d ON d.id = c.document_id "
            f"WHERE c.document_id IN ({_placeholders(document_ids)}) "
            "ORDER BY d.uploaded_at ASC, d.rowid ASC, c.chunk_index ASC"
        )
        params: list[Any] = list(document_ids)
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [
            DocumentFragment(
                document_id=row["document_id"],
                document_name=row["file_name"],
                chunk_index=row["chunk_index"],
                content=row["content"],
            )
            for row in rows
        ]

    # --- Farm data files ---

    async def add_farm_data_file(
        self, file_name: str, file_path: str, file_type: str, row_count: int, columns: list[str]
    ) -> TabularFile:
        return await self._run(self._add_farm_data_file, file_name, file_path, file_type, row_count, columns)

    def _add_farm_data_file(
        self, file_name: str, file_path: str, file_type: str, row_count: int, columns: list[str]
    ) -> TabularFile:
        uploaded_at = _now()
        file_id = _new_id()
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO farm_data_files (id, file_name, file_path, file_type, row_count, columns, uploaded_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (file_id, file_name, file_path, file_type, row_count, json.dumps(columns), uploaded_at.isoformat()),
            )
        logger.info("[database:add_farm_data_file] id=%s file_name=%s rows=%d", file_id, file_name, row_count)
        return TabularFile(
            id=file_id,
            file_name=file_name,
            file_path=file_path,
            file_type=file_type,
            row_count=row_count,
            columns=tuple(columns),
            uploaded_at=uploaded_at,
        )

    async def list_farm_data_files(self) -> list[TabularFile]:
        return await self._run(self._list_farm_data_files)

    def _list_farm_data_files(self) -> list[TabularFile]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM farm_data_files ORDER BY uploaded_at DESC, rowid DESC"
            ).fetchall()
        return [_row_to_tabular_file(row) for row in rows]

    async def get_latest_farm_data_file(self, file_ids: list[str] | tuple[str, ...]) -> TabularFile | None:
        """Most recently registered file among file_ids, or None if none resolve."""
        if not file_ids:
            return None
        return await self._run(self._get_latest_farm_data_file, list(file_ids))

    def _get_latest_farm_data_file(self, file_ids: list[str]) -> TabularFile | None:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT * FROM farm_data_files WHERE id IN ({_placeholders(file_ids)}) "
                "ORDER BY uploaded_at DESC, rowid DESC LIMIT 1",
                file_ids,
            ).fetchone()
        return _row_to_tabular_file(row) if row else None

    async def delete_farm_data_file(self, file_id: str) -> bool:
        return await self._run(self._delete_farm_data_file, file_id)

    def _delete_farm_data_file(self, file_id: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM farm_data_files WHERE id = ?", (file_id,))
        return cur.rowcount > 0

    # --- Web search cache ---

    async def get_cache_entry(self, query: str) -> WebLookupCacheEntry | None:
        return await self._run(self._get_cache_entry, query)

    def _get_cache_entry(self, query: str) -> WebLookupCacheEntry | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT query, results, searched_at, hit_count FROM web_search_cache WHERE query = ?",
                (query,),
            ).fetchone()
        if row is None:
            return None
        results = tuple(SearchResult(**item) for item in json.loads(row["results"]))
        return WebLookupCacheEntry(
            query=row["query"],
            results=results,
            searched_at=datetime.fromisoformat(row["searched_at"]),
            hit_count=row["hit_count"],
        )

    async def upsert_cache_entry(
        self, query: str, results: list[SearchResult], searched_at: datetime
    ) -> None:
        """Create or replace the entry: new results, new timestamp, hit counter back to 1."""
        payload = json.dumps([{"title": r.title, "url": r.url, "snippet": r.snippet} for r in results])
        await self._run(self._upsert_cache_entry, query, payload, searched_at.isoformat())

    def _upsert_cache_entry(self, query: str, payload: str, searched_at: str) -> None:
        # Single statement so readers never see new results with an old timestamp.
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO web_search_cache (query, results, searched_at, hit_count) VALUES (?, ?, ?, 1) "
                "ON CONFLICT(query) DO UPDATE SET results = excluded.results, "
                "searched_at = excluded.searched_at, hit_count = 1",
                (query, payload, searched_at),
            )

    async def set_cache_hits(self, query: str, hit_count: int) -> None:
        """Write back the hit counter only; results and timestamp are untouched."""
        await self._run(self._set_cache_hits, query, hit_count)

    def _set_cache_hits(self, query: str, hit_count: int) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE web_search_cache SET hit_count = ? WHERE query = ?",
                (hit_count, query),
            )


def _row_to_tabular_file(row: sqlite3.Row) -> TabularFile:
    return TabularFile(
        id=row["id"],
        file_name=row["file_name"],
        file_path=row["file_path"],
        file_type=row["file_type"],
        row_count=row["row_count"],
        columns=tuple(json.loads(row["columns"] or "[]")),
        uploaded_at=datetime.fromisoformat(row["uploaded_at"]),
    )
