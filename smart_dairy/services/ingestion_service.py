"""
Upload ingestion: save, parse, and register documents and farm data files.

Responsibility: Validate and persist uploaded files under the upload dirs,
extract and chunk document text, profile farm data tables, and register both in
the store. Called by the API layer; no HTTP or FastAPI here.
"""

import asyncio
import logging
import re
import time
from pathlib import Path
from typing import Any

from smart_dairy.core.config import (
    CHUNK_OVERLAP,
    CHUNK_SIZE,
    DOCUMENT_EXTENSIONS,
    DOCUMENT_UPLOAD_DIR,
    FARM_DATA_EXTENSIONS,
    FARM_DATA_UPLOAD_DIR,
    MIN_EXTRACTED_CHARS,
)
from smart_dairy.core.database import FarmStore
from smart_dairy.ingest.loader import bytes_to_text, profile_table
from smart_dairy.services.text_processing import chunk_text, clean_text

logger = logging.getLogger(__name__)


class NoFilesError(Exception):
    """Raised when an upload request carries no files at all."""

    def __init__(self) -> None:
        super().__init__("No files provided")


def _sanitize_filename(filename: str) -> str:
    """Sanitize filename to prevent path traversal (../). Returns safe basename."""
    if not filename or not filename.strip():
        return "unnamed"
    base = Path(filename).name
    safe = base.replace("..", "").replace("/", "").replace("\\", "")
    safe = re.sub(r"[^\w.\-]", "_", safe)
    return safe.strip() or "unnamed"


def _save_file(root: Path, filename: str, content: bytes) -> Path:
    """
    Write content under root as "<millis>-<sanitized name>".

    Raises:
        OSError: If the upload dir cannot be created or the file cannot be written.
    """
    root.mkdir(parents=True, exist_ok=True)
    dest = root / f"{int(time.time() * 1000)}-{_sanitize_filename(filename)}"
    n = 1
    while dest.exists():
        dest = root / f"{int(time.time() * 1000)}-{n}-{_sanitize_filename(filename)}"
        n += 1
    if not str(dest.resolve()).startswith(str(root.resolve())):
        raise OSError(f"Refusing to write outside {root}: {filename}")
    dest.write_bytes(content)
    return dest


def _discard_file(path: Path) -> None:
    """Remove a saved upload that never got registered."""
    logger.warning("[ingestion:discard] removing unregistered upload %s", path.name)
    path.unlink(missing_ok=True)


def extract_chunks(path: Path) -> list[str]:
    """
    Sync pipeline: read file → extract text → clean → chunk.
    Text shorter than MIN_EXTRACTED_CHARS yields no chunks; read errors yield none either.
    """
    try:
        text = bytes_to_text(path.read_bytes(), path.name)
    except Exception as e:
        logger.warning("[ingestion:extract_chunks] failed to read %s: %s", path.name, e)
        return []
    cleaned = clean_text(text)
    if len(cleaned) < MIN_EXTRACTED_CHARS:
        logger.info("[ingestion:extract_chunks] no significant text in %s", path.name)
        return []
    chunks = chunk_text(cleaned, chunk_size=CHUNK_SIZE, overlap=CHUNK_OVERLAP)
    logger.info("[ingestion:extract_chunks] file %s → %d chunks created", path.name, len(chunks))
    return chunks


async def ingest_documents(
    store: FarmStore,
    items: list[tuple[str, bytes]],
    upload_dir: Path | None = None,
) -> list[dict[str, Any]]:
    """
    Save and index uploaded documents.

    Args:
        items: List of (filename, raw_bytes) for each file.

    Returns:
        One entry per file: {id, file_name, chunk_count} or {file_name, error}.

    Raises:
        NoFilesError: If items is empty.
        OSError: If writing a file fails.
    """
    if not items:
        raise NoFilesError()
    results: list[dict[str, Any]] = []
    for filename, content in items:
        ext = Path(filename).suffix.lower()
        if ext not in DOCUMENT_EXTENSIONS:
            results.append({"file_name": filename, "error": "Only PDF and text files are allowed"})
            continue
        dest = await asyncio.to_thread(_save_file, Path(upload_dir or DOCUMENT_UPLOAD_DIR), filename, content)
        try:
            document_id = await store.add_document(
                file_name=filename,
                file_path=str(dest),
                file_type=ext.lstrip("."),
                file_size=len(content),
            )
        except Exception:
            await asyncio.to_thread(_discard_file, dest)
            raise
        chunks = await asyncio.to_thread(extract_chunks, dest)
        chunk_count = await store.add_chunks(document_id, chunks) if chunks else 0
        results.append({"id": document_id, "file_name": filename, "chunk_count": chunk_count})
    logger.info("[ingestion:ingest_documents] OUT files=%d", len(results))
    return results


async def ingest_farm_data(
    store: FarmStore,
    items: list[tuple[str, bytes]],
    upload_dir: Path | None = None,
) -> list[dict[str, Any]]:
    """
    Save and profile uploaded farm data files (CSV/Excel).

    Returns:
        One entry per file: {id, file_name, row_count, columns} or {file_name, error}.

    Raises:
        NoFilesError: If items is empty.
        OSError: If writing a file fails.
    """
    if not items:
        raise NoFilesError()
    results: list[dict[str, Any]] = []
    for filename, content in items:
        ext = Path(filename).suffix.lower()
        if ext not in FARM_DATA_EXTENSIONS:
            results.append({"file_name": filename, "error": "Only CSV and Excel files are allowed"})
            continue
        dest = await asyncio.to_thread(_save_file, Path(upload_dir or FARM_DATA_UPLOAD_DIR), filename, content)
        row_count, columns = await asyncio.to_thread(profile_table, dest)
        try:
            tabular_file = await store.add_farm_data_file(
                file_name=filename,
                file_path=str(dest),
                file_type="csv" if ext == ".csv" else "excel",
                row_count=row_count,
                columns=columns,
            )
        except Exception:
            await asyncio.to_thread(_discard_file, dest)
            raise
        results.append(
            {
                "id": tabular_file.id,
                "file_name": tabular_file.file_name,
                "row_count": tabular_file.row_count,
                "columns": list(tabular_file.columns),
            }
        )
    logger.info("[ingestion:ingest_farm_data] OUT files=%d", len(results))
    return results
