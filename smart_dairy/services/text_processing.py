"""
Text processing for document ingestion: cleaning and chunking.

Cleaning reduces noise and encoding inconsistencies so lexical retrieval matches
on content. Chunk quality directly impacts which fragments a query can match.
"""

import unicodedata

from smart_dairy.core.config import CHUNK_OVERLAP, CHUNK_SIZE, MIN_CHUNK_CHARS


def clean_text(text: str) -> str:
    """
    Normalize and clean raw document text.

    NFKC-normalizes, strips each line, collapses consecutive duplicate lines and
    runs of blank lines.
    """
    if not text or not text.strip():
        return ""
    text = unicodedata.normalize("NFKC", text)
    lines = [line.strip() for line in text.splitlines()]
    deduped: list[str] = []
    for line in lines:
        if deduped and deduped[-1] == line:
            continue
        deduped.append(line)
    result: list[str] = []
    for line in deduped:
        if line == "":
            if result and result[-1] != "":
                result.append("")
        else:
            result.append(line)
    return "\n".join(result).strip()


def chunk_text(
    text: str,
    chunk_size: int = CHUNK_SIZE,
    overlap: int = CHUNK_OVERLAP,
    min_chars: int = MIN_CHUNK_CHARS,
) -> list[str]:
    """
    Split text into overlapping character windows.

    A window that does not reach the end of the text is cut back to its last
    '.' or newline when that boundary lies past the window midpoint. The next
    window starts `overlap` characters before the end of the previous one.
    Chunks of min_chars characters or fewer (after stripping) are dropped.
    """
    if not text or not text.strip():
        return []
    chunks: list[str] = []
    start = 0
    length = len(text)
    while start < length:
        end = min(start + chunk_size, length)
        chunk = text[start:end]
        if end < length:
            break_point = max(chunk.rfind("."), chunk.rfind("\n"))
            if break_point > chunk_size * 0.5:
                chunk = chunk[: break_point + 1]
        chunks.append(chunk.strip())
        if start + len(chunk) >= length:
            break
        start += max(len(chunk) - overlap, 1)
    return [c for c in chunks if len(c) > min_chars]
