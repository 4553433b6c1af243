# Minimal file readers. No chunking, no persistence.
# Documents (.txt, .pdf) become text; farm data (.csv, .xlsx, .xls) becomes a DataFrame.

import io
from pathlib import Path

import pandas as pd
from pypdf import PdfReader


def bytes_to_text(raw: bytes, filename: str) -> str:
    """
    Convert raw document bytes to text by extension. Single place for
    "document bytes -> text", used by the ingestion pipeline.
    """
    ext = Path(filename).suffix.lower() if filename else ""
    if ext == ".pdf":
        return _read_pdf(raw)
    return raw.decode("utf-8", errors="replace")


def _read_pdf(raw: bytes) -> str:
    reader = PdfReader(io.BytesIO(raw))
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def read_table(path: str | Path) -> pd.DataFrame:
    """Load a farm data file: CSV by extension, otherwise the first Excel sheet."""
    file_path = Path(path)
    if file_path.suffix.lower() == ".csv":
        return pd.read_csv(file_path)
    return pd.read_excel(file_path)


def profile_table(path: str | Path) -> tuple[int, list[str]]:
    """Row count and column names; (0, []) when the file cannot be parsed."""
    try:
        df = read_table(path)
    except Exception:
        return 0, []
    return len(df), [str(c) for c in df.columns]
