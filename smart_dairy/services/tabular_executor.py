"""
Tabular executor: answer a question about a farm data file with pandas.

Takes the file path and the raw question as plain arguments and returns
human-readable text. The shape of the summary is chosen by keyword heuristics:

- "average" / "mean" in the question -> descriptive statistics
- the question names a grouping column (cow_id, breed, pen, ...) -> mean and
  count of the numeric columns per group
- otherwise -> record count, column list, and the first rows
"""

import logging
from typing import Protocol

import pandas as pd

from smart_dairy.core.errors import TabularExecutionError
from smart_dairy.ingest.loader import read_table

logger = logging.getLogger(__name__)

PREVIEW_ROWS = 10
_GROUPING_HINTS = frozenset({"cow", "breed", "pen", "herd", "group", "lactation", "farm", "parity"})


class TabularExecutor(Protocol):
    """Blocking analysis of one data file. Raises TabularExecutionError."""

    def analyze(self, file_path: str, query: str) -> str: ...


def _grouping_column(df: pd.DataFrame, query: str) -> str | None:
    words = set(query.lower().replace("?", " ").replace(",", " ").split())
    for col in df.columns:
        name = str(col).lower()
        base = name.removesuffix("_id").removesuffix(" id")
        is_key = (
            name.endswith("id")
            or base in _GROUPING_HINTS
            or not pd.api.types.is_numeric_dtype(df[col])
        )
        if not is_key:
            continue
        if base in words or name in words or f"{base}s" in words:
            return col
    return None


class PandasTabularExecutor:
    """Default executor: reads CSV/Excel with pandas and summarizes it."""

    def analyze(self, file_path: str, query: str) -> str:
        logger.info("[tabular_executor:analyze] IN  file=%s query=%r", file_path, query)
        try:
            df = read_table(file_path)
        except Exception as e:
            raise TabularExecutionError(f"Could not read {file_path}: {e}") from e

        q = query.lower()
        try:
            if "average" in q or "mean" in q:
                return df.describe().to_string()

            group_col = _grouping_column(df, q)
            if group_col is not None:
                numeric = [
                    c for c in df.select_dtypes(include="number").columns if c != group_col
                ]
                if not numeric:
                    return df.head(20).to_string()
                grouped = df.groupby(group_col)[numeric].agg(["mean", "count"])
                return f"Grouped by {group_col}:\n{grouped.to_string()}"

            return (
                "Data Summary:\n"
                f"\nTotal Records: {len(df)}\n"
                f"\nColumns: {', '.join(str(c) for c in df.columns)}\n"
                f"\nFirst {PREVIEW_ROWS} records:\n{df.head(PREVIEW_ROWS).to_string()}"
            )
        except Exception as e:
            raise TabularExecutionError(f"Analysis failed: {e}") from e
