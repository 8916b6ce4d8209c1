"""Shared helpers for chunked queries and JSON-safe record conversion."""

from __future__ import annotations

from itertools import islice
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Sequence, TypeVar

import numpy as np
import pandas as pd

T = TypeVar("T")


def chunked(items: Iterable[T], chunk_size: int) -> Iterator[List[T]]:
    """Yield successive lists of at most chunk_size items."""
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")
    it = iter(items)
    while True:
        chunk = list(islice(it, chunk_size))
        if not chunk:
            return
        yield chunk


def sanitize_value(value: Any) -> Any:
    """Convert NaN/NA and numpy scalars to plain Python values."""
    if value is None:
        return None
    if isinstance(value, (float, np.floating)) and np.isnan(value):
        return None
    if not isinstance(value, (list, tuple, dict)) and pd.isna(value):
        return None
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return float(value)
    if isinstance(value, np.bool_):
        return bool(value)
    return value


def sanitize_record(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Convert NaN/NA values to None for JSON compatibility."""
    return {key: sanitize_value(value) for key, value in record.items()}


def dataframe_to_records(df: pd.DataFrame, columns: Sequence[str] | None = None) -> List[Dict[str, Any]]:
    """Turn a DataFrame into a list of JSON-safe dicts."""
    if df.empty:
        return []
    frame = df if columns is None else df[[c for c in columns if c in df.columns]]
    return [sanitize_record(row) for row in frame.to_dict(orient="records")]
