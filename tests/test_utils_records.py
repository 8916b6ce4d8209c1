import numpy as np
import pandas as pd
import pytest

from src.utils.records import chunked, dataframe_to_records, sanitize_record


def test_chunked():
    assert list(chunked(range(5), 2)) == [[0, 1], [2, 3], [4]]
    assert list(chunked([], 3)) == []


def test_chunked_rejects_zero():
    with pytest.raises(ValueError):
        list(chunked([1], 0))


def test_sanitize_record_converts_numpy_and_nan():
    record = sanitize_record({
        "a": np.int64(3),
        "b": np.float64(1.5),
        "c": float("nan"),
        "d": pd.NA,
        "e": "x",
        "f": np.bool_(True),
    })

    assert record == {"a": 3, "b": 1.5, "c": None, "d": None, "e": "x", "f": True}
    assert type(record["a"]) is int


def test_dataframe_to_records_column_subset():
    df = pd.DataFrame({"zip": ["33101"], "sam": [np.int64(0)], "extra": [1]})

    assert dataframe_to_records(df, ["zip", "sam", "missing"]) == [{"zip": "33101", "sam": 0}]
    assert dataframe_to_records(pd.DataFrame()) == []
