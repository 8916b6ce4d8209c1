import pandas as pd
import pytest

from src.processing.classification import (
    build_tier_summary,
    classify_tier,
    filter_by_tiers,
    normalize_tier_selection,
    paginate,
    rank_by_sam,
    select_tiers,
    tier_definitions,
)


@pytest.mark.parametrize(
    "score, expected",
    [
        (0, None),
        (0.5, None),
        (1, "low"),
        (7, "low"),
        (7.5, "low"),
        (8, "medium"),
        (14, "medium"),
        (14.99, "medium"),
        (15, "high"),
        (20, "high"),
        (20.5, None),
        (21, None),
        (None, None),
        (float("nan"), None),
    ],
)
def test_classify_tier(score, expected):
    assert classify_tier(score) == expected


def _tiered_frame():
    return pd.DataFrame({
        "zip": ["1", "2", "3", "4"],
        "tier": ["low", "medium", "high", None],
        "sam": [0, 10, 30, 0],
    })


@pytest.mark.parametrize("selection", [None, [], ["all"], ["ALL"], ["high", "all"], [" "], "all", "ALL", ""])
def test_filter_all_returns_input_unchanged(selection):
    df = _tiered_frame()
    assert filter_by_tiers(df, selection) is df


def test_filter_keeps_only_selected_tiers():
    result = filter_by_tiers(_tiered_frame(), ["high", "low"])
    assert result["zip"].tolist() == ["1", "3"]


def test_filter_never_matches_untiered_rows():
    result = filter_by_tiers(_tiered_frame(), ["low", "medium", "high"])
    assert "4" not in result["zip"].tolist()


@pytest.mark.parametrize("selection, expected", [("high", ["3"]), (" Medium ", ["2"]), (("low", "high"), ["1", "3"])])
def test_filter_accepts_single_tier_string(selection, expected):
    assert filter_by_tiers(_tiered_frame(), selection)["zip"].tolist() == expected


def test_filter_unknown_only_selection_matches_nothing():
    assert filter_by_tiers(_tiered_frame(), ["bogus"]).empty
    assert filter_by_tiers(_tiered_frame(), "bogus").empty


def test_select_tiers_none_versus_empty():
    df = _tiered_frame()

    assert select_tiers(df, None) is df
    assert select_tiers(df, []).empty
    assert select_tiers(df, ("medium",))["zip"].tolist() == ["2"]


def test_normalize_tier_selection_orders_and_drops_unknown():
    assert normalize_tier_selection(["High", "bogus", "low"]) == ["low", "high"]
    assert normalize_tier_selection(["bogus"]) == []


def test_normalize_tier_selection_bare_strings():
    assert normalize_tier_selection("all") is None
    assert normalize_tier_selection("high") == ["high"]
    assert normalize_tier_selection("") is None


def test_rank_by_sam_is_stable():
    df = pd.DataFrame({"zip": ["a", "b", "c", "d", "e"], "sam": [0, 500, 0, 500, 100]})

    ranked = rank_by_sam(df)

    assert ranked["zip"].tolist() == ["b", "d", "e", "a", "c"]


def test_rank_by_sam_empty():
    df = pd.DataFrame(columns=["zip", "sam"])
    assert rank_by_sam(df).empty


def test_paginate_middle_and_past_end():
    df = pd.DataFrame({"i": range(20)})

    assert paginate(df, 1, 7)["i"].tolist() == list(range(0, 7))
    assert paginate(df, 3, 7)["i"].tolist() == list(range(14, 20))
    assert paginate(df, 4, 7).empty


@pytest.mark.parametrize("page, size", [(0, 7), (-1, 7), (1, 0)])
def test_paginate_rejects_bad_arguments(page, size):
    with pytest.raises(ValueError):
        paginate(pd.DataFrame({"i": range(3)}), page, size)


def test_build_tier_summary():
    summary = build_tier_summary(_tiered_frame())
    assert summary == {"low": 1, "medium": 1, "high": 1, "none": 1}


def test_build_tier_summary_empty(empty_dataframe):
    assert build_tier_summary(empty_dataframe) == {"low": 0, "medium": 0, "high": 0, "none": 0}


def test_tier_definitions():
    defs = tier_definitions()
    assert [d["name"] for d in defs] == ["low", "medium", "high"]
    assert defs[2]["min_score"] == 15
    assert defs[2]["max_score"] == 20
