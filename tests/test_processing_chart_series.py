import pandas as pd
import pytest

from config.settings import INCOME_BRACKETS
from src.processing.chart_series import build_divorce_rate_series, build_income_distribution


def test_divorce_rate_series_selection_vs_national():
    selection = pd.DataFrame({
        "zip": ["33101", "33101", "33102"],
        "year": [2019, 2020, 2019],
        "rate": ["10", "12", "14"],
    })
    national = pd.DataFrame({
        "zip": ["33101", "33101", "33102", "73301"],
        "year": [2019, 2020, 2019, 2019],
        "rate": ["10", "12", "14", "6"],
    })

    series = build_divorce_rate_series(selection, national)

    assert series == [
        {"year": 2019, "average_rate_selection": 12.0, "average_rate_national": 10.0},
        {"year": 2020, "average_rate_selection": 12.0, "average_rate_national": 12.0},
    ]


def test_divorce_rate_series_skips_unparseable_rows():
    rates = pd.DataFrame({
        "zip": ["1", "2", "3", "4"],
        "year": [2019, 2019, "bad", 2021],
        "rate": ["4", "n/a", "8", ""],
    })

    series = build_divorce_rate_series(rates, rates)

    # 2021 has no parseable rate, so the year is absent
    assert series == [{"year": 2019, "average_rate_selection": 4.0, "average_rate_national": 4.0}]


def test_divorce_rate_series_missing_national_year():
    selection = pd.DataFrame({"zip": ["1"], "year": [2022], "rate": [3.0]})
    national = pd.DataFrame(columns=["zip", "year", "rate"])

    series = build_divorce_rate_series(selection, national)

    assert series[0]["average_rate_national"] is None


def test_income_distribution_fixed_brackets():
    rows = pd.DataFrame({
        "zip": ["1", "1", "2", "2", "3"],
        "income_bracket": [10000, 200000, 10000, 12500, 99999],
        "households": [100, 50, 20.7, -5, 40],
    })

    distribution = build_income_distribution(rows)

    assert [d["income_bracket"] for d in distribution] == INCOME_BRACKETS
    totals = {d["income_bracket"]: d["total_households"] for d in distribution}
    assert totals[10000] == 120
    assert totals[12500] == 0
    assert totals[200000] == 50
    assert sum(totals.values()) == 170


def test_income_distribution_empty():
    distribution = build_income_distribution(pd.DataFrame(columns=["income_bracket", "households"]))

    assert len(distribution) == len(INCOME_BRACKETS)
    assert all(d["total_households"] == 0 for d in distribution)


@pytest.mark.parametrize("value", [None, "abc", float("nan")])
def test_income_distribution_excludes_unparseable_households(value):
    rows = pd.DataFrame({"income_bracket": [10000, 10000], "households": [5, value]})

    totals = {d["income_bracket"]: d["total_households"] for d in build_income_distribution(rows)}

    assert totals[10000] == 5
