"""
DivorceIQ Market Atlas - Chart Series
Aggregate series behind the divorce-rate trend and income distribution charts

Both series group raw rows by a numeric key (year, income bracket) and are
returned in ascending key order. Unparseable values are excluded, never
raised.
"""

from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from config.settings import INCOME_BRACKETS
from src.utils.logging import get_logger

logger = get_logger(__name__)


def _yearly_average_rates(rates_df: pd.DataFrame) -> pd.Series:
    """Mean parsed rate per year; rows with unparseable year or rate are dropped."""
    if rates_df.empty:
        return pd.Series(dtype=float)

    years = pd.to_numeric(rates_df["year"], errors="coerce")
    rates = pd.to_numeric(rates_df["rate"], errors="coerce")
    valid = years.notna() & rates.notna() & np.isfinite(rates)

    dropped = int((~valid).sum())
    if dropped:
        logger.debug(f"Excluded {dropped} divorce-rate rows with unparseable year or rate")

    return rates[valid].groupby(years[valid].astype(int)).mean().sort_index()


def build_divorce_rate_series(
    selection_rates: pd.DataFrame, national_rates: pd.DataFrame
) -> List[Dict[str, Any]]:
    """
    Year-indexed divorce-rate averages for the selection vs. the nation.

    Args:
        selection_rates: Canonical divorce-rate rows for the selected zips
        national_rates: Canonical divorce-rate rows for every zip

    Returns:
        List of {year, average_rate_selection, average_rate_national},
        one entry per year present in the selection
    """
    selection = _yearly_average_rates(selection_rates)
    national = _yearly_average_rates(national_rates)

    series = []
    for year, rate in selection.items():
        national_rate: Optional[float] = None
        if year in national.index:
            national_rate = float(national.loc[year])
        series.append(
            {
                "year": int(year),
                "average_rate_selection": float(rate),
                "average_rate_national": national_rate,
            }
        )

    return series


def build_income_distribution(income_rows: pd.DataFrame) -> List[Dict[str, int]]:
    """
    Total households per income bracket.

    Args:
        income_rows: Canonical long-form rows (income_bracket, households)

    Returns:
        One {income_bracket, total_households} entry per fixed bracket, in
        bracket order; brackets without contributions total 0
    """
    totals: Dict[int, int] = {bracket: 0 for bracket in INCOME_BRACKETS}

    if not income_rows.empty:
        brackets = pd.to_numeric(income_rows["income_bracket"], errors="coerce")
        households = pd.to_numeric(income_rows["households"], errors="coerce")
        # Household counts are whole numbers; drop any fractional part
        households = np.trunc(households)

        valid = brackets.isin(INCOME_BRACKETS) & households.notna() & (households > 0)
        grouped = households[valid].groupby(brackets[valid].astype(int)).sum()

        for bracket, total in grouped.items():
            totals[int(bracket)] += int(total)

    return [
        {"income_bracket": bracket, "total_households": totals[bracket]}
        for bracket in INCOME_BRACKETS
    ]
