"""
DivorceIQ Market Atlas - Score Join & Composite Aggregation
Joins location rows to their divorce-rate and household-income scores

Rules:
- composite_score = divorce_score + income_score
- A zip missing from a score table contributes 0 for that dimension
- Unparseable scores count as 0, never raise
- Duplicate zips in a score table: the last row read wins. The backend
  defines no row order, so duplicates are logged rather than relied upon.
- A failed score fetch degrades that dimension to 0 and is reported as a
  warning; it never fails the pipeline
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

from src.ingest.reference_data import ReferenceDataError, ReferenceDataProvider
from src.processing.classification import classify_tier
from src.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ScoreMaps:
    """Zip-keyed score lookups plus any non-fatal fetch warnings."""

    divorce: Dict[str, float] = field(default_factory=dict)
    income: Dict[str, float] = field(default_factory=dict)
    median_divorce_rate: Dict[str, Optional[float]] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)


def parse_score(value: Any) -> float:
    """
    Parse a score stored as a number or as text.

    Missing, empty, non-numeric and non-finite values parse as 0.0.
    """
    if value is None or isinstance(value, (bool, np.bool_)):
        return 0.0
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return 0.0
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not np.isfinite(parsed):
        return 0.0
    return parsed


def build_score_map(df: pd.DataFrame, value_column: str = "score", label: str = "score") -> Dict[str, float]:
    """
    Build a zip -> score mapping from canonical score rows.

    Args:
        df: DataFrame with 'zip' and value_column
        value_column: Column holding the raw score
        label: Name used in log messages

    Returns:
        Dict of zip -> parsed score (last row wins on duplicate zips)
    """
    if df.empty or value_column not in df.columns:
        return {}

    duplicates = int(df["zip"].duplicated().sum())
    if duplicates:
        logger.warning(
            f"{duplicates} duplicate zip rows in {label} data; keeping the last value read"
        )

    scores = df[value_column].map(parse_score)
    return dict(zip(df["zip"], scores))


def _build_rate_map(df: pd.DataFrame) -> Dict[str, Optional[float]]:
    if df.empty or "median_divorce_rate" not in df.columns:
        return {}
    rates = pd.to_numeric(df["median_divorce_rate"], errors="coerce")
    return {z: (None if pd.isna(r) else float(r)) for z, r in zip(df["zip"], rates)}


def fetch_score_maps(provider: ReferenceDataProvider, zips: Iterable[str]) -> ScoreMaps:
    """
    Fetch both score dimensions for exactly the given zips.

    A failure in either fetch leaves that dimension empty (all zips score 0)
    and records a warning for the caller.
    """
    zip_list = list(zips)
    maps = ScoreMaps()

    if not zip_list:
        return maps

    try:
        divorce_df = provider.fetch_divorce_scores(zip_list)
        maps.divorce = build_score_map(divorce_df, label="divorce score")
        maps.median_divorce_rate = _build_rate_map(divorce_df)
    except ReferenceDataError as e:
        logger.warning(f"Divorce scores unavailable, defaulting to 0: {e}")
        maps.warnings.append("Divorce rate scores could not be loaded; they count as 0.")

    try:
        income_df = provider.fetch_income_scores(zip_list)
        maps.income = build_score_map(income_df, label="income score")
    except ReferenceDataError as e:
        logger.warning(f"Income scores unavailable, defaulting to 0: {e}")
        maps.warnings.append("Household income scores could not be loaded; they count as 0.")

    logger.info(
        f"Score maps: {len(maps.divorce)} divorce, {len(maps.income)} income "
        f"for {len(zip_list)} zips"
    )
    return maps


def calculate_composite_scores(
    locations: pd.DataFrame,
    divorce_scores: Dict[str, float],
    income_scores: Dict[str, float],
    median_divorce_rates: Optional[Dict[str, Optional[float]]] = None,
) -> pd.DataFrame:
    """
    Attach both score dimensions, the composite score and its tier.

    Args:
        locations: Canonical location rows (must contain 'zip')
        divorce_scores: zip -> divorce-rate score
        income_scores: zip -> household-income score
        median_divorce_rates: optional zip -> median divorce rate

    Returns:
        Copy of locations with divorce_score, income_score, composite_score,
        tier and median_divorce_rate columns
    """
    result = locations.copy()

    result["divorce_score"] = result["zip"].map(divorce_scores).fillna(0.0).astype(float)
    result["income_score"] = result["zip"].map(income_scores).fillna(0.0).astype(float)
    result["composite_score"] = result["divorce_score"] + result["income_score"]
    result["tier"] = result["composite_score"].map(classify_tier).astype(object)

    rates = median_divorce_rates or {}
    result["median_divorce_rate"] = pd.Series(
        [rates.get(z) for z in result["zip"]], index=result.index, dtype=object
    )

    if not result.empty:
        logger.info(
            f"Composite scores: n={len(result)}, "
            f"mean={result['composite_score'].mean():.2f}, "
            f"untiered={int(result['tier'].isna().sum())}"
        )

    return result
