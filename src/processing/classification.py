"""
DivorceIQ Market Atlas - Tier Classification, Filtering and Ranking

Tiers (composite score):
- low:    1-7
- medium: 8-14
- high:   15-20
A fractional score between bands (e.g. 7.5) stays in the lower band. The
dashboard this replaces matched such scores to no tier in its filter while
its map legend coloured them as the upper band; one rule now serves both.
Scores below 1 or above 20 have no tier and never match a tier filter.

Result ordering: descending SAM with a stable sort, so equal-SAM rows keep
their input order. Pages are 1-indexed; a page past the end is empty.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from config.settings import ALL_SENTINEL, COMPOSITE_TIERS, TIER_LABELS
from src.utils.logging import get_logger

logger = get_logger(__name__)

TIER_NAMES = [name for name, _, _ in COMPOSITE_TIERS]


def classify_tier(score: Any) -> Optional[str]:
    """
    Classify a composite score into a tier.

    Args:
        score: Composite score

    Returns:
        'low', 'medium', 'high', or None when outside every band
    """
    if score is None or isinstance(score, str) or pd.isna(score):
        return None

    for index, (name, lower, upper) in enumerate(COMPOSITE_TIERS):
        if index + 1 < len(COMPOSITE_TIERS):
            # Up to (not including) the next band's floor
            if lower <= score < COMPOSITE_TIERS[index + 1][1]:
                return name
        elif lower <= score <= upper:
            return name

    return None


def normalize_tier_selection(selected_tiers: Optional[Union[str, Iterable[str]]]) -> Optional[List[str]]:
    """
    Clean a tier selection.

    A bare string is a single tier name (or the 'all' sentinel).

    Returns:
        None when the selection means "everything" (empty or contains 'all'),
        otherwise the known tier names selected, in tier order. A selection
        of only unknown names yields an empty list, which matches no rows.
    """
    if selected_tiers is None:
        return None
    if isinstance(selected_tiers, str):
        selected_tiers = [selected_tiers]

    cleaned = {str(t).strip().lower() for t in selected_tiers if str(t).strip()}
    if not cleaned or ALL_SENTINEL in cleaned:
        return None

    unknown = cleaned - set(TIER_NAMES)
    if unknown:
        logger.warning(f"Ignoring unknown tier names: {sorted(unknown)}")

    return [name for name in TIER_NAMES if name in cleaned]


def select_tiers(df: pd.DataFrame, tiers: Optional[Sequence[str]]) -> pd.DataFrame:
    """
    Keep rows whose tier is in an already-normalized selection.

    None keeps every row; an empty sequence keeps none.
    """
    if tiers is None:
        return df

    filtered = df[df["tier"].isin(list(tiers))].reset_index(drop=True)
    logger.info(f"Tier filter {list(tiers)}: {len(filtered)} of {len(df)} rows kept")
    return filtered


def filter_by_tiers(
    df: pd.DataFrame, selected_tiers: Optional[Union[str, Iterable[str]]]
) -> pd.DataFrame:
    """
    Keep rows whose tier is selected.

    An empty selection or one containing 'all' returns the input unchanged.
    """
    return select_tiers(df, normalize_tier_selection(selected_tiers))


def rank_by_sam(df: pd.DataFrame) -> pd.DataFrame:
    """Sort descending by SAM, keeping input order among ties."""
    if df.empty:
        return df.reset_index(drop=True)

    sam = pd.to_numeric(df["sam"], errors="coerce").fillna(0).to_numpy(dtype=float)
    order = np.argsort(-sam, kind="stable")
    return df.iloc[order].reset_index(drop=True)


def paginate(df: pd.DataFrame, page: int, page_size: int) -> pd.DataFrame:
    """
    Slice rows [(page - 1) * page_size, page * page_size).

    Raises:
        ValueError: page or page_size below 1
    """
    if page < 1:
        raise ValueError(f"page must be >= 1, got {page}")
    if page_size < 1:
        raise ValueError(f"page_size must be >= 1, got {page_size}")

    start = (page - 1) * page_size
    return df.iloc[start:start + page_size].reset_index(drop=True)


def build_tier_summary(df: pd.DataFrame) -> Dict[str, int]:
    """Count rows per tier (plus 'none' for untiered scores)."""
    summary = {name: 0 for name in TIER_NAMES}
    summary["none"] = 0

    if df.empty:
        return summary

    counts = df["tier"].value_counts(dropna=False)
    for tier, count in counts.items():
        key = tier if isinstance(tier, str) and tier in TIER_NAMES else "none"
        summary[key] += int(count)

    return summary


def tier_definitions() -> List[Dict[str, Any]]:
    """Tier bands for legends and filter controls."""
    return [
        {"name": name, "label": TIER_LABELS[name], "min_score": lower, "max_score": upper}
        for name, lower, upper in COMPOSITE_TIERS
    ]
