"""
DivorceIQ Market Atlas - Market-Size Estimation

households = floor(population / persons per household)
tam        = households * revenue per household
sam        = tam when composite_score >= SAM minimum and the zip is Urban,
             otherwise 0
"""

import math
from numbers import Integral, Real
from typing import Any, NamedTuple

import numpy as np
import pandas as pd

from config.settings import get_settings
from src.utils.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()


class MarketSizeValidationError(ValueError):
    """Population is negative, fractional or not a number."""


class MarketSize(NamedTuple):
    households: int
    tam: int
    sam: int


def _validate_population(population: Any) -> int:
    if isinstance(population, (bool, np.bool_)) or not isinstance(population, Real):
        raise MarketSizeValidationError(f"Population must be a number, got {population!r}")
    if isinstance(population, Integral):
        value = int(population)
    else:
        if not math.isfinite(population) or not float(population).is_integer():
            raise MarketSizeValidationError(f"Population must be a whole number, got {population!r}")
        value = int(population)
    if value < 0:
        raise MarketSizeValidationError(f"Population cannot be negative, got {value}")
    return value


def estimate_households(population: Any) -> int:
    """Estimated households for a population."""
    value = _validate_population(population)
    return int(math.floor(value / settings.PERSONS_PER_HOUSEHOLD))


def is_serviceable(composite_score: float, urbanicity: Any) -> bool:
    """SAM gate: high enough composite score in an urban zip."""
    if composite_score is None or pd.isna(composite_score):
        return False
    return composite_score >= settings.SAM_MIN_COMPOSITE_SCORE and urbanicity == settings.SAM_URBANICITY


def estimate_market_size(population: Any, composite_score: float, urbanicity: Any) -> MarketSize:
    """
    Estimate households, TAM and SAM for one location.

    Raises:
        MarketSizeValidationError: population is negative or non-numeric
    """
    households = estimate_households(population)
    tam = households * settings.TAM_PER_HOUSEHOLD
    sam = tam if is_serviceable(composite_score, urbanicity) else 0
    return MarketSize(households=households, tam=tam, sam=sam)


def apply_market_size(df: pd.DataFrame) -> pd.DataFrame:
    """
    Add households, tam and sam columns to composite-scored rows.

    Rows whose population is missing, negative or fractional are logged and
    dropped.

    Args:
        df: Rows with population, composite_score and urbanicity

    Returns:
        Copy of the valid rows with households, tam, sam
    """
    if df.empty:
        result = df.copy()
        for col in ("households", "tam", "sam"):
            result[col] = pd.Series(dtype="int64")
        return result

    population = pd.to_numeric(df["population"], errors="coerce")
    invalid = population.isna() | (population < 0) | (population % 1 != 0)

    if invalid.any():
        skipped = df.loc[invalid, "zip"].tolist() if "zip" in df.columns else []
        logger.warning(
            f"Skipping {int(invalid.sum())} rows with invalid population: {skipped[:10]}"
        )

    result = df.loc[~invalid].copy()
    population = population[~invalid]

    households = np.floor(population.to_numpy(dtype=float) / settings.PERSONS_PER_HOUSEHOLD)
    result["households"] = households.astype("int64")
    result["tam"] = result["households"] * int(settings.TAM_PER_HOUSEHOLD)

    serviceable = (
        (pd.to_numeric(result["composite_score"], errors="coerce") >= settings.SAM_MIN_COMPOSITE_SCORE)
        & (result["urbanicity"] == settings.SAM_URBANICITY)
    )
    result["sam"] = np.where(serviceable, result["tam"], 0).astype("int64")

    return result.reset_index(drop=True)
