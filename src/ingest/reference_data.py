"""
DivorceIQ Market Atlas - Reference Data Provider
Reads location, score, divorce-rate and income tables from the hosted backend

The backend schema is fixed and its naming is inconsistent ("Zip" vs "zip",
"Year", quoted score columns, one column per income bracket). This module is
the only place that knows those names. Everything it returns uses the
canonical column names below, with zips as 5-character strings.
"""

from contextlib import AbstractContextManager
from typing import Any, Callable, Dict, Iterable, List, Optional

import pandas as pd
from sqlalchemy import bindparam, text
from sqlalchemy.exc import SQLAlchemyError

from config.database import get_db
from config.settings import INCOME_BRACKETS, is_all, state_abbreviation
from src.utils.logging import get_logger
from src.utils.records import chunked

logger = get_logger(__name__)

# Canonical shapes
LOCATION_COLUMNS = [
    "zip", "city", "state_name", "state_id", "population",
    "urbanicity", "competitors", "lat", "lng",
]
DIVORCE_SCORE_COLUMNS = ["zip", "score", "median_divorce_rate"]
INCOME_SCORE_COLUMNS = ["zip", "score", "households_over_200k"]
DIVORCE_RATE_COLUMNS = ["zip", "year", "rate"]
INCOME_ROW_COLUMNS = ["zip", "state_id", "income_bracket", "households"]

# Keep IN (...) lists well under driver parameter limits
ZIP_CHUNK_SIZE = 1000

SessionFactory = Callable[[], AbstractContextManager]


class ReferenceDataError(RuntimeError):
    """Raised when the backend cannot be queried."""


def normalize_zip(value: Any) -> Optional[str]:
    """Canonical zip: digits only, zero-padded to 5 characters."""
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    text_value = str(value).strip()
    if not text_value.isdigit():
        return None
    return text_value.zfill(5)


def _zip_query_values(zips: Iterable[str]) -> List[int]:
    # The backend stores zips as integers
    values = []
    for z in zips:
        canonical = normalize_zip(z)
        if canonical is not None:
            values.append(int(canonical))
    return sorted(set(values))


def _canonicalize_zips(df: pd.DataFrame, source: str) -> pd.DataFrame:
    """Normalize the zip column, dropping rows whose zip is unusable."""
    if df.empty:
        return df
    df = df.copy()
    df["zip"] = df["zip"].map(normalize_zip)
    missing = df["zip"].isna()
    if missing.any():
        logger.warning(f"Skipping {int(missing.sum())} {source} rows without a valid zip")
        df = df[~missing]
    return df.reset_index(drop=True)


class ReferenceDataProvider:
    """Canonical read access to the five reference tables."""

    def __init__(self, session_factory: SessionFactory = get_db):
        self._session_factory = session_factory

    def _query(self, sql, params: Optional[Dict[str, Any]] = None, source: str = "query") -> pd.DataFrame:
        try:
            with self._session_factory() as db:
                result = db.execute(sql, params or {})
                columns = list(result.keys())
                rows = result.fetchall()
        except SQLAlchemyError as e:
            logger.error(f"Reference data query failed ({source}): {e}")
            raise ReferenceDataError(f"Failed to load {source}") from e

        return pd.DataFrame([tuple(r) for r in rows], columns=columns)

    def _query_by_zips(
        self, sql_template: str, zips: Iterable[str], source: str, params: Optional[Dict[str, Any]] = None
    ) -> pd.DataFrame:
        zip_values = _zip_query_values(zips)
        sql = text(sql_template).bindparams(bindparam("zips", expanding=True))

        frames = []
        for chunk in chunked(zip_values, ZIP_CHUNK_SIZE):
            frames.append(self._query(sql, {**(params or {}), "zips": chunk}, source=source))

        if not frames:
            return pd.DataFrame()
        return pd.concat(frames, ignore_index=True)

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    def fetch_locations(
        self,
        state: Optional[str] = None,
        city: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> pd.DataFrame:
        """
        Fetch location rows for a state/city selection.

        Args:
            state: State name ('all' or None for every state)
            city: City name ('all' or None for every city), case-insensitive
            limit: Optional row cap

        Returns:
            DataFrame with LOCATION_COLUMNS, ordered by zip
        """
        clauses = []
        params: Dict[str, Any] = {}

        if not is_all(state):
            clauses.append("LOWER(state_name) = :state")
            params["state"] = " ".join(state.strip().lower().split())
        if not is_all(city):
            clauses.append("LOWER(city) = :city")
            params["city"] = " ".join(city.strip().lower().split())

        where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        limit_sql = ""
        if limit is not None:
            limit_sql = "LIMIT :limit"
            params["limit"] = int(limit)

        sql = text(
            f"""
            SELECT zip, city, state_name, state_id, population,
                   "Urbanicity" AS urbanicity, "Competitors" AS competitors,
                   lat, lng
            FROM location
            {where_sql}
            ORDER BY zip
            {limit_sql}
            """
        )

        df = self._query(sql, params, source="locations")
        if df.empty:
            return pd.DataFrame(columns=LOCATION_COLUMNS)

        df = _canonicalize_zips(df, "location")
        logger.info(f"Fetched {len(df)} locations (state={state}, city={city})")
        return df[LOCATION_COLUMNS]

    def search_cities(self, state: Optional[str] = None, query: str = "", limit: int = 25) -> List[str]:
        """Distinct city names containing `query` (case-insensitive)."""
        cleaned = "".join(ch for ch in (query or "").strip().lower() if ch not in "%_")
        params: Dict[str, Any] = {"pattern": f"%{cleaned}%", "limit": int(limit)}
        state_sql = ""
        if not is_all(state):
            state_sql = "AND LOWER(state_name) = :state"
            params["state"] = " ".join(state.strip().lower().split())

        sql = text(
            f"""
            SELECT DISTINCT city
            FROM location
            WHERE city IS NOT NULL
              AND LOWER(city) LIKE :pattern
              {state_sql}
            ORDER BY city
            LIMIT :limit
            """
        )
        df = self._query(sql, params, source="cities")
        return [] if df.empty else df["city"].tolist()

    # ------------------------------------------------------------------
    # Scores
    # ------------------------------------------------------------------

    def fetch_divorce_scores(self, zips: Iterable[str]) -> pd.DataFrame:
        """Divorce-rate score rows for exactly the given zips."""
        df = self._query_by_zips(
            """
            SELECT zip, "Divorce Rate Score" AS score, median_divorce_rate
            FROM divorce_score
            WHERE zip IN :zips
            """,
            zips,
            source="divorce scores",
        )
        if df.empty:
            return pd.DataFrame(columns=DIVORCE_SCORE_COLUMNS)
        return _canonicalize_zips(df, "divorce score")[DIVORCE_SCORE_COLUMNS]

    def fetch_income_scores(self, zips: Iterable[str]) -> pd.DataFrame:
        """Household-income score rows for exactly the given zips."""
        df = self._query_by_zips(
            """
            SELECT zip, "Household Income Score" AS score,
                   "# of households with more than 200K income" AS households_over_200k
            FROM income_score
            WHERE zip IN :zips
            """,
            zips,
            source="income scores",
        )
        if df.empty:
            return pd.DataFrame(columns=INCOME_SCORE_COLUMNS)
        return _canonicalize_zips(df, "income score")[INCOME_SCORE_COLUMNS]

    # ------------------------------------------------------------------
    # Chart inputs
    # ------------------------------------------------------------------

    def fetch_divorce_rates(self, zips: Optional[Iterable[str]] = None) -> pd.DataFrame:
        """
        Divorce-rate time series rows.

        Args:
            zips: Restrict to these zips; None reads the whole table (national)
        """
        base_sql = 'SELECT "Zip" AS zip, "Year" AS year, "Divorce Rate" AS rate FROM divorce_rate'

        if zips is None:
            df = self._query(text(base_sql), source="divorce rates")
        else:
            df = self._query_by_zips(base_sql + ' WHERE "Zip" IN :zips', zips, source="divorce rates")

        if df.empty:
            return pd.DataFrame(columns=DIVORCE_RATE_COLUMNS)
        return _canonicalize_zips(df, "divorce rate")[DIVORCE_RATE_COLUMNS]

    def fetch_income_rows(
        self, state: Optional[str] = None, zips: Optional[Iterable[str]] = None
    ) -> pd.DataFrame:
        """
        Income bracket household counts in long form.

        The income table stores its state as a postal abbreviation, so the
        state name is translated first. An unknown state name yields no rows.

        Args:
            state: State name ('all' or None for every state)
            zips: Optional zip restriction (used for city selections)

        Returns:
            DataFrame with INCOME_ROW_COLUMNS
        """
        bracket_sql = ", ".join(f'"{b}"' for b in INCOME_BRACKETS)
        base_sql = f'SELECT "Zip" AS zip, "State" AS state_id, {bracket_sql} FROM income'

        params: Dict[str, Any] = {}
        clauses = []
        if not is_all(state):
            abbreviation = state_abbreviation(state)
            if abbreviation is None:
                logger.warning(f"No state abbreviation for '{state}', income rows unavailable")
                return pd.DataFrame(columns=INCOME_ROW_COLUMNS)
            clauses.append('"State" = :state_id')
            params["state_id"] = abbreviation

        if zips is not None:
            clauses.append('"Zip" IN :zips')
            sql_template = base_sql + " WHERE " + " AND ".join(clauses)
            wide = self._query_by_zips(sql_template, zips, source="income rows", params=params)
        else:
            sql_template = base_sql + (" WHERE " + " AND ".join(clauses) if clauses else "")
            wide = self._query(text(sql_template), params, source="income rows")

        if wide.empty:
            return pd.DataFrame(columns=INCOME_ROW_COLUMNS)

        wide = _canonicalize_zips(wide, "income")
        long_df = wide.melt(
            id_vars=["zip", "state_id"],
            value_vars=[str(b) for b in INCOME_BRACKETS],
            var_name="income_bracket",
            value_name="households",
        )
        long_df["income_bracket"] = long_df["income_bracket"].astype(int)
        return long_df[INCOME_ROW_COLUMNS]
