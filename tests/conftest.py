"""
Pytest configuration and shared fixtures for DivorceIQ Market Atlas tests.
"""

from contextlib import contextmanager
from typing import Dict

import pandas as pd
import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from config.settings import INCOME_BRACKETS


# Sample zips for testing
MIAMI_ZIPS = ["33101", "33102"]

LOCATION_ROWS = [
    # zip, city, state_name, state_id, population, Urbanicity, Competitors, lat, lng
    (33101, "Miami", "Florida", "FL", 10000, "Urban", 3, 25.77, -80.19),
    (33102, "Miami", "Florida", "FL", 5000, "Urban", 1, 25.78, -80.20),
    (33602, "Tampa", "Florida", "FL", 25000, "Urban", 2, 27.95, -82.46),
    (32003, "Fleming Island", "Florida", "FL", 12000, "Rural", 0, None, None),
    (73301, "Austin", "Texas", "TX", 8000, "Urban", 4, 30.27, -97.74),
    (501, "Holtsville", "New York", "NY", 50, "Suburban", 0, 40.81, -73.04),
]

DIVORCE_SCORE_ROWS = [
    # zip, "Divorce Rate Score" (stored as text), median_divorce_rate
    (33101, "5", 0.12),
    (33602, "9", 0.10),
    (32003, "8", 0.08),
    (73301, "abc", None),
    (501, "2", 0.05),
]

INCOME_SCORE_ROWS = [
    # zip, "Household Income Score", "# of households with more than 200K income"
    (33101, 3, 50),
    (33102, 10, 0),
    (33602, 8, 0),
    (32003, 9, 0),
    (73301, 4, 0),
    (501, 1, 0),
]

DIVORCE_RATE_ROWS = [
    # "Zip", "Year", "Divorce Rate" (stored as text)
    (33101, 2019, "10.0"),
    (33101, 2020, "12.0"),
    (33102, 2019, "14.0"),
    (33102, 2020, "bad"),
    (33602, 2019, "6.0"),
    (73301, 2019, "8.0"),
    (73301, 2020, "4.0"),
]

INCOME_ROWS = [
    # "Zip", "State", {bracket: households}
    (33101, "FL", {10000: 100, 200000: 50}),
    (33102, "FL", {10000: 20.7, 12500: -5}),
    (33602, "FL", {10000: 30}),
    (73301, "TX", {10000: 999}),
]


def _create_reference_tables(conn) -> None:
    conn.execute(text(
        """
        CREATE TABLE location (
            zip INTEGER, city TEXT, state_name TEXT, state_id TEXT,
            population INTEGER, "Urbanicity" TEXT, "Competitors" INTEGER,
            lat REAL, lng REAL
        )
        """
    ))
    conn.execute(text(
        'CREATE TABLE divorce_score (zip INTEGER, "Divorce Rate Score" TEXT, median_divorce_rate REAL)'
    ))
    conn.execute(text(
        'CREATE TABLE income_score (zip INTEGER, "Household Income Score" REAL, '
        '"# of households with more than 200K income" INTEGER)'
    ))
    conn.execute(text('CREATE TABLE divorce_rate ("Zip" INTEGER, "Year" INTEGER, "Divorce Rate" TEXT)'))

    bracket_columns = ", ".join(f'"{b}" REAL' for b in INCOME_BRACKETS)
    conn.execute(text(f'CREATE TABLE income ("Zip" INTEGER, "State" TEXT, {bracket_columns})'))


def _insert_reference_rows(conn) -> None:
    conn.execute(
        text(
            'INSERT INTO location VALUES (:zip, :city, :state_name, :state_id, :population, '
            ':urbanicity, :competitors, :lat, :lng)'
        ),
        [
            dict(zip=r[0], city=r[1], state_name=r[2], state_id=r[3], population=r[4],
                 urbanicity=r[5], competitors=r[6], lat=r[7], lng=r[8])
            for r in LOCATION_ROWS
        ],
    )
    conn.execute(
        text("INSERT INTO divorce_score VALUES (:zip, :score, :rate)"),
        [dict(zip=z, score=s, rate=r) for z, s, r in DIVORCE_SCORE_ROWS],
    )
    conn.execute(
        text("INSERT INTO income_score VALUES (:zip, :score, :over)"),
        [dict(zip=z, score=s, over=o) for z, s, o in INCOME_SCORE_ROWS],
    )
    conn.execute(
        text("INSERT INTO divorce_rate VALUES (:zip, :year, :rate)"),
        [dict(zip=z, year=y, rate=r) for z, y, r in DIVORCE_RATE_ROWS],
    )

    placeholders = ", ".join(f":b{b}" for b in INCOME_BRACKETS)
    for zip_code, state_id, values in INCOME_ROWS:
        params = {f"b{b}": values.get(b, 0) for b in INCOME_BRACKETS}
        params.update({"zip": zip_code, "state": state_id})
        conn.execute(text(f"INSERT INTO income VALUES (:zip, :state, {placeholders})"), params)


@pytest.fixture
def reference_engine():
    """In-memory SQLite database shaped like the hosted backend."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    with engine.begin() as conn:
        _create_reference_tables(conn)
        _insert_reference_rows(conn)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(reference_engine):
    """Session factory compatible with ReferenceDataProvider."""

    @contextmanager
    def factory():
        db = Session(bind=reference_engine)
        try:
            yield db
        finally:
            db.close()

    return factory


@pytest.fixture
def provider(session_factory):
    from src.ingest.reference_data import ReferenceDataProvider

    return ReferenceDataProvider(session_factory=session_factory)


@pytest.fixture
def service(provider):
    from src.api.services.insights_service import InsightsService

    return InsightsService(provider)


@pytest.fixture
def sample_locations() -> pd.DataFrame:
    """Canonical location rows for the two Miami zips."""
    return pd.DataFrame({
        "zip": MIAMI_ZIPS,
        "city": ["Miami", "Miami"],
        "state_name": ["Florida", "Florida"],
        "state_id": ["FL", "FL"],
        "population": [10000, 5000],
        "urbanicity": ["Urban", "Urban"],
        "competitors": [3, 1],
        "lat": [25.77, 25.78],
        "lng": [-80.19, -80.20],
    })


@pytest.fixture
def sample_divorce_scores() -> Dict[str, float]:
    return {"33101": 5.0}


@pytest.fixture
def sample_income_scores() -> Dict[str, float]:
    return {"33101": 3.0, "33102": 10.0}


@pytest.fixture
def empty_dataframe() -> pd.DataFrame:
    """Return an empty DataFrame for edge case testing."""
    return pd.DataFrame()
