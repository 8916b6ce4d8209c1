"""
DivorceIQ Market Atlas - Application Settings
Manages environment variables and configuration using Pydantic
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Dict, List, Optional, Tuple
import os


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Required in production:
        - DATABASE_URL (hosted Postgres backing the reference tables)

    Optional:
        - CORS_ALLOW_ORIGINS (comma separated)
    """

    # Database
    DATABASE_URL: str = "sqlite:///./divorce_iq.db"

    # Application
    ENVIRONMENT: str = "production"
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    # API settings
    API_TITLE: str = "DivorceIQ Market Atlas API"
    API_VERSION: str = "1.0.0"
    API_DESCRIPTION: str = "Composite scoring and market sizing for zip-level opportunity analysis"
    CORS_ALLOW_ORIGINS: str = ""

    # File storage
    EXPORT_DIR: str = "exports"
    LOG_DIR: str = "logs"

    # Pagination
    DEFAULT_PAGE_SIZE: int = 7
    MAX_PAGE_SIZE: int = 100

    # Map markers per request
    MAP_MARKER_LIMIT: int = 50

    # Raw data tables (rows per page)
    RAW_PAGE_SIZE: int = 10

    # Market sizing
    PERSONS_PER_HOUSEHOLD: float = 2.5
    TAM_PER_HOUSEHOLD: int = 100
    SAM_MIN_COMPOSITE_SCORE: float = 15
    SAM_URBANICITY: str = "Urban"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Create directories if they don't exist
        os.makedirs(self.EXPORT_DIR, exist_ok=True)
        if self.LOG_DIR:
            os.makedirs(self.LOG_DIR, exist_ok=True)


@lru_cache()
def get_settings() -> Settings:
    """
    Returns cached settings instance.
    Uses lru_cache to avoid re-reading .env on every call.
    """
    return Settings()


# Sentinel used by every filter to mean "no restriction"
ALL_SENTINEL = "all"

# Composite score tiers: (name, lowest score, highest score), both inclusive.
# A fractional score between two bands stays in the lower band.
COMPOSITE_TIERS: List[Tuple[str, float, float]] = [
    ("low", 1, 7),
    ("medium", 8, 14),
    ("high", 15, 20),
]

TIER_LABELS: Dict[str, str] = {
    "low": "Low (1-7)",
    "medium": "Medium (8-14)",
    "high": "High (15-20)",
}

# Household counts in the income table are stored one column per bracket
INCOME_BRACKETS: List[int] = [
    10000, 12500, 17500, 22500, 27500, 32500, 37500, 42500, 47500,
    55000, 67500, 87500, 112500, 137500, 175000, 200000,
]

# State name (lower case) -> postal abbreviation stored in the score tables
STATE_NAME_TO_ABBREVIATION: Dict[str, str] = {
    "alabama": "AL",
    "alaska": "AK",
    "arizona": "AZ",
    "arkansas": "AR",
    "california": "CA",
    "colorado": "CO",
    "connecticut": "CT",
    "delaware": "DE",
    "florida": "FL",
    "georgia": "GA",
    "hawaii": "HI",
    "idaho": "ID",
    "illinois": "IL",
    "indiana": "IN",
    "iowa": "IA",
    "kansas": "KS",
    "kentucky": "KY",
    "louisiana": "LA",
    "maine": "ME",
    "maryland": "MD",
    "massachusetts": "MA",
    "michigan": "MI",
    "minnesota": "MN",
    "mississippi": "MS",
    "missouri": "MO",
    "montana": "MT",
    "nebraska": "NE",
    "nevada": "NV",
    "new hampshire": "NH",
    "new jersey": "NJ",
    "new mexico": "NM",
    "new york": "NY",
    "north carolina": "NC",
    "north dakota": "ND",
    "ohio": "OH",
    "oklahoma": "OK",
    "oregon": "OR",
    "pennsylvania": "PA",
    "rhode island": "RI",
    "south carolina": "SC",
    "south dakota": "SD",
    "tennessee": "TN",
    "texas": "TX",
    "utah": "UT",
    "vermont": "VT",
    "virginia": "VA",
    "washington": "WA",
    "west virginia": "WV",
    "wisconsin": "WI",
    "wyoming": "WY",
    "puerto rico": "PR",
}


def is_all(value: Optional[str]) -> bool:
    """True when a filter value is missing or the 'all' sentinel."""
    return value is None or not str(value).strip() or str(value).strip().lower() == ALL_SENTINEL


def normalize_state_name(state: str) -> str:
    """Format a user-supplied state name the way the location table stores it."""
    return " ".join(part.capitalize() for part in state.strip().split())


def state_abbreviation(state: Optional[str]) -> Optional[str]:
    """Translate a state name to its postal abbreviation (None when unknown)."""
    if is_all(state):
        return None
    return STATE_NAME_TO_ABBREVIATION.get(" ".join(state.strip().lower().split()))
