"""
DivorceIQ Market Atlas - API Routes
Endpoints feeding the dashboard table, charts, map and filter controls
"""

from contextlib import nullcontext
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from config.database import get_db_session
from config.settings import (
    ALL_SENTINEL,
    STATE_NAME_TO_ABBREVIATION,
    get_settings,
    normalize_state_name,
)
from src.api.services.insights_service import InsightFilters, InsightsService
from src.ingest.reference_data import ReferenceDataError, ReferenceDataProvider
from src.processing.classification import TIER_NAMES, tier_definitions
from src.utils.logging import get_logger

router = APIRouter()
settings = get_settings()
logger = get_logger(__name__)


# Response models
class InsightRecord(BaseModel):
    """One zip's composite score and market size"""

    zip: str
    city: Optional[str] = None
    state_name: Optional[str] = None
    population: int
    households: int
    urbanicity: Optional[str] = None
    competitors: Optional[Union[int, str]] = None
    median_divorce_rate: Optional[float] = None
    divorce_score: float
    income_score: float
    composite_score: float
    tier: Optional[str] = None  # 'low', 'medium', 'high', None
    tam: int
    sam: int
    lat: Optional[float] = None
    lng: Optional[float] = None


class InsightsResponse(BaseModel):
    """A ranked page of insights with its widget status"""

    status: str  # 'ok', 'no_data', 'error'
    filters: Dict[str, Any]
    insights: List[InsightRecord]
    total: int
    page: int
    page_size: int
    no_data: bool
    message: Optional[str] = None
    warnings: List[str]
    tier_summary: Dict[str, int]
    request_id: Optional[str] = None


class WidgetResponse(BaseModel):
    """Chart or map payload with its widget status"""

    status: str
    data: Any = None
    message: Optional[str] = None
    warnings: List[str] = []
    request_id: Optional[str] = None


class StateOption(BaseModel):
    name: str
    abbreviation: str


class TierDefinition(BaseModel):
    name: str
    label: str
    min_score: float
    max_score: float


def get_insights_service(db: Session = Depends(get_db_session)) -> InsightsService:
    """Service bound to the request's database session."""
    provider = ReferenceDataProvider(session_factory=lambda: nullcontext(db))
    return InsightsService(provider)


def _parse_tiers(tiers: Optional[List[str]]) -> List[str]:
    """Accept repeated and comma-separated tier params; reject unknown names."""
    values: List[str] = []
    for raw in tiers or []:
        values.extend(part.strip().lower() for part in raw.split(",") if part.strip())

    unknown = [t for t in values if t not in TIER_NAMES and t != ALL_SENTINEL]
    if unknown:
        raise HTTPException(status_code=422, detail=f"Unknown tier(s): {', '.join(unknown)}")
    return values


@router.get("/insights", response_model=InsightsResponse)
async def get_insights(
    state: Optional[str] = Query(default=None, description="State name or 'all'"),
    city: Optional[str] = Query(default=None, description="City name or 'all'"),
    tiers: Optional[List[str]] = Query(default=None, description="low, medium, high or all"),
    page: int = Query(default=1, ge=1),
    page_size: Optional[int] = Query(default=None, ge=1, le=settings.MAX_PAGE_SIZE),
    request_id: Optional[str] = Query(default=None, description="Echoed back for stale-response checks"),
    service: InsightsService = Depends(get_insights_service),
):
    """
    Composite insights for the selection, ranked by SAM and paginated.
    """
    filters = InsightFilters.create(
        state=state, city=city, tiers=_parse_tiers(tiers), page=page, page_size=page_size
    )
    result = service.get_insights(filters)

    payload = result.to_dict()
    payload["request_id"] = request_id
    return payload


@router.get("/charts/divorce-rates", response_model=WidgetResponse)
async def get_divorce_rate_chart(
    state: Optional[str] = Query(default=None),
    city: Optional[str] = Query(default=None),
    request_id: Optional[str] = Query(default=None),
    service: InsightsService = Depends(get_insights_service),
):
    """Yearly divorce-rate averages for the selection and nationally."""
    payload = service.get_divorce_rate_series(state, city).to_dict()
    payload["request_id"] = request_id
    return payload


@router.get("/charts/income-distribution", response_model=WidgetResponse)
async def get_income_distribution_chart(
    state: Optional[str] = Query(default=None),
    city: Optional[str] = Query(default=None),
    request_id: Optional[str] = Query(default=None),
    service: InsightsService = Depends(get_insights_service),
):
    """Households per income bracket for the selection."""
    payload = service.get_income_distribution(state, city).to_dict()
    payload["request_id"] = request_id
    return payload


@router.get("/map/locations", response_model=WidgetResponse)
async def get_map_locations(
    state: Optional[str] = Query(default=None),
    city: Optional[str] = Query(default=None),
    tiers: Optional[List[str]] = Query(default=None),
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    request_id: Optional[str] = Query(default=None),
    service: InsightsService = Depends(get_insights_service),
):
    """Map markers (with coordinates) and tier counts for the legend."""
    payload = service.get_map_locations(state, city, _parse_tiers(tiers), limit).to_dict()
    payload["request_id"] = request_id
    return payload


@router.get("/raw/divorce-rates", response_model=WidgetResponse)
async def get_raw_divorce_rates(
    state: Optional[str] = Query(default=None),
    city: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: Optional[int] = Query(default=None, ge=1, le=settings.MAX_PAGE_SIZE),
    request_id: Optional[str] = Query(default=None),
    service: InsightsService = Depends(get_insights_service),
):
    """Stored divorce-rate rows (zip, year, rate), paginated."""
    payload = service.get_raw_divorce_rates(state, city, page, page_size).to_dict()
    payload["request_id"] = request_id
    return payload


@router.get("/raw/income", response_model=WidgetResponse)
async def get_raw_income(
    state: Optional[str] = Query(default=None),
    city: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: Optional[int] = Query(default=None, ge=1, le=settings.MAX_PAGE_SIZE),
    request_id: Optional[str] = Query(default=None),
    service: InsightsService = Depends(get_insights_service),
):
    """Stored household counts per zip and income bracket, paginated."""
    payload = service.get_raw_income_rows(state, city, page, page_size).to_dict()
    payload["request_id"] = request_id
    return payload


@router.get("/metadata/states", response_model=List[StateOption])
async def list_states():
    """States accepted by the state filter."""
    return [
        StateOption(name=normalize_state_name(name), abbreviation=abbreviation)
        for name, abbreviation in sorted(STATE_NAME_TO_ABBREVIATION.items())
    ]


@router.get("/metadata/cities", response_model=List[str])
async def search_cities(
    state: Optional[str] = Query(default=None),
    q: str = Query(default="", description="Partial city name"),
    limit: int = Query(default=25, ge=1, le=200),
    service: InsightsService = Depends(get_insights_service),
):
    """City names matching a partial text search."""
    try:
        return service.provider.search_cities(state=state, query=q, limit=limit)
    except ReferenceDataError as e:
        logger.error(f"City search failed: {e}", exc_info=True)
        raise HTTPException(status_code=503, detail="City list unavailable")


@router.get("/metadata/tiers", response_model=List[TierDefinition])
async def list_tiers():
    """Composite score tier bands."""
    return tier_definitions()
