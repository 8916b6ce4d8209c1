"""Insights service: runs the scoring pipeline for one filter selection."""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

import pandas as pd

from config.settings import get_settings, is_all
from src.ingest.reference_data import ReferenceDataError, ReferenceDataProvider
from src.processing.chart_series import build_divorce_rate_series, build_income_distribution
from src.processing.classification import (
    build_tier_summary,
    filter_by_tiers,
    normalize_tier_selection,
    paginate,
    rank_by_sam,
    select_tiers,
)
from src.processing.market_size import apply_market_size
from src.processing.scoring import ScoreMaps, calculate_composite_scores, fetch_score_maps
from src.utils.logging import get_logger
from src.utils.records import dataframe_to_records

logger = get_logger(__name__)
settings = get_settings()

STATUS_OK = "ok"
STATUS_NO_DATA = "no_data"
STATUS_ERROR = "error"

NO_DATA_MESSAGE = "No data for this filter"

INSIGHT_COLUMNS = [
    "zip", "city", "state_name", "population", "households", "urbanicity",
    "competitors", "median_divorce_rate", "divorce_score", "income_score",
    "composite_score", "tier", "tam", "sam", "lat", "lng",
]
MARKER_COLUMNS = ["zip", "city", "state_name", "lat", "lng", "composite_score", "tier", "sam"]


@dataclass(frozen=True)
class InsightFilters:
    """One dashboard selection. Hashable so it can tag in-flight requests."""

    state: Optional[str] = None
    city: Optional[str] = None
    # None: every tier. Empty: a selection that matched no known tier.
    tiers: Optional[Tuple[str, ...]] = None
    page: int = 1
    page_size: int = 7

    @classmethod
    def create(
        cls,
        state: Optional[str] = None,
        city: Optional[str] = None,
        tiers: Optional[Iterable[str]] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> "InsightFilters":
        selected = normalize_tier_selection(tiers)
        return cls(
            state=None if is_all(state) else state.strip(),
            city=None if is_all(city) else city.strip(),
            tiers=None if selected is None else tuple(selected),
            page=page,
            page_size=page_size or settings.DEFAULT_PAGE_SIZE,
        )


@dataclass
class WidgetResult:
    """Payload for one dashboard widget with its own status."""

    status: str
    data: Any = None
    message: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class InsightPage:
    """A ranked page of composite insights."""

    filters: InsightFilters
    status: str
    insights: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    no_data: bool = False
    message: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    tier_summary: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["filters"] = {
            "state": self.filters.state,
            "city": self.filters.city,
            "tiers": None if self.filters.tiers is None else list(self.filters.tiers),
            "page": self.filters.page,
            "page_size": self.filters.page_size,
        }
        payload["page"] = self.filters.page
        payload["page_size"] = self.filters.page_size
        return payload


def compute_insights(locations: pd.DataFrame, score_maps: ScoreMaps) -> pd.DataFrame:
    """Score and size every location. Pure function of its inputs."""
    scored = calculate_composite_scores(
        locations,
        score_maps.divorce,
        score_maps.income,
        score_maps.median_divorce_rate,
    )
    return apply_market_size(scored)


def select_insight_page(
    insights: pd.DataFrame, tiers: Optional[Sequence[str]], page: int, page_size: int
) -> Tuple[pd.DataFrame, int]:
    """
    Filter by a normalized tier selection, rank by SAM and cut one page.

    Returns (page, total) where total counts every row that passed the filter.
    """
    ranked = rank_by_sam(select_tiers(insights, tiers))
    return paginate(ranked, page, page_size), len(ranked)


class InsightsService:
    """Fetches reference data and runs the pipeline for dashboard widgets."""

    def __init__(self, provider: Optional[ReferenceDataProvider] = None) -> None:
        self.provider = provider or ReferenceDataProvider()

    def scored_locations(
        self, state: Optional[str], city: Optional[str]
    ) -> Tuple[pd.DataFrame, List[str]]:
        locations = self.provider.fetch_locations(state=state, city=city)
        if locations.empty:
            return locations, []

        score_maps = fetch_score_maps(self.provider, locations["zip"].tolist())
        return compute_insights(locations, score_maps), list(score_maps.warnings)

    def get_insights(self, filters: InsightFilters) -> InsightPage:
        """Ranked, tier-filtered, paginated insights for a selection."""
        try:
            insights, warnings = self.scored_locations(filters.state, filters.city)
        except ReferenceDataError as e:
            logger.error(f"Insights unavailable for {filters}: {e}")
            return InsightPage(
                filters=filters,
                status=STATUS_ERROR,
                message="Location data could not be loaded",
            )

        if insights.empty:
            logger.info(f"No location data for {filters}")
            return InsightPage(
                filters=filters,
                status=STATUS_NO_DATA,
                no_data=True,
                message=NO_DATA_MESSAGE,
                warnings=warnings,
                tier_summary=build_tier_summary(insights),
            )

        page_df, total = select_insight_page(
            insights, filters.tiers, filters.page, filters.page_size
        )

        return InsightPage(
            filters=filters,
            status=STATUS_OK if total else STATUS_NO_DATA,
            insights=dataframe_to_records(page_df, INSIGHT_COLUMNS),
            total=total,
            no_data=total == 0,
            message=None if total else NO_DATA_MESSAGE,
            warnings=warnings,
            tier_summary=build_tier_summary(insights),
        )

    def get_map_locations(
        self,
        state: Optional[str],
        city: Optional[str],
        tiers: Optional[Iterable[str]] = None,
        limit: Optional[int] = None,
    ) -> WidgetResult:
        """Map markers for a selection; rows without coordinates are skipped."""
        limit = limit or settings.MAP_MARKER_LIMIT
        try:
            insights, warnings = self.scored_locations(state, city)
        except ReferenceDataError as e:
            logger.error(f"Map locations unavailable: {e}")
            return WidgetResult(status=STATUS_ERROR, data=[], message="Location data could not be loaded")

        if insights.empty:
            return WidgetResult(status=STATUS_NO_DATA, data=[], message=NO_DATA_MESSAGE, warnings=warnings)

        markers = rank_by_sam(filter_by_tiers(insights, tiers))
        if not markers.empty:
            has_coords = (
                pd.to_numeric(markers["lat"], errors="coerce").notna()
                & pd.to_numeric(markers["lng"], errors="coerce").notna()
            )
            if not has_coords.all():
                logger.warning(f"Skipping {int((~has_coords).sum())} map rows without coordinates")
            markers = markers[has_coords].head(limit)

        if markers.empty:
            return WidgetResult(status=STATUS_NO_DATA, data=[], message=NO_DATA_MESSAGE, warnings=warnings)

        return WidgetResult(
            status=STATUS_OK,
            data={
                "markers": dataframe_to_records(markers, MARKER_COLUMNS),
                "tier_summary": build_tier_summary(insights),
            },
            warnings=warnings,
        )

    def get_divorce_rate_series(self, state: Optional[str], city: Optional[str]) -> WidgetResult:
        """Divorce-rate averages per year for the selection vs. nationally."""
        warnings: List[str] = []
        whole_country = is_all(state) and is_all(city)
        try:
            if whole_country:
                selection = self.provider.fetch_divorce_rates()
            else:
                locations = self.provider.fetch_locations(state=state, city=city)
                if locations.empty:
                    return WidgetResult(status=STATUS_NO_DATA, data=[], message=NO_DATA_MESSAGE)
                selection = self.provider.fetch_divorce_rates(locations["zip"].tolist())
        except ReferenceDataError as e:
            logger.error(f"Divorce rate series unavailable: {e}")
            return WidgetResult(status=STATUS_ERROR, data=[], message="Divorce rate data could not be loaded")

        national = selection
        if not whole_country:
            try:
                national = self.provider.fetch_divorce_rates()
            except ReferenceDataError as e:
                logger.warning(f"National divorce rates unavailable: {e}")
                national = selection.iloc[0:0]
                warnings.append("National averages could not be loaded.")

        series = build_divorce_rate_series(selection, national)
        if not series:
            return WidgetResult(status=STATUS_NO_DATA, data=[], message=NO_DATA_MESSAGE, warnings=warnings)
        return WidgetResult(status=STATUS_OK, data=series, warnings=warnings)

    def get_income_distribution(self, state: Optional[str], city: Optional[str]) -> WidgetResult:
        """Households per income bracket for the selection."""
        try:
            zips = None
            if not is_all(city):
                locations = self.provider.fetch_locations(state=state, city=city)
                if locations.empty:
                    return WidgetResult(status=STATUS_NO_DATA, data=[], message=NO_DATA_MESSAGE)
                zips = locations["zip"].tolist()
            rows = self.provider.fetch_income_rows(state=state, zips=zips)
        except ReferenceDataError as e:
            logger.error(f"Income distribution unavailable: {e}")
            return WidgetResult(status=STATUS_ERROR, data=[], message="Income data could not be loaded")

        distribution = build_income_distribution(rows)
        if not any(entry["total_households"] for entry in distribution):
            return WidgetResult(status=STATUS_NO_DATA, data=[], message=NO_DATA_MESSAGE)
        return WidgetResult(status=STATUS_OK, data=distribution)

    # ------------------------------------------------------------------
    # Raw data tables
    # ------------------------------------------------------------------

    def _raw_page(self, rows: pd.DataFrame, sort_by: List[str], page: int, page_size: Optional[int]) -> WidgetResult:
        page_size = page_size or settings.RAW_PAGE_SIZE
        if rows.empty:
            return WidgetResult(status=STATUS_NO_DATA, data=[], message=NO_DATA_MESSAGE)

        ordered = rows.sort_values(sort_by, kind="stable").reset_index(drop=True)
        page_df = paginate(ordered, page, page_size)
        return WidgetResult(
            status=STATUS_OK,
            data={
                "rows": dataframe_to_records(page_df),
                "total": len(ordered),
                "page": page,
                "page_size": page_size,
            },
        )

    def get_raw_divorce_rates(
        self, state: Optional[str], city: Optional[str], page: int = 1, page_size: Optional[int] = None
    ) -> WidgetResult:
        """Stored divorce-rate rows for the selection, one page at a time."""
        try:
            if is_all(state) and is_all(city):
                rows = self.provider.fetch_divorce_rates()
            else:
                locations = self.provider.fetch_locations(state=state, city=city)
                if locations.empty:
                    return WidgetResult(status=STATUS_NO_DATA, data=[], message=NO_DATA_MESSAGE)
                rows = self.provider.fetch_divorce_rates(locations["zip"].tolist())
        except ReferenceDataError as e:
            logger.error(f"Raw divorce rates unavailable: {e}")
            return WidgetResult(status=STATUS_ERROR, data=[], message="Divorce rate data could not be loaded")

        return self._raw_page(rows, ["zip", "year"], page, page_size)

    def get_raw_income_rows(
        self, state: Optional[str], city: Optional[str], page: int = 1, page_size: Optional[int] = None
    ) -> WidgetResult:
        """Stored household counts per zip and income bracket, one page at a time."""
        try:
            zips = None
            if not is_all(city):
                locations = self.provider.fetch_locations(state=state, city=city)
                if locations.empty:
                    return WidgetResult(status=STATUS_NO_DATA, data=[], message=NO_DATA_MESSAGE)
                zips = locations["zip"].tolist()
            rows = self.provider.fetch_income_rows(state=state, zips=zips)
        except ReferenceDataError as e:
            logger.error(f"Raw income rows unavailable: {e}")
            return WidgetResult(status=STATUS_ERROR, data=[], message="Income data could not be loaded")

        return self._raw_page(rows, ["zip", "income_bracket"], page, page_size)


class RequestTicket(NamedTuple):
    generation: int
    filters: Any


class RequestGate:
    """
    Last-request-wins bookkeeping for in-flight fetches.

    Every request is tagged with a generation number and the filters it was
    issued for. A result is accepted only while its ticket is the newest one
    issued; anything older is discarded.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._generation = 0
        self._filters: Any = None

    @property
    def generation(self) -> int:
        return self._generation

    def issue(self, filters: Any) -> RequestTicket:
        with self._lock:
            self._generation += 1
            self._filters = filters
            return RequestTicket(self._generation, filters)

    def is_current(self, ticket: RequestTicket) -> bool:
        with self._lock:
            return ticket.generation == self._generation and ticket.filters == self._filters

    def accept(self, ticket: RequestTicket, result: Any) -> Optional[Any]:
        """Return result if the ticket is still current, otherwise None."""
        if self.is_current(ticket):
            return result
        logger.info(
            f"Discarding stale result for generation {ticket.generation} "
            f"(current {self._generation})"
        )
        return None


class InsightsSession:
    """Holds the current selection and the latest accepted insights page."""

    def __init__(self, service: InsightsService, gate: Optional[RequestGate] = None) -> None:
        self.service = service
        self.gate = gate or RequestGate()
        self.latest: Optional[InsightPage] = None

    def refresh(self, filters: InsightFilters) -> Optional[InsightPage]:
        """Run the pipeline for filters; None if a newer selection superseded it."""
        ticket = self.gate.issue(filters)
        page = self.service.get_insights(filters)
        accepted = self.gate.accept(ticket, page)
        if accepted is not None:
            self.latest = accepted
        return accepted
