"""
DivorceIQ Market Atlas - GeoJSON Export
Generates map-ready point GeoJSON for a selection's composite insights

Outputs:
- exports/insights_{selection}_latest.geojson (always current)
- exports/insights_{selection}_{YYYYMMDD}.geojson (versioned snapshots)
"""

import hashlib
import json
import os
import re
from datetime import datetime, timezone
from typing import Iterable, Optional, Union

import geopandas as gpd
import pandas as pd

from config.settings import get_settings, is_all
from src.api.services.insights_service import INSIGHT_COLUMNS, InsightsService
from src.processing.classification import filter_by_tiers, rank_by_sam
from src.utils.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()


def build_insights_geodataframe(insights: pd.DataFrame) -> gpd.GeoDataFrame:
    """
    Convert insight rows to WGS84 points.

    Rows without usable coordinates are logged and skipped.

    Args:
        insights: Scored and sized insight rows with lat/lng

    Returns:
        GeoDataFrame with one point feature per located zip
    """
    columns = [c for c in INSIGHT_COLUMNS if c in insights.columns]
    df = insights[columns].copy()

    lat = pd.to_numeric(df["lat"], errors="coerce")
    lng = pd.to_numeric(df["lng"], errors="coerce")
    located = lat.notna() & lng.notna()

    if not located.all():
        logger.warning(f"Skipping {int((~located).sum())} insights without coordinates")

    df = df[located].reset_index(drop=True)
    gdf = gpd.GeoDataFrame(
        df.drop(columns=["lat", "lng"]),
        geometry=gpd.points_from_xy(lng[located], lat[located]),
        crs="EPSG:4326",
    )

    # Fill NaN with None (for JSON null)
    gdf = gdf.astype({c: object for c in gdf.columns if c != "geometry"})
    gdf = gdf.where(pd.notna(gdf), None)

    return gdf


def export_geojson(gdf: gpd.GeoDataFrame, output_path: str, indent: Optional[int] = None) -> str:
    """
    Write a GeoDataFrame as a GeoJSON FeatureCollection.

    Args:
        gdf: GeoDataFrame to export
        output_path: Output file path
        indent: JSON indentation (None for compact, 2 for readable)

    Returns:
        Path to exported file
    """
    logger.info(f"Exporting GeoJSON to {output_path}")

    os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)

    payload = json.loads(gdf.to_json(na="null"))
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=indent)

    file_size = os.path.getsize(output_path)
    logger.info(f"Exported {len(gdf)} features, file size: {file_size / 1024:.1f} KB")

    return output_path


def calculate_file_checksum(file_path: str) -> str:
    """
    Calculate SHA256 checksum of file.

    Args:
        file_path: Path to file

    Returns:
        Hex digest of checksum
    """
    sha256 = hashlib.sha256()

    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha256.update(chunk)

    return sha256.hexdigest()


def selection_slug(state: Optional[str], city: Optional[str]) -> str:
    """File-name fragment for a selection, e.g. 'florida_tampa' or 'all'."""
    parts = [p for p in (state, city) if not is_all(p)]
    if not parts:
        return "all"
    return "_".join(re.sub(r"[^a-z0-9]+", "-", p.strip().lower()).strip("-") for p in parts)


def run_geojson_export(
    state: Optional[str] = None,
    city: Optional[str] = None,
    tiers: Optional[Union[str, Iterable[str]]] = None,
    versioned: bool = True,
    service: Optional[InsightsService] = None,
) -> dict:
    """
    Export the selection's insights as point GeoJSON.

    Args:
        state: State name or 'all'
        city: City name or 'all'
        tiers: Tier filter (empty or 'all' for every tier)
        versioned: If True, create dated snapshot in addition to 'latest'
        service: Insights service (defaults to one on the configured database)

    Returns:
        Dict with export metadata
    """
    service = service or InsightsService()
    logger.info(f"Starting GeoJSON export (state={state}, city={city}, tiers={tiers})")

    scored, warnings = service.scored_locations(state, city)
    if scored.empty:
        raise ValueError(f"No data for this filter (state={state}, city={city})")

    insights = rank_by_sam(filter_by_tiers(scored, tiers))

    gdf = build_insights_geodataframe(insights)
    if gdf.empty:
        raise ValueError("No located insights available for export")

    slug = selection_slug(state, city)

    latest_path = os.path.join(settings.EXPORT_DIR, f"insights_{slug}_latest.geojson")
    export_geojson(gdf, latest_path, indent=None)  # Compact for serving

    versioned_path = None
    if versioned:
        version = datetime.now(timezone.utc).strftime("%Y%m%d")
        versioned_path = os.path.join(settings.EXPORT_DIR, f"insights_{slug}_{version}.geojson")
        export_geojson(gdf, versioned_path, indent=2)  # Readable for archive

    logger.info("GeoJSON export completed successfully")

    return {
        "selection": slug,
        "record_count": len(gdf),
        "latest_path": latest_path,
        "versioned_path": versioned_path,
        "checksum": calculate_file_checksum(latest_path),
        "warnings": warnings,
    }
