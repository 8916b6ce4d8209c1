"""
DivorceIQ Market Atlas - Pipeline Runner

Runs the insights pipeline for one selection from the command line.

Pipeline stages:
1. Fetch locations and scores
2. Composite scoring and tier classification
3. Market sizing (households, TAM, SAM)
4. Tier filter, SAM ranking, pagination
5. Optional GeoJSON / CSV export

Usage:
    python -m src.run_pipeline --state florida --city miami --tiers high
    python -m src.run_pipeline --state texas --export-geojson --csv exports/texas.csv
"""

import argparse
import os
import sys
from datetime import datetime
from typing import List, Optional

import pandas as pd

from config.database import test_connection
from config.settings import get_settings
from src.api.services.insights_service import (
    INSIGHT_COLUMNS,
    STATUS_ERROR,
    InsightFilters,
    InsightPage,
    InsightsService,
)
from src.export.geojson_export import run_geojson_export
from src.utils.logging import setup_logging

logger = setup_logging("pipeline")
settings = get_settings()


def check_prerequisites() -> bool:
    """
    Check that the reference database is reachable.

    Returns:
        True if all checks pass, False otherwise
    """
    logger.info("Checking prerequisites")

    if not test_connection():
        logger.error("Database connection failed")
        return False

    logger.info("Prerequisites check passed")
    return True


def run_insights(filters: InsightFilters, service: Optional[InsightsService] = None) -> InsightPage:
    """
    Run scoring, sizing and ranking for one selection.

    Args:
        filters: Selection to compute
        service: Insights service (defaults to one on the configured database)

    Returns:
        The requested page of insights
    """
    service = service or InsightsService()
    logger.info(f"Computing insights for {filters}")

    result = service.get_insights(filters)

    for warning in result.warnings:
        logger.warning(warning)

    if result.no_data:
        logger.info(result.message)
    else:
        logger.info(
            f"Insights: {len(result.insights)} of {result.total} rows "
            f"(page {filters.page}, tiers {result.tier_summary})"
        )

    return result


def write_insights_csv(result: InsightPage, path: str) -> str:
    """Write the page's insight rows to CSV (header only when empty)."""
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    df = pd.DataFrame(result.insights, columns=INSIGHT_COLUMNS)
    df.to_csv(path, index=False)
    logger.info(f"Wrote {len(df)} insight rows to {path}")
    return path


def run_export(filters: InsightFilters) -> bool:
    """
    Run GeoJSON export for the selection.

    Returns:
        True if successful, False otherwise
    """
    logger.info(f"Starting export for {filters}")

    try:
        result = run_geojson_export(
            state=filters.state,
            city=filters.city,
            tiers=None if filters.tiers is None else list(filters.tiers),
            versioned=True,
        )

        logger.info(
            f"Export complete: {result['record_count']} features, "
            f"output: {result['latest_path']}"
        )

        return True

    except ValueError as e:
        # An empty selection is not an export failure
        logger.warning(f"Export skipped: {e}")
        return True

    except Exception as e:
        logger.error(f"Export failed: {e}", exc_info=True)
        return False


def format_insights_table(result: InsightPage) -> List[str]:
    """Plain-text lines for the console summary."""
    if result.no_data:
        return [result.message or "No data for this filter"]

    lines = [f"{'zip':<7}{'city':<22}{'composite':>10}{'tier':>8}{'tam':>12}{'sam':>12}"]
    for row in result.insights:
        lines.append(
            f"{row['zip']:<7}{str(row['city'] or '')[:21]:<22}"
            f"{row['composite_score']:>10.1f}{str(row['tier'] or '-'):>8}"
            f"{row['tam']:>12,}{row['sam']:>12,}"
        )
    lines.append(f"{len(result.insights)} of {result.total} locations")
    return lines


def main():
    """Main pipeline orchestration"""

    parser = argparse.ArgumentParser(
        description="DivorceIQ Market Atlas - Insights Pipeline"
    )

    parser.add_argument("--state", type=str, default="all", help="State name (default: all)")
    parser.add_argument("--city", type=str, default="all", help="City name (default: all)")
    parser.add_argument(
        "--tiers",
        type=str,
        nargs="+",
        choices=["low", "medium", "high", "all"],
        help="Composite tiers to keep (default: all)",
    )
    parser.add_argument("--page", type=int, default=1, help="1-indexed page (default: 1)")
    parser.add_argument(
        "--page-size",
        type=int,
        default=settings.DEFAULT_PAGE_SIZE,
        help=f"Rows per page (default: {settings.DEFAULT_PAGE_SIZE})",
    )
    parser.add_argument(
        "--export-geojson",
        action="store_true",
        help="Write the selection's insights as GeoJSON to EXPORT_DIR",
    )
    parser.add_argument("--csv", type=str, help="Write the insights page to this CSV path")

    args = parser.parse_args()

    if args.page < 1 or args.page_size < 1:
        parser.error("--page and --page-size must be >= 1")

    start_time = datetime.now()
    logger.info("=" * 60)
    logger.info("DivorceIQ Market Atlas - Pipeline Start")
    logger.info(f"Time: {start_time.isoformat()}")
    logger.info(f"Arguments: {vars(args)}")
    logger.info("=" * 60)

    if not check_prerequisites():
        logger.error("Prerequisites check failed, exiting")
        sys.exit(1)

    try:
        filters = InsightFilters.create(
            state=args.state,
            city=args.city,
            tiers=args.tiers,
            page=args.page,
            page_size=args.page_size,
        )

        result = run_insights(filters)
        if result.status == STATUS_ERROR:
            logger.error(f"Insights failed: {result.message}")
            sys.exit(1)

        for line in format_insights_table(result):
            print(line)

        if args.csv:
            write_insights_csv(result, args.csv)

        if args.export_geojson and not result.no_data:
            if not run_export(filters):
                logger.error("Export failed")
                sys.exit(1)

        duration = (datetime.now() - start_time).total_seconds()
        logger.info("=" * 60)
        logger.info("PIPELINE COMPLETE")
        logger.info(f"Duration: {duration:.1f} seconds")
        logger.info("=" * 60)

        sys.exit(0)

    except KeyboardInterrupt:
        logger.warning("Pipeline interrupted by user")
        sys.exit(130)

    except Exception as e:
        logger.error(f"Pipeline failed with unhandled exception: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
