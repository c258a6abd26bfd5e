"""
AI Metrics Hub — Snapshots Router
===================================
Read-only views over the newest fetched snapshots.

Endpoints:
  GET /api/snapshots/latest       - Newest file + freshness per category
  GET /api/snapshots/copilot      - Seat activity analysis
  GET /api/snapshots/acceptance   - Copilot suggestion acceptance rates
"""
from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Query

from scripts.generate_reports import default_report_options
from scripts.lib.activity_aggregator import acceptance_metrics, seat_analysis
from scripts.lib.errors import SnapshotParseError
from scripts.lib.file_discovery import (
    CATEGORIES,
    category_label,
    find_freshness_warning,
    find_latest,
)
from scripts.lib.logger import setup_logger
from scripts.lib.snapshot_loaders import load_metrics, load_seats

logger = setup_logger("snapshots_router")

router = APIRouter(prefix="/api/snapshots", tags=["snapshots"])


def _latest_or_404(category: str, options):
    path = find_latest(category, options.data_directory, options.org)
    if path is None:
        raise HTTPException(
            status_code=404,
            detail=f"No {category_label(category)} snapshot under {options.data_directory}",
        )
    return path


@router.get("/latest")
async def latest_snapshots():
    """Newest snapshot per category with its staleness, if any."""
    try:
        options = default_report_options()
        now = datetime.now(timezone.utc)
        results = {}
        for category in CATEGORIES:
            path = find_latest(category, options.data_directory, options.org)
            stale = (find_freshness_warning(path, options.stale_after_days, now,
                                            label=category_label(category))
                     if path else None)
            results[category] = {
                "path": str(path) if path else None,
                "stale": stale is not None,
                "warning": stale.message if stale else None,
            }
        return {"data_directory": str(options.data_directory), "categories": results}
    except Exception as e:
        logger.error("Latest snapshots failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to inspect snapshots")


@router.get("/copilot")
async def copilot_seats(days: int = Query(7, ge=1, le=365, description="Lookback window")):
    """Active/inactive Copilot seats and team rollups from the newest seat snapshot."""
    options = default_report_options()
    path = _latest_or_404("seats", options)
    try:
        snapshot = load_seats(path)
        analysis = seat_analysis(snapshot, datetime.now(timezone.utc), days)
    except SnapshotParseError as e:
        logger.warning("Seat snapshot unusable: %s", e)
        raise HTTPException(status_code=422, detail=e.message)
    except Exception as e:
        logger.error("Seat analysis failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to analyse Copilot seats")
    return {"source": str(path), **analysis.model_dump(mode="json")}


@router.get("/acceptance")
async def copilot_acceptance():
    """Suggestion and line acceptance rates from the newest org metrics snapshot."""
    options = default_report_options()
    path = _latest_or_404("org-metrics", options)
    try:
        stats = acceptance_metrics(load_metrics(path))
    except SnapshotParseError as e:
        logger.warning("Metrics snapshot unusable: %s", e)
        raise HTTPException(status_code=422, detail=e.message)
    except Exception as e:
        logger.error("Acceptance metrics failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to compute acceptance metrics")
    return {"source": str(path), **stats.model_dump(mode="json")}
