"""
AI Metrics Hub — Reports Router
=================================
Runs report entry points on demand and lists what has been generated.

Endpoints:
  GET  /api/reports                 - Canonical report files in the output directory
  POST /api/reports/{report_type}   - Generate one report (never prompts)
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from scripts.generate_reports import REPORT_FILES, REPORTS, default_report_options
from scripts.lib.errors import ConfigError, PartialDataError
from scripts.lib.logger import setup_logger

logger = setup_logger("reports_router")

router = APIRouter(prefix="/api/reports", tags=["reports"])


class ReportRequest(BaseModel):
    lookback_days: Optional[int] = Field(None, ge=1, description="Lookback window in days")
    org: Optional[str] = None


@router.get("")
async def list_reports():
    """Canonical report files that exist, with size and modification time."""
    try:
        output_dir = Path(default_report_options().output_directory)
        files = []
        for report_type, names in REPORT_FILES.items():
            for name in names:
                path = output_dir / name
                if not path.is_file():
                    continue
                stat = path.stat()
                files.append({
                    "report": report_type,
                    "name": name,
                    "path": str(path),
                    "size_bytes": stat.st_size,
                    "modified_at": datetime.fromtimestamp(
                        stat.st_mtime, tz=timezone.utc).isoformat(),
                })
        return {"results": files, "count": len(files)}
    except Exception as e:
        logger.error("List reports failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to list reports")


@router.post("/{report_type}")
async def generate_report(report_type: str, req: Optional[ReportRequest] = None):
    """Generate a report, replacing any existing files without asking."""
    generate = REPORTS.get(report_type)
    if generate is None:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown report '{report_type}'. Available: {', '.join(REPORTS)}",
        )

    req = req or ReportRequest()
    options = default_report_options(
        lookback_days=req.lookback_days, org=req.org, skip_confirmation=True,
    )
    try:
        result = await asyncio.to_thread(generate, options)
    except ConfigError as e:
        logger.warning("%s report not configured: %s", report_type, e)
        raise HTTPException(status_code=400, detail={"error": e.message, "hint": e.hint})
    except PartialDataError as e:
        logger.warning("%s report has no data: %s", report_type, e)
        raise HTTPException(status_code=409, detail={"error": e.message, "platform": e.platform})
    except Exception as e:
        logger.error("Generate %s report failed: %s", report_type, e, exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to generate {report_type} report")

    return result.model_dump(mode="json")
