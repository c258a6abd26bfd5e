"""
AI Metrics Hub — API Server
=============================

JSON API over the fetched snapshots and generated reports.

Route groups:
  /api/health        - Health check with configuration status
  /api/reports/*     - Generate and list reports
  /api/snapshots/*   - Latest snapshots, seat analysis, acceptance rates
"""

import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

BASE_DIR = Path(__file__).resolve().parent.parent.parent

load_dotenv(BASE_DIR / ".env")

from scripts.lib.logger import setup_logger
from scripts.lib.utils import first_env

logger = setup_logger("api")

VERSION = "1.0.0"


def _integrations() -> dict:
    return {
        "github": bool(first_env(("GH_TOKEN", "GITHUB_TOKEN"))
                       and first_env(("ORG", "GH_ORG", "GITHUB_ORG"))),
        "cursor": bool(first_env(("CURSOR_API_KEY", "CURSOR_TOKEN"))),
    }


# ─── Lifespan ─────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app):
    """Application startup and shutdown."""
    logger.info("Starting AI Metrics Hub API...")
    for name, configured in _integrations().items():
        logger.info("%s credentials: %s", name, "configured" if configured else "not configured")
    logger.info("AI Metrics Hub API ready")
    yield
    logger.info("Shutting down AI Metrics Hub API...")


# ─── App Setup ────────────────────────────────────────────────

cors_origins = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000,http://localhost:8001"
).split(",")

app = FastAPI(
    title="AI Metrics Hub",
    version=VERSION,
    description="GitHub Copilot and Cursor adoption reporting",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Include Routers ──────────────────────────────────────────

from dashboard.api.routers.reports import router as reports_router
from dashboard.api.routers.snapshots import router as snapshots_router

app.include_router(reports_router)
app.include_router(snapshots_router)


# ─── Health ───────────────────────────────────────────────────

@app.get("/api/health", tags=["system"])
async def health():
    return {
        "status": "healthy",
        "service": "AI Metrics Hub",
        "version": VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "integrations": _integrations(),
    }
