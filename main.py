"""
AI Metrics Hub — Entry Point
==============================

Run: python main.py
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent / ".env")

from scripts.lib.logger import setup_logger

logger = setup_logger("ai-metrics-hub")

PORT = int(os.getenv("DASHBOARD_PORT", "8001"))

if __name__ == "__main__":
    import uvicorn

    logger.info("=" * 60)
    logger.info("  AI METRICS HUB — Copilot & Cursor Adoption")
    logger.info("=" * 60)
    logger.info("  Environment : %s", os.getenv("ENVIRONMENT", "development"))
    logger.info("  Server      : http://0.0.0.0:%d", PORT)
    logger.info("  API Docs    : http://localhost:%d/docs", PORT)
    logger.info("  Debug       : %s", os.getenv("DEBUG", "false"))
    logger.info("=" * 60)

    uvicorn.run(
        "dashboard.api.main:app",
        host="0.0.0.0",
        port=PORT,
        reload=os.getenv("DEBUG", "false").lower() == "true",
    )
