"""
AI Metrics Hub — Pipeline Orchestrator
=======================================
One-shot run: fetch fresh snapshots from every configured platform, then
regenerate every report.

Phases:
    1. Fetch    (parallel)   GitHub Copilot seats/metrics, Cursor usage + members
    2. Reports  (sequential) every report in generate_reports.REPORTS

A fetch step whose credentials are missing is skipped with a hint rather
than failing the run. Existing report files are confirmed once, up front.

Usage:
    python scripts/pipeline_orchestrator.py                # full pipeline
    python scripts/pipeline_orchestrator.py --phase fetch  # fetch only
    python scripts/pipeline_orchestrator.py --skip-fetch --yes
    python scripts/pipeline_orchestrator.py --dry-run
"""
from __future__ import annotations

import argparse
import asyncio
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(BASE_DIR))

load_dotenv(BASE_DIR / ".env")

from models.metrics_models import ReportOptions
from scripts.fetch_cursor import run_cursor_fetch
from scripts.fetch_github_copilot import ORG_ENV_VARS, TOKEN_ENV_VARS, run_github_fetch
from scripts.generate_reports import REPORT_FILES, REPORTS, default_report_options
from scripts.lib.errors import ConfigError, MetricsHubError, PipelineStepError
from scripts.lib.logger import setup_logger
from scripts.lib.prompt import confirm_overwrite_many
from scripts.lib.utils import first_env

logger = setup_logger("pipeline_orchestrator")

CURSOR_ENV_VARS = ("CURSOR_API_KEY", "CURSOR_TOKEN")


# ---------------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------------

def _step(name: str, status: str, duration: float = 0.0,
          error: Optional[str] = None) -> dict:
    return {"name": name, "status": status, "duration_s": round(duration, 2), "error": error}


def _missing_credentials() -> Dict[str, str]:
    """Fetch step name -> remediation hint, for each step that cannot run."""
    missing = {}
    if not first_env(TOKEN_ENV_VARS) or not first_env(ORG_ENV_VARS):
        missing["GitHub Copilot"] = "Set GH_TOKEN and GH_ORG in .env to fetch Copilot data"
    if not first_env(CURSOR_ENV_VARS):
        missing["Cursor"] = "Set CURSOR_API_KEY in .env to fetch Cursor usage"
    return missing


# ---------------------------------------------------------------------------
# Fetch phase
# ---------------------------------------------------------------------------

async def run_fetch_phase(data_dir: Path, days: int = 7, dry_run: bool = False,
                          now: Optional[datetime] = None) -> List[dict]:
    """
    Run the platform fetchers concurrently.

    The GitHub client is synchronous (requests) and runs in a worker thread;
    the Cursor client is native asyncio. One fetcher failing never cancels
    the other.
    """
    now = now or datetime.now(timezone.utc)
    missing = _missing_credentials()
    jobs = {
        "GitHub Copilot": lambda: asyncio.to_thread(
            run_github_fetch, data_dir=data_dir, days=days, now=now),
        "Cursor": lambda: run_cursor_fetch(periods=("weekly", "monthly"), data_dir=data_dir,
                                     now=now, include_members=True),
    }

    results: List[dict] = []
    runnable = []
    for name, job in jobs.items():
        if name in missing:
            logger.warning("Skipping %s fetch: %s", name, missing[name])
            results.append(_step(name, "skipped", error=missing[name]))
        elif dry_run:
            logger.info("[DRY RUN] Would fetch %s", name)
            results.append(_step(name, "skipped"))
        else:
            runnable.append((name, job))

    async def _timed(name: str, job: Callable) -> dict:
        start = time.time()
        try:
            written = await job()
        except Exception as e:
            duration = time.time() - start
            error = PipelineStepError(name, e)
            logger.error("%s fetch failed in %.1fs: %s", name, duration, e)
            return _step(name, "failed", duration, error.message)
        duration = time.time() - start
        logger.info("%s fetch completed in %.1fs (%s)", name, duration,
                    ", ".join(sorted(written)) or "nothing written")
        return _step(name, "success", duration)

    results.extend(await asyncio.gather(*(_timed(name, job) for name, job in runnable)))
    return results


# ---------------------------------------------------------------------------
# Reports phase
# ---------------------------------------------------------------------------

def confirm_report_overwrites(options: ReportOptions,
                              ask: Callable[[str], str] = input) -> bool:
    """One prompt for every canonical report file that already exists."""
    if options.skip_confirmation:
        return True
    paths = [Path(options.output_directory) / name
             for files in REPORT_FILES.values() for name in files]
    if ask is input and not any(p.exists() for p in paths):
        return True
    if ask is input and (sys.stdin is None or not sys.stdin.isatty()):
        logger.warning("Report files exist and stdin is not interactive; "
                       "pass --yes to overwrite them")
        return False
    return confirm_overwrite_many(paths, ask=ask)


def run_reports_phase(options: ReportOptions, dry_run: bool = False,
                      now: Optional[datetime] = None) -> List[dict]:
    """Generate every report in order. Assumes overwrites were already confirmed."""
    now = now or datetime.now(timezone.utc)
    options = options.model_copy(update={"skip_confirmation": True})
    results: List[dict] = []

    for name, generate in REPORTS.items():
        if dry_run:
            logger.info("[DRY RUN] Would generate %s report", name)
            results.append(_step(name, "skipped"))
            continue

        start = time.time()
        try:
            result = generate(options, now=now)
        except ConfigError:
            raise
        except MetricsHubError as e:
            duration = time.time() - start
            logger.warning("%s report failed in %.1fs: %s; continuing pipeline",
                           name, duration, e)
            results.append(_step(name, "failed", duration, str(e)))
            continue

        duration = time.time() - start
        for warning in result.warnings:
            logger.warning("%s: %s", name, warning)
        logger.info("%s report written to %s in %.1fs", name, result.output_path, duration)
        results.append(_step(name, "success", duration))

    return results


# ---------------------------------------------------------------------------
# Main pipeline
# ---------------------------------------------------------------------------

def run_pipeline(options: ReportOptions, phase: Optional[str] = None,
                 skip_fetch: bool = False, dry_run: bool = False,
                 now: Optional[datetime] = None,
                 ask: Callable[[str], str] = input) -> Optional[List[dict]]:
    """
    Run the selected phases; returns every step result, or None when the
    report overwrite prompt was declined.
    """
    now = now or datetime.now(timezone.utc)
    run_fetch = phase == "fetch" or (phase is None and not skip_fetch)
    run_reports = phase in (None, "reports")

    if run_reports and not dry_run and not confirm_report_overwrites(options, ask=ask):
        logger.info("Report overwrite declined; pipeline cancelled")
        return None

    steps: List[dict] = []
    if run_fetch:
        logger.info("-" * 40)
        logger.info("Phase: Fetch (parallel)")
        logger.info("-" * 40)
        steps.extend(asyncio.run(run_fetch_phase(
            Path(options.data_directory), days=options.lookback_days,
            dry_run=dry_run, now=now,
        )))
    if run_reports:
        logger.info("-" * 40)
        logger.info("Phase: Reports")
        logger.info("-" * 40)
        steps.extend(run_reports_phase(options, dry_run=dry_run, now=now))
    return steps


def main():
    parser = argparse.ArgumentParser(description="AI Metrics Hub Pipeline Orchestrator")
    parser.add_argument("--phase", choices=["fetch", "reports"],
                        help="Run only a specific phase")
    parser.add_argument("--skip-fetch", action="store_true", help="Skip the fetch phase")
    parser.add_argument("--dry-run", action="store_true", help="Log steps without executing")
    parser.add_argument("--days", type=int, help="Lookback window in days (default: 7)")
    parser.add_argument("--yes", action="store_true", help="Overwrite reports without prompting")
    args = parser.parse_args()

    logger.info("=" * 60)
    logger.info("  AI METRICS HUB — Pipeline Orchestrator")
    logger.info("=" * 60)
    if args.dry_run:
        logger.info("  Mode: DRY RUN")

    options = default_report_options(lookback_days=args.days, skip_confirmation=args.yes)
    pipeline_start = time.time()
    try:
        steps = run_pipeline(options, phase=args.phase, skip_fetch=args.skip_fetch,
                             dry_run=args.dry_run)
    except ConfigError as e:
        logger.error("%s", e)
        if e.hint:
            logger.error("Hint: %s", e.hint)
        sys.exit(2)

    if steps is None:
        sys.exit(0)

    total = time.time() - pipeline_start
    succeeded = sum(1 for s in steps if s["status"] == "success")
    failed = sum(1 for s in steps if s["status"] == "failed")
    skipped = sum(1 for s in steps if s["status"] == "skipped")

    logger.info("=" * 60)
    logger.info("  PIPELINE COMPLETE — %.1fs", total)
    logger.info("  %d succeeded, %d failed, %d skipped", succeeded, failed, skipped)
    for step in steps:
        if step["error"]:
            logger.info("  %-18s %-8s %s", step["name"], step["status"], step["error"])
    logger.info("=" * 60)

    if failed and not succeeded:
        sys.exit(1)


if __name__ == "__main__":
    main()
