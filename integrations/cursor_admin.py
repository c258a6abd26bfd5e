"""
AI Metrics Hub — Cursor Admin API Client
==========================================

Async client for the Cursor team Admin API (basic auth, API key as username).

  POST /teams/daily-usage-data   per-user daily usage for a date range (epoch ms)
  GET  /teams/members            team member list

Configuration:
  CURSOR_API_KEY (or CURSOR_TOKEN)   admin API key
  CURSOR_BASE_URL                    defaults to https://api.cursor.com
"""
from __future__ import annotations

import asyncio
import os
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from scripts.lib.errors import APIAuthError, APIError, APIRateLimitError, ConfigError
from scripts.lib.logger import setup_logger

logger = setup_logger("cursor_admin")

CURSOR_BASE_URL = "https://api.cursor.com"


def _epoch_ms(day: date, end_of_day: bool = False) -> int:
    moment = datetime.combine(day, time.max if end_of_day else time.min, tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


class CursorAdminClient:
    """
    Usage:
        async with CursorAdminClient.from_env() as client:
            rows = await client.get_daily_usage(start, end)
    """

    def __init__(self, api_key: str, base_url: str = CURSOR_BASE_URL,
                 delay_ms: int = 0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.delay_ms = delay_ms
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            auth=(api_key, ""),
            timeout=30.0,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    @classmethod
    def from_env(cls, **kwargs) -> "CursorAdminClient":
        api_key = os.getenv("CURSOR_API_KEY") or os.getenv("CURSOR_TOKEN")
        if not api_key:
            raise ConfigError("Cursor API key is not configured",
                              hint="Set CURSOR_API_KEY (or CURSOR_TOKEN) in .env")
        base_url = os.getenv("CURSOR_BASE_URL", CURSOR_BASE_URL)
        return cls(api_key, base_url=base_url, **kwargs)

    async def __aenter__(self) -> "CursorAdminClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.TransportError,
                                       APIRateLimitError)),
        reraise=True,
    )
    async def _request(self, method: str, endpoint: str,
                       json_data: Optional[Dict] = None) -> Any:
        if self.delay_ms:
            await asyncio.sleep(self.delay_ms / 1000)
        response = await self._client.request(method, endpoint, json=json_data)

        if response.status_code in (401, 403):
            raise APIAuthError(f"{self.base_url}{endpoint}", response.status_code)
        if response.status_code == 429:
            retry_after = int(response.headers.get("Retry-After", 10))
            logger.warning("Cursor rate limit hit; waiting %ds", retry_after)
            await asyncio.sleep(retry_after)
            raise APIRateLimitError(f"{self.base_url}{endpoint}", retry_after)
        if 400 <= response.status_code < 500:
            raise APIError(
                f"Cursor API rejected {method} {endpoint}: {response.text[:300]}",
                status_code=response.status_code, url=f"{self.base_url}{endpoint}",
            )
        response.raise_for_status()
        return response.json()

    async def get_daily_usage(self, start: date, end: date) -> List[Dict[str, Any]]:
        """Per-user daily usage rows between two days, inclusive."""
        logger.info("Fetching Cursor daily usage %s → %s", start, end)
        body = await self._request("POST", "/teams/daily-usage-data", {
            "startDate": _epoch_ms(start),
            "endDate": _epoch_ms(end, end_of_day=True),
        })
        rows = body.get("data", []) if isinstance(body, dict) else []
        logger.info("Fetched %d Cursor usage rows", len(rows))
        return rows

    async def get_members(self) -> List[Dict[str, Any]]:
        body = await self._request("GET", "/teams/members")
        return body.get("teamMembers", []) if isinstance(body, dict) else []
