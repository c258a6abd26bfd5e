"""
AI Metrics Hub — GitHub Copilot API Client
============================================

REST client for the Copilot seat-management and usage-metrics endpoints.

  GET /orgs/{org}/copilot/billing/seats          seat assignments + last activity
  GET /orgs/{org}/copilot/metrics                org-level daily usage metrics
  GET /users/{login}                             profile (display-name enrichment)

Pagination follows the ``Link: rel="next"`` header (100 items/page) with an
optional delay between pages. Transient failures (timeouts, connection
errors, 5xx, rate limits) are retried with exponential backoff; auth and
validation errors surface immediately.
"""
from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Tuple

import requests
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from scripts.lib.errors import (
    APIAuthError,
    APIError,
    APINotFoundError,
    APIRateLimitError,
    APITimeoutError,
    APIValidationError,
)
from scripts.lib.logger import setup_logger

logger = setup_logger("github_copilot")

GITHUB_API_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"
GITHUB_PAGE_SIZE = 100
REQUEST_TIMEOUT = 30


class APIServerError(APIError):
    """5xx from GitHub; retried."""

    def __init__(self, url: str, status_code: int):
        super().__init__(f"Server error {status_code}: {url}", code="API_SERVER_ERROR",
                         status_code=status_code, url=url)


class GitHubCopilotClient:
    """
    GitHub REST client scoped to one organization.

    Usage:
        client = GitHubCopilotClient(token=os.getenv("GH_TOKEN"), org="acme")
        seats = client.fetch_seats()
        metrics = client.fetch_org_metrics(since="2025-06-01", until="2025-06-28")
    """

    def __init__(self, token: str, org: str, base_url: str = GITHUB_API_URL,
                 delay_ms: int = 0, session: Optional[requests.Session] = None):
        self.org = org
        self.base_url = base_url.rstrip("/")
        self.delay_ms = delay_ms
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "Authorization": f"Bearer {token}",
            "User-Agent": "ai-metrics-hub",
        })

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith("http"):
            return endpoint
        return f"{self.base_url}{endpoint}"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((APITimeoutError, APIRateLimitError, APIServerError)),
        reraise=True,
    )
    def _request(self, endpoint: str, params: Optional[dict] = None) -> requests.Response:
        url = self._url(endpoint)
        try:
            resp = self.session.get(url, params=params, timeout=REQUEST_TIMEOUT)
        except requests.Timeout:
            raise APITimeoutError(url, REQUEST_TIMEOUT) from None
        except requests.ConnectionError as e:
            logger.warning("GET %s connection failed: %s", url, e)
            raise APITimeoutError(url, REQUEST_TIMEOUT) from e

        status = resp.status_code
        rate_limited = status == 429 or (
            status == 403 and resp.headers.get("X-RateLimit-Remaining") == "0"
        )
        if rate_limited:
            retry_after = int(resp.headers.get("Retry-After", 60))
            logger.warning("Rate limited (%d). Waiting %ds", status, retry_after)
            time.sleep(retry_after)
            raise APIRateLimitError(url, retry_after)
        if status in (401, 403):
            raise APIAuthError(url, status)
        if status == 404:
            raise APINotFoundError(url)
        if status == 422:
            raise APIValidationError(url, resp.text[:500])
        if status >= 500:
            raise APIServerError(url, status)
        resp.raise_for_status()
        return resp

    def _get(self, endpoint: str, params: Optional[dict] = None) -> Any:
        return self._request(endpoint, params).json()

    def _paginate_all(self, endpoint: str, items_key: Optional[str] = None,
                      params: Optional[dict] = None) -> Tuple[List[Any], Dict[str, Any]]:
        """
        Fetch every page of a list endpoint.

        Returns:
            (all items, first page body when it is an object, else {}).
        """
        url: Optional[str] = self._url(endpoint)
        page_params = dict(params or {})
        page_params["per_page"] = GITHUB_PAGE_SIZE
        items: List[Any] = []
        first_page: Dict[str, Any] = {}
        page = 0

        while url:
            page += 1
            resp = self._request(url, page_params)
            body = resp.json()
            if isinstance(body, dict):
                if page == 1:
                    first_page = body
                batch = body.get(items_key, []) if items_key else []
            else:
                batch = body or []
            items.extend(batch)
            logger.debug("Page %d: %d items (total: %d)", page, len(batch), len(items))

            url = resp.links.get("next", {}).get("url")
            page_params = None  # the next link already carries the query
            if url and self.delay_ms:
                time.sleep(self.delay_ms / 1000)

        return items, first_page

    # ─── Endpoints ──────────────────────────────────────────

    def fetch_seats(self) -> Dict[str, Any]:
        logger.info("Fetching Copilot seats for %s...", self.org)
        seats, first_page = self._paginate_all(
            f"/orgs/{self.org}/copilot/billing/seats", items_key="seats",
        )
        logger.info("Fetched %d seats", len(seats))
        return {"total_seats": first_page.get("total_seats", len(seats)), "seats": seats}

    def fetch_org_metrics(self, since: Optional[str] = None,
                          until: Optional[str] = None) -> List[dict]:
        params = {k: v for k, v in (("since", since), ("until", until)) if v}
        logger.info("Fetching Copilot metrics for %s (%s → %s)...", self.org, since, until)
        days, _ = self._paginate_all(f"/orgs/{self.org}/copilot/metrics", params=params)
        logger.info("Fetched %d metrics days", len(days))
        return days

    def fetch_user(self, login: str) -> Optional[dict]:
        try:
            return self._get(f"/users/{login}")
        except APINotFoundError:
            logger.info("GitHub user %s not found", login)
            return None
