"""Billing platform gateway helpers for estimates.

This module talks to the billing platform's REST API with ``requests``. It
exchanges the long-lived refresh credential for a bearer token and walks the
paged estimate listing of each organization.
"""

from __future__ import annotations  # Enable postponed evaluation of annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterator

import requests

from sales_sync.classify import record_year
from sales_sync.config import Organization, SyncConfig
from sales_sync.errors import AuthError, PageFetchError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EstimatePage:
    """One page of raw estimates for an organization."""

    organization: Organization
    number: int  # 1-based page number
    estimates: list[dict[str, Any]]
    has_more: bool  # As reported by the provider


class TokenProvider:
    """Exchange the refresh credential for a short-lived access token."""

    def __init__(self, config: SyncConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self.session = session or requests.Session()

    def acquire(self) -> str:
        """Perform one refresh-token grant and return the access token."""
        missing = self.config.missing_credentials()
        if missing:
            raise AuthError(f"Missing credentials: {', '.join(missing)}")

        url = f"{self.config.accounts_url.rstrip('/')}/oauth/v2/token"
        params = {
            "refresh_token": self.config.refresh_token,
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            "grant_type": "refresh_token",
        }
        try:
            resp = self.session.post(url, params=params, timeout=self.config.request_timeout)
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise AuthError(f"Token refresh failed: {exc}") from exc

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise AuthError(f"Token refresh failed: {data}")
        logger.info("Access token acquired")
        return token


def _page_before_window(estimates: list[dict[str, Any]], floor: int) -> bool:
    """True when the first and last estimates both predate the retention window."""
    first_year = record_year(estimates[0])
    last_year = record_year(estimates[-1])
    return (
        first_year is not None
        and last_year is not None
        and first_year < floor
        and last_year < floor
    )


class EstimatePaginator:
    """Walk the estimate listing of one organization page by page.

    Pages are requested lazily: the next request is only sent once the caller
    has finished with the current page, so at most one page is held in memory.

    Pagination stops when the provider reports no more pages, when a page is
    empty, or when a whole page predates the retention window. That last rule
    assumes the listing is ordered by date; if the provider ever returns
    estimates out of date order it can stop early and miss older records that
    are still in the window.
    """

    def __init__(self, config: SyncConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self.session = session or requests.Session()

    def _fetch(self, org: Organization, page: int, token: str) -> dict[str, Any]:
        url = f"{self.config.api_url.rstrip('/')}/estimates"
        params = {
            "organization_id": org.id,
            "page": page,
            "per_page": self.config.page_size,
        }
        headers = {"Authorization": f"Bearer {token}"}
        try:
            resp = self.session.get(
                url, params=params, headers=headers, timeout=self.config.request_timeout
            )
        except requests.RequestException as exc:
            raise PageFetchError(org.office, page, str(exc)) from exc
        if not resp.ok:
            raise PageFetchError(org.office, page, resp.text or f"HTTP {resp.status_code}")
        try:
            return resp.json()
        except ValueError as exc:
            raise PageFetchError(org.office, page, f"invalid JSON: {exc}") from exc

    def pages(
        self, org: Organization, token: str, floor: int | None = None
    ) -> Iterator[EstimatePage]:
        """Yield pages for ``org``; raise :class:`PageFetchError` on a failed page.

        ``floor`` is the oldest retained year; it defaults to the config's window.
        """
        floor = self.config.retention_floor if floor is None else floor
        page = 1
        while True:
            data = self._fetch(org, page, token)
            estimates = data.get("estimates") or []
            if not estimates:
                return
            has_more = bool((data.get("page_context") or {}).get("has_more_page", False))
            logger.debug("%s p.%d: %d estimates", org.office, page, len(estimates))
            yield EstimatePage(org, page, estimates, has_more)

            if _page_before_window(estimates, floor):
                logger.info("%s p.%d predates %d; stopping", org.office, page, floor)
                return
            if not has_more:
                return
            page += 1


__all__ = ["EstimatePage", "EstimatePaginator", "TokenProvider"]
