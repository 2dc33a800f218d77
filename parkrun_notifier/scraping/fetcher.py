"""
HTTP fetcher for one event run's results page.
"""

from __future__ import annotations

import logging

import requests

from parkrun_notifier.config import ResultsSiteSettings
from parkrun_notifier.errors import TransientFetchError
from parkrun_notifier.logging_utils import log_event
from parkrun_notifier.scraping.rate_limiter import HostRateLimiter

logger = logging.getLogger(__name__)


class ResultFetcher:
    """
    Single-attempt GET of a results page with a fixed client signature.

    Failures are not retried here: the cursor is untouched, so the next
    scheduled run picks the same run number up again.
    """

    def __init__(
        self,
        *,
        settings: ResultsSiteSettings,
        session: requests.Session | None = None,
        rate_limiter: HostRateLimiter | None = None,
    ) -> None:
        self._settings = settings
        self._session = session or requests.Session()
        self._rate_limiter = rate_limiter or HostRateLimiter(
            rate_limit_per_second=settings.rate_limit_per_second
        )
        self._headers = {"User-Agent": settings.user_agent}

    def fetch(self, event_id: str, run_number: int) -> str:
        url = self._settings.results_url(event_id, run_number)
        self._rate_limiter.wait(url)

        try:
            response = self._session.get(
                url,
                headers=self._headers,
                timeout=self._settings.timeout_seconds,
                allow_redirects=True,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            log_event(
                logger,
                logging.WARNING,
                "results_fetch_failed",
                event_id=event_id,
                run_number=run_number,
                url=url,
                status=status_code,
                error=str(exc),
            )
            raise TransientFetchError(f"Failed to fetch {url}: {exc}") from exc

        return response.text
