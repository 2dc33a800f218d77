"""
parkrun_notifier/services/event_sync_service.py

Discovers events from the public events catalogue and registers new ones
with a fresh cursor (run 1, never scanned).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import requests

from parkrun_notifier.config import EventSyncSettings, ResultsSiteSettings
from parkrun_notifier.errors import TransientFetchError
from parkrun_notifier.logging_utils import log_event
from parkrun_notifier.stores import SQLAlchemyEventCursorStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventSyncSummary:
    """
    Outcome of one catalogue sync.
    """

    discovered: int = 0
    added: list[str] = field(default_factory=list)
    skipped: int = 0
    error: str | None = None


class EventCatalogSync:
    """
    Registers catalogue events for one country that the cursor store does not know yet.
    """

    def __init__(
        self,
        *,
        store: SQLAlchemyEventCursorStore,
        settings: EventSyncSettings,
        site: ResultsSiteSettings,
        session: requests.Session | None = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self._site = site
        self._session = session or requests.Session()

    def sync(self) -> EventSyncSummary:
        known = self._store.known_event_ids()
        catalogue = self._load_catalogue()

        country_code = self._country_code(catalogue)
        if country_code is None:
            logger.error(
                "Country code not found for url suffix %r", self._settings.country_url_suffix
            )
            return EventSyncSummary(error="country_not_found")

        events = self._country_events(catalogue, country_code)
        if not events:
            logger.error("No events found for country code %s", country_code)
            return EventSyncSummary(error="no_events")

        logger.info("Found %d events...", len(events))
        added: list[str] = []
        skipped = 0
        for event_id, display_name in events:
            if event_id in known or not self._store.add_event(event_id, display_name):
                logger.info("Event '%s' is already known... skipping.", event_id)
                skipped += 1
                continue
            known.add(event_id)
            added.append(event_id)
            log_event(logger, logging.INFO, "event_registered", event_id=event_id, display_name=display_name)

        return EventSyncSummary(discovered=len(events), added=added, skipped=skipped)

    def _load_catalogue(self) -> dict[str, Any]:
        url = self._settings.catalogue_url
        try:
            response = self._session.get(
                url,
                headers={"User-Agent": self._site.user_agent},
                timeout=self._site.timeout_seconds,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise TransientFetchError(f"Failed to load events catalogue {url}: {exc}") from exc

        if not isinstance(payload, dict):
            raise TransientFetchError(f"Events catalogue {url} is not a JSON object")
        return payload

    def _country_code(self, catalogue: dict[str, Any]) -> int | None:
        suffix = self._settings.country_url_suffix
        for code, entry in (catalogue.get("countries") or {}).items():
            url = (entry or {}).get("url") or ""
            if url.endswith(suffix):
                try:
                    return int(code)
                except (TypeError, ValueError):
                    continue
        return None

    @staticmethod
    def _country_events(catalogue: dict[str, Any], country_code: int) -> list[tuple[str, str]]:
        features = ((catalogue.get("events") or {}).get("features")) or []
        events: list[tuple[str, str]] = []
        for feature in features:
            properties = (feature or {}).get("properties") or {}
            if properties.get("countrycode") != country_code:
                continue
            event_id = str(properties.get("eventname") or "").strip()
            display_name = str(properties.get("EventShortName") or "").strip()
            if not event_id or not display_name:
                continue
            events.append((event_id, display_name))
        return events
