"""
Register newly listed events from the events catalogue.
"""

from __future__ import annotations

import argparse
import json
from dataclasses import replace

import requests

from db.session import get_session_factory
from parkrun_notifier.config import get_settings
from parkrun_notifier.logging_utils import configure_logging
from parkrun_notifier.services import EventCatalogSync
from parkrun_notifier.stores import SQLAlchemyEventCursorStore


def main() -> int:
    parser = argparse.ArgumentParser(description="Sync the events catalogue into the cursor store.")
    parser.add_argument(
        "--country-suffix",
        dest="country_suffix",
        default=None,
        help="Override the country website suffix (e.g. .nz).",
    )
    args = parser.parse_args()

    configure_logging()
    settings = get_settings()
    sync_settings = settings.event_sync
    if args.country_suffix:
        sync_settings = replace(sync_settings, country_url_suffix=args.country_suffix)

    with requests.Session() as http_session:
        sync = EventCatalogSync(
            store=SQLAlchemyEventCursorStore(session_factory=get_session_factory()),
            settings=sync_settings,
            site=settings.results_site,
            session=http_session,
        )
        summary = sync.sync()
    print(
        json.dumps(
            {
                "discovered": summary.discovered,
                "added": summary.added,
                "skipped": summary.skipped,
                "error": summary.error,
            },
            indent=2,
        )
    )
    return 1 if summary.error else 0


if __name__ == "__main__":
    raise SystemExit(main())
