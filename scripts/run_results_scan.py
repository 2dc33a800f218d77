"""
Run one results scan pass from CLI.
"""

from __future__ import annotations

import json

import requests

from db.session import get_session_factory
from parkrun_notifier.config import get_settings
from parkrun_notifier.logging_utils import configure_logging
from parkrun_notifier.pipeline import build_pipeline


def main() -> int:
    configure_logging()
    with requests.Session() as http_session:
        pipeline = build_pipeline(
            get_settings(),
            session_factory=get_session_factory(),
            http_session=http_session,
        )
        summary = pipeline.run()

    payload = {
        "as_of": summary.as_of,
        "no_due_events": summary.no_due_events,
        "error": summary.error,
        "events": [
            {
                "event_id": event.event_id,
                "run_number": event.run_number,
                "status": event.status.value,
                "results_found": event.results_found,
                "finishers_matched": event.finishers_matched,
                "notifications": {
                    finisher_id: status.value
                    for finisher_id, status in event.notifications.items()
                },
                "error": event.error,
            }
            for event in summary.events
        ],
    }
    print(json.dumps(payload, indent=2))
    return 1 if summary.error else 0


if __name__ == "__main__":
    raise SystemExit(main())
