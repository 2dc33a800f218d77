"""
HTML bodies for result and subscription emails.
"""

from __future__ import annotations

from collections.abc import Sequence
from html import escape
from urllib.parse import quote

from parkrun_notifier.config import ResultsSiteSettings
from parkrun_notifier.domain import FinisherResult


def result_subject(result: FinisherResult) -> str:
    return f"New parkrun result for {result.name}"


def render_result(
    result: FinisherResult,
    *,
    site: ResultsSiteSettings,
    unsubscribe_address: str,
) -> str:
    event = result.event
    results_url = site.results_url(event.event_id, event.run_number)
    unsubscribe_href = f"mailto:{unsubscribe_address}?subject={quote(result.finisher_id)}"
    return f"""
<p style="font-size:1.5em;">New parkrun result for {escape(result.name)} (A{escape(result.finisher_id)})</p>
<p style="font-size:1.25em;">
    <strong>Event:</strong> <a href="{escape(results_url)}">{escape(event.name)} #{event.run_number}</a><br>
    <strong>Date:</strong> {escape(event.date)}<br>
    <strong>Position:</strong> {escape(result.position)}<br>
    <strong>Time:</strong> {escape(result.time)}<br>
</p>
<p>
    To unsubscribe from result notifications for this parkrunner, send an email to {escape(unsubscribe_address)} with the parkrunner ID in the email subject or <a href="{escape(unsubscribe_href)}">click here</a>.
</p>
""".strip()


def _finisher_links(finisher_ids: Sequence[str], site: ResultsSiteSettings) -> str:
    return "".join(
        f'<li><a href="{escape(site.finisher_url(finisher_id))}">A{escape(finisher_id)}</a></li>'
        for finisher_id in finisher_ids
    )


def render_subscribed(
    finisher_ids: Sequence[str],
    *,
    site: ResultsSiteSettings,
    unsubscribe_address: str,
) -> str:
    unsubscribe_href = f"mailto:{unsubscribe_address}?subject={quote(','.join(finisher_ids))}"
    return f"""
<p style="font-size:1.25em;">
    You have successfully subscribed to parkrun result notifications for the following parkrunners:
</p>
<ul style="font-size:1.25em;">
    {_finisher_links(finisher_ids, site)}
</ul>
<p>
    To unsubscribe from result notifications for the above parkrunners, send an email to {escape(unsubscribe_address)} with a comma-separated list of the parkrunner IDs in the email subject or <a href="{escape(unsubscribe_href)}">click here</a>.
</p>
""".strip()


def render_unsubscribed(finisher_ids: Sequence[str], *, site: ResultsSiteSettings) -> str:
    return f"""
<p style="font-size:1.25em;">
    You have successfully <strong>unsubscribed</strong> from parkrun result notifications for the following parkrunners:
</p>
<ul style="font-size:1.25em;">
    {_finisher_links(finisher_ids, site)}
</ul>
""".strip()
