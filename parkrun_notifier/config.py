"""
parkrun_notifier/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache

from db.config import StoreSettings, get_store_settings, load_env_files

DEFAULT_USER_AGENT = "Mozilla/5.0 (Maemo; Linux armv7l; rv:10.0)"


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class ResultsSiteSettings:
    """
    Results website fetch settings.
    """

    base_url: str = "https://www.parkrun.co.nz"
    user_agent: str = DEFAULT_USER_AGENT
    timeout_seconds: float = 15.0
    rate_limit_per_second: float = 2.0

    def results_url(self, event_id: str, run_number: int) -> str:
        return f"{self.base_url.rstrip('/')}/{event_id}/results/{run_number}/"

    def finisher_url(self, finisher_id: str) -> str:
        return f"{self.base_url.rstrip('/')}/parkrunner/{finisher_id}/"


@dataclass(frozen=True)
class MailjetSettings:
    """
    Mailjet Send API settings and sender identity.
    """

    api_url: str = "https://api.mailjet.com/v3.1/send"
    api_key_public: str | None = None
    api_key_private: str | None = None
    sender_email: str = "noreply@parkrun.rav2040.xyz"
    sender_name: str = "Parkrun Notifier"
    unsubscribe_address: str = "unsubscribe@parkrun.rav2040.xyz"
    timeout_seconds: float = 15.0


@dataclass(frozen=True)
class PipelineSettings:
    """
    Concurrency limits and local calendar for the scan pipeline.
    """

    event_concurrency: int = 4
    dispatch_concurrency: int = 8
    timezone: str = "Pacific/Auckland"


@dataclass(frozen=True)
class EventSyncSettings:
    """
    Events catalogue used to discover new events.
    """

    catalogue_url: str = "https://images.parkrun.com/events.json"
    country_url_suffix: str = ".nz"


@dataclass(frozen=True)
class SchedulerSettings:
    """
    Cron window for the results scan job.
    """

    results_day_of_week: str = "*"
    results_hours: str = "9-23"
    results_minute: str = "*/5"


@dataclass(frozen=True)
class NotifierSettings:
    """
    Complete runtime configuration for the notifier.
    """

    results_site: ResultsSiteSettings = field(default_factory=ResultsSiteSettings)
    stores: StoreSettings = field(default_factory=StoreSettings)
    mailjet: MailjetSettings = field(default_factory=MailjetSettings)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    event_sync: EventSyncSettings = field(default_factory=EventSyncSettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)


def _results_site_settings() -> ResultsSiteSettings:
    return ResultsSiteSettings(
        base_url=_get_str_env("RESULTS_BASE_URL", "https://www.parkrun.co.nz"),
        user_agent=_get_str_env("RESULTS_USER_AGENT", DEFAULT_USER_AGENT),
        timeout_seconds=max(1.0, _get_float_env("RESULTS_TIMEOUT_SECONDS", 15.0)),
        rate_limit_per_second=max(0.1, _get_float_env("RESULTS_RATE_LIMIT_PER_SECOND", 2.0)),
    )


def _mailjet_settings() -> MailjetSettings:
    return MailjetSettings(
        api_url=_get_str_env("MAILJET_API_URL", "https://api.mailjet.com/v3.1/send"),
        api_key_public=_get_optional_str_env("MAILJET_API_KEY_PUBLIC"),
        api_key_private=_get_optional_str_env("MAILJET_API_KEY_PRIVATE"),
        sender_email=_get_str_env("MAILJET_SENDER_EMAIL", "noreply@parkrun.rav2040.xyz"),
        sender_name=_get_str_env("MAILJET_SENDER_NAME", "Parkrun Notifier"),
        unsubscribe_address=_get_str_env("UNSUBSCRIBE_ADDRESS", "unsubscribe@parkrun.rav2040.xyz"),
        timeout_seconds=max(1.0, _get_float_env("MAILJET_TIMEOUT_SECONDS", 15.0)),
    )


def _pipeline_settings() -> PipelineSettings:
    return PipelineSettings(
        event_concurrency=max(1, _get_int_env("PIPELINE_EVENT_CONCURRENCY", 4)),
        dispatch_concurrency=max(1, _get_int_env("PIPELINE_DISPATCH_CONCURRENCY", 8)),
        timezone=_get_str_env("TZ", "Pacific/Auckland"),
    )


def _event_sync_settings() -> EventSyncSettings:
    return EventSyncSettings(
        catalogue_url=_get_str_env("EVENTS_CATALOGUE_URL", "https://images.parkrun.com/events.json"),
        country_url_suffix=_get_str_env("EVENTS_COUNTRY_URL_SUFFIX", ".nz"),
    )


def _scheduler_settings() -> SchedulerSettings:
    return SchedulerSettings(
        results_day_of_week=_get_str_env("SCHEDULER_RESULTS_DAY_OF_WEEK", "*"),
        results_hours=_get_str_env("SCHEDULER_RESULTS_HOURS", "9-23"),
        results_minute=_get_str_env("SCHEDULER_RESULTS_MINUTE", "*/5"),
    )


@lru_cache(maxsize=1)
def get_settings() -> NotifierSettings:
    """
    Return cached notifier settings from environment variables.
    """

    return NotifierSettings(
        results_site=_results_site_settings(),
        stores=get_store_settings(),
        mailjet=_mailjet_settings(),
        pipeline=_pipeline_settings(),
        event_sync=_event_sync_settings(),
        scheduler=_scheduler_settings(),
    )
