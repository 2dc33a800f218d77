"""
Results page fetching and parsing.
"""

from parkrun_notifier.scraping.fetcher import ResultFetcher
from parkrun_notifier.scraping.parser import ResultParser
from parkrun_notifier.scraping.rate_limiter import HostRateLimiter

__all__ = ["HostRateLimiter", "ResultFetcher", "ResultParser"]
