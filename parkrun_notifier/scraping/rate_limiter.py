"""
Per-host outbound request spacing shared by concurrent event scans.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from urllib.parse import urlparse


class HostRateLimiter:
    """
    Reserves request slots per host so callers are spaced by a minimum interval.

    Slots are reserved under the lock and slept outside it, so threads waiting on
    one host never block threads bound for another.
    """

    def __init__(
        self,
        *,
        rate_limit_per_second: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._min_interval = 1.0 / max(0.1, rate_limit_per_second)
        self._clock = clock
        self._sleep = sleep
        self._next_slot_by_host: dict[str, float] = {}
        self._lock = threading.Lock()

    def wait(self, url: str) -> float:
        """
        Block until the caller may request ``url``; return seconds waited.
        """

        parsed = urlparse(url)
        host = parsed.netloc.lower()
        if not host:
            return 0.0

        with self._lock:
            now = self._clock()
            slot = max(now, self._next_slot_by_host.get(host, now))
            self._next_slot_by_host[host] = slot + self._min_interval

        delay = slot - now
        if delay > 0:
            self._sleep(delay)
        return max(0.0, delay)
