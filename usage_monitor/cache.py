"""Single-slot TTL cache for the most recent Report.

Expiry is an absolute timestamp compared against an injectable clock, so tests can
age the cache deterministically.
"""

from __future__ import annotations

import time
from typing import Callable, Optional

from usage_monitor.models import Report


class ReportCache:
    """Holds at most one report. The slot is replaced whole, never mutated."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entry: Optional[tuple[Report, float]] = None

    def get(self) -> Optional[Report]:
        entry = self._entry
        if entry and self._clock() < entry[1]:
            return entry[0]
        self._entry = None
        return None

    def put(self, report: Report, ttl: float) -> None:
        self._entry = (report, self._clock() + ttl)
