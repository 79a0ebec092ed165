"""Combine per-key results into a sorted, totaled Report."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Sequence

from usage_monitor.models import Report, Totals, UsageFailure, UsageResult, UsageSuccess

REPORT_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_report_time(now: datetime, offset_hours: int = 8) -> str:
    """Shift to the fixed display offset and format without a zone suffix."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone(timedelta(hours=offset_hours))).strftime(REPORT_TIME_FORMAT)


def compute_totals(successes: Sequence[UsageSuccess]) -> Totals:
    return Totals(
        total_used=sum(r.used for r in successes),
        total_allowance=sum(r.allowance for r in successes),
        total_remaining=sum(r.remaining for r in successes),
    )


def aggregate(
    results: Sequence[UsageResult],
    now: Optional[Callable[[], datetime]] = None,
    offset_hours: int = 8,
) -> Report:
    """Successes sorted by remaining allowance (descending), then failures in input order.

    key_count counts every credential considered, failures included.
    """
    generated_at = format_report_time((now or _utcnow)(), offset_hours)
    successes = [r for r in results if isinstance(r, UsageSuccess)]
    failures = [r for r in results if isinstance(r, UsageFailure)]
    # sorted() is stable with reverse=True, so ties keep input order
    ordered = sorted(successes, key=lambda r: r.remaining, reverse=True)
    return Report(
        generated_at=generated_at,
        key_count=len(results),
        totals=compute_totals(successes),
        entries=tuple(ordered) + tuple(failures),
    )
