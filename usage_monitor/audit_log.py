"""Structured audit trail for report builds, fetch failures and key changes.

Events are buffered and appended to a JSON-lines file on flush(). Without a file the
most recent events stay in memory. Only key ids and masked keys are ever recorded.
"""

from __future__ import annotations

import json
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from usage_monitor.models import Report, UsageFailure


class AuditLog:
    MAX_SIZE = 10 * 1024 * 1024  # rotate the file past 10 MB
    MAX_BUFFERED = 1000

    def __init__(self, path: Optional[Path] = None):
        self.path = path
        self._events: deque[dict] = deque(maxlen=None if path else self.MAX_BUFFERED)

    def record(self, event: str, **fields: Any) -> None:
        """Add one event. Empty fields are omitted; floats are rounded to 2 places."""
        entry: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "event": event,
        }
        for name, value in fields.items():
            if value is None or value == "":
                continue
            entry[name] = round(value, 2) if isinstance(value, float) else value
        self._events.append(entry)

    def report_built(self, report: Report, latency_ms: float) -> None:
        failed = len(report.failures)
        self.record(
            "report_built",
            keys=report.key_count,
            ok=report.key_count - failed,
            failed=failed,
            latency_ms=latency_ms,
        )

    def fetch_failed(self, result: UsageFailure) -> None:
        self.record("fetch_failed", key_id=result.id, key=result.masked_key, error=result.error)

    def flush(self) -> None:
        """Append buffered events to the log file, rotating if oversized."""
        if self.path is None or not self._events:
            return
        if self.path.is_symlink():
            self._events.clear()
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self.path.exists() and self.path.stat().st_size > self.MAX_SIZE:
            rotated = self.path.with_suffix(".log.1")
            if rotated.exists():
                rotated.unlink()
            self.path.rename(rotated)
        with self.path.open("a") as f:
            for entry in self._events:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        self._events.clear()

    @property
    def events(self) -> list[dict]:
        return list(self._events)
