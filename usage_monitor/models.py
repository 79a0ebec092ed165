"""Data models for usage reports.

- UsageResult is a tagged union of two frozen dataclasses: a result is either a
  UsageSuccess or a UsageFailure, never a struct with optional fields.
- to_dict() emits the wire field names in a fixed order so JSON output is stable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, Literal, Union


@dataclass(frozen=True)
class Credential:
    id: str
    secret: str = field(repr=False)


@dataclass(frozen=True)
class UsageSuccess:
    kind: ClassVar[Literal["success"]] = "success"

    id: str
    masked_key: str
    start_date: str
    end_date: str
    used: float = 0
    allowance: float = 0
    used_ratio: float = 0

    @property
    def remaining(self) -> float:
        return max(0, self.allowance - self.used)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.masked_key,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "orgTotalTokensUsed": self.used,
            "totalAllowance": self.allowance,
            "usedRatio": self.used_ratio,
        }


@dataclass(frozen=True)
class UsageFailure:
    kind: ClassVar[Literal["failure"]] = "failure"

    id: str
    masked_key: str
    error: str

    def to_dict(self) -> dict:
        return {"id": self.id, "key": self.masked_key, "error": self.error}


UsageResult = Union[UsageSuccess, UsageFailure]


@dataclass(frozen=True)
class Totals:
    total_used: float = 0
    total_allowance: float = 0
    total_remaining: float = 0

    def to_dict(self) -> dict:
        return {
            "total_orgTotalTokensUsed": self.total_used,
            "total_totalAllowance": self.total_allowance,
            "totalRemaining": self.total_remaining,
        }


@dataclass(frozen=True)
class Report:
    """Aggregated usage snapshot. Immutable once built."""

    generated_at: str
    key_count: int
    totals: Totals
    entries: tuple[UsageResult, ...] = ()

    @property
    def failures(self) -> list[UsageFailure]:
        return [e for e in self.entries if isinstance(e, UsageFailure)]

    def to_dict(self) -> dict:
        return {
            "update_time": self.generated_at,
            "total_count": self.key_count,
            "totals": self.totals.to_dict(),
            "data": [e.to_dict() for e in self.entries],
        }

