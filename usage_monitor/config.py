"""Runtime settings loaded from the environment and an optional .env file.

Values in the process environment win over the .env file, so a deployment can
override a checked-in .env without editing it.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Optional, TypeVar

from dotenv import dotenv_values

from usage_monitor.errors import ConfigError

_PREFIX = "USAGE_MONITOR_"

DEFAULT_ENDPOINT = "https://app.factory.ai/api/organization/members/chat-usage"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/141.0.0.0 Safari/537.36"
)
DEFAULT_STORE = Path.home() / ".local" / "share" / "usage-monitor" / "keys.json"

T = TypeVar("T")


@dataclass(frozen=True)
class Settings:
    endpoint: str = DEFAULT_ENDPOINT
    user_agent: str = DEFAULT_USER_AGENT
    tz_offset_hours: int = 8
    mask_prefix: int = 4
    mask_suffix: int = 4
    refresh_interval: float = 60.0
    concurrency: int = 10
    batch_delay: float = 0.1
    timeout: float = 30.0
    max_retries: int = 2
    retry_backoff: float = 1.0
    store_path: Path = DEFAULT_STORE
    audit_log_path: Optional[Path] = None
    port: int = 8460

    @property
    def cache_ttl(self) -> float:
        """Report cache lifetime: twice the polling interval."""
        return self.refresh_interval * 2

    @classmethod
    def load(cls, env_file: Optional[Path] = None,
             environ: Optional[Mapping[str, str]] = None) -> "Settings":
        values: dict[str, str] = {}
        if env_file is not None and env_file.is_file():
            values.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
        values.update(os.environ if environ is None else environ)

        def get(name: str, parse: Callable[[str], T], default: T, expected: str) -> T:
            raw = values.get(_PREFIX + name)
            if raw is None or raw == "":
                return default
            try:
                return parse(raw)
            except ValueError:
                raise ConfigError(_PREFIX + name, raw, expected) from None

        defaults = cls()
        audit_log = values.get(_PREFIX + "AUDIT_LOG")
        return cls(
            endpoint=get("ENDPOINT", str, defaults.endpoint, "URL"),
            user_agent=get("USER_AGENT", str, defaults.user_agent, "string"),
            tz_offset_hours=get("TZ_OFFSET_HOURS", int, defaults.tz_offset_hours, "integer"),
            mask_prefix=get("MASK_PREFIX", _non_negative_int, defaults.mask_prefix, "non-negative integer"),
            mask_suffix=get("MASK_SUFFIX", _non_negative_int, defaults.mask_suffix, "non-negative integer"),
            refresh_interval=get("REFRESH_INTERVAL", _positive_float, defaults.refresh_interval, "positive number"),
            concurrency=get("CONCURRENCY", _positive_int, defaults.concurrency, "positive integer"),
            batch_delay=get("BATCH_DELAY", _non_negative_float, defaults.batch_delay, "non-negative number"),
            timeout=get("TIMEOUT", _positive_float, defaults.timeout, "positive number"),
            max_retries=get("MAX_RETRIES", _non_negative_int, defaults.max_retries, "non-negative integer"),
            retry_backoff=get("RETRY_BACKOFF", _non_negative_float, defaults.retry_backoff, "non-negative number"),
            store_path=get("STORE", _path, defaults.store_path, "path"),
            audit_log_path=_path(audit_log) if audit_log else None,
            port=get("PORT", _positive_int, defaults.port, "port number"),
        )


def _path(raw: str) -> Path:
    return Path(raw).expanduser()


def _positive_int(raw: str) -> int:
    value = int(raw)
    if value < 1:
        raise ValueError(raw)
    return value


def _non_negative_int(raw: str) -> int:
    value = int(raw)
    if value < 0:
        raise ValueError(raw)
    return value


def _positive_float(raw: str) -> float:
    value = float(raw)
    if value <= 0:
        raise ValueError(raw)
    return value


def _non_negative_float(raw: str) -> float:
    value = float(raw)
    if value < 0:
        raise ValueError(raw)
    return value
