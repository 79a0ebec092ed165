"""Upstream usage client — one credential, one report entry.

fetch() never raises for upstream problems. Transport errors, auth errors, other
non-2xx statuses and malformed bodies are raised internally as UpstreamFetchError
subclasses and converted to a UsageFailure at the fetch() boundary, so one bad
credential can't abort a batch run.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

import httpx

from usage_monitor.config import Settings
from usage_monitor.errors import (
    AuthError,
    MalformedResponseError,
    TransportError,
    UpstreamError,
    UpstreamFetchError,
)
from usage_monitor.models import UsageFailure, UsageResult, UsageSuccess
from usage_monitor.security import mask_key, suppress_credential_logging

Sleep = Callable[[float], Awaitable[None]]


def format_epoch_ms(value: Any) -> str:
    """Render an epoch-millisecond timestamp as a UTC ``YYYY-MM-DD``."""
    if value is None or value == "" or value is False:
        return "N/A"
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return "Invalid Date"
    try:
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc).strftime("%Y-%m-%d")
    except (OverflowError, OSError, ValueError):
        return "Invalid Date"


def _number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value or 0


class UsageClient:
    """Fetches usage for a single credential with bounded retry on HTTP 401."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.settings = settings or Settings()
        self._client = client
        self._sleep = sleep
        suppress_credential_logging()

    def mask(self, secret: str) -> str:
        return mask_key(secret, self.settings.mask_prefix, self.settings.mask_suffix)

    async def fetch(self, key_id: str, secret: str) -> UsageResult:
        masked = self.mask(secret)
        try:
            if self._client is not None:
                data = await self._fetch_with_retry(self._client, secret)
            else:
                async with httpx.AsyncClient(timeout=self.settings.timeout) as client:
                    data = await self._fetch_with_retry(client, secret)
            return self._to_success(key_id, masked, data)
        except UpstreamFetchError as exc:
            return UsageFailure(id=key_id, masked_key=masked, error=exc.message)

    async def _fetch_with_retry(self, client: httpx.AsyncClient, secret: str) -> dict:
        max_retries = self.settings.max_retries
        for attempt in range(max_retries + 1):
            try:
                return await self._request(client, secret)
            except AuthError:
                if attempt >= max_retries:
                    raise
                await self._sleep((attempt + 1) * self.settings.retry_backoff)
        raise AssertionError("unreachable")

    async def _request(self, client: httpx.AsyncClient, secret: str) -> dict:
        try:
            resp = await client.get(
                self.settings.endpoint,
                headers={
                    "Authorization": f"Bearer {secret}",
                    "User-Agent": self.settings.user_agent,
                },
            )
        except (httpx.HTTPError, httpx.InvalidURL, UnicodeEncodeError) as exc:
            # secrets that cannot be encoded into a header fail before any I/O
            raise TransportError() from exc
        if resp.status_code == 401:
            raise AuthError()
        if not resp.is_success:
            raise UpstreamError(resp.status_code)
        try:
            return resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise TransportError() from exc

    @staticmethod
    def _to_success(key_id: str, masked: str, data: Any) -> UsageSuccess:
        usage = data.get("usage") if isinstance(data, dict) else None
        standard = usage.get("standard") if isinstance(usage, dict) else None
        if not isinstance(standard, dict):
            raise MalformedResponseError()
        return UsageSuccess(
            id=key_id,
            masked_key=masked,
            start_date=format_epoch_ms(usage.get("startDate")),
            end_date=format_epoch_ms(usage.get("endDate")),
            used=_number(standard.get("orgTotalTokensUsed")),
            allowance=_number(standard.get("totalAllowance")),
            used_ratio=_number(standard.get("usedRatio")),
        )
