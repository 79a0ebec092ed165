"""Report orchestration: cache lookup, batched fetch, aggregation, key mutations.

Flow on a cache miss:
    KeyStore.list_all() → run_batched(UsageClient.fetch) → aggregate() → ReportCache.put()

Mutations (add/import/delete) rebuild and overwrite the cached report before
returning, so readers never see a deleted key or miss a newly added one.
"""

from __future__ import annotations

import asyncio
import secrets
import string
import time
from datetime import datetime
from typing import Awaitable, Callable, Iterable, Optional

import httpx

from usage_monitor.aggregator import aggregate
from usage_monitor.audit_log import AuditLog
from usage_monitor.batch import run_batched
from usage_monitor.cache import ReportCache
from usage_monitor.client import UsageClient
from usage_monitor.config import Settings
from usage_monitor.errors import DuplicateKeyError, KeyNotFoundError
from usage_monitor.models import Credential, Report, UsageFailure, UsageResult
from usage_monitor.security import mask_key
from usage_monitor.store import KeyStore

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_key_id() -> str:
    """``key-<epoch ms>-<7 random chars>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))
    return f"key-{int(time.time() * 1000)}-{suffix}"


class UsageMonitor:
    def __init__(
        self,
        store: KeyStore,
        settings: Optional[Settings] = None,
        cache: Optional[ReportCache] = None,
        audit_log: Optional[AuditLog] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.settings = settings or Settings()
        self.cache = cache or ReportCache()
        self.audit_log = audit_log or AuditLog(self.settings.audit_log_path)
        self._transport = transport
        self._sleep = sleep
        self._now = now

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.timeout, transport=self._transport)

    def _mask(self, secret: str) -> str:
        return mask_key(secret, self.settings.mask_prefix, self.settings.mask_suffix)

    async def get_report(self) -> Report:
        """Cached report if fresh, else a freshly built (and cached) one."""
        cached = self.cache.get()
        if cached is not None:
            self.audit_log.record("cache_hit", generated_at=cached.generated_at)
            return cached
        self.audit_log.record("cache_miss")
        return await self.rebuild()

    async def rebuild(self) -> Report:
        """Recompute the report from every stored key and overwrite the cache."""
        credentials = self.store.list_all()
        start = time.monotonic()
        results = await self._fetch_all(credentials) if credentials else []
        report = aggregate(results, now=self._now, offset_hours=self.settings.tz_offset_hours)
        self.cache.put(report, self.settings.cache_ttl)
        self.audit_log.report_built(report, (time.monotonic() - start) * 1000)
        self.audit_log.flush()
        return report

    async def _fetch_all(self, credentials: list[Credential]) -> list[UsageResult]:
        async with self._http_client() as http:
            client = UsageClient(self.settings, client=http, sleep=self._sleep)
            results = await run_batched(
                credentials,
                lambda c: client.fetch(c.id, c.secret),
                concurrency=self.settings.concurrency,
                delay=self.settings.batch_delay,
                sleep=self._sleep,
            )
        for r in results:
            if isinstance(r, UsageFailure):
                self.audit_log.fetch_failed(r)
        return results

    async def refresh_one(self, key_id: str) -> UsageResult:
        """Fetch a single key directly, bypassing the cache and the batch scheduler."""
        secret = self.store.get(key_id)
        if not secret:
            raise KeyNotFoundError(key_id)
        async with self._http_client() as http:
            client = UsageClient(self.settings, client=http, sleep=self._sleep)
            result = await client.fetch(key_id, secret)
        self.audit_log.record("refresh", key_id=key_id, result=result.kind)
        if isinstance(result, UsageFailure):
            self.audit_log.fetch_failed(result)
        self.audit_log.flush()
        return result

    def list_keys(self) -> list[dict]:
        return [{"id": c.id, "key": self._mask(c.secret)} for c in self.store.list_all()]

    async def add_key(self, secret: str) -> str:
        if not secret:
            raise ValueError("key cannot be empty")
        if self.store.exists(secret):
            raise DuplicateKeyError(self._mask(secret))
        key_id = new_key_id()
        self.store.add(key_id, secret)
        self.audit_log.record("key_added", key_id=key_id, key=self._mask(secret))
        await self.rebuild()
        return key_id

    async def import_keys(self, items: Iterable[object]) -> tuple[int, int]:
        """Bulk add from ``[{"key": ...}, ...]``. Returns (added, skipped)."""
        added = skipped = 0
        existing = {c.secret for c in self.store.list_all()}
        for item in items:
            if not isinstance(item, dict) or "key" not in item:
                continue
            secret = item["key"]
            if not secret or not isinstance(secret, str):
                continue
            if secret in existing:
                skipped += 1
                continue
            key_id = new_key_id()
            self.store.add(key_id, secret)
            existing.add(secret)
            added += 1
            self.audit_log.record("key_added", key_id=key_id, key=self._mask(secret))
        if added:
            await self.rebuild()
        return added, skipped

    async def delete_key(self, key_id: str) -> None:
        self.store.delete(key_id)
        self.audit_log.record("key_deleted", key_id=key_id)
        await self.rebuild()

    async def delete_keys(self, key_ids: list[str]) -> int:
        if not key_ids:
            raise ValueError("ids array is required")
        for key_id in key_ids:
            self.store.delete(key_id)
            self.audit_log.record("key_deleted", key_id=key_id)
        await self.rebuild()
        return len(key_ids)
