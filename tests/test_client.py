"""Tests for UsageClient: retry policy, error mapping, response normalization."""

import asyncio

import httpx
import pytest

from usage_monitor.client import UsageClient, format_epoch_ms
from usage_monitor.config import Settings
from usage_monitor.models import UsageFailure, UsageSuccess

SECRET = "fk-SUPERSECRETVALUE1234567890"
ENDPOINT = "https://usage.example.test/api/usage"

GOOD_BODY = {
    "usage": {
        "startDate": 1_700_000_000_000,
        "endDate": 1_702_592_000_000,
        "standard": {"orgTotalTokensUsed": 1200, "totalAllowance": 5000, "usedRatio": 0.24},
    }
}


class SleepRecorder:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _fetch(responses, secret=SECRET, settings=None):
    """Run one fetch against scripted responses. Returns (result, requests, sleeps)."""
    requests: list[httpx.Request] = []
    script = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        item = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(item, Exception):
            raise item
        return httpx.Response(item.status_code, headers=item.headers, content=item.content)

    sleeps = SleepRecorder()

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = UsageClient(settings or Settings(endpoint=ENDPOINT), client=http, sleep=sleeps)
            return await client.fetch("key-1", secret)

    return asyncio.run(go()), requests, sleeps.calls


class TestRequest:
    def test_bearer_and_user_agent_headers(self):
        settings = Settings(endpoint=ENDPOINT, user_agent="usage-monitor-test/1.0")
        _, requests, _ = _fetch([httpx.Response(200, json=GOOD_BODY)], settings=settings)
        assert len(requests) == 1
        req = requests[0]
        assert req.method == "GET"
        assert str(req.url) == ENDPOINT
        assert req.headers["Authorization"] == f"Bearer {SECRET}"
        assert req.headers["User-Agent"] == "usage-monitor-test/1.0"


class TestSuccess:
    def test_maps_upstream_fields(self):
        result, _, _ = _fetch([httpx.Response(200, json=GOOD_BODY)])
        assert isinstance(result, UsageSuccess)
        assert result.id == "key-1"
        assert result.masked_key == "fk-S...7890"
        assert result.start_date == "2023-11-14"
        assert result.end_date == "2023-12-14"
        assert result.used == 1200
        assert result.allowance == 5000
        assert result.used_ratio == 0.24

    def test_ratio_is_not_recomputed(self):
        body = {"usage": {"standard": {"orgTotalTokensUsed": 10, "totalAllowance": 100, "usedRatio": 0.9}}}
        result, _, _ = _fetch([httpx.Response(200, json=body)])
        assert result.used_ratio == 0.9

    def test_missing_numbers_default_to_zero(self):
        body = {"usage": {"standard": {"orgTotalTokensUsed": None}}}
        result, _, _ = _fetch([httpx.Response(200, json=body)])
        assert isinstance(result, UsageSuccess)
        assert (result.used, result.allowance, result.used_ratio) == (0, 0, 0)
        assert result.start_date == "N/A"
        assert result.end_date == "N/A"

    def test_secret_not_in_result(self):
        result, _, _ = _fetch([httpx.Response(200, json=GOOD_BODY)])
        assert SECRET not in repr(result)
        assert SECRET not in str(result.to_dict())


class TestFailures:
    @pytest.mark.parametrize("status", [400, 403, 404, 429, 500, 503])
    def test_non_401_error_is_terminal(self, status):
        result, requests, sleeps = _fetch([httpx.Response(status)])
        assert isinstance(result, UsageFailure)
        assert result.error == f"HTTP {status}"
        assert len(requests) == 1
        assert sleeps == []

    def test_transport_error_not_retried(self):
        result, requests, sleeps = _fetch([httpx.ConnectError("boom")])
        assert isinstance(result, UsageFailure)
        assert result.error == "Failed to fetch"
        assert len(requests) == 1
        assert sleeps == []

    def test_timeout_is_transport_error(self):
        result, _, _ = _fetch([httpx.ReadTimeout("slow")])
        assert result.error == "Failed to fetch"

    def test_unencodable_secret_is_transport_error(self):
        result, requests, sleeps = _fetch([httpx.Response(200, json=GOOD_BODY)], secret="fk-bad\u00e9key123456")
        assert isinstance(result, UsageFailure)
        assert result.error == "Failed to fetch"
        assert result.masked_key == "fk-b...3456"
        assert requests == []
        assert sleeps == []

    def test_undecodable_body_is_transport_error(self):
        result, _, _ = _fetch([httpx.Response(200, content=b"<html>not json</html>")])
        assert isinstance(result, UsageFailure)
        assert result.error == "Failed to fetch"

    @pytest.mark.parametrize("body", [
        {},
        {"usage": {}},
        {"usage": {"standard": None}},
        {"usage": "nope"},
        [1, 2, 3],
    ])
    def test_missing_standard_is_invalid_response(self, body):
        result, _, _ = _fetch([httpx.Response(200, json=body)])
        assert isinstance(result, UsageFailure)
        assert result.error == "Invalid API response"

    def test_failure_carries_masked_key(self):
        result, _, _ = _fetch([httpx.Response(500)])
        assert result.masked_key == "fk-S...7890"
        assert SECRET not in repr(result)


class TestRetry:
    def test_401_twice_then_success(self):
        result, requests, sleeps = _fetch([
            httpx.Response(401), httpx.Response(401), httpx.Response(200, json=GOOD_BODY),
        ])
        assert isinstance(result, UsageSuccess)
        assert len(requests) == 3
        assert sleeps == [1.0, 2.0]

    def test_401_exhausted(self):
        result, requests, sleeps = _fetch([httpx.Response(401)])
        assert isinstance(result, UsageFailure)
        assert result.error == "HTTP 401"
        assert len(requests) == 3
        assert sleeps == [1.0, 2.0]

    def test_401_then_other_error_stops(self):
        result, requests, sleeps = _fetch([httpx.Response(401), httpx.Response(500)])
        assert result.error == "HTTP 500"
        assert len(requests) == 2
        assert sleeps == [1.0]

    def test_max_retries_configurable(self):
        settings = Settings(endpoint=ENDPOINT, max_retries=0)
        result, requests, sleeps = _fetch([httpx.Response(401)], settings=settings)
        assert result.error == "HTTP 401"
        assert len(requests) == 1
        assert sleeps == []


class TestFormatEpochMs:
    @pytest.mark.parametrize("value,expected", [
        (1_700_000_000_000, "2023-11-14"),
        (0, "1970-01-01"),
        (None, "N/A"),
        ("", "N/A"),
        ("2024-01-01", "Invalid Date"),
        (10 ** 20, "Invalid Date"),
        ({"ms": 1}, "Invalid Date"),
    ])
    def test_format(self, value, expected):
        assert format_epoch_ms(value) == expected
