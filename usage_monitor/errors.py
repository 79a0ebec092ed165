"""Exception hierarchy.

Upstream failures (UpstreamFetchError and subclasses) never leave the usage client:
they are converted to UsageFailure entries at the fetch boundary. Key-store and
config errors propagate to the serving layer / CLI.
"""

from __future__ import annotations


class UsageMonitorError(Exception):
    """Base exception for all usage monitor errors."""


class ConfigError(UsageMonitorError):
    """Raised when an environment setting cannot be parsed."""

    def __init__(self, variable: str, value: str, expected: str) -> None:
        self.variable = variable
        self.value = value
        super().__init__(f"{variable}={value!r} is not a valid {expected}")


# ── Upstream fetch failures ──


class UpstreamFetchError(UsageMonitorError):
    """A single credential's upstream call failed. Carries the report message."""

    message = "Failed to fetch"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class TransportError(UpstreamFetchError):
    """Network error, timeout or undecodable body. Not retried."""


class UpstreamError(UpstreamFetchError):
    """Non-2xx response other than a retryable 401."""

    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}")


class AuthError(UpstreamError):
    """HTTP 401. Retried with linear backoff before becoming terminal."""

    def __init__(self) -> None:
        super().__init__(401)


class MalformedResponseError(UpstreamFetchError):
    """2xx response without the expected usage.standard structure."""

    message = "Invalid API response"


# ── Key store ──


class KeyStoreError(UsageMonitorError):
    """Key store is unreachable, unreadable or corrupt."""


class KeyNotFoundError(UsageMonitorError):
    """Raised when a key id doesn't exist in the store."""

    def __init__(self, key_id: str) -> None:
        self.key_id = key_id
        super().__init__(f"Key not found: {key_id}")


class DuplicateKeyError(UsageMonitorError):
    """Raised when adding a secret that is already stored."""

    def __init__(self, masked_key: str) -> None:
        self.masked_key = masked_key
        super().__init__(f"API key already exists: {masked_key}")
