"""
Error taxonomy for measurement and ranking.

Measurement errors are fatal: they abort the audit and propagate to the caller
with a message suitable for display. Best-effort fetches never raise these.
"""

from __future__ import annotations


class MeasurementError(Exception):
    """Base exception for a measurement that could not be completed."""

    pass


class InvalidURLError(MeasurementError, ValueError):
    """Raised for empty or unparsable input before any network call."""

    def __init__(self, raw_url: str, message: str = "Empty URL") -> None:
        super().__init__(message)
        self.raw_url = raw_url


class ReachabilityError(MeasurementError):
    """Raised when the liveness probe fails after the HEAD -> GET fallback."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(f"Unable to reach {url}: {message}")
        self.url = url
        self.reason = message


class PerformanceAPIError(MeasurementError):
    """Raised when the performance API call fails or returns non-2xx."""

    MAX_DETAIL_LENGTH = 1024

    def __init__(self, detail: str, status_code: int | None = None) -> None:
        detail = detail[: self.MAX_DETAIL_LENGTH]
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class KVStoreError(Exception):
    """Raised by key/value backends when a read or write fails."""

    def __init__(self, operation: str, key: str, message: str) -> None:
        super().__init__(f"KV {operation} failed for '{key}': {message}")
        self.operation = operation
        self.key = key


class RankingStoreError(Exception):
    """Raised when a ranking update cannot be persisted."""

    pass
