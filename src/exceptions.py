"""
Typed exception hierarchy for the payroll reconciliation engine.

    ReconciliationError (base)
    |
    +-- InputInvalid
    |
    +-- UpstreamError
    |   +-- UpstreamUnavailable
    |   |   +-- UpstreamRateLimited
    |   +-- UpstreamRejected
    |   |   +-- UpstreamNotFound
    |   +-- UpstreamMalformed
    |
    +-- PartialData

Every class carries a machine-readable `code`. Upstream errors also carry the
endpoint that failed and, when the provider answered, its HTTP status.
"""

from __future__ import annotations

from typing import Optional


class ReconciliationError(Exception):
    """Base exception for all reconciliation errors."""

    code: str = "RECONCILIATION_ERROR"


class InputInvalid(ReconciliationError):
    """The caller supplied an unusable run parameter (API key, period)."""

    code: str = "INPUT_INVALID"


class UpstreamError(ReconciliationError):
    """Base exception for failures reported by the payroll data provider."""

    code: str = "UPSTREAM_ERROR"
    retryable: bool = False

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        self.endpoint = endpoint
        self.status_code = status_code
        super().__init__(message)


class UpstreamUnavailable(UpstreamError):
    """Provider unreachable or the request timed out."""

    code: str = "UPSTREAM_UNAVAILABLE"
    retryable = True


class UpstreamRateLimited(UpstreamUnavailable):
    """Provider answered 429 Too Many Requests."""

    code: str = "UPSTREAM_RATE_LIMITED"


class UpstreamRejected(UpstreamError):
    """Provider refused the request (authentication or permission)."""

    code: str = "UPSTREAM_REJECTED"


class UpstreamNotFound(UpstreamRejected):
    """Provider does not know the requested resource."""

    code: str = "UPSTREAM_NOT_FOUND"


class UpstreamMalformed(UpstreamError):
    """Provider response did not have the expected shape."""

    code: str = "UPSTREAM_MALFORMED"


class PartialData(ReconciliationError):
    """Some payment pages for a period window could not be retrieved."""

    code: str = "PARTIAL_DATA"

    def __init__(self, window_label: str, records_fetched: int, cause: Exception):
        self.window_label = window_label
        self.records_fetched = records_fetched
        self.cause = cause
        super().__init__(
            f"Payments for {window_label} are incomplete: pagination stopped after "
            f"{records_fetched} records ({cause})"
        )
