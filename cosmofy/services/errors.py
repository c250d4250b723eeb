"""
Acquisition layer exceptions.

Retryable failures (TransientUpstreamError, RateLimited) are raised per attempt
inside the fetcher; the terminal ones (ExhaustedRetries, AllSourcesExhausted,
DeadlineExceeded) mark the boundary where a caller should fall back.
"""

from typing import Any


class AcquisitionError(Exception):
    """Base exception for acquisition layer errors."""

    def __init__(self, message: str, service_id: str | None = None):
        self.service_id = service_id
        super().__init__(message)


class TransientUpstreamError(AcquisitionError):
    """Retryable upstream failure: network error, non-2xx status."""

    def __init__(
        self,
        message: str,
        service_id: str | None = None,
        status_code: int | None = None,
    ):
        self.status_code = status_code
        super().__init__(message, service_id=service_id)


class RequestTimeoutError(TransientUpstreamError):
    """Transport-level timeout for a single outbound call."""

    def __init__(self, service_id: str | None, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Request to service '{service_id}' timed out after {timeout}s",
            service_id=service_id,
        )


class RateLimited(TransientUpstreamError):
    """Upstream answered 429 Too Many Requests."""

    def __init__(self, service_id: str | None, retry_after: float | None = None):
        self.retry_after = retry_after
        msg = f"Rate limit exceeded for service '{service_id}'"
        if retry_after:
            msg += f", retry after {retry_after}s"
        super().__init__(msg, service_id=service_id, status_code=429)


class ExhaustedRetries(AcquisitionError):
    """Every attempt of one fetch failed."""

    def __init__(
        self,
        url: str,
        attempts: list[Any],
        last_error: Exception | None = None,
        service_id: str | None = None,
    ):
        self.url = url
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Gave up on {url} after {len(attempts)} attempts: {last_error}",
            service_id=service_id,
        )


class AllSourcesExhausted(AcquisitionError):
    """No source in a chain produced a usable record."""

    def __init__(self, errors: dict[str, str] | None = None):
        self.errors = errors or {}
        detail = "; ".join(f"{name}: {err}" for name, err in self.errors.items())
        super().__init__(f"All sources exhausted ({detail or 'empty chain'})")


class NormalizationError(AcquisitionError):
    """A single upstream item could not be mapped to a record."""

    pass


class DeadlineExceeded(AcquisitionError):
    """An inbound unit of work ran past its time budget."""

    def __init__(self, budget: float):
        self.budget = budget
        super().__init__(f"Deadline of {budget}s exceeded")
