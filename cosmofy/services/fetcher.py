"""
ResilientFetcher - one outbound call with bounded retries.

Every upstream integration goes through this class. It never caches; the
caller decides what to do with the payload.

Backoff is linear and deterministic: after failed attempt ``n`` the fetcher
waits ``base_backoff * n`` seconds. Rate-limited attempts share the retry
budget with other failures unless ``RetryPolicy.rate_limit_retries`` gives
them their own.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Literal

import httpx
from loguru import logger

from cosmofy.services.errors import (
    ExhaustedRetries,
    RateLimited,
    RequestTimeoutError,
    TransientUpstreamError,
)
from cosmofy.settings import IntegrationSettings, global_settings


class AttemptOutcome(str, Enum):
    """Result of one attempt."""

    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    ERROR = "error"
    TIMEOUT = "timeout"


@dataclass
class FetchAttempt:
    """One retry cycle. Lives only for the duration of a fetch call."""

    attempt_number: int
    outcome: AttemptOutcome
    wait_before_next: float = 0.0
    error: str | None = None


@dataclass
class FetchRequest:
    """Description of an outbound call."""

    url: str
    params: dict[str, Any] | None = None
    headers: dict[str, str] | None = None
    response_type: Literal["json", "text"] = "json"
    timeout: float | None = None
    service_id: str | None = None


@dataclass
class RetryPolicy:
    """Retry budget and backoff curve for one fetch."""

    max_retries: int = 3
    base_backoff: float = 1.0
    rate_limit_retries: int | None = None
    rate_limit_backoff: float | None = None
    respect_retry_after: bool = False

    @classmethod
    def from_settings(cls, settings: IntegrationSettings) -> "RetryPolicy":
        return cls(
            max_retries=settings.max_retries,
            base_backoff=settings.base_backoff,
            rate_limit_retries=settings.rate_limit_retries,
            rate_limit_backoff=settings.rate_limit_backoff,
            respect_retry_after=settings.respect_retry_after,
        )


@dataclass
class _Budget:
    """Attempt counters for one fetch call."""

    policy: RetryPolicy
    errors: int = 0
    rate_limits: int = 0
    attempts: list[FetchAttempt] = field(default_factory=list)

    @property
    def separate_rate_limit_budget(self) -> bool:
        return self.policy.rate_limit_retries is not None

    def record(self, outcome: AttemptOutcome) -> None:
        if outcome == AttemptOutcome.RATE_LIMITED and self.separate_rate_limit_budget:
            self.rate_limits += 1
        else:
            self.errors += 1

    def exhausted(self) -> bool:
        if self.errors >= self.policy.max_retries:
            return True
        if self.separate_rate_limit_budget:
            limit = self.policy.rate_limit_retries or 0
            return self.rate_limits > 0 and self.rate_limits >= limit
        return False

    def backoff(self, outcome: AttemptOutcome, retry_after: float | None) -> float:
        if outcome == AttemptOutcome.RATE_LIMITED and self.separate_rate_limit_budget:
            base = self.policy.rate_limit_backoff or self.policy.base_backoff
            delay = base * self.rate_limits
        else:
            delay = self.policy.base_backoff * self.errors
        if self.policy.respect_retry_after and retry_after:
            delay = max(delay, retry_after)
        return delay


class ResilientFetcher:
    """
    Outbound HTTP calls with bounded retries and linear backoff.

    Usage:
        fetcher = ResilientFetcher()

        payload = await fetcher.fetch(
            FetchRequest(url="https://api.nasa.gov/planetary/apod",
                         params={"api_key": "DEMO_KEY"}),
            max_retries=2,
            base_backoff=1.0,
        )
    """

    def __init__(
        self,
        default_timeout: float = 30.0,
        default_policy: RetryPolicy | None = None,
        user_agent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._default_timeout = default_timeout
        self._default_policy = default_policy or RetryPolicy()
        self._user_agent = user_agent or global_settings.user_agent
        self._transport = transport
        self._sleep = sleep

        # HTTP client (lazy initialization)
        self._http_client: httpx.AsyncClient | None = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._default_timeout),
                follow_redirects=True,
                headers={"User-Agent": self._user_agent},
                transport=self._transport,
            )
        return self._http_client

    async def fetch(
        self,
        request: FetchRequest,
        max_retries: int | None = None,
        base_backoff: float | None = None,
        policy: RetryPolicy | None = None,
    ) -> Any:
        """
        Perform one outbound call, retrying failures.

        Args:
            request: What to call
            max_retries: Total attempts allowed (overrides the policy)
            base_backoff: Seconds multiplied by the attempt number between tries
            policy: Full retry policy, defaults to the fetcher's policy

        Returns:
            Decoded JSON or response text, per ``request.response_type``

        Raises:
            ExhaustedRetries: If every attempt failed
        """
        policy = policy or self._default_policy
        if max_retries is not None or base_backoff is not None:
            policy = RetryPolicy(
                max_retries=max_retries if max_retries is not None else policy.max_retries,
                base_backoff=(
                    base_backoff if base_backoff is not None else policy.base_backoff
                ),
                rate_limit_retries=policy.rate_limit_retries,
                rate_limit_backoff=policy.rate_limit_backoff,
                respect_retry_after=policy.respect_retry_after,
            )

        budget = _Budget(policy=policy)
        last_error: Exception | None = None
        service_id = request.service_id

        while policy.max_retries > 0:
            attempt_number = len(budget.attempts) + 1
            try:
                payload = await self._execute(request)
                budget.attempts.append(
                    FetchAttempt(attempt_number, AttemptOutcome.SUCCESS)
                )
                return payload

            except RateLimited as e:
                outcome = AttemptOutcome.RATE_LIMITED
                retry_after = e.retry_after
                last_error = e
            except RequestTimeoutError as e:
                outcome = AttemptOutcome.TIMEOUT
                retry_after = None
                last_error = e
            except TransientUpstreamError as e:
                outcome = AttemptOutcome.ERROR
                retry_after = None
                last_error = e

            attempt = FetchAttempt(attempt_number, outcome, error=str(last_error))
            budget.attempts.append(attempt)
            budget.record(outcome)

            if budget.exhausted():
                break

            attempt.wait_before_next = budget.backoff(outcome, retry_after)
            logger.warning(
                f"[{service_id or 'fetch'}] attempt {attempt_number} "
                f"{outcome.value}: {last_error}; retrying in "
                f"{attempt.wait_before_next:.2f}s"
            )
            await self._sleep(attempt.wait_before_next)

        logger.error(
            f"[{service_id or 'fetch'}] giving up on {request.url} "
            f"after {len(budget.attempts)} attempts"
        )
        raise ExhaustedRetries(
            request.url,
            attempts=budget.attempts,
            last_error=last_error,
            service_id=service_id,
        )

    async def _execute(self, request: FetchRequest) -> Any:
        """Execute the actual HTTP request, mapping failures to retryable errors."""
        client = await self._get_http_client()
        timeout = request.timeout or self._default_timeout
        service_id = request.service_id

        try:
            response = await client.get(
                request.url,
                params=request.params,
                headers=request.headers,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(service_id, timeout) from e
        except httpx.RequestError as e:
            raise TransientUpstreamError(str(e), service_id=service_id) from e

        if response.status_code == 429:
            raise RateLimited(service_id, _parse_retry_after(response))

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransientUpstreamError(
                f"HTTP {e.response.status_code}: {e.response.text[:200]}",
                service_id=service_id,
                status_code=e.response.status_code,
            ) from e

        if request.response_type == "text":
            return response.text

        try:
            return response.json()
        except ValueError as e:
            raise TransientUpstreamError(
                f"Invalid JSON from {request.url}: {e}", service_id=service_id
            ) from e

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.debug("ResilientFetcher closed")

    async def __aenter__(self) -> "ResilientFetcher":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()


def _parse_retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None
