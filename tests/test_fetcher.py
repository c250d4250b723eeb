import httpx
import pytest

from conftest import SleepRecorder, mock_fetcher

from cosmofy.services.errors import ExhaustedRetries, RequestTimeoutError
from cosmofy.services.fetcher import AttemptOutcome, FetchRequest, RetryPolicy
from cosmofy.settings import IntegrationSettings

URL = "https://api.example.test/data"


class Counter:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        response = self.responses[min(self.calls, len(self.responses)) - 1]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.mark.asyncio
@pytest.mark.parametrize("max_retries", [1, 2, 3, 5])
async def test_always_failing_makes_exactly_max_retries_attempts(max_retries):
    handler = Counter([httpx.Response(500, text="boom")])
    sleeper = SleepRecorder()
    fetcher = mock_fetcher(handler, sleep=sleeper)

    with pytest.raises(ExhaustedRetries) as exc_info:
        await fetcher.fetch(FetchRequest(url=URL), max_retries=max_retries)

    assert handler.calls == max_retries
    assert len(exc_info.value.attempts) == max_retries
    # No wait after the final attempt
    assert len(sleeper.calls) == max_retries - 1


@pytest.mark.asyncio
async def test_backoff_is_linear_in_attempt_number():
    handler = Counter([httpx.Response(502)])
    sleeper = SleepRecorder()
    fetcher = mock_fetcher(handler, sleep=sleeper)

    with pytest.raises(ExhaustedRetries):
        await fetcher.fetch(FetchRequest(url=URL), max_retries=4, base_backoff=0.5)

    assert sleeper.calls == [0.5, 1.0, 1.5]


@pytest.mark.asyncio
async def test_recovers_after_transient_failure():
    handler = Counter([httpx.Response(503), httpx.Response(200, json={"ok": True})])
    fetcher = mock_fetcher(handler)

    payload = await fetcher.fetch(FetchRequest(url=URL), max_retries=3)

    assert payload == {"ok": True}
    assert handler.calls == 2


@pytest.mark.asyncio
async def test_text_response_type():
    handler = Counter([httpx.Response(200, text="<html>Orion</html>")])
    fetcher = mock_fetcher(handler)

    payload = await fetcher.fetch(FetchRequest(url=URL, response_type="text"))

    assert payload == "<html>Orion</html>"


@pytest.mark.asyncio
async def test_query_params_are_sent():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.url.params)
        return httpx.Response(200, json=[])

    fetcher = mock_fetcher(handler)
    await fetcher.fetch(FetchRequest(url=URL, params={"lat": 51.5, "lon": -0.12}))

    assert seen == {"lat": "51.5", "lon": "-0.12"}


@pytest.mark.asyncio
async def test_timeout_is_classified_and_retried():
    handler = Counter([httpx.ReadTimeout("slow upstream")])
    fetcher = mock_fetcher(handler)

    with pytest.raises(ExhaustedRetries) as exc_info:
        await fetcher.fetch(FetchRequest(url=URL, timeout=1.0), max_retries=2)

    assert handler.calls == 2
    assert isinstance(exc_info.value.last_error, RequestTimeoutError)
    assert all(a.outcome == AttemptOutcome.TIMEOUT for a in exc_info.value.attempts)


@pytest.mark.asyncio
async def test_invalid_json_counts_as_failure():
    handler = Counter([httpx.Response(200, text="not json")])
    fetcher = mock_fetcher(handler)

    with pytest.raises(ExhaustedRetries):
        await fetcher.fetch(FetchRequest(url=URL), max_retries=2)

    assert handler.calls == 2


@pytest.mark.asyncio
async def test_rate_limits_share_budget_by_default():
    handler = Counter([httpx.Response(429)])
    fetcher = mock_fetcher(handler)

    with pytest.raises(ExhaustedRetries) as exc_info:
        await fetcher.fetch(FetchRequest(url=URL), max_retries=3)

    assert handler.calls == 3
    assert all(
        a.outcome == AttemptOutcome.RATE_LIMITED for a in exc_info.value.attempts
    )


@pytest.mark.asyncio
async def test_separate_rate_limit_budget():
    handler = Counter(
        [
            httpx.Response(429),
            httpx.Response(429),
            httpx.Response(200, json={"ok": True}),
        ]
    )
    sleeper = SleepRecorder()
    fetcher = mock_fetcher(handler, sleep=sleeper)
    policy = RetryPolicy(
        max_retries=1,
        base_backoff=1.0,
        rate_limit_retries=3,
        rate_limit_backoff=5.0,
    )

    payload = await fetcher.fetch(FetchRequest(url=URL), policy=policy)

    assert payload == {"ok": True}
    assert sleeper.calls == [5.0, 10.0]


@pytest.mark.asyncio
async def test_retry_after_header_is_respected_when_enabled():
    handler = Counter(
        [
            httpx.Response(429, headers={"Retry-After": "30"}),
            httpx.Response(200, json=[]),
        ]
    )
    sleeper = SleepRecorder()
    fetcher = mock_fetcher(handler, sleep=sleeper)
    policy = RetryPolicy(max_retries=2, base_backoff=1.0, respect_retry_after=True)

    await fetcher.fetch(FetchRequest(url=URL), policy=policy)

    assert sleeper.calls == [30.0]


@pytest.mark.asyncio
async def test_zero_retries_makes_no_attempt():
    handler = Counter([httpx.Response(200, json={})])
    fetcher = mock_fetcher(handler)

    with pytest.raises(ExhaustedRetries) as exc_info:
        await fetcher.fetch(FetchRequest(url=URL), max_retries=0)

    assert handler.calls == 0
    assert exc_info.value.attempts == []


def test_policy_from_settings_carries_retry_after():
    settings = IntegrationSettings(
        max_retries=4, base_backoff=2.0, rate_limit_retries=1, respect_retry_after=True
    )

    policy = RetryPolicy.from_settings(settings)

    assert policy.max_retries == 4
    assert policy.base_backoff == 2.0
    assert policy.rate_limit_retries == 1
    assert policy.respect_retry_after
