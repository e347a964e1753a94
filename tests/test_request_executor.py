import httpx
import pytest

from referral_rewards.services.upstream import (
    RequestClass,
    RequestExecutor,
    RetryPolicy,
    UpstreamRequest,
    UpstreamRequestError,
)

from conftest import make_settings


def _request() -> UpstreamRequest:
    return UpstreamRequest(name="probe", method="GET", url="https://upstream.test/probe")


def test_retry_policy_backoff_is_capped() -> None:
    policy = RetryPolicy(max_attempts=6, initial_delay_seconds=1.0, max_delay_seconds=10.0)

    assert [policy.delay_for(attempt) for attempt in range(1, 7)] == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]


@pytest.mark.asyncio
async def test_executor_retries_transient_failures(sleep_recorder) -> None:
    calls = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        if calls < 3:
            return httpx.Response(503, json={"error": "unavailable"})
        return httpx.Response(200, json={"ok": True})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        executor = RequestExecutor(client, policy=RetryPolicy(max_attempts=3), sleep=sleep_recorder)
        payload = await executor.execute(_request(), RequestClass.CUSTOMER)

    assert payload == {"ok": True}
    assert calls == 3
    assert sleep_recorder.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_executor_raises_after_final_attempt(sleep_recorder) -> None:
    calls = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(500)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        executor = RequestExecutor(client, policy=RetryPolicy(max_attempts=3), sleep=sleep_recorder)
        with pytest.raises(UpstreamRequestError) as excinfo:
            await executor.execute(_request(), RequestClass.REPORT)

    assert calls == 3
    assert excinfo.value.attempts == 3
    assert excinfo.value.status_code == 500
    assert excinfo.value.name == "probe"
    # no wait after the last attempt
    assert sleep_recorder.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_executor_treats_transport_errors_and_bad_json_as_failures(sleep_recorder) -> None:
    calls = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise httpx.ConnectError("connection refused", request=request)
        if calls == 2:
            return httpx.Response(200, content=b"<html>login</html>")
        return httpx.Response(200, content=b"")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        executor = RequestExecutor(client, policy=RetryPolicy(max_attempts=3), sleep=sleep_recorder)
        payload = await executor.execute(_request(), RequestClass.PAYMENT)

    assert payload == {}
    assert calls == 3


@pytest.mark.asyncio
async def test_executor_applies_class_timeouts(sleep_recorder) -> None:
    seen_timeouts = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen_timeouts.append(request.extensions["timeout"]["read"])
        return httpx.Response(200, json={})

    settings = make_settings(customer_request_timeout_seconds=7.0, report_request_timeout_seconds=11.0)
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        executor = RequestExecutor.from_settings(settings, client, sleep=sleep_recorder)
        await executor.execute(_request(), RequestClass.CUSTOMER)
        await executor.execute(_request(), RequestClass.REPORT)

    assert seen_timeouts == [7.0, 11.0]
    assert executor.timeout_for(RequestClass.PAYMENT) == settings.payment_request_timeout_seconds
    assert executor.policy.max_attempts == settings.retry_max_attempts
