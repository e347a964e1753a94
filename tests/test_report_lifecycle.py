import json

import httpx
import pytest

from referral_rewards.services.referrals import (
    ItemsSource,
    ReportFailedError,
    ReportInitiationError,
    ReportLifecycleController,
    ReportRunState,
    ReportTimeoutError,
    extract_report_items,
)
from referral_rewards.services.upstream import MomenceClient, RequestExecutor, UpstreamRequestError

from conftest import FakeMomence, completed_report, make_settings, referral_row


def _controller(client: httpx.AsyncClient, settings, sleep) -> ReportLifecycleController:
    executor = RequestExecutor.from_settings(settings, client, sleep=sleep)
    return ReportLifecycleController(MomenceClient(executor, settings), settings, sleep=sleep)


def test_extract_prefers_nested_items() -> None:
    payload = {"reportData": {"items": [{"a": 1}]}, "items": [{"b": 2}]}

    extracted = extract_report_items(payload)

    assert extracted.source is ItemsSource.NESTED
    assert extracted.items == [{"a": 1}]


def test_extract_falls_back_to_top_level_items() -> None:
    extracted = extract_report_items({"reportData": {"items": None}, "items": [{"b": 2}]})

    assert extracted.source is ItemsSource.TOP_LEVEL
    assert extracted.items == [{"b": 2}]


def test_extract_reports_missing_items() -> None:
    extracted = extract_report_items({"status": "completed"})

    assert extracted.source is ItemsSource.MISSING
    assert extracted.items == []


@pytest.mark.asyncio
async def test_fetch_polls_until_completed(settings, sleep_recorder) -> None:
    upstream = FakeMomence(
        report_statuses=[
            {"status": "pending"},
            {"status": "pending"},
            completed_report([referral_row(1, 102, 2), {"givingMemberId": "not-a-number"}], nested=False),
        ]
    )

    async with upstream.client() as client:
        controller = _controller(client, settings, sleep_recorder)
        run = await controller.initiate()
        records = await controller.poll(run)

    assert run.report_run_id == "run-1"
    assert run.state is ReportRunState.COMPLETED
    assert run.poll_attempts == 3
    assert run.items_source is ItemsSource.TOP_LEVEL
    assert [record.pair for record in records] == [(1, 102)]
    assert records[0].receiving_member_visits == 2
    assert upstream.poll_requests[0].url.path.endswith("/report-runs/run-1")
    assert sleep_recorder.delays == [settings.report_poll_interval_seconds] * 2


@pytest.mark.asyncio
async def test_initiation_sends_idempotency_key_and_period(settings, sleep_recorder) -> None:
    upstream = FakeMomence(report_statuses=[completed_report([])])

    async with upstream.client() as client:
        await _controller(client, settings, sleep_recorder).fetch()

    request = upstream.report_requests[0]
    assert request.headers["x-idempotence-key"]
    body = json.loads(request.content)
    assert body["timeZone"] == "Asia/Kolkata"
    assert body["startDate"] == settings.report_start_date
    assert body["endDate"] == settings.report_end_date


@pytest.mark.asyncio
async def test_initiation_without_run_id_fails(settings, sleep_recorder) -> None:
    upstream = FakeMomence(report_run_id=None)

    async with upstream.client() as client:
        with pytest.raises(ReportInitiationError):
            await _controller(client, settings, sleep_recorder).fetch()

    assert upstream.poll_requests == []


@pytest.mark.asyncio
async def test_server_side_failure_is_terminal(settings, sleep_recorder) -> None:
    upstream = FakeMomence(report_statuses=[{"status": "pending"}, {"status": "failed"}])

    async with upstream.client() as client:
        with pytest.raises(ReportFailedError) as excinfo:
            await _controller(client, settings, sleep_recorder).fetch()

    assert excinfo.value.report_run_id == "run-1"
    assert len(upstream.poll_requests) == 2


@pytest.mark.asyncio
async def test_pending_past_budget_times_out(sleep_recorder) -> None:
    settings = make_settings(report_poll_max_attempts=4, report_poll_interval_seconds=3.0)
    upstream = FakeMomence(report_statuses=[{"status": "pending"}])

    async with upstream.client() as client:
        with pytest.raises(ReportTimeoutError):
            await _controller(client, settings, sleep_recorder).fetch()

    assert len(upstream.poll_requests) == 4
    assert sleep_recorder.delays == [3.0, 3.0, 3.0]


@pytest.mark.asyncio
async def test_poll_errors_consume_attempts(sleep_recorder) -> None:
    settings = make_settings(report_poll_max_attempts=2, retry_max_attempts=1)
    polls = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal polls
        if request.url.path.endswith("/async"):
            return httpx.Response(200, json={"reportRunId": "run-9"})
        polls += 1
        return httpx.Response(500)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(UpstreamRequestError):
            await _controller(client, settings, sleep_recorder).fetch()

    assert polls == 2
