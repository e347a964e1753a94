import json

import pytest

from referral_rewards.services.referrals import RewardIssuer, resolve_location_id
from referral_rewards.services.upstream import MomenceClient, RequestExecutor

from conftest import FakeMomence, make_settings


def _issuer(client, settings, sleep) -> RewardIssuer:
    executor = RequestExecutor.from_settings(settings, client, sleep=sleep)
    return RewardIssuer(MomenceClient(executor, settings), settings)


def test_resolve_location_falls_back_to_default() -> None:
    locations = {"Kwality House, Kemps Corner": 9030, "Kenkere House": 22116}

    assert resolve_location_id("Kenkere House", locations, "Kwality House, Kemps Corner") == 22116
    assert resolve_location_id("Somewhere Else", locations, "Kwality House, Kemps Corner") == 9030
    assert resolve_location_id(None, locations, "Kwality House, Kemps Corner") == 9030
    with pytest.raises(KeyError):
        resolve_location_id(None, locations, "Unknown")


@pytest.mark.asyncio
async def test_issue_posts_zero_priced_membership(settings, sleep_recorder) -> None:
    upstream = FakeMomence()

    async with upstream.client() as client:
        issued = await _issuer(client, settings, sleep_recorder).issue(1, "Supreme HQ, Bandra")

    assert issued is True
    assert len(upstream.payment_requests) == 1
    request = upstream.payment_requests[0]
    assert request.headers["x-idempotence-key"]
    body = json.loads(request.content)
    assert body["hostId"] == settings.momence_host_id
    assert body["payingMemberId"] == 1
    assert body["targetMemberId"] == 1
    assert body["homeLocationId"] == 29821
    assert body["isEmailSent"] is False
    item = body["items"][0]
    assert item["type"] == "membership"
    assert item["priceInCurrency"] == 0
    assert item["membershipId"] == settings.referral_membership_id
    assert body["paymentMethods"][0]["type"] == "free"


@pytest.mark.asyncio
async def test_issue_reports_failure_instead_of_raising(sleep_recorder) -> None:
    settings = make_settings(retry_max_attempts=2)
    upstream = FakeMomence()
    upstream.failing_payment_members.add(7)

    async with upstream.client() as client:
        issued = await _issuer(client, settings, sleep_recorder).issue(7, None)

    assert issued is False
    assert len(upstream.payment_requests) == 2
    body = json.loads(upstream.payment_requests[0].content)
    assert body["homeLocationId"] == 9030


@pytest.mark.asyncio
async def test_issue_uses_fresh_keys_per_call(settings, sleep_recorder) -> None:
    upstream = FakeMomence()

    async with upstream.client() as client:
        issuer = _issuer(client, settings, sleep_recorder)
        await issuer.issue(1, None)
        await issuer.issue(2, None)

    keys = {request.headers["x-idempotence-key"] for request in upstream.payment_requests}
    assert len(keys) == 2
