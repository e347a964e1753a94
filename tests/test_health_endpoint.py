import pytest
from httpx import ASGITransport, AsyncClient

from referral_rewards.api.health import create_app


class _StubScheduler:
    def __init__(self, health: dict) -> None:
        self._health = health

    def health(self) -> dict:
        return self._health


def _job_health(**totals) -> dict:
    return {"id": "referral_rewards", "metrics": {"totals": {"consecutive_failures": 0, "unrecorded_rewards": 0, **totals}}}


async def _get(app, path: str):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        return await client.get(path)


@pytest.mark.asyncio
async def test_healthz_reports_service_metadata() -> None:
    response = await _get(create_app(service_name="referral-rewards"), "/healthz")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "healthy"
    assert payload["service"] == "referral-rewards"
    assert payload["uptime_seconds"] >= 0


@pytest.mark.asyncio
async def test_readyz_without_scheduler_is_error() -> None:
    response = await _get(create_app(), "/readyz")

    assert response.json()["status"] == "error"


@pytest.mark.asyncio
async def test_readyz_reflects_scheduler_state() -> None:
    ready = create_app(scheduler=_StubScheduler({"running": True, "jobs": [_job_health()]}))
    stopped = create_app(scheduler=_StubScheduler({"running": False, "jobs": []}))
    failing = create_app(scheduler=_StubScheduler({"running": True, "jobs": [_job_health(consecutive_failures=1)]}))
    unrecorded = create_app(scheduler=_StubScheduler({"running": True, "jobs": [_job_health(unrecorded_rewards=1)]}))

    assert (await _get(ready, "/readyz")).json()["status"] == "ready"
    assert (await _get(stopped, "/readyz")).json()["status"] == "degraded"
    assert (await _get(failing, "/readyz")).json()["status"] == "error"
    assert (await _get(unrecorded, "/readyz")).json()["status"] == "error"
