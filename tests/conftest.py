import json
import sys
from pathlib import Path
from typing import Any, Dict, List

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from referral_rewards.core.settings import Settings  # noqa: E402
from referral_rewards.db.base import Base  # noqa: E402
import referral_rewards.models  # noqa: E402,F401

HOST_URL = "https://momence.test/_api/primary/host/13752"


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "momence_base_url": "https://momence.test/_api/primary",
        "momence_all_cookies": "session=abc",
        "database_url": "sqlite+aiosqlite:///:memory:",
        "report_poll_interval_seconds": 0.0,
        "report_poll_max_attempts": 5,
        "inter_record_delay_seconds": 0.0,
        "retry_max_attempts": 3,
        "retry_initial_delay_seconds": 1.0,
        "retry_max_delay_seconds": 10.0,
        "alert_webhook_url": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


class FakeMomence:
    """Scripted upstream covering the customer, report and payment endpoints."""

    def __init__(
        self,
        *,
        candidate_pages: List[List[Dict[str, Any]]] | None = None,
        report_statuses: List[Dict[str, Any]] | None = None,
        report_run_id: str | None = "run-1",
    ) -> None:
        self.candidate_pages = list(candidate_pages or [])
        self.report_statuses = list(report_statuses or [])
        self.report_run_id = report_run_id
        self.customer_requests: List[httpx.Request] = []
        self.report_requests: List[httpx.Request] = []
        self.poll_requests: List[httpx.Request] = []
        self.payment_requests: List[httpx.Request] = []
        self.failing_payment_members: set[int] = set()

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        if url == f"{HOST_URL}/customers":
            self.customer_requests.append(request)
            page = int(request.url.params["page"])
            rows = self.candidate_pages[page] if page < len(self.candidate_pages) else []
            return httpx.Response(200, json={"payload": rows})
        if url == f"{HOST_URL}/reports/customer-referral-rewards/async":
            self.report_requests.append(request)
            body = {"reportRunId": self.report_run_id} if self.report_run_id else {}
            return httpx.Response(200, json=body)
        if url.startswith(f"{HOST_URL}/reports/customer-referral-rewards/report-runs/"):
            self.poll_requests.append(request)
            if len(self.report_statuses) > 1:
                return httpx.Response(200, json=self.report_statuses.pop(0))
            if self.report_statuses:
                return httpx.Response(200, json=self.report_statuses[0])
            return httpx.Response(200, json={"status": "pending"})
        if url == f"{HOST_URL}/pos/payments/pay-cart":
            self.payment_requests.append(request)
            body = json.loads(request.content)
            if body["payingMemberId"] in self.failing_payment_members:
                return httpx.Response(500, json={"error": "boom"})
            return httpx.Response(200, json={"ok": True})
        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    @property
    def paid_members(self) -> List[int]:
        return [json.loads(request.content)["payingMemberId"] for request in self.payment_requests]


def completed_report(items: List[Dict[str, Any]], *, nested: bool = True) -> Dict[str, Any]:
    if nested:
        return {"status": "completed", "reportData": {"items": items}}
    return {"status": "completed", "items": items}


def referral_row(giving: int, receiving: int, visits: int | None, *, location: str | None = None) -> Dict[str, Any]:
    return {
        "givingMemberId": giving,
        "givingMemberFirstName": f"Giver{giving}",
        "givingMemberLastName": "Smith",
        "receivingMemberId": receiving,
        "receivingMemberEmail": f"report{receiving}@example.com",
        "receivingMemberFirstName": "Report",
        "receivingMemberLastName": "Name",
        "receivingMemberVisits": visits,
        "receivingMemberTotalSpend": "1500.00",
        "homeLocation": location,
    }


def candidate_row(member_id: int) -> Dict[str, Any]:
    return {
        "memberId": member_id,
        "email": f"member{member_id}@example.com",
        "firstName": f"First{member_id}",
        "lastName": f"Last{member_id}",
    }
