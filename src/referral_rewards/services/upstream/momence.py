"""Momence dashboard endpoints used by the referral pipeline."""

from __future__ import annotations

from typing import Any, Dict, Mapping
from uuid import uuid4

from referral_rewards.core.settings import Settings

from .executor import RequestClass, RequestExecutor, UpstreamRequest

REPORT_SLUG = "customer-referral-rewards"


def new_idempotency_key() -> str:
    return str(uuid4())


class MomenceClient:
    """Thin endpoint map over the request executor.

    Session cookies come from settings and are passed through untouched.
    """

    def __init__(self, executor: RequestExecutor, settings: Settings) -> None:
        self._executor = executor
        self._settings = settings
        self._host_url = f"{settings.momence_base_url.rstrip('/')}/host/{settings.momence_host_id}"

    @property
    def host_id(self) -> int:
        return self._settings.momence_host_id

    def headers(self, *, idempotency_key: str | None = None) -> Dict[str, str]:
        cookies = self._settings.momence_all_cookies
        headers = {
            "Accept": "application/json, text/plain, */*",
            "Content-Type": "application/json",
            "User-Agent": self._settings.momence_user_agent,
            "x-app": self._settings.momence_app_header,
            "x-origin": f"https://momence.com/dashboard/{self.host_id}/reports/{REPORT_SLUG}",
        }
        if cookies is not None:
            headers["Cookie"] = cookies.get_secret_value()
        if idempotency_key:
            headers["x-idempotence-key"] = idempotency_key
        return headers

    async def list_customers(self, params: Mapping[str, Any]) -> Any:
        request = UpstreamRequest(
            name="list_customers",
            method="GET",
            url=f"{self._host_url}/customers",
            params=dict(params),
            headers=self.headers(),
        )
        return await self._executor.execute(request, RequestClass.CUSTOMER)

    async def start_referral_report(self, payload: Mapping[str, Any], *, idempotency_key: str) -> Any:
        request = UpstreamRequest(
            name="start_referral_report",
            method="POST",
            url=f"{self._host_url}/reports/{REPORT_SLUG}/async",
            json=dict(payload),
            headers=self.headers(idempotency_key=idempotency_key),
        )
        return await self._executor.execute(request, RequestClass.REPORT)

    async def get_referral_report_run(self, report_run_id: str) -> Any:
        request = UpstreamRequest(
            name="get_referral_report_run",
            method="GET",
            url=f"{self._host_url}/reports/{REPORT_SLUG}/report-runs/{report_run_id}",
            headers=self.headers(),
        )
        return await self._executor.execute(request, RequestClass.REPORT)

    async def pay_cart(self, payload: Mapping[str, Any], *, idempotency_key: str) -> Any:
        request = UpstreamRequest(
            name="pay_cart",
            method="POST",
            url=f"{self._host_url}/pos/payments/pay-cart",
            json=dict(payload),
            headers=self.headers(idempotency_key=idempotency_key),
        )
        return await self._executor.execute(request, RequestClass.PAYMENT)


__all__ = ["MomenceClient", "REPORT_SLUG", "new_idempotency_key"]
