"""Retrying executor shared by every outbound upstream call."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping

import httpx
from loguru import logger

from referral_rewards.core.exceptions import ReferralRewardsError
from referral_rewards.core.settings import Settings

SleepFunc = Callable[[float], Awaitable[Any]]


class RequestClass(str, Enum):
    """Families of outbound calls, each with its own timeout."""

    CUSTOMER = "customer"
    REPORT = "report"
    PAYMENT = "payment"
    LEDGER = "ledger"


class UpstreamRequestError(ReferralRewardsError):
    """Raised when an upstream call still fails after every retry."""

    def __init__(
        self,
        message: str,
        *,
        name: str,
        attempts: int,
        url: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.name = name
        self.attempts = attempts
        self.url = url
        self.status_code = status_code


class _AttemptFailed(Exception):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Exponential backoff: ``min(initial * 2^(attempt-1), max)``."""

    max_attempts: int = 3
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 10.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            initial_delay_seconds=settings.retry_initial_delay_seconds,
            max_delay_seconds=settings.retry_max_delay_seconds,
        )

    def delay_for(self, attempt: int) -> float:
        delay = self.initial_delay_seconds * (2 ** (max(attempt, 1) - 1))
        return max(min(delay, self.max_delay_seconds), 0.0)


@dataclass(slots=True)
class UpstreamRequest:
    name: str
    method: str
    url: str
    params: Dict[str, Any] | None = None
    json: Any = None
    headers: Dict[str, str] = field(default_factory=dict)


class RequestExecutor:
    """Perform upstream calls with per-class timeouts and bounded retries.

    Any status >= 400 counts as a failed attempt, server errors included.
    Callers decide whether a request is safe to retry; mutating calls carry an
    idempotency key so the upstream can collapse repeated transmissions.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        policy: RetryPolicy | None = None,
        timeouts: Mapping[RequestClass, float] | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self._client = client
        self._policy = policy or RetryPolicy()
        self._timeouts = dict(timeouts or {})
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client: httpx.AsyncClient,
        *,
        sleep: SleepFunc = asyncio.sleep,
    ) -> "RequestExecutor":
        timeouts = {
            RequestClass.CUSTOMER: settings.customer_request_timeout_seconds,
            RequestClass.REPORT: settings.report_request_timeout_seconds,
            RequestClass.PAYMENT: settings.payment_request_timeout_seconds,
            RequestClass.LEDGER: settings.ledger_request_timeout_seconds,
        }
        return cls(client, policy=RetryPolicy.from_settings(settings), timeouts=timeouts, sleep=sleep)

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def timeout_for(self, request_class: RequestClass) -> float:
        return self._timeouts.get(request_class, self._timeouts.get(RequestClass.CUSTOMER, 30.0))

    async def execute(self, request: UpstreamRequest, request_class: RequestClass) -> Any:
        """Run ``request`` and return its decoded JSON payload."""

        timeout = self.timeout_for(request_class)
        max_attempts = max(self._policy.max_attempts, 1)
        last_error: _AttemptFailed | None = None

        for attempt in range(1, max_attempts + 1):
            logger.debug(
                "Upstream request attempt",
                request=request.name,
                request_class=request_class.value,
                attempt=attempt,
                max_attempts=max_attempts,
            )
            try:
                payload = await self._send(request, timeout)
            except _AttemptFailed as exc:
                last_error = exc
                logger.warning(
                    "Upstream request attempt failed",
                    request=request.name,
                    attempt=attempt,
                    status_code=exc.status_code,
                    error=str(exc),
                )
            else:
                logger.debug("Upstream request succeeded", request=request.name, attempt=attempt)
                return payload

            if attempt < max_attempts:
                delay = self._policy.delay_for(attempt)
                logger.debug("Waiting before upstream retry", request=request.name, delay_seconds=delay)
                await self._sleep(delay)

        message = f"{request.name} failed after {max_attempts} attempts: {last_error}"
        logger.error(
            "Upstream request failed permanently",
            request=request.name,
            attempts=max_attempts,
            url=request.url,
            error=str(last_error),
        )
        raise UpstreamRequestError(
            message,
            name=request.name,
            attempts=max_attempts,
            url=request.url,
            status_code=last_error.status_code if last_error else None,
        )

    async def _send(self, request: UpstreamRequest, timeout: float) -> Any:
        try:
            response = await self._client.request(
                request.method,
                request.url,
                params=request.params,
                json=request.json,
                headers=request.headers,
                timeout=timeout,
            )
        except httpx.HTTPError as exc:
            raise _AttemptFailed(f"{type(exc).__name__}: {exc}") from exc

        if response.status_code >= 400:
            raise _AttemptFailed(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise _AttemptFailed(f"Malformed JSON payload: {exc}", status_code=response.status_code) from exc


__all__ = [
    "RequestClass",
    "RequestExecutor",
    "RetryPolicy",
    "UpstreamRequest",
    "UpstreamRequestError",
]
