"""Asynchronous referral report: request, poll, extract."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping

from loguru import logger
from pydantic import ValidationError

from referral_rewards.core.exceptions import ReferralRewardsError
from referral_rewards.core.settings import Settings
from referral_rewards.schemas.referrals import ReferralRecord
from referral_rewards.services.upstream import MomenceClient, UpstreamRequestError, new_idempotency_key

SleepFunc = Callable[[float], Awaitable[Any]]


class ReportError(ReferralRewardsError):
    """Base class for terminal report lifecycle failures."""

    def __init__(self, message: str, *, report_run_id: str | None = None) -> None:
        super().__init__(message)
        self.report_run_id = report_run_id


class ReportInitiationError(ReportError):
    """The initiation call did not yield a report run id."""


class ReportFailedError(ReportError):
    """The upstream reported the run as failed."""


class ReportTimeoutError(ReportError):
    """The run stayed pending for the whole polling budget."""


class ReportRunState(str, Enum):
    REQUESTED = "requested"
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class ItemsSource(str, Enum):
    """Where the item list of a completed report was found."""

    NESTED = "reportData.items"
    TOP_LEVEL = "items"
    MISSING = "missing"


@dataclass(frozen=True, slots=True)
class ExtractedItems:
    source: ItemsSource
    items: List[Any]


def extract_report_items(payload: Mapping[str, Any]) -> ExtractedItems:
    """Return report items, preferring ``reportData.items`` over top-level ``items``."""

    report_data = payload.get("reportData")
    if isinstance(report_data, Mapping):
        nested = report_data.get("items")
        if isinstance(nested, list):
            return ExtractedItems(source=ItemsSource.NESTED, items=nested)
    top_level = payload.get("items")
    if isinstance(top_level, list):
        return ExtractedItems(source=ItemsSource.TOP_LEVEL, items=top_level)
    return ExtractedItems(source=ItemsSource.MISSING, items=[])


def build_report_payload(settings: Settings) -> Dict[str, Any]:
    return {
        "timeZone": settings.report_timezone,
        "groupRecurring": False,
        "computedSaleValue": True,
        "includeVatInRevenue": True,
        "useBookedEntityDateRange": False,
        "excludeMembershipRenews": False,
        "day": settings.report_day,
        "moneyCreditSalesFilter": "filterOutSalesPaidByMoneyCredits",
        "hideVoided": False,
        "excludeInactiveMembers": False,
        "includeRefunds": False,
        "showOnlySpotfillerRevenue": False,
        "startDate": settings.report_start_date,
        "endDate": settings.report_end_date,
        "startDate2": settings.report_compare_start_date,
        "endDate2": settings.report_compare_end_date,
        "datePreset": -1,
        "datePreset2": 4,
    }


@dataclass
class ReportRun:
    report_run_id: str
    state: ReportRunState = ReportRunState.REQUESTED
    poll_attempts: int = 0
    items_source: ItemsSource | None = None
    records: List[ReferralRecord] = field(default_factory=list)


class ReportLifecycleController:
    """Drive one referral report run from initiation to a terminal state.

    A failed or timed-out run is never re-initiated here; the next pipeline
    run starts a fresh report.
    """

    def __init__(
        self,
        client: MomenceClient,
        settings: Settings,
        *,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self._client = client
        self._payload = build_report_payload(settings)
        self._poll_interval = settings.report_poll_interval_seconds
        self._max_attempts = settings.report_poll_max_attempts
        self._sleep = sleep

    async def initiate(self) -> ReportRun:
        idempotency_key = new_idempotency_key()
        logger.info("Initiating referral report", idempotency_key=idempotency_key)
        response = await self._client.start_referral_report(self._payload, idempotency_key=idempotency_key)
        report_run_id = response.get("reportRunId") if isinstance(response, Mapping) else None
        if not report_run_id:
            raise ReportInitiationError("No reportRunId returned from referral report API")
        logger.info("Referral report initiated", report_run_id=str(report_run_id))
        return ReportRun(report_run_id=str(report_run_id))

    async def poll(self, run: ReportRun) -> List[ReferralRecord]:
        """Poll until the run completes, fails, or the attempt budget runs out."""

        run.state = ReportRunState.PENDING
        for attempt in range(1, self._max_attempts + 1):
            run.poll_attempts = attempt
            try:
                response = await self._client.get_referral_report_run(run.report_run_id)
            except UpstreamRequestError as exc:
                logger.error(
                    "Referral report poll failed",
                    report_run_id=run.report_run_id,
                    attempt=attempt,
                    error=str(exc),
                )
                if attempt == self._max_attempts:
                    raise
                await self._sleep(self._poll_interval)
                continue

            status = response.get("status") if isinstance(response, Mapping) else None
            logger.debug("Referral report status", report_run_id=run.report_run_id, status=status, attempt=attempt)

            if status == ReportRunState.COMPLETED.value:
                extracted = extract_report_items(response)
                run.state = ReportRunState.COMPLETED
                run.items_source = extracted.source
                run.records = _parse_records(extracted.items, run.report_run_id)
                logger.info(
                    "Referral report completed",
                    report_run_id=run.report_run_id,
                    items=len(extracted.items),
                    records=len(run.records),
                    items_source=extracted.source.value,
                    attempts=attempt,
                )
                return run.records

            if status == ReportRunState.FAILED.value:
                run.state = ReportRunState.FAILED
                raise ReportFailedError("Referral report failed on server", report_run_id=run.report_run_id)

            if attempt < self._max_attempts:
                await self._sleep(self._poll_interval)

        run.state = ReportRunState.FAILED
        raise ReportTimeoutError(
            f"Referral report still pending after {self._max_attempts} polls",
            report_run_id=run.report_run_id,
        )

    async def fetch(self) -> List[ReferralRecord]:
        run = await self.initiate()
        return await self.poll(run)


def _parse_records(items: List[Any], report_run_id: str) -> List[ReferralRecord]:
    records: List[ReferralRecord] = []
    for item in items:
        try:
            records.append(ReferralRecord.model_validate(item))
        except ValidationError as exc:
            logger.warning("Skipping malformed referral row", report_run_id=report_run_id, error=str(exc))
    return records


__all__ = [
    "ExtractedItems",
    "ItemsSource",
    "ReportError",
    "ReportFailedError",
    "ReportInitiationError",
    "ReportLifecycleController",
    "ReportRun",
    "ReportRunState",
    "ReportTimeoutError",
    "build_report_payload",
    "extract_report_items",
]
