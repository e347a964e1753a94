"""Referral rewards run: collect, reconcile, gate, issue, record."""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Dict, List

import httpx
from loguru import logger
from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncSession

from referral_rewards.core.settings import Settings
from referral_rewards.services.notifications import RunAlertNotifier
from referral_rewards.services.referrals import (
    CandidateCollector,
    LedgerVerdict,
    ReferralLedger,
    ReportLifecycleController,
    RewardIssuer,
    index_candidates,
    reconcile_record,
)
from referral_rewards.services.upstream import MomenceClient, RequestExecutor

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]
SleepFunc = Callable[[float], Awaitable[Any]]

tracer = trace.get_tracer(__name__)


@dataclass
class RunSummary:
    status: str = "completed"
    candidates: int = 0
    report_rows: int = 0
    processed: int = 0
    rewarded: int = 0
    skipped: int = 0
    unmatched: int = 0
    not_qualified: int = 0
    reward_failures: int = 0
    ledger_write_failures: int = 0
    unrecorded_rewards: int = 0
    unrecorded_pairs: List[tuple[int, int]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["unrecorded_pairs"] = [list(pair) for pair in self.unrecorded_pairs]
        return payload


class ReferralRewardsPipeline:
    """Sequence one run of the reconciliation pipeline.

    Candidate collection and report initiation run concurrently; every pair
    after that is handled one at a time, in report order.
    """

    def __init__(
        self,
        *,
        collector: CandidateCollector,
        report: ReportLifecycleController,
        ledger: ReferralLedger,
        issuer: RewardIssuer,
        inter_record_delay_seconds: float = 1.0,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self._collector = collector
        self._report = report
        self._ledger = ledger
        self._issuer = issuer
        self._inter_record_delay = max(inter_record_delay_seconds, 0.0)
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        session_factory: SessionFactory,
        http_client: httpx.AsyncClient,
        sleep: SleepFunc = asyncio.sleep,
    ) -> "ReferralRewardsPipeline":
        executor = RequestExecutor.from_settings(settings, http_client, sleep=sleep)
        client = MomenceClient(executor, settings)
        return cls(
            collector=CandidateCollector(client, settings),
            report=ReportLifecycleController(client, settings, sleep=sleep),
            ledger=ReferralLedger(session_factory, settings),
            issuer=RewardIssuer(client, settings),
            inter_record_delay_seconds=settings.inter_record_delay_seconds,
            sleep=sleep,
        )

    async def run(self) -> RunSummary:
        summary = RunSummary()

        collect_task = asyncio.create_task(self._collector.collect())
        initiate_task = asyncio.create_task(self._report.initiate())
        try:
            candidates, report_run = await asyncio.gather(collect_task, initiate_task)
        except BaseException:
            for task in (collect_task, initiate_task):
                task.cancel()
            raise

        summary.candidates = len(candidates)
        if not candidates:
            summary.status = "noop"
            logger.info("No customers found with exactly one visit, nothing to do")
            return summary

        records = await self._report.poll(report_run)
        summary.report_rows = len(records)
        if not records:
            summary.status = "noop"
            logger.info("Referral report returned no rows, nothing to do")
            return summary

        candidate_index = index_candidates(candidates)
        # pairs handled earlier in this run, whatever the ledger reports
        handled_pairs: set[tuple[int, int]] = set()
        logger.info("Reconciling referral rows", candidates=len(candidates), report_rows=len(records))

        for position, record in enumerate(records, start=1):
            summary.processed += 1
            giving_member_id, receiving_member_id = record.pair
            bound = logger.bind(
                giving_member_id=giving_member_id,
                receiving_member_id=receiving_member_id,
            )
            bound.info(
                "Processing referral",
                position=position,
                total=len(records),
                visits=record.receiving_member_visits,
                total_spend=str(record.receiving_member_total_spend),
                home_location=record.home_location,
            )

            decision = reconcile_record(record, candidate_index)
            if decision is None:
                summary.unmatched += 1
                bound.info("Receiving member not in candidate list, skipping")
                continue

            if decision.pair in handled_pairs:
                summary.skipped += 1
                bound.info("Pair already handled earlier in this run, skipping")
                continue

            verdict = await self._ledger.gate(decision)
            if verdict is LedgerVerdict.SKIP_REWARDED:
                summary.skipped += 1
                bound.info("Pair already rewarded, skipping for good")
                continue
            if verdict is LedgerVerdict.SKIP_PROCESSED:
                summary.skipped += 1
                bound.info("Pair already processed, skipping")
                continue

            handled_pairs.add(decision.pair)
            rewarded = False
            if verdict is LedgerVerdict.ISSUE:
                rewarded = await self._issuer.issue(giving_member_id, record.home_location)
                if not rewarded:
                    summary.reward_failures += 1
            else:
                summary.not_qualified += 1
                bound.info("Receiving member not qualified, tracking without reward")

            recorded = await self._ledger.commit(decision, rewarded=rewarded)
            if not recorded:
                summary.ledger_write_failures += 1
                if rewarded:
                    summary.unrecorded_rewards += 1
                    summary.unrecorded_pairs.append(decision.pair)
                    bound.error("Reward granted but not recorded in ledger")

            if rewarded:
                summary.rewarded += 1

            if self._inter_record_delay:
                await self._sleep(self._inter_record_delay)

        return summary


def log_summary(summary: RunSummary) -> None:
    logger.bind(summary=summary.as_dict()).info(
        "Referral rewards run finished: {status}, {candidates} candidates, {report_rows} report rows, "
        "{processed} processed, {rewarded} rewarded, {skipped} skipped",
        status=summary.status,
        candidates=summary.candidates,
        report_rows=summary.report_rows,
        processed=summary.processed,
        rewarded=summary.rewarded,
        skipped=summary.skipped,
    )
    if summary.unrecorded_rewards:
        logger.error(
            "Rewards granted without a ledger record",
            unrecorded_rewards=summary.unrecorded_rewards,
            pairs=[list(pair) for pair in summary.unrecorded_pairs],
        )


async def run_referral_rewards(
    *,
    session_factory: SessionFactory,
    settings: Settings,
    http_client: httpx.AsyncClient | None = None,
    notifier: RunAlertNotifier | None = None,
    sleep: SleepFunc = asyncio.sleep,
) -> Dict[str, Any]:
    """Run the pipeline once and return its summary.

    Missing configuration and report failures propagate to the caller.
    """

    settings.require_run_configuration()
    notifier = notifier or RunAlertNotifier(settings, http_client=http_client)

    client = http_client or httpx.AsyncClient()
    owns_client = http_client is None

    with tracer.start_as_current_span("referral_rewards.run") as span:
        try:
            pipeline = ReferralRewardsPipeline.from_settings(
                settings,
                session_factory=session_factory,
                http_client=client,
                sleep=sleep,
            )
            summary = await pipeline.run()
        finally:
            if owns_client:
                await client.aclose()

        span.set_attribute("referral_rewards.status", summary.status)
        span.set_attribute("referral_rewards.rewarded", summary.rewarded)
        span.set_attribute("referral_rewards.unrecorded_rewards", summary.unrecorded_rewards)

    log_summary(summary)
    if summary.unrecorded_pairs:
        await notifier.notify_unrecorded_rewards(summary.unrecorded_pairs)
    return summary.as_dict()


__all__ = ["ReferralRewardsPipeline", "RunSummary", "log_summary", "run_referral_rewards"]
