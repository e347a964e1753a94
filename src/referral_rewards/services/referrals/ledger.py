"""Ledger gate: idempotency lookup and lifetime-unique commit per referral pair."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List

from loguru import logger
from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_rewards.core.settings import Settings
from referral_rewards.models.referral_reward import ProcessingStatus, ReferralReward

from .reconciler import ReconciledDecision

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]


class LedgerVerdict(str, Enum):
    """What the gate allows for a reconciled pair."""

    ISSUE = "issue"
    TRACK_ONLY = "track_only"
    SKIP_REWARDED = "skip_rewarded"
    SKIP_PROCESSED = "skip_processed"


@dataclass(frozen=True, slots=True)
class LedgerStatus:
    processed: bool
    rewarded: bool
    status: ProcessingStatus | None = None
    available: bool = True


def decide(status: LedgerStatus, decision: ReconciledDecision) -> LedgerVerdict:
    """Map the stored state of a pair onto the action for this run.

    Any existing row is final for issuance, rewarded or not.
    """

    if status.processed and status.rewarded:
        return LedgerVerdict.SKIP_REWARDED
    if status.processed:
        return LedgerVerdict.SKIP_PROCESSED
    if decision.qualified:
        return LedgerVerdict.ISSUE
    return LedgerVerdict.TRACK_ONLY


def _status_for(visits: int) -> ProcessingStatus:
    return ProcessingStatus.QUALIFIED if visits >= 1 else ProcessingStatus.NOT_QUALIFIED


def _qualification_note(visits: int, *, first: bool) -> str:
    if visits >= 1:
        return f"Receiving member qualified with {visits} visits" if first else f"Updated: {visits} visits"
    if first:
        return f"Receiving member not qualified - only {visits} visits"
    return f"Updated: only {visits} visits"


def _reward_note(today: date, *, first: bool) -> str:
    if first:
        return f"Giving member rewarded successfully on {today.isoformat()}"
    return f"Reward confirmed on {today.isoformat()}"


def _append_note(existing: str | None, note: str) -> str:
    if not existing:
        return note
    return f"{existing}; {note}"


class ReferralLedger:
    """Durable record of which pairs have been seen and rewarded.

    The ``(givingMemberId, receivingMemberId)`` unique constraint is the only
    guard against concurrent runs; there is no application-level lock.
    """

    def __init__(self, session_factory: SessionFactory, settings: Settings) -> None:
        self._session_factory = session_factory
        self._timeout = settings.ledger_request_timeout_seconds
        self._host_name = settings.host_name
        self._host_currency = settings.host_currency

    async def lookup(self, giving_member_id: int, receiving_member_id: int) -> LedgerStatus:
        """Fetch the stored state of a pair; an unreachable ledger reads as unprocessed."""

        try:
            return await asyncio.wait_for(
                self._lookup(giving_member_id, receiving_member_id),
                timeout=self._timeout,
            )
        except (SQLAlchemyError, asyncio.TimeoutError) as exc:
            logger.warning(
                "Ledger lookup failed, treating pair as unprocessed",
                giving_member_id=giving_member_id,
                receiving_member_id=receiving_member_id,
                error=str(exc) or type(exc).__name__,
            )
            return LedgerStatus(processed=False, rewarded=False, available=False)

    async def gate(self, decision: ReconciledDecision) -> LedgerVerdict:
        giving_member_id, receiving_member_id = decision.pair
        status = await self.lookup(giving_member_id, receiving_member_id)
        return decide(status, decision)

    async def commit(self, decision: ReconciledDecision, *, rewarded: bool) -> bool:
        """Insert the pair, or refresh it on a uniqueness conflict.

        Returns ``False`` instead of raising when the ledger cannot be written.
        """

        try:
            return await asyncio.wait_for(self._commit(decision, rewarded=rewarded), timeout=self._timeout)
        except (SQLAlchemyError, asyncio.TimeoutError) as exc:
            giving_member_id, receiving_member_id = decision.pair
            logger.error(
                "Ledger commit failed",
                giving_member_id=giving_member_id,
                receiving_member_id=receiving_member_id,
                rewarded=rewarded,
                error=str(exc) or type(exc).__name__,
            )
            return False

    async def summary_by_date(self, *, limit: int = 30) -> List[Dict[str, Any]]:
        """Per processing date totals, newest first."""

        stmt = (
            select(
                ReferralReward.processing_date,
                func.count().label("total_referrals"),
                func.sum(case((ReferralReward.giving_member_rewarded.is_(True), 1), else_=0)).label(
                    "rewards_processed"
                ),
                func.sum(
                    case((ReferralReward.processing_status == ProcessingStatus.QUALIFIED, 1), else_=0)
                ).label("qualified_referrals"),
                func.sum(
                    case((ReferralReward.processing_status == ProcessingStatus.NOT_QUALIFIED, 1), else_=0)
                ).label("unqualified_referrals"),
                func.sum(ReferralReward.receiving_member_total_spend).label("total_receiving_member_spend"),
                func.avg(ReferralReward.receiving_member_visits).label("avg_receiving_member_visits"),
            )
            .group_by(ReferralReward.processing_date)
            .order_by(ReferralReward.processing_date.desc())
            .limit(limit)
        )
        session = await self._open_session()
        async with session as managed_session:
            result = await managed_session.execute(stmt)
            rows = result.all()

        return [
            {
                "processing_date": row.processing_date.isoformat() if row.processing_date else None,
                "total_referrals": int(row.total_referrals or 0),
                "rewards_processed": int(row.rewards_processed or 0),
                "qualified_referrals": int(row.qualified_referrals or 0),
                "unqualified_referrals": int(row.unqualified_referrals or 0),
                "total_receiving_member_spend": Decimal(str(row.total_receiving_member_spend or 0)),
                "avg_receiving_member_visits": float(row.avg_receiving_member_visits or 0),
            }
            for row in rows
        ]

    async def _open_session(self) -> AsyncSession:
        maybe_session = self._session_factory()
        if isinstance(maybe_session, AsyncSession):
            return maybe_session
        return await maybe_session

    async def _lookup(self, giving_member_id: int, receiving_member_id: int) -> LedgerStatus:
        stmt = select(
            ReferralReward.giving_member_rewarded,
            ReferralReward.processing_status,
        ).where(
            ReferralReward.giving_member_id == giving_member_id,
            ReferralReward.receiving_member_id == receiving_member_id,
        )
        session = await self._open_session()
        async with session as managed_session:
            result = await managed_session.execute(stmt)
            row = result.first()

        if row is None:
            return LedgerStatus(processed=False, rewarded=False)
        return LedgerStatus(processed=True, rewarded=bool(row.giving_member_rewarded), status=row.processing_status)

    async def _commit(self, decision: ReconciledDecision, *, rewarded: bool) -> bool:
        snapshot = decision.snapshot
        now = datetime.now(timezone.utc)
        today = now.date()
        visits = snapshot.receiving_member_visits

        session = await self._open_session()
        async with session as managed_session:
            row = ReferralReward(
                created_at=now,
                updated_at=now,
                processing_date=today,
                receiving_member_email=snapshot.receiving_member_email or "",
                receiving_member_id=snapshot.receiving_member_id,
                receiving_member_first_name=snapshot.receiving_member_first_name,
                receiving_member_last_name=snapshot.receiving_member_last_name,
                receiving_member_total_spend=snapshot.receiving_member_total_spend,
                receiving_member_visits=visits,
                giving_member_id=snapshot.giving_member_id,
                giving_member_first_name=snapshot.giving_member_first_name,
                giving_member_last_name=snapshot.giving_member_last_name,
                giving_member_rewarded=rewarded,
                manually_added=False,
                should_giving_member_be_rewarded=True,
                spending_threshold=Decimal("0"),
                home_location=snapshot.home_location,
                host_name=self._host_name,
                host_currency=self._host_currency,
                processing_status=_status_for(visits),
                qualification_comments=_qualification_note(visits, first=True),
                reward_comments=_reward_note(today, first=True) if rewarded else None,
            )
            managed_session.add(row)
            try:
                await managed_session.commit()
            except IntegrityError:
                await managed_session.rollback()
                logger.info(
                    "Ledger row exists, updating",
                    giving_member_id=snapshot.giving_member_id,
                    receiving_member_id=snapshot.receiving_member_id,
                )
            else:
                logger.info(
                    "Ledger row recorded",
                    giving_member_id=snapshot.giving_member_id,
                    receiving_member_id=snapshot.receiving_member_id,
                    rewarded=rewarded,
                    processing_status=row.processing_status.value,
                )
                return True

            existing = (
                await managed_session.execute(
                    select(ReferralReward).where(
                        ReferralReward.giving_member_id == snapshot.giving_member_id,
                        ReferralReward.receiving_member_id == snapshot.receiving_member_id,
                    )
                )
            ).scalar_one_or_none()
            if existing is None:
                raise IntegrityError(
                    "conflicting ledger row disappeared before update",
                    params=None,
                    orig=RuntimeError("missing referral_rewards row"),
                )

            existing.receiving_member_total_spend = snapshot.receiving_member_total_spend
            existing.receiving_member_visits = visits
            existing.processing_status = _status_for(visits)
            existing.qualification_comments = _append_note(
                existing.qualification_comments, _qualification_note(visits, first=False)
            )
            if rewarded:
                first_reward = not existing.giving_member_rewarded
                existing.giving_member_rewarded = True
                existing.reward_comments = _append_note(
                    existing.reward_comments, _reward_note(today, first=first_reward)
                )
            existing.updated_at = now
            await managed_session.commit()
            logger.info(
                "Ledger row updated",
                giving_member_id=snapshot.giving_member_id,
                receiving_member_id=snapshot.receiving_member_id,
                rewarded=bool(existing.giving_member_rewarded),
            )
            return True


__all__ = [
    "LedgerStatus",
    "LedgerVerdict",
    "ReferralLedger",
    "decide",
]
