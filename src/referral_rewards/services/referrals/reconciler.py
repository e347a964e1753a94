"""Join report rows against the candidate set."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, Iterator

from referral_rewards.schemas.referrals import Candidate, ReferralRecord

QUALIFYING_VISITS = 1


@dataclass(frozen=True, slots=True)
class ReferralSnapshot:
    """Facts written to the ledger for a pair: report row merged with the candidate."""

    giving_member_id: int
    giving_member_first_name: str | None
    giving_member_last_name: str | None
    receiving_member_id: int
    receiving_member_email: str | None
    receiving_member_first_name: str | None
    receiving_member_last_name: str | None
    receiving_member_visits: int
    receiving_member_total_spend: Decimal
    home_location: str | None


@dataclass(frozen=True, slots=True)
class ReconciledDecision:
    snapshot: ReferralSnapshot
    qualified: bool

    @property
    def pair(self) -> tuple[int, int]:
        return (self.snapshot.giving_member_id, self.snapshot.receiving_member_id)


def index_candidates(candidates: Iterable[Candidate]) -> Dict[int, Candidate]:
    # later pages win on duplicate member ids
    return {candidate.member_id: candidate for candidate in candidates}


def is_qualified(record: ReferralRecord) -> bool:
    return record.receiving_member_visits >= QUALIFYING_VISITS


def reconcile_record(record: ReferralRecord, candidates: Dict[int, Candidate]) -> ReconciledDecision | None:
    """Return the decision for ``record`` or ``None`` when its receiver is not a candidate."""

    candidate = candidates.get(record.receiving_member_id)
    if candidate is None:
        return None

    snapshot = ReferralSnapshot(
        giving_member_id=record.giving_member_id,
        giving_member_first_name=record.giving_member_first_name,
        giving_member_last_name=record.giving_member_last_name,
        receiving_member_id=record.receiving_member_id,
        receiving_member_email=candidate.email,
        receiving_member_first_name=candidate.first_name,
        receiving_member_last_name=candidate.last_name,
        receiving_member_visits=record.receiving_member_visits,
        receiving_member_total_spend=record.receiving_member_total_spend,
        home_location=record.home_location,
    )
    return ReconciledDecision(snapshot=snapshot, qualified=is_qualified(record))


def reconcile(
    records: Iterable[ReferralRecord],
    candidates: Iterable[Candidate],
) -> Iterator[ReconciledDecision]:
    index = index_candidates(candidates)
    for record in records:
        decision = reconcile_record(record, index)
        if decision is not None:
            yield decision


__all__ = [
    "QUALIFYING_VISITS",
    "ReconciledDecision",
    "ReferralSnapshot",
    "index_candidates",
    "is_qualified",
    "reconcile",
    "reconcile_record",
]
