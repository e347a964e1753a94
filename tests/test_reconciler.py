from decimal import Decimal

from referral_rewards.schemas.referrals import Candidate, ReferralRecord
from referral_rewards.services.referrals import index_candidates, is_qualified, reconcile, reconcile_record

from conftest import candidate_row, referral_row


def _candidates(*member_ids: int) -> list[Candidate]:
    return [Candidate.model_validate(candidate_row(member_id)) for member_id in member_ids]


def test_reconcile_keeps_only_candidate_receivers() -> None:
    records = [
        ReferralRecord.model_validate(referral_row(1, 102, 2)),
        ReferralRecord.model_validate(referral_row(2, 104, 5)),
        ReferralRecord.model_validate(referral_row(3, 103, 0)),
    ]

    decisions = list(reconcile(records, _candidates(101, 102, 103)))

    assert [decision.pair for decision in decisions] == [(1, 102), (3, 103)]
    assert [decision.qualified for decision in decisions] == [True, False]


def test_snapshot_prefers_candidate_contact_details() -> None:
    record = ReferralRecord.model_validate(referral_row(1, 102, 2, location="Kenkere House"))

    decision = reconcile_record(record, index_candidates(_candidates(102)))

    assert decision is not None
    snapshot = decision.snapshot
    assert snapshot.receiving_member_email == "member102@example.com"
    assert snapshot.receiving_member_first_name == "First102"
    assert snapshot.giving_member_first_name == "Giver1"
    assert snapshot.receiving_member_total_spend == Decimal("1500.00")
    assert snapshot.home_location == "Kenkere House"


def test_missing_visits_do_not_qualify() -> None:
    record = ReferralRecord.model_validate(referral_row(1, 102, None))

    assert record.receiving_member_visits == 0
    assert is_qualified(record) is False


def test_one_visit_is_the_qualifying_threshold() -> None:
    assert is_qualified(ReferralRecord.model_validate(referral_row(1, 102, 1))) is True
    assert is_qualified(ReferralRecord.model_validate(referral_row(1, 102, 0))) is False
