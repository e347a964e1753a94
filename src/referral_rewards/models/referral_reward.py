"""Durable ledger of referral pairs and their reward state."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum as SqlEnum,
    Index,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.types import Uuid

from referral_rewards.db.base import Base


class ProcessingStatus(str, Enum):
    """Qualification state recorded for a referral pair."""

    PENDING = "pending"
    QUALIFIED = "qualified"
    NOT_QUALIFIED = "not_qualified"


class ReferralReward(Base):
    """One row per giving/receiving member pair, for the lifetime of the relationship."""

    __tablename__ = "referral_rewards"
    __table_args__ = (
        UniqueConstraint(
            "givingMemberId",
            "receivingMemberId",
            name="referral_rewards_unique_lifetime_pair",
        ),
        Index("idx_referral_rewards_giving_member", "givingMemberId"),
        Index("idx_referral_rewards_receiving_member", "receivingMemberId"),
        Index("idx_referral_rewards_processing_date", "processing_date"),
        Index("idx_referral_rewards_rewarded", "givingMemberRewarded"),
        Index("idx_referral_rewards_status", "processing_status"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    created_at = Column("createdAt", DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        "updatedAt",
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
    processing_date = Column(Date, nullable=True)

    receiving_member_email = Column("receivingMemberEmail", Text, nullable=False, default="")
    receiving_member_id = Column("receivingMemberId", BigInteger, nullable=False)
    receiving_member_first_name = Column("receivingMemberFirstName", Text, nullable=True)
    receiving_member_last_name = Column("receivingMemberLastName", Text, nullable=True)
    receiving_member_total_spend = Column("receivingMemberTotalSpend", Numeric(10, 2), nullable=False, default=0)
    receiving_member_visits = Column("receivingMemberVisits", Integer, nullable=False, default=0)

    giving_member_id = Column("givingMemberId", BigInteger, nullable=False)
    giving_member_first_name = Column("givingMemberFirstName", Text, nullable=True)
    giving_member_last_name = Column("givingMemberLastName", Text, nullable=True)
    giving_member_rewarded = Column("givingMemberRewarded", Boolean, nullable=False, default=False)

    manually_added = Column("manuallyAdded", Boolean, nullable=False, default=False)
    should_giving_member_be_rewarded = Column("shouldGivingMemberBeRewarded", Boolean, nullable=False, default=True)
    spending_threshold = Column("spendingThreshold", Numeric(10, 2), nullable=False, default=0)

    home_location = Column("homeLocation", Text, nullable=True)
    host_name = Column("hostName", Text, nullable=True)
    host_currency = Column("hostCurrency", Text, nullable=True)

    processing_status = Column(
        SqlEnum(
            ProcessingStatus,
            name="referral_processing_status",
            native_enum=False,
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=ProcessingStatus.PENDING,
    )
    qualification_comments = Column(Text, nullable=True)
    reward_comments = Column(Text, nullable=True)


__all__ = ["ProcessingStatus", "ReferralReward"]
