"""Create the referral rewards ledger with lifetime pair uniqueness."""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261018_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "referral_rewards",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("createdAt", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updatedAt", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("processing_date", sa.Date(), nullable=True),
        sa.Column("receivingMemberEmail", sa.Text(), nullable=False),
        sa.Column("receivingMemberId", sa.BigInteger(), nullable=False),
        sa.Column("receivingMemberFirstName", sa.Text(), nullable=True),
        sa.Column("receivingMemberLastName", sa.Text(), nullable=True),
        sa.Column("receivingMemberTotalSpend", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("receivingMemberVisits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("givingMemberId", sa.BigInteger(), nullable=False),
        sa.Column("givingMemberFirstName", sa.Text(), nullable=True),
        sa.Column("givingMemberLastName", sa.Text(), nullable=True),
        sa.Column("givingMemberRewarded", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("manuallyAdded", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("shouldGivingMemberBeRewarded", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("spendingThreshold", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("homeLocation", sa.Text(), nullable=True),
        sa.Column("hostName", sa.Text(), nullable=True),
        sa.Column("hostCurrency", sa.Text(), nullable=True),
        sa.Column("processing_status", sa.String(length=13), nullable=False, server_default="pending"),
        sa.Column("qualification_comments", sa.Text(), nullable=True),
        sa.Column("reward_comments", sa.Text(), nullable=True),
        sa.UniqueConstraint("givingMemberId", "receivingMemberId", name="referral_rewards_unique_lifetime_pair"),
    )
    op.create_index("idx_referral_rewards_giving_member", "referral_rewards", ["givingMemberId"])
    op.create_index("idx_referral_rewards_receiving_member", "referral_rewards", ["receivingMemberId"])
    op.create_index("idx_referral_rewards_processing_date", "referral_rewards", ["processing_date"])
    op.create_index("idx_referral_rewards_rewarded", "referral_rewards", ["givingMemberRewarded"])
    op.create_index("idx_referral_rewards_status", "referral_rewards", ["processing_status"])


def downgrade() -> None:
    op.drop_index("idx_referral_rewards_status", table_name="referral_rewards")
    op.drop_index("idx_referral_rewards_rewarded", table_name="referral_rewards")
    op.drop_index("idx_referral_rewards_processing_date", table_name="referral_rewards")
    op.drop_index("idx_referral_rewards_receiving_member", table_name="referral_rewards")
    op.drop_index("idx_referral_rewards_giving_member", table_name="referral_rewards")
    op.drop_table("referral_rewards")
