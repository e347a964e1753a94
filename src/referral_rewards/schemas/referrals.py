from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _to_camel(value: str) -> str:
    parts = value.split("_")
    return parts[0] + "".join(word.capitalize() for word in parts[1:])


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel, extra="ignore", frozen=True)


class Candidate(_CamelModel):
    """Customer returned by the one-visit customer listing."""

    member_id: int
    email: str | None = Field(default=None)
    first_name: str | None = Field(default=None)
    last_name: str | None = Field(default=None)


class ReferralRecord(_CamelModel):
    """Row of the upstream customer referral rewards report."""

    giving_member_id: int
    giving_member_first_name: str | None = Field(default=None)
    giving_member_last_name: str | None = Field(default=None)
    receiving_member_id: int
    receiving_member_email: str | None = Field(default=None)
    receiving_member_first_name: str | None = Field(default=None)
    receiving_member_last_name: str | None = Field(default=None)
    receiving_member_visits: int = Field(default=0)
    receiving_member_total_spend: Decimal = Field(default=Decimal("0"))
    home_location: str | None = Field(default=None)

    @field_validator("receiving_member_visits", mode="before")
    @classmethod
    def _visits_default(cls, value: object) -> object:
        return 0 if value is None else value

    @field_validator("receiving_member_total_spend", mode="before")
    @classmethod
    def _spend_default(cls, value: object) -> object:
        return Decimal("0") if value is None else value

    @property
    def pair(self) -> tuple[int, int]:
        return (self.giving_member_id, self.receiving_member_id)


__all__ = ["Candidate", "ReferralRecord"]
