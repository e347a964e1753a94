"""Grants the referral reward membership to the giving member."""

from __future__ import annotations

from typing import Any, Dict, Mapping

from loguru import logger

from referral_rewards.core.settings import Settings
from referral_rewards.services.upstream import MomenceClient, new_idempotency_key


def resolve_location_id(location_name: str | None, locations: Mapping[str, int], default_name: str) -> int:
    if location_name and location_name in locations:
        return locations[location_name]
    if default_name in locations:
        return locations[default_name]
    raise KeyError(f"Default location {default_name!r} has no configured id")


class RewardIssuer:
    """Zero-priced purchase of the reward membership, one idempotency key per call."""

    def __init__(self, client: MomenceClient, settings: Settings) -> None:
        self._client = client
        self._membership_id = settings.referral_membership_id
        self._locations = dict(settings.location_ids)
        self._default_location = settings.default_location_name

    def location_id_for(self, location_name: str | None) -> int:
        return resolve_location_id(location_name, self._locations, self._default_location)

    def build_payload(self, giving_member_id: int, home_location_id: int) -> Dict[str, Any]:
        return {
            "hostId": self._client.host_id,
            "payingMemberId": giving_member_id,
            "targetMemberId": giving_member_id,
            "items": [
                {
                    "guid": new_idempotency_key(),
                    "type": "membership",
                    "quantity": 1,
                    "priceInCurrency": 0,
                    "isPaymentPlanUsed": False,
                    "membershipId": self._membership_id,
                    "appliedPriceRuleIds": [],
                }
            ],
            "paymentMethods": [
                {
                    "type": "free",
                    "weightRelative": 1,
                    "guid": new_idempotency_key(),
                }
            ],
            "isEmailSent": False,
            "homeLocationId": home_location_id,
        }

    async def issue(self, giving_member_id: int, home_location: str | None) -> bool:
        """Return ``True`` when the reward was granted; failures never propagate."""

        try:
            home_location_id = self.location_id_for(home_location)
            payload = self.build_payload(giving_member_id, home_location_id)
            await self._client.pay_cart(payload, idempotency_key=new_idempotency_key())
        except Exception as exc:
            logger.error(
                "Failed to reward giving member",
                giving_member_id=giving_member_id,
                home_location=home_location,
                error=str(exc),
            )
            return False

        logger.info(
            "Rewarded giving member",
            giving_member_id=giving_member_id,
            home_location_id=home_location_id,
            membership_id=self._membership_id,
        )
        return True


__all__ = ["RewardIssuer", "resolve_location_id"]
