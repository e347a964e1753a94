"""Base exception types shared across the referral rewards pipeline."""

from __future__ import annotations


class ReferralRewardsError(RuntimeError):
    """Base class for errors raised by the referral rewards pipeline."""


class ConfigurationError(ReferralRewardsError):
    """Raised when required run configuration is missing."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__(f"Missing required configuration: {', '.join(missing)}")
        self.missing = missing


__all__ = ["ConfigurationError", "ReferralRewardsError"]
