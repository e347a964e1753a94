"""Recurring job entrypoints."""

__all__ = ["referral_rewards"]
