"""Referral reward reconciliation and lifetime-unique issuance."""

__version__ = "0.1.0"
