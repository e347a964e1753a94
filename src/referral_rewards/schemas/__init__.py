from .referrals import Candidate, ReferralRecord

__all__ = ["Candidate", "ReferralRecord"]
