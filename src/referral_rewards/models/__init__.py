from .referral_reward import ProcessingStatus, ReferralReward

__all__ = ["ProcessingStatus", "ReferralReward"]
