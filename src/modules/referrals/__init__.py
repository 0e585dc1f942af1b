"""
Referrals Module - Referral links and referral bonus.
"""
from src.modules.referrals.models import ReferralEvent, ReferralLink

__all__ = ["ReferralEvent", "ReferralLink"]
