"""
Referrals Module - Pydantic Schemas
"""
from pydantic import Field

from src.modules.energy.schemas import CamelModel


class ReferralLinkResponse(CamelModel):
    """Shareable referral link of the current user."""
    code: str
    share_url: str
    bonus_energy: int


class ReferralClaimRequest(CamelModel):
    """Claim someone's referral code."""
    code: str = Field(..., min_length=4, max_length=32)


class ReferralClaimResponse(CamelModel):
    """Outcome of a claim."""
    already_claimed: bool
    bonus_granted: int
    referrer_id: str | None = None
