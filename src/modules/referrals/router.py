"""
Referrals Module - API Routes
"""
from fastapi import APIRouter

from src.modules.auth.dependencies import CurrentUser
from src.modules.referrals.dependencies import ReferralServiceDep
from src.modules.referrals.schemas import (
    ReferralClaimRequest,
    ReferralClaimResponse,
    ReferralLinkResponse,
)

router = APIRouter(prefix="/referrals", tags=["Referrals"])


@router.get("/link", response_model=ReferralLinkResponse)
async def get_referral_link(current_user: CurrentUser, service: ReferralServiceDep):
    """Get (or create) the current user's referral link."""
    link = await service.get_or_create_link(current_user)
    return ReferralLinkResponse(
        code=link.code,
        share_url=service.share_url(link),
        bonus_energy=link.bonus_energy,
    )


@router.post("/claim", response_model=ReferralClaimResponse)
async def claim_referral(
    request: ReferralClaimRequest,
    current_user: CurrentUser,
    service: ReferralServiceDep,
):
    """Claim a referral code; the code owner earns energy."""
    result = await service.claim(request.code, current_user)
    return ReferralClaimResponse(
        already_claimed=result.already_claimed,
        bonus_granted=result.bonus_granted,
        referrer_id=str(result.event.referrer_id) if result.event else None,
    )
