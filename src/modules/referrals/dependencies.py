"""
Referrals Module - FastAPI Dependencies
"""
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database import get_db
from src.modules.referrals.service import ReferralService


async def get_referral_service(db: Annotated[AsyncSession, Depends(get_db)]) -> ReferralService:
    return ReferralService(db)


ReferralServiceDep = Annotated[ReferralService, Depends(get_referral_service)]
