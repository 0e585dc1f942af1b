"""
Referrals Module - Service

A user shares a code; when someone else claims it, the code owner is
credited `bonus_energy` through the energy ledger.
"""
import secrets
import string
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.exceptions import ConflictError, NotFoundError, ValidationError
from src.core.logging import get_logger
from src.modules.auth.models import User
from src.modules.energy.models import EnergyTransaction, EnergyTransactionReason
from src.modules.energy.service import EnergyLedger
from src.modules.referrals.models import ReferralEvent, ReferralLink

logger = get_logger(__name__)

CODE_ALPHABET = string.ascii_lowercase + string.digits
CODE_LENGTH = 8
MAX_CODE_ATTEMPTS = 5


def generate_referral_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


@dataclass
class ClaimResult:
    already_claimed: bool
    bonus_granted: int = 0
    event: ReferralEvent | None = None


class ReferralService:
    """Referral links and claims."""

    def __init__(self, db: AsyncSession, ledger: EnergyLedger | None = None):
        self.db = db
        self.ledger = ledger or EnergyLedger(db)

    def share_url(self, link: ReferralLink) -> str:
        return f"{settings.app_base_url.rstrip('/')}/auth/register?ref={link.code}"

    async def get_link_by_code(self, code: str) -> ReferralLink | None:
        result = await self.db.execute(
            select(ReferralLink).where(ReferralLink.code == code.strip().lower())
        )
        return result.scalar_one_or_none()

    async def get_or_create_link(self, user: User) -> ReferralLink:
        """Return the user's referral link, creating it on first call."""
        result = await self.db.execute(
            select(ReferralLink).where(ReferralLink.user_id == user.id)
        )
        link = result.scalar_one_or_none()
        if link:
            return link

        for _ in range(MAX_CODE_ATTEMPTS):
            code = generate_referral_code()
            if await self.get_link_by_code(code) is None:
                break
        else:
            raise ConflictError("Could not allocate a unique referral code")

        link = ReferralLink(
            user_id=user.id,
            code=code,
            bonus_energy=settings.referral_bonus_energy,
        )
        self.db.add(link)
        try:
            await self.db.commit()
        except IntegrityError:
            # Created concurrently by another request
            await self.db.rollback()
            result = await self.db.execute(
                select(ReferralLink).where(ReferralLink.user_id == user.id)
            )
            existing = result.scalar_one_or_none()
            if existing is None:
                raise ConflictError("Could not allocate a unique referral code")
            return existing
        await self.db.refresh(link)

        logger.info("Referral link created", user_id=str(user.id), code=code)
        return link

    async def claim(self, code: str, user: User) -> ClaimResult:
        """
        Claim a referral code for `user`.

        The event and the referrer's credit are committed together.
        A user can be referred only once; later claims credit nothing.

        Raises:
            NotFoundError: unknown code
            ValidationError: the user's own code
        """
        link = await self.get_link_by_code(code)
        if link is None:
            raise NotFoundError("ReferralLink", code)
        if link.user_id == user.id:
            raise ValidationError("You cannot claim your own referral code")

        existing = await self.db.execute(
            select(ReferralEvent.id).where(ReferralEvent.referred_user_id == user.id)
        )
        if existing.first() is not None:
            return ClaimResult(already_claimed=True)

        event = ReferralEvent(
            referral_link_id=link.id,
            referrer_id=link.user_id,
            referred_user_id=user.id,
            bonus_granted=link.bonus_energy,
        )
        self.db.add(event)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            return ClaimResult(already_claimed=True)

        def attach(entry: EnergyTransaction) -> None:
            event.transaction = entry

        # Commits the event, its link to the entry and the credit together
        await self.ledger.credit(
            link.user_id,
            link.bonus_energy,
            EnergyTransactionReason.REFERRAL_BONUS,
            metadata={"referred_user_id": str(user.id), "code": link.code},
            reference=f"referral:{user.id}",
            on_entry=attach,
        )

        logger.info(
            "Referral claimed",
            referrer_id=str(link.user_id),
            referred_user_id=str(user.id),
            bonus=link.bonus_energy,
        )
        return ClaimResult(already_claimed=False, bonus_granted=link.bonus_energy, event=event)
