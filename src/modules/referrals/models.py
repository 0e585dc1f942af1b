"""
Referrals Module - Database Models

- ReferralLink: a user's shareable referral code
- ReferralEvent: a referred user claiming someone's code
"""
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.models import Base

if TYPE_CHECKING:
    from src.modules.energy.models import EnergyTransaction


class ReferralLink(Base):
    """Referral code owned by a user."""
    __tablename__ = "referral_link"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    bonus_energy: Mapped[int] = mapped_column(Integer, nullable=False)

    events: Mapped[list["ReferralEvent"]] = relationship(
        "ReferralEvent",
        back_populates="referral_link",
        lazy="raise",
    )


class ReferralEvent(Base):
    """A referral code claimed by a new user."""
    __tablename__ = "referral_event"

    __table_args__ = (
        # A user can be referred only once
        UniqueConstraint("referred_user_id", name="uq_referral_event_referred_user"),
    )

    referral_link_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("referral_link.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    referrer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    referred_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
    )
    bonus_granted: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Ledger entry that paid the referrer
    transaction_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("energy_transaction.id", ondelete="SET NULL"),
        nullable=True,
    )

    referral_link: Mapped["ReferralLink"] = relationship("ReferralLink", back_populates="events")
    transaction: Mapped["EnergyTransaction | None"] = relationship("EnergyTransaction")
