"""
Energy Module - Database Models

- EnergyTransaction: append-only log of every credit and debit
- EnergyWallet: per-user projection of the log (balance, streak, bonus bookkeeping)
- StreakBonusAward: one row per credited streak milestone (idempotency guard)
"""
import uuid
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.models import Base, JSONType

if TYPE_CHECKING:
    from src.modules.auth.models import User


class EnergyTransactionReason(str, Enum):
    """Why energy moved."""
    SPEND = "spend"
    STREAK_BONUS = "streak_bonus"
    REFERRAL_BONUS = "referral_bonus"
    PACK_PURCHASE = "pack_purchase"
    MANUAL_ADJUSTMENT = "manual_adjustment"


class EnergyWallet(Base):
    """
    Energy account of a user.

    Derived from the transaction log and updated in the same database
    transaction as every append. `balance` always equals the sum of the
    user's transaction amounts.
    """
    __tablename__ = "energy_wallet"

    __table_args__ = (
        CheckConstraint("balance >= 0", name="balance_non_negative"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lifetime_earned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lifetime_spent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Streak
    streak_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    longest_streak_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    streak_started_on: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
        comment="UTC day the current streak began",
    )
    last_action_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Bonus
    bonus_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_bonus_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Last sequence number handed out to this user's transactions
    entry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Relationships
    user: Mapped["User"] = relationship(
        "User",
        back_populates="energy_wallet",
    )


class EnergyTransaction(Base):
    """
    Energy ledger entry.

    Immutable once written. Positive amounts are credits, negative amounts debits.
    """
    __tablename__ = "energy_transaction"

    __table_args__ = (
        UniqueConstraint("user_id", "sequence", name="uq_energy_transaction_user_sequence"),
        UniqueConstraint("user_id", "reference", name="uq_energy_transaction_user_reference"),
        Index("idx_energy_tx_user_time", "user_id", "created_at"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    amount: Mapped[int] = mapped_column(Integer, nullable=False)

    reason: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment="spend/streak_bonus/referral_bonus/pack_purchase/manual_adjustment",
    )

    feature: Mapped[str | None] = mapped_column(String(50), nullable=True)

    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)

    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    # Idempotency reference for credits coming from external events
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    metadata_: Mapped[dict | None] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
        default=dict,
    )

    def __repr__(self) -> str:
        return f"<EnergyTransaction #{self.sequence} {self.amount:+d} {self.reason}>"


class StreakBonusAward(Base):
    """A streak milestone that has been credited."""
    __tablename__ = "streak_bonus_award"

    __table_args__ = (
        UniqueConstraint(
            "user_id", "streak_started_on", "milestone",
            name="uq_streak_bonus_milestone",
        ),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    streak_started_on: Mapped[date] = mapped_column(Date, nullable=False)

    milestone: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="streak_days // threshold at the time of the award",
    )

    transaction_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("energy_transaction.id", ondelete="CASCADE"),
        nullable=False,
    )

    transaction: Mapped["EnergyTransaction"] = relationship("EnergyTransaction")
