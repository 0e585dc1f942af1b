"""
Energy Module - Ledger Service

Every change to a user's energy goes through EnergyLedger. A change is one
unit of work: take the user's lock, lock the wallet row, append to the log,
update the wallet projection, commit. Nothing else writes these tables.

Streak days are UTC calendar days.
"""
import asyncio
import uuid
import weakref
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.exceptions import (
    InsufficientEnergyError,
    LunaException,
    NotFoundError,
    TransientStoreError,
    ValidationError,
)
from src.core.logging import get_logger
from src.core.metrics import record_credit, record_insufficient, record_spend, record_streak_bonus
from src.core.models import as_utc, utc_now
from src.modules.auth.models import User
from src.modules.energy.constants import (
    ENERGY_COSTS,
    MAX_HISTORY_TAKE,
    MIN_HISTORY_TAKE,
    FeatureKind,
    get_energy_pack,
    is_streak_qualifying,
)
from src.modules.energy.models import (
    EnergyTransaction,
    EnergyTransactionReason,
    EnergyWallet,
    StreakBonusAward,
)

logger = get_logger(__name__)

Clock = Callable[[], datetime]

# Per-user locks; an entry disappears once no coroutine holds it
_user_locks: "weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock]" = weakref.WeakValueDictionary()


def _user_lock(user_id: uuid.UUID) -> asyncio.Lock:
    lock = _user_locks.get(user_id)
    if lock is None:
        lock = asyncio.Lock()
        _user_locks[user_id] = lock
    return lock


# === Pure helpers ===

def utc_day(moment: datetime) -> date:
    """Calendar day of a timestamp in UTC."""
    return as_utc(moment).date()


def advance_streak(
    streak_days: int,
    streak_started_on: date | None,
    last_action_at: datetime | None,
    now: datetime,
) -> tuple[int, date]:
    """
    Apply one qualifying action to a streak.

    Returns the new streak length and the day the streak started.
    Same day: unchanged. Next day: +1. Any longer gap: a new streak of 1.
    """
    today = utc_day(now)
    if last_action_at is None or streak_started_on is None or streak_days <= 0:
        return 1, today

    gap = (today - utc_day(last_action_at)).days
    if gap <= 0:
        return streak_days, streak_started_on
    if gap == 1:
        return streak_days + 1, streak_started_on
    return 1, today


def compute_bonus_progress(streak_days: int, threshold: int) -> tuple[int, int]:
    """Return (progress_days, days_until_bonus) within the current bonus window."""
    if streak_days <= 0:
        progress = 0
    else:
        remainder = streak_days % threshold
        progress = threshold if remainder == 0 else remainder
    days_until = 0 if progress == threshold else threshold - progress
    return progress, days_until


def resolve_cost(feature: FeatureKind | str, cost_override: int | None = None) -> tuple[FeatureKind, int]:
    """Validate a feature and return its cost."""
    try:
        kind = FeatureKind(feature)
    except ValueError:
        raise ValidationError(f"Unknown energy feature: {feature}", details={"feature": str(feature)})

    cost = ENERGY_COSTS[kind] if cost_override is None else cost_override
    if cost < 0:
        raise ValidationError("Energy cost cannot be negative", details={"cost": cost})
    return kind, cost


# === Read models ===

@dataclass
class EnergyAccount:
    """Point-in-time view of a user's energy."""
    user_id: uuid.UUID
    balance: int = 0
    streak_days: int = 0
    longest_streak_days: int = 0
    bonus_count: int = 0
    lifetime_earned: int = 0
    lifetime_spent: int = 0
    last_action_at: datetime | None = None
    last_bonus_at: datetime | None = None

    @classmethod
    def from_wallet(cls, wallet: EnergyWallet) -> "EnergyAccount":
        return cls(
            user_id=wallet.user_id,
            balance=wallet.balance,
            streak_days=wallet.streak_days,
            longest_streak_days=wallet.longest_streak_days,
            bonus_count=wallet.bonus_count,
            lifetime_earned=wallet.lifetime_earned,
            lifetime_spent=wallet.lifetime_spent,
            last_action_at=as_utc(wallet.last_action_at) if wallet.last_action_at else None,
            last_bonus_at=as_utc(wallet.last_bonus_at) if wallet.last_bonus_at else None,
        )


@dataclass
class SpendResult:
    """Debit entry plus the bonus it may have triggered."""
    transaction: EnergyTransaction
    account: EnergyAccount
    bonus_transaction: EnergyTransaction | None = None

    @property
    def bonus_awarded(self) -> int:
        return self.bonus_transaction.amount if self.bonus_transaction else 0


class EnergyLedger:
    """Energy ledger for all users, bound to one database session."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock = utc_now,
        streak_threshold: int | None = None,
        bonus_amount: int | None = None,
    ):
        self.db = db
        self.clock = clock
        self.streak_threshold = streak_threshold or settings.streak_length_for_bonus
        self.bonus_amount = bonus_amount or settings.streak_bonus_amount

    # ============== Reads ==============

    async def get_balance(self, user_id: uuid.UUID) -> EnergyAccount:
        """Current account view. A user without a wallet yet has a zero account."""
        async with self._store_errors():
            await self._require_user(user_id)
            wallet = await self._get_wallet(user_id)
        if wallet is None:
            return EnergyAccount(user_id=user_id)
        return EnergyAccount.from_wallet(wallet)

    async def get_history(self, user_id: uuid.UUID, take: int) -> list[EnergyTransaction]:
        """Newest-first ledger entries, at most `take` of them."""
        if not MIN_HISTORY_TAKE <= take <= MAX_HISTORY_TAKE:
            raise ValidationError(
                f"take must be between {MIN_HISTORY_TAKE} and {MAX_HISTORY_TAKE}",
                details={"take": take},
            )

        async with self._store_errors():
            await self._require_user(user_id)
            stmt = (
                select(EnergyTransaction)
                .where(EnergyTransaction.user_id == user_id)
                .order_by(EnergyTransaction.created_at.desc(), EnergyTransaction.sequence.desc())
                .limit(take)
            )
            result = await self.db.execute(stmt)
            return list(result.scalars().all())

    async def replay_balance(self, user_id: uuid.UUID) -> int:
        """Recompute the balance from the log alone."""
        async with self._store_errors():
            result = await self.db.execute(
                select(func.coalesce(func.sum(EnergyTransaction.amount), 0))
                .where(EnergyTransaction.user_id == user_id)
            )
            return int(result.scalar() or 0)

    # ============== Writes ==============

    async def spend(
        self,
        user_id: uuid.UUID,
        feature: FeatureKind | str,
        cost_override: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> SpendResult:
        """
        Debit the price of a feature.

        Streak-qualifying features also advance the streak and, on a
        milestone, credit the streak bonus in the same commit.

        Raises:
            ValidationError: unknown feature or negative cost
            InsufficientEnergyError: balance lower than the cost; nothing is written
        """
        kind, cost = resolve_cost(feature, cost_override)
        bonus_entry: EnergyTransaction | None = None

        async with self._atomic(user_id):
            wallet = await self._lock_wallet(user_id)
            if wallet.balance < cost:
                record_insufficient(kind.value)
                logger.info(
                    "Insufficient energy",
                    user_id=str(user_id),
                    feature=kind.value,
                    balance=wallet.balance,
                    cost=cost,
                )
                raise InsufficientEnergyError(balance=wallet.balance, required=cost)

            now = self.clock()
            balance_before = wallet.balance
            entry = self._append(
                wallet,
                amount=-cost,
                reason=EnergyTransactionReason.SPEND,
                now=now,
                feature=kind.value,
                metadata={"feature": kind.value, **(metadata or {})},
            )

            if is_streak_qualifying(kind):
                bonus_entry = await self._apply_streak(wallet, now)

            try:
                await self.db.flush()
            except IntegrityError as exc:
                if "balance_non_negative" in str(exc.orig):
                    raise InsufficientEnergyError(balance=balance_before, required=cost) from exc
                raise

            account = EnergyAccount.from_wallet(wallet)

        record_spend(kind.value, cost)
        if bonus_entry is not None:
            record_streak_bonus()
            record_credit(EnergyTransactionReason.STREAK_BONUS.value, bonus_entry.amount)

        logger.info(
            "Energy spent",
            user_id=str(user_id),
            feature=kind.value,
            cost=cost,
            balance_after=account.balance,
            streak_days=account.streak_days,
            bonus_awarded=bonus_entry.amount if bonus_entry else 0,
        )
        return SpendResult(transaction=entry, account=account, bonus_transaction=bonus_entry)

    async def credit(
        self,
        user_id: uuid.UUID,
        amount: int,
        reason: EnergyTransactionReason | str,
        metadata: dict[str, Any] | None = None,
        reference: str | None = None,
        on_entry: Callable[[EnergyTransaction], None] | None = None,
    ) -> EnergyTransaction:
        """
        Add energy to a user's balance.

        With a `reference` the credit is applied once: repeating the call
        returns the entry written the first time.

        `on_entry` is called with the entry before the commit, so callers can
        attach their own rows to the same database transaction.
        """
        if amount <= 0:
            raise ValidationError("Credit amount must be positive", details={"amount": amount})
        try:
            reason = EnergyTransactionReason(reason)
        except ValueError:
            raise ValidationError(f"Unknown credit reason: {reason}")
        if reason == EnergyTransactionReason.SPEND:
            raise ValidationError("Spends must go through spend()")

        async with self._atomic(user_id):
            wallet = await self._lock_wallet(user_id)

            if reference is not None:
                existing = await self._find_by_reference(user_id, reference)
                if existing is not None:
                    logger.info(
                        "Duplicate credit ignored",
                        user_id=str(user_id),
                        reference=reference,
                    )
                    if on_entry is not None:
                        on_entry(existing)
                    return existing

            entry = self._append(
                wallet,
                amount=amount,
                reason=reason,
                now=self.clock(),
                metadata=metadata,
                reference=reference,
            )
            if on_entry is not None:
                on_entry(entry)

        record_credit(reason.value, amount)
        logger.info(
            "Energy credited",
            user_id=str(user_id),
            amount=amount,
            reason=reason.value,
            balance_after=entry.balance_after,
        )
        return entry

    async def credit_pack_purchase(
        self,
        user_id: uuid.UUID,
        pack_id: str,
        external_reference: str,
    ) -> EnergyTransaction:
        """Credit a paid energy pack once per external payment reference."""
        pack = get_energy_pack(pack_id)
        if pack is None:
            raise NotFoundError("EnergyPack", pack_id)
        if pack.energy_amount is None:
            raise ValidationError(
                f"Pack '{pack_id}' is unlimited and carries no energy to credit",
                details={"pack_id": pack_id},
            )

        return await self.credit(
            user_id,
            pack.energy_amount,
            EnergyTransactionReason.PACK_PURCHASE,
            metadata={"pack_id": pack.id, "external_reference": external_reference},
            reference=f"energy-pack:{external_reference}",
        )

    # ============== Internals ==============

    def _append(
        self,
        wallet: EnergyWallet,
        amount: int,
        reason: EnergyTransactionReason,
        now: datetime,
        feature: str | None = None,
        metadata: dict[str, Any] | None = None,
        reference: str | None = None,
    ) -> EnergyTransaction:
        """Append a log entry and fold it into the wallet."""
        wallet.entry_count += 1
        wallet.balance += amount
        if amount > 0:
            wallet.lifetime_earned += amount
        elif amount < 0:
            wallet.lifetime_spent += -amount

        entry = EnergyTransaction(
            id=uuid.uuid4(),
            user_id=wallet.user_id,
            amount=amount,
            reason=reason.value,
            feature=feature,
            balance_after=wallet.balance,
            sequence=wallet.entry_count,
            reference=reference,
            metadata_=metadata or {},
            created_at=now,
            updated_at=now,
        )
        self.db.add(entry)
        return entry

    async def _apply_streak(self, wallet: EnergyWallet, now: datetime) -> EnergyTransaction | None:
        """Advance the streak and credit the milestone bonus if it is due."""
        streak_days, started_on = advance_streak(
            wallet.streak_days,
            wallet.streak_started_on,
            wallet.last_action_at,
            now,
        )
        wallet.streak_days = streak_days
        wallet.streak_started_on = started_on
        wallet.longest_streak_days = max(wallet.longest_streak_days, streak_days)
        wallet.last_action_at = now

        if streak_days % self.streak_threshold != 0:
            return None

        milestone = streak_days // self.streak_threshold
        already = await self.db.execute(
            select(StreakBonusAward.id).where(
                StreakBonusAward.user_id == wallet.user_id,
                StreakBonusAward.streak_started_on == started_on,
                StreakBonusAward.milestone == milestone,
            )
        )
        if already.first() is not None:
            return None

        bonus = self._append(
            wallet,
            amount=self.bonus_amount,
            reason=EnergyTransactionReason.STREAK_BONUS,
            now=now,
            metadata={"streak_days": streak_days, "milestone": milestone},
            reference=f"streak-bonus:{started_on.isoformat()}:{milestone}",
        )
        self.db.add(
            StreakBonusAward(
                user_id=wallet.user_id,
                streak_started_on=started_on,
                milestone=milestone,
                transaction=bonus,
            )
        )
        wallet.bonus_count += 1
        wallet.last_bonus_at = now

        logger.info(
            "Streak bonus credited",
            user_id=str(wallet.user_id),
            streak_days=streak_days,
            milestone=milestone,
            amount=self.bonus_amount,
        )
        return bonus

    async def _require_user(self, user_id: uuid.UUID) -> None:
        result = await self.db.execute(select(User.id).where(User.id == user_id))
        if result.first() is None:
            raise NotFoundError("User", user_id)

    async def _get_wallet(self, user_id: uuid.UUID) -> EnergyWallet | None:
        result = await self.db.execute(
            select(EnergyWallet)
            .where(EnergyWallet.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _lock_wallet(self, user_id: uuid.UUID) -> EnergyWallet:
        """Row-lock the wallet, creating it on first use."""
        await self._require_user(user_id)
        result = await self.db.execute(
            select(EnergyWallet)
            .where(EnergyWallet.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        wallet = result.scalar_one_or_none()
        if wallet is None:
            wallet = EnergyWallet(
                user_id=user_id,
                balance=0,
                lifetime_earned=0,
                lifetime_spent=0,
                streak_days=0,
                longest_streak_days=0,
                streak_started_on=None,
                last_action_at=None,
                bonus_count=0,
                last_bonus_at=None,
                entry_count=0,
            )
            self.db.add(wallet)
            await self.db.flush()
        return wallet

    async def _find_by_reference(self, user_id: uuid.UUID, reference: str) -> EnergyTransaction | None:
        result = await self.db.execute(
            select(EnergyTransaction).where(
                EnergyTransaction.user_id == user_id,
                EnergyTransaction.reference == reference,
            )
        )
        return result.scalar_one_or_none()

    @asynccontextmanager
    async def _atomic(self, user_id: uuid.UUID) -> AsyncIterator[None]:
        """Serialize per user, commit on success, roll back on any failure."""
        async with _user_lock(user_id):
            try:
                yield
                await self.db.commit()
            except LunaException:
                await self.db.rollback()
                raise
            except IntegrityError as exc:
                await self.db.rollback()
                logger.warning(
                    "Concurrent ledger write rejected",
                    user_id=str(user_id),
                    error=str(exc.orig),
                )
                raise TransientStoreError("Concurrent ledger write, retry the operation") from exc
            except (OperationalError, InterfaceError) as exc:
                await self.db.rollback()
                logger.error("Ledger store unavailable", user_id=str(user_id), error=str(exc))
                raise TransientStoreError() from exc
            except Exception:
                await self.db.rollback()
                raise

    @asynccontextmanager
    async def _store_errors(self) -> AsyncIterator[None]:
        """Translate connection failures on reads."""
        try:
            yield
        except (OperationalError, InterfaceError) as exc:
            logger.error("Ledger store unavailable", error=str(exc))
            raise TransientStoreError() from exc
