"""
Energy Ledger Tests - service level, against a real SQLite database.
"""
import asyncio
import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError

from src.core.exceptions import (
    InsufficientEnergyError,
    NotFoundError,
    TransientStoreError,
    ValidationError,
)
from src.modules.energy.constants import FeatureKind
from src.modules.energy.models import (
    EnergyTransaction,
    EnergyTransactionReason,
    EnergyWallet,
    StreakBonusAward,
)
from src.modules.energy.service import EnergyLedger


async def history_sum(ledger: EnergyLedger, user_id: uuid.UUID) -> int:
    entries = await ledger.get_history(user_id, 200)
    return sum(e.amount for e in entries)


# === Balance ===

@pytest.mark.asyncio
async def test_new_user_has_zero_account(ledger, user, db_session):
    account = await ledger.get_balance(user.id)

    assert account.balance == 0
    assert account.streak_days == 0
    assert account.last_action_at is None
    assert account.last_bonus_at is None

    wallets = await db_session.execute(select(func.count()).select_from(EnergyWallet))
    assert wallets.scalar() == 0


@pytest.mark.asyncio
async def test_unknown_user_is_not_found(ledger):
    with pytest.raises(NotFoundError):
        await ledger.get_balance(uuid.uuid4())
    with pytest.raises(NotFoundError):
        await ledger.spend(uuid.uuid4(), FeatureKind.LUNA_CHAT)


@pytest.mark.asyncio
async def test_spend_debits_price(ledger, user, fund):
    await fund(user.id, 10)

    result = await ledger.spend(user.id, FeatureKind.CV_GENERATE)

    assert result.transaction.amount == -3
    assert result.transaction.reason == EnergyTransactionReason.SPEND.value
    assert result.transaction.feature == "cv.generate"
    assert result.transaction.balance_after == 7
    assert result.account.balance == 7
    assert result.account.lifetime_spent == 3
    assert result.bonus_transaction is None


@pytest.mark.asyncio
async def test_balance_matches_log(ledger, user, fund, clock):
    await fund(user.id, 20)
    for feature in (FeatureKind.CV_GENERATE, FeatureKind.LUNA_CHAT, FeatureKind.EXPORT_PDF):
        await ledger.spend(user.id, feature)
        clock.advance(days=1)

    account = await ledger.get_balance(user.id)
    assert account.balance == await history_sum(ledger, user.id)
    assert account.balance == await ledger.replay_balance(user.id)


# === Insufficient energy ===

@pytest.mark.asyncio
async def test_insufficient_energy_writes_nothing(ledger, user, fund):
    await fund(user.id, 42)

    with pytest.raises(InsufficientEnergyError) as exc_info:
        await ledger.spend(user.id, FeatureKind.ASSESSMENT_COMPLETE, cost_override=50)

    assert exc_info.value.balance == 42
    assert exc_info.value.required == 50
    account = await ledger.get_balance(user.id)
    assert account.balance == 42
    assert account.streak_days == 0
    assert len(await ledger.get_history(user.id, 50)) == 1


@pytest.mark.asyncio
async def test_spend_with_empty_wallet_fails(ledger, user):
    with pytest.raises(InsufficientEnergyError):
        await ledger.spend(user.id, FeatureKind.LUNA_CHAT)

    assert (await ledger.get_balance(user.id)).balance == 0


@pytest.mark.asyncio
async def test_zero_cost_feature_needs_no_balance(ledger, user):
    result = await ledger.spend(user.id, FeatureKind.RISE_SAVE_NOTES)

    assert result.transaction.amount == 0
    assert result.account.balance == 0
    assert result.account.streak_days == 1


# === Streak and bonus ===

@pytest.mark.asyncio
async def test_streak_counts_calendar_days(ledger, user, fund, clock):
    await fund(user.id, 50)

    first = await ledger.spend(user.id, FeatureKind.LUNA_CHAT)
    clock.advance(hours=5)
    same_day = await ledger.spend(user.id, FeatureKind.LUNA_CHAT)
    clock.advance(days=1)
    next_day = await ledger.spend(user.id, FeatureKind.LUNA_CHAT)

    assert first.account.streak_days == 1
    assert same_day.account.streak_days == 1
    assert next_day.account.streak_days == 2


@pytest.mark.asyncio
async def test_gap_resets_streak(ledger, user, fund, clock):
    await fund(user.id, 50)
    await ledger.spend(user.id, FeatureKind.LUNA_CHAT)
    clock.advance(days=1)
    await ledger.spend(user.id, FeatureKind.LUNA_CHAT)

    clock.advance(days=3)
    result = await ledger.spend(user.id, FeatureKind.LUNA_CHAT)

    assert result.account.streak_days == 1
    assert result.account.longest_streak_days == 2


@pytest.mark.asyncio
async def test_bonus_on_third_consecutive_day(ledger, user, fund, clock):
    await fund(user.id, 100)

    results = []
    for _ in range(3):
        results.append(await ledger.spend(user.id, FeatureKind.LUNA_CHAT))
        clock.advance(days=1)

    assert [r.bonus_awarded for r in results] == [0, 0, 5]
    bonus = results[2].bonus_transaction
    assert bonus.reason == EnergyTransactionReason.STREAK_BONUS.value
    assert bonus.sequence == results[2].transaction.sequence + 1
    assert bonus.balance_after == 100 - 3 + 5

    account = results[2].account
    assert account.balance == 102
    assert account.bonus_count == 1
    assert account.last_bonus_at is not None


@pytest.mark.asyncio
async def test_bonus_awarded_once_per_window(ledger, user, fund, clock):
    await fund(user.id, 100)

    awarded_on = []
    for day in range(1, 10):
        result = await ledger.spend(user.id, FeatureKind.LUNA_CHAT)
        # Repeat on the same day never pays twice
        repeat = await ledger.spend(user.id, FeatureKind.LUNA_HINT)
        assert repeat.bonus_awarded == 0
        if result.bonus_awarded:
            awarded_on.append(day)
        clock.advance(days=1)

    assert awarded_on == [3, 6, 9]
    account = await ledger.get_balance(user.id)
    assert account.bonus_count == 3
    assert account.balance == 100 - 18 + 15


@pytest.mark.asyncio
async def test_restarted_streak_earns_again(ledger, user, fund, clock, db_session):
    await fund(user.id, 100)

    for _ in range(3):
        await ledger.spend(user.id, FeatureKind.LUNA_CHAT)
        clock.advance(days=1)
    clock.advance(days=4)
    for _ in range(3):
        result = await ledger.spend(user.id, FeatureKind.LUNA_CHAT)
        clock.advance(days=1)

    assert result.bonus_awarded == 5
    assert result.account.bonus_count == 2
    awards = await db_session.execute(select(func.count()).select_from(StreakBonusAward))
    assert awards.scalar() == 2


@pytest.mark.asyncio
async def test_export_does_not_touch_streak(ledger, user, fund, clock):
    await fund(user.id, 20)
    await ledger.spend(user.id, FeatureKind.LUNA_CHAT)
    before = await ledger.get_balance(user.id)

    clock.advance(days=1)
    result = await ledger.spend(user.id, FeatureKind.EXPORT_PDF)

    assert result.transaction.amount == -2
    assert result.account.streak_days == 1
    assert result.account.last_action_at == before.last_action_at


# === Credit ===

@pytest.mark.asyncio
async def test_credit_rejects_non_positive_amount(ledger, user):
    with pytest.raises(ValidationError):
        await ledger.credit(user.id, 0, EnergyTransactionReason.MANUAL_ADJUSTMENT)
    with pytest.raises(ValidationError):
        await ledger.credit(user.id, -5, EnergyTransactionReason.MANUAL_ADJUSTMENT)
    with pytest.raises(ValidationError):
        await ledger.credit(user.id, 5, EnergyTransactionReason.SPEND)


@pytest.mark.asyncio
async def test_credit_with_reference_is_applied_once(ledger, user):
    first = await ledger.credit(
        user.id, 25, EnergyTransactionReason.MANUAL_ADJUSTMENT, reference="support-ticket-81"
    )
    second = await ledger.credit(
        user.id, 25, EnergyTransactionReason.MANUAL_ADJUSTMENT, reference="support-ticket-81"
    )

    assert second.id == first.id
    assert (await ledger.get_balance(user.id)).balance == 25


@pytest.mark.asyncio
async def test_credit_does_not_advance_streak(ledger, user):
    await ledger.credit(user.id, 10, EnergyTransactionReason.MANUAL_ADJUSTMENT, metadata={"note": "welcome"})

    account = await ledger.get_balance(user.id)
    assert account.balance == 10
    assert account.lifetime_earned == 10
    assert account.streak_days == 0
    assert account.last_action_at is None


# === Packs ===

@pytest.mark.asyncio
async def test_pack_purchase_credits_once(ledger, user):
    entry = await ledger.credit_pack_purchase(user.id, "petit-dej", "pi_3PqLuna")
    again = await ledger.credit_pack_purchase(user.id, "petit-dej", "pi_3PqLuna")

    assert entry.amount == 90
    assert entry.reason == EnergyTransactionReason.PACK_PURCHASE.value
    assert entry.reference == "energy-pack:pi_3PqLuna"
    assert again.id == entry.id
    assert (await ledger.get_balance(user.id)).balance == 90


@pytest.mark.asyncio
async def test_unlimited_and_unknown_packs_are_rejected(ledger, user):
    with pytest.raises(ValidationError):
        await ledger.credit_pack_purchase(user.id, "buffet", "pi_1")
    with pytest.raises(NotFoundError):
        await ledger.credit_pack_purchase(user.id, "brunch", "pi_2")


# === History ===

@pytest.mark.asyncio
async def test_history_is_newest_first(ledger, user, fund, clock):
    await fund(user.id, 50)
    for _ in range(6):
        clock.advance(minutes=10)
        await ledger.spend(user.id, FeatureKind.LUNA_CHAT)

    history = await ledger.get_history(user.id, 5)

    assert len(history) == 5
    assert [e.sequence for e in history] == [7, 6, 5, 4, 3]


@pytest.mark.asyncio
async def test_history_orders_same_instant_by_sequence(ledger, user, fund):
    await fund(user.id, 5)
    await ledger.spend(user.id, FeatureKind.LUNA_CHAT)

    history = await ledger.get_history(user.id, 10)
    assert [e.sequence for e in history] == [2, 1]


@pytest.mark.asyncio
@pytest.mark.parametrize("take", [0, -1, 201])
async def test_history_take_out_of_range(ledger, user, take):
    with pytest.raises(ValidationError):
        await ledger.get_history(user.id, take)


# === Concurrency ===

@pytest.mark.asyncio
async def test_concurrent_spends_cannot_overdraw(session_maker, user):
    async with session_maker() as session:
        await EnergyLedger(session).credit(user.id, 40, EnergyTransactionReason.MANUAL_ADJUSTMENT)

    async def spend_once():
        async with session_maker() as session:
            return await EnergyLedger(session).spend(user.id, FeatureKind.CV_GENERATE, cost_override=30)

    results = await asyncio.gather(spend_once(), spend_once(), return_exceptions=True)

    succeeded = [r for r in results if not isinstance(r, Exception)]
    failed = [r for r in results if isinstance(r, InsufficientEnergyError)]
    assert len(succeeded) == 1
    assert len(failed) == 1

    async with session_maker() as session:
        ledger = EnergyLedger(session)
        assert (await ledger.get_balance(user.id)).balance == 10
        assert await ledger.replay_balance(user.id) == 10


@pytest.mark.asyncio
async def test_concurrent_credits_are_all_applied(session_maker, user):
    async def credit_once(i: int):
        async with session_maker() as session:
            return await EnergyLedger(session).credit(
                user.id, 1, EnergyTransactionReason.MANUAL_ADJUSTMENT, metadata={"i": i}
            )

    await asyncio.gather(*(credit_once(i) for i in range(10)))

    async with session_maker() as session:
        ledger = EnergyLedger(session)
        assert (await ledger.get_balance(user.id)).balance == 10
        sequences = await session.execute(
            select(EnergyTransaction.sequence).where(EnergyTransaction.user_id == user.id)
        )
        assert sorted(sequences.scalars().all()) == list(range(1, 11))


@pytest.mark.asyncio
async def test_users_do_not_share_balances(ledger, make_user, fund):
    alice = await make_user()
    bob = await make_user()
    await fund(alice.id, 10)

    await ledger.spend(alice.id, FeatureKind.LUNA_CHAT)

    assert (await ledger.get_balance(alice.id)).balance == 9
    assert (await ledger.get_balance(bob.id)).balance == 0


# === Store failures ===

def connection_lost(*args, **kwargs):
    raise OperationalError("COMMIT", None, Exception("server closed the connection unexpectedly"))


async def async_connection_lost(*args, **kwargs):
    connection_lost()


@pytest.mark.asyncio
async def test_failed_commit_is_transient_and_rolled_back(ledger, user, fund, db_session, monkeypatch):
    await fund(user.id, 10)
    monkeypatch.setattr(db_session, "commit", async_connection_lost)

    with pytest.raises(TransientStoreError) as exc_info:
        await ledger.spend(user.id, FeatureKind.CV_GENERATE)

    assert exc_info.value.code == "STORE_UNAVAILABLE"
    assert exc_info.value.status_code == 503
    monkeypatch.undo()
    assert (await ledger.get_balance(user.id)).balance == 10
    assert len(await ledger.get_history(user.id, 50)) == 1


@pytest.mark.asyncio
async def test_failed_read_is_transient(ledger, user, db_session, monkeypatch):
    monkeypatch.setattr(db_session, "execute", async_connection_lost)

    with pytest.raises(TransientStoreError):
        await ledger.get_balance(user.id)
    with pytest.raises(TransientStoreError):
        await ledger.get_history(user.id, 10)


@pytest.mark.asyncio
async def test_balance_check_violation_is_insufficient_energy(ledger, user, fund, db_session, monkeypatch):
    await fund(user.id, 10)

    async def check_violation(*args, **kwargs):
        raise IntegrityError(
            "UPDATE energy_wallet",
            None,
            Exception("CHECK constraint failed: ck_energy_wallet_balance_non_negative"),
        )

    monkeypatch.setattr(db_session, "flush", check_violation)

    with pytest.raises(InsufficientEnergyError) as exc_info:
        await ledger.spend(user.id, FeatureKind.CV_GENERATE)

    assert exc_info.value.balance == 10
    assert exc_info.value.required == 3
    monkeypatch.undo()
    assert (await ledger.get_balance(user.id)).balance == 10
    assert len(await ledger.get_history(user.id, 50)) == 1


@pytest.mark.asyncio
async def test_racing_sequence_is_transient(ledger, user, fund, db_session, monkeypatch):
    await fund(user.id, 10)

    async def duplicate_sequence(*args, **kwargs):
        raise IntegrityError(
            "INSERT INTO energy_transaction",
            None,
            Exception("UNIQUE constraint failed: energy_transaction.user_id, energy_transaction.sequence"),
        )

    monkeypatch.setattr(db_session, "flush", duplicate_sequence)

    with pytest.raises(TransientStoreError):
        await ledger.spend(user.id, FeatureKind.LUNA_CHAT)

    monkeypatch.undo()
    assert (await ledger.get_balance(user.id)).balance == 10
    assert await ledger.replay_balance(user.id) == 10
