"""
Energy Module - API Routes
"""
from fastapi import APIRouter, Query, status

from src.modules.auth.dependencies import CurrentSuperuser, CurrentUser
from src.modules.energy.constants import (
    DEFAULT_HISTORY_TAKE,
    ENERGY_COSTS,
    ENERGY_PACKS,
    MAX_HISTORY_TAKE,
    MIN_HISTORY_TAKE,
    is_streak_qualifying,
)
from src.modules.energy.dependencies import EnergyLedgerDep
from src.modules.energy.schemas import (
    BonusProgress,
    CreditRequest,
    EnergyCostResponse,
    EnergyHistoryResponse,
    EnergyPackResponse,
    EnergySnapshotResponse,
    EnergyTransactionResponse,
    PackFulfilRequest,
    SpendRequest,
    SpendResponse,
)
from src.modules.energy.service import EnergyAccount, compute_bonus_progress

router = APIRouter(prefix="/energy", tags=["Energy"])


def _snapshot(account: EnergyAccount, threshold: int, amount: int) -> EnergySnapshotResponse:
    progress_days, days_until = compute_bonus_progress(account.streak_days, threshold)
    return EnergySnapshotResponse(
        balance=account.balance,
        streak_days=account.streak_days,
        longest_streak_days=account.longest_streak_days,
        bonus_count=account.bonus_count,
        lifetime_earned=account.lifetime_earned,
        lifetime_spent=account.lifetime_spent,
        last_action_at=account.last_action_at,
        last_bonus_at=account.last_bonus_at,
        bonus=BonusProgress(
            threshold=threshold,
            amount=amount,
            progress_days=progress_days,
            days_until_bonus=days_until,
        ),
    )


# === Account ===

@router.get("", response_model=EnergySnapshotResponse)
async def get_energy(current_user: CurrentUser, ledger: EnergyLedgerDep):
    """Current balance, streak and bonus progress."""
    account = await ledger.get_balance(current_user.id)
    return _snapshot(account, ledger.streak_threshold, ledger.bonus_amount)


@router.get("/history", response_model=EnergyHistoryResponse)
async def get_energy_history(
    current_user: CurrentUser,
    ledger: EnergyLedgerDep,
    take: int = Query(DEFAULT_HISTORY_TAKE),
):
    """Latest ledger entries, newest first. `take` is clamped to 1..200."""
    take = max(MIN_HISTORY_TAKE, min(take, MAX_HISTORY_TAKE))
    entries = await ledger.get_history(current_user.id, take)
    return EnergyHistoryResponse(
        history=[EnergyTransactionResponse.model_validate(e) for e in entries],
    )


@router.post("/spend", response_model=SpendResponse)
async def spend_energy(
    request: SpendRequest,
    current_user: CurrentUser,
    ledger: EnergyLedgerDep,
):
    """
    Spend energy on a feature.

    Returns 402 with the current balance when the user cannot afford it.
    """
    result = await ledger.spend(current_user.id, request.feature, metadata=request.metadata)
    return SpendResponse(
        transaction=EnergyTransactionResponse.model_validate(result.transaction),
        bonus_awarded=result.bonus_awarded,
        balance=result.account.balance,
        streak_days=result.account.streak_days,
    )


# === Catalogue ===

@router.get("/costs", response_model=list[EnergyCostResponse])
async def list_energy_costs(current_user: CurrentUser):
    """Price of every feature."""
    return [
        EnergyCostResponse(
            feature=feature,
            cost=cost,
            streak_qualifying=is_streak_qualifying(feature),
        )
        for feature, cost in ENERGY_COSTS.items()
    ]


@router.get("/packs", response_model=list[EnergyPackResponse])
async def list_energy_packs():
    """Purchasable energy packs."""
    return [EnergyPackResponse.model_validate(pack) for pack in ENERGY_PACKS]


# === Internal ===

@router.post("/credit", response_model=EnergyTransactionResponse, status_code=status.HTTP_201_CREATED)
async def credit_energy(
    request: CreditRequest,
    current_user: CurrentSuperuser,
    ledger: EnergyLedgerDep,
):
    """Credit energy to a user (operators only)."""
    metadata = {"issued_by": str(current_user.id), **(request.metadata or {})}
    entry = await ledger.credit(
        request.user_id,
        request.amount,
        request.reason,
        metadata=metadata,
        reference=request.reference,
    )
    return EnergyTransactionResponse.model_validate(entry)


@router.post(
    "/packs/{pack_id}/fulfil",
    response_model=EnergyTransactionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def fulfil_energy_pack(
    pack_id: str,
    request: PackFulfilRequest,
    current_user: CurrentSuperuser,
    ledger: EnergyLedgerDep,
):
    """Credit a paid pack after the payment provider confirmed it."""
    entry = await ledger.credit_pack_purchase(
        request.user_id,
        pack_id,
        request.external_reference,
    )
    return EnergyTransactionResponse.model_validate(entry)

