"""
Energy Module - Energy ledger, streaks and streak bonus.

Flow: spend/credit -> append transaction -> update wallet -> commit
"""
from src.modules.energy.models import (
    EnergyTransaction,
    EnergyTransactionReason,
    EnergyWallet,
    StreakBonusAward,
)
from src.modules.energy.service import EnergyAccount, EnergyLedger, SpendResult

__all__ = [
    "EnergyTransaction",
    "EnergyTransactionReason",
    "EnergyWallet",
    "StreakBonusAward",
    "EnergyAccount",
    "EnergyLedger",
    "SpendResult",
]
