"""
Energy Module - Pydantic Schemas

Responses are serialized in camelCase, the shape the web client consumes.
"""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.modules.energy.constants import FeatureKind
from src.modules.energy.models import EnergyTransactionReason


class CamelModel(BaseModel):
    """Base schema with camelCase aliases."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# === Snapshot ===

class BonusProgress(CamelModel):
    """Where the user stands in the current bonus window."""
    threshold: int
    amount: int
    progress_days: int
    days_until_bonus: int


class EnergySnapshotResponse(CamelModel):
    """Current energy account of the user."""
    balance: int
    streak_days: int
    longest_streak_days: int = 0
    bonus_count: int = 0
    lifetime_earned: int = 0
    lifetime_spent: int = 0
    last_action_at: datetime | None = None
    last_bonus_at: datetime | None = None
    bonus: BonusProgress


# === Transactions ===

class EnergyTransactionResponse(CamelModel):
    """Energy ledger entry."""
    id: UUID
    user_id: UUID
    amount: int
    reason: EnergyTransactionReason
    feature: str | None = None
    balance_after: int
    sequence: int
    reference: str | None = None
    metadata_: dict | None = Field(
        default=None,
        validation_alias="metadata_",
        serialization_alias="metadata",
    )
    created_at: datetime


class EnergyHistoryResponse(CamelModel):
    """Newest-first slice of the ledger."""
    history: list[EnergyTransactionResponse]


# === Spend ===

class SpendRequest(BaseModel):
    """Spend energy on a feature."""
    feature: FeatureKind
    metadata: dict | None = None


class SpendResponse(CamelModel):
    """Outcome of a spend."""
    transaction: EnergyTransactionResponse
    bonus_awarded: int
    balance: int
    streak_days: int


# === Credit (internal) ===

class CreditRequest(BaseModel):
    """Manual credit issued by an operator."""
    user_id: UUID
    amount: int = Field(..., gt=0)
    reason: EnergyTransactionReason = EnergyTransactionReason.MANUAL_ADJUSTMENT
    reference: str | None = Field(None, max_length=255)
    metadata: dict | None = None


class PackFulfilRequest(BaseModel):
    """Credit a paid energy pack."""
    user_id: UUID
    external_reference: str = Field(..., min_length=1, max_length=200)


# === Catalogue ===

class EnergyCostResponse(CamelModel):
    """Price of a feature."""
    feature: FeatureKind
    cost: int
    streak_qualifying: bool


class EnergyPackResponse(CamelModel):
    """Purchasable energy pack."""
    id: str
    name: str
    price_euros: float
    price_cents: int
    energy_amount: int | None
    unlimited: bool
    description: str
    notes: str | None = None
    highlight: bool = False
