"""
Energy Module - Price Table and Pack Catalogue

All energy prices and pack sizes live here.
"""
from dataclasses import dataclass
from enum import Enum


# ==========================================
# HISTORY
# ==========================================

MIN_HISTORY_TAKE = 1
MAX_HISTORY_TAKE = 200
DEFAULT_HISTORY_TAKE = 50


# ==========================================
# FEATURE PRICES
# ==========================================

class FeatureKind(str, Enum):
    """Features that consume energy."""
    CV_GENERATE = "cv.generate"
    LETTERS_GENERATE = "letters.generate"
    LETTERS_PUBLISH = "letters.publish"
    RISE_GENERATE = "rise.generate"
    RISE_SAVE_NOTES = "rise.save_notes"
    LUNA_CHAT = "luna.chat"
    LUNA_HINT = "luna.hint"
    EXPORT_PDF = "export.pdf"
    ASSESSMENT_QUICK = "assessment.quick"
    ASSESSMENT_COMPLETE = "assessment.complete"
    AUBE_REVEAL = "aube.reveal"


ENERGY_COSTS: dict[FeatureKind, int] = {
    FeatureKind.CV_GENERATE: 3,
    FeatureKind.LETTERS_GENERATE: 3,
    FeatureKind.LETTERS_PUBLISH: 2,
    FeatureKind.RISE_GENERATE: 2,
    FeatureKind.RISE_SAVE_NOTES: 0,
    FeatureKind.LUNA_CHAT: 1,
    FeatureKind.LUNA_HINT: 1,
    FeatureKind.EXPORT_PDF: 2,
    FeatureKind.ASSESSMENT_QUICK: 1,
    FeatureKind.ASSESSMENT_COMPLETE: 3,
    FeatureKind.AUBE_REVEAL: 1,
}

# Exports are downloads of existing work, not engagement
NON_QUALIFYING_FEATURES: frozenset[FeatureKind] = frozenset({FeatureKind.EXPORT_PDF})


def is_streak_qualifying(feature: FeatureKind) -> bool:
    return feature not in NON_QUALIFYING_FEATURES


# ==========================================
# ENERGY PACKS
# ==========================================

@dataclass(frozen=True)
class EnergyPack:
    """A purchasable bundle of energy. `energy_amount=None` means unlimited (subscription)."""
    id: str
    name: str
    price_euros: float
    energy_amount: int | None
    description: str
    notes: str | None = None
    highlight: bool = False

    @property
    def unlimited(self) -> bool:
        return self.energy_amount is None

    @property
    def price_cents(self) -> int:
        return round(self.price_euros * 100)


ENERGY_PACKS: tuple[EnergyPack, ...] = (
    EnergyPack(
        id="cafe",
        name="Café Luna",
        price_euros=2.99,
        energy_amount=40,
        description="Idéal pour une session rapide (CV, lettre ou atelier express).",
        notes="Crédits utilisables à vie, sans abonnement.",
    ),
    EnergyPack(
        id="petit-dej",
        name="Petit-déj Luna",
        price_euros=5.99,
        energy_amount=90,
        description="Prépare une semaine de génération et quelques échanges avec Luna.",
        notes="Idéal pour alterner CV, lettres et coaching Rise sur une semaine.",
        highlight=True,
    ),
    EnergyPack(
        id="repas",
        name="Repas Luna",
        price_euros=9.99,
        energy_amount=170,
        description="Parfait pour une phase intensive CV + Rise + lettres.",
        notes="Pensé pour un mois de candidatures actives.",
    ),
    EnergyPack(
        id="buffet",
        name="Buffet à volonté",
        price_euros=17.99,
        energy_amount=None,
        description="Énergie illimitée avec fair-use intelligent pour les power users.",
        notes="Accès illimité (fair-use).",
    ),
)


def get_energy_pack(pack_id: str) -> EnergyPack | None:
    """Look up a pack by its ID."""
    for pack in ENERGY_PACKS:
        if pack.id == pack_id:
            return pack
    return None
