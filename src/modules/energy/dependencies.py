"""
Energy Module - FastAPI Dependencies
"""
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database import get_db
from src.modules.energy.service import EnergyLedger


async def get_energy_ledger(db: Annotated[AsyncSession, Depends(get_db)]) -> EnergyLedger:
    """Get EnergyLedger bound to the request's database session."""
    return EnergyLedger(db)


EnergyLedgerDep = Annotated[EnergyLedger, Depends(get_energy_ledger)]
