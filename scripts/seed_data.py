"""
Seed Data Script - creates demo users with some energy for local development.

Usage:
    python scripts/seed_data.py
"""
import asyncio
import os
import sys

# Project root on the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.core.database import async_session_maker, close_db, init_db
from src.core.logging import configure_logging, get_logger
from src.core.security import create_access_token
from src.modules.auth.schemas import UserCreate
from src.modules.auth.service import AuthService
from src.modules.energy.models import EnergyTransactionReason
from src.modules.energy.service import EnergyLedger

logger = get_logger(__name__)

DEMO_USERS = [
    {"email": "demo@lunacoach.fr", "full_name": "Demo Luna", "is_superuser": False},
    {"email": "ops@lunacoach.fr", "full_name": "Ops Luna", "is_superuser": True},
]

STARTING_ENERGY = 40


async def seed() -> None:
    await init_db()

    async with async_session_maker() as session:
        auth = AuthService(session)
        ledger = EnergyLedger(session)

        for data in DEMO_USERS:
            user = await auth.get_user_by_email(data["email"])
            if user is None:
                user = await auth.create_user(UserCreate(**data))

            await ledger.credit(
                user.id,
                STARTING_ENERGY,
                EnergyTransactionReason.MANUAL_ADJUSTMENT,
                metadata={"source": "seed"},
                reference="seed:starting-energy",
            )
            print(f"{user.email}: Bearer {create_access_token(user.id)}")

    await close_db()


if __name__ == "__main__":
    configure_logging()
    asyncio.run(seed())
