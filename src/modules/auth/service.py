"""
Auth Module - Business Logic Service
"""
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import ConflictError
from src.core.logging import get_logger
from src.modules.auth.models import User
from src.modules.auth.schemas import UserCreate

logger = get_logger(__name__)


class AuthService:
    """User lookup and provisioning."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_by_id(self, user_id: uuid.UUID) -> User | None:
        """Get user by ID."""
        stmt = select(User).where(User.id == user_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str) -> User | None:
        """Get user by email."""
        stmt = select(User).where(User.email == email.lower())
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def create_user(self, data: UserCreate) -> User:
        """Create a new user."""
        existing = await self.get_user_by_email(data.email)
        if existing:
            raise ConflictError(f"User with email {data.email} already exists")

        user = User(
            email=data.email.lower(),
            full_name=data.full_name,
            is_superuser=data.is_superuser,
        )
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)

        logger.info("User created", user_id=str(user.id))
        return user
