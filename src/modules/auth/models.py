"""
Auth Module - Database Models
The User is the owner of an energy wallet. Identity itself is issued upstream;
this table only mirrors what the ledger and referrals need.
"""
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.models import Base

if TYPE_CHECKING:
    from src.modules.energy.models import EnergyWallet


class User(Base):
    """Application user."""
    __tablename__ = "user"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_superuser: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Relationships
    energy_wallet: Mapped["EnergyWallet | None"] = relationship(
        "EnergyWallet",
        back_populates="user",
        uselist=False,
        lazy="raise",
    )

    def __repr__(self) -> str:
        return f"<User {self.email}>"
