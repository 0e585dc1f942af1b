"""
Core Tests - exceptions and model loading behaviour.
"""
import warnings

import pytest
from sqlalchemy import select
from sqlalchemy.exc import InvalidRequestError

from src.core.exceptions import InsufficientEnergyError, TransientStoreError, ValidationError
from src.modules.auth.models import User


def test_error_status_codes():
    with warnings.catch_warnings():
        warnings.simplefilter("error", DeprecationWarning)
        validation = ValidationError("bad take", details={"take": 0})

    assert validation.status_code == 422
    assert validation.code == "VALIDATION_ERROR"
    assert InsufficientEnergyError(balance=1, required=3).status_code == 402
    assert TransientStoreError().status_code == 503


@pytest.mark.asyncio
async def test_unloaded_wallet_relationship_raises(db_session, user):
    loaded = (await db_session.execute(select(User).where(User.id == user.id))).scalar_one()

    with pytest.raises(InvalidRequestError):
        loaded.energy_wallet
