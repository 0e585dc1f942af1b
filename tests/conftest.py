"""
Pytest Configuration and Fixtures.

Every test gets its own SQLite database file; the app's `get_db`
dependency is pointed at it for API tests.
"""
import os
import uuid
from datetime import datetime, timedelta, timezone

import pytest

# Must be set before anything imports src.core.config
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./luna_test.db")
os.environ["RUN_DB_INIT"] = "false"
os.environ["APP_DEBUG"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"

from httpx import ASGITransport, AsyncClient

from src.core.database import build_engine, build_session_maker, get_db
from src.core.models import Base
from src.core.security import create_access_token
from src.main import app
from src.modules.auth.models import User
from src.modules.energy.models import EnergyTransactionReason
from src.modules.energy.service import EnergyLedger

import src.modules.referrals.models  # noqa: F401


class FixedClock:
    """Clock the tests move by hand."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'luna.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def make_user(session_maker):
    """Factory creating committed users."""
    async def _make(email: str | None = None, is_superuser: bool = False) -> User:
        async with session_maker() as session:
            user = User(
                email=email or f"user-{uuid.uuid4().hex[:8]}@lunacoach.fr",
                full_name="Camille Test",
                is_active=True,
                is_superuser=is_superuser,
            )
            session.add(user)
            await session.commit()
            return user

    return _make


@pytest.fixture
async def user(make_user):
    return await make_user()


@pytest.fixture
def ledger(db_session, clock):
    return EnergyLedger(db_session, clock=clock, streak_threshold=3, bonus_amount=5)


@pytest.fixture
def fund(ledger):
    """Give a user starting energy."""
    async def _fund(user_id: uuid.UUID, amount: int):
        return await ledger.credit(user_id, amount, EnergyTransactionReason.MANUAL_ADJUSTMENT)

    return _fund


# === API ===

@pytest.fixture
async def client(session_maker):
    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers
