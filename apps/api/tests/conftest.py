from datetime import datetime, timedelta, timezone

from jose import jwt
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from database import Base, create_engine_for_url
from main import app
from routers import rate_limit
from services.identity import SESSION_TOKEN_TYPE


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    """File-backed SQLite database per test, configured like production SQLite."""
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield maker
    await engine.dispose()


def mint_session_token(user_id, email="member@example.com", expires_in_hours=1):
    """Sign a token the way the identity provider does."""
    now = datetime.now(timezone.utc)
    claims = {
        "sub": user_id,
        "type": SESSION_TOKEN_TYPE,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(hours=expires_in_hours)).timestamp()),
    }
    if email is not None:
        claims["email"] = email
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


@pytest.fixture
def session_headers():
    def build(user_id, email="member@example.com"):
        return {"Authorization": f"Bearer {mint_session_token(user_id, email)}"}

    return build
