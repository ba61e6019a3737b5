"""
Test fixtures and configuration for pytest.
"""

import os
import sys
import time
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import get_settings
from db.database import Base, enable_sqlite_foreign_keys, get_db
from models.user import Role, User
from services.auth import hash_password
from services.cipher import SecretCipher
from services.secret_gate import SecretAccessGate, hash_pin
from services.sharing import SharingService
from services.tokens import TokenManager, get_token_manager

DEFAULT_PIN = "1234"


class FakeClock:
    """Controllable epoch-seconds clock for the token stores and signer."""

    def __init__(self, start: float | None = None):
        # Whole seconds, like the iat/exp claims
        self.current = float(int(time.time())) if start is None else start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def token_manager(clock: FakeClock) -> TokenManager:
    """Token manager on in-memory stores driven by the fake clock."""
    return TokenManager.from_settings(get_settings().model_copy(update={"REDIS_URL": None}), clock=clock)


@pytest_asyncio.fixture(scope="function")
async def db_session(tmp_path) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database for each test."""
    from models import activity_log, credential, sharing, user  # noqa: F401

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    enable_sqlite_foreign_keys(engine.sync_engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def cipher() -> SecretCipher:
    return SecretCipher("test-encryption-key-with-enough-entropy-0123456789")


@pytest.fixture
def pin_key() -> str:
    return "test-pin-key"


@pytest.fixture
def gate(db_session: AsyncSession, cipher: SecretCipher, pin_key: str) -> SecretAccessGate:
    return SecretAccessGate(db_session, cipher, pin_key)


@pytest.fixture
def sharing_service(db_session: AsyncSession, gate: SecretAccessGate) -> SharingService:
    return SharingService(db_session, gate, default_expiration_days=30)


@pytest.fixture
def make_user(db_session: AsyncSession, pin_key: str):
    """Factory creating users directly in the database."""

    async def _make_user(username: str, password: str = "correct-horse", pin: str | None = DEFAULT_PIN) -> User:
        user = User(
            username=username,
            password_hash=hash_password(password),
            role=Role.USER,
            pin_hash=hash_pin(pin, pin_key) if pin else None,
        )
        db_session.add(user)
        await db_session.flush()
        await db_session.refresh(user)
        return user

    return _make_user


# ============== Client Fixtures ==============


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, token_manager: TokenManager) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database and token manager overrides."""
    from main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_token_manager] = lambda: token_manager

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _register(client: AsyncClient, username: str, password: str, pin: str | None = DEFAULT_PIN) -> dict:
    response = await client.post(
        "/api/v1/auth/register",
        json={"username": username, "password": password},
    )
    assert response.status_code == 201, response.text
    data = response.json()
    account = {
        "id": data["user"]["id"],
        "username": username,
        "password": password,
        "access_token": data["access_token"],
        "refresh_token": data["refresh_token"],
        "headers": {"Authorization": f"Bearer {data['access_token']}"},
    }
    if pin:
        response = await client.post(
            "/api/v1/users/me/pin",
            json={"pin": pin, "password": password},
            headers=account["headers"],
        )
        assert response.status_code == 200, response.text
    return account


@pytest_asyncio.fixture
async def alice(client: AsyncClient) -> dict:
    return await _register(client, "alice", "alice-password")


@pytest_asyncio.fixture
async def bob(client: AsyncClient) -> dict:
    return await _register(client, "bob", "bob-password")


@pytest_asyncio.fixture
async def carol(client: AsyncClient) -> dict:
    """A user who never set a PIN."""
    return await _register(client, "carol", "carol-password", pin=None)
