from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from libs.auth.dependencies import get_current_user, require_admin
from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.db.base import Base
from libs.db.session import get_async_db
from services.payments_service import models as _payment_models  # noqa: F401
from services.payments_service.app.main import app
from services.payments_service.services.notifications import get_notification_sender
from services.payments_service.services.processor import get_payment_processor
from tests.fakes import FakeProcessor, RecordingSender

get_settings.cache_clear()
settings = get_settings()


@pytest_asyncio.fixture
async def test_engine():
    """
    In-memory SQLite database, created fresh for every test.
    StaticPool keeps the single connection alive for the test's duration.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a database session. Services commit through it as they would in
    production; the whole database goes away with the engine.
    """
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def admin_user() -> AuthUser:
    return AuthUser(user_id="admin-1", email="admin@example.com", role="admin")


@pytest.fixture
def fake_processor() -> FakeProcessor:
    return FakeProcessor()


@pytest.fixture
def recording_sender() -> RecordingSender:
    return RecordingSender()


@pytest_asyncio.fixture
async def payments_client(
    db_session, admin_user, fake_processor, recording_sender
) -> AsyncGenerator[AsyncClient, None]:
    """
    AsyncClient against the payments app with the DB session, the admin
    the payment processor and the notification sender overridden.
    """
    app.dependency_overrides[get_async_db] = lambda: db_session
    app.dependency_overrides[require_admin] = lambda: admin_user
    app.dependency_overrides[get_payment_processor] = lambda: fake_processor
    app.dependency_overrides[get_notification_sender] = lambda: recording_sender

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def anonymous_client(db_session) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient with only the DB overridden; auth runs for real."""
    app.dependency_overrides[get_async_db] = lambda: db_session

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def member_user() -> AuthUser:
    return AuthUser(user_id="player-1", email="player@example.com", role="member")


@pytest_asyncio.fixture
async def member_client(db_session, member_user) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient authenticated as a non-admin."""
    app.dependency_overrides[get_async_db] = lambda: db_session
    app.dependency_overrides[get_current_user] = lambda: member_user

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
