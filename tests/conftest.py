"""Pytest configuration and fixtures.

Tests run against a throwaway SQLite file per test (aiosqlite), so the
suite needs no database server. Savepoints are enabled with the pysqlite
transaction recipe so per-event isolation behaves as on PostgreSQL.
"""

from collections.abc import AsyncGenerator
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.api.deps import get_db, get_dispatch, get_realtime_hub, get_session_factory
from app.config import Settings
from app.main import app
from app.models import (
    Base,
    Conversation,
    ConversationStatus,
    Customer,
    Platform,
    User,
)
from app.services.dispatch import DispatchService, build_dispatch
from app.services.realtime import RealtimeHub
from app.utils.jwt import create_access_token

VERIFY_TOKEN = "verify-me"


@pytest.fixture
def settings() -> Settings:
    """Settings with every platform in mock mode."""
    return Settings(
        app_env="test",
        database_url="sqlite+aiosqlite:///:memory:",
        messaging_mock_mode=True,
        meta_webhook_verify_token=VERIFY_TOKEN,
        whatsapp_token="wa-token",
        whatsapp_phone_number_id="1234567890",
        facebook_access_token="fb-token",
        instagram_access_token="ig-token",
        telegram_bot_token="123:abc",
        smtp_host="smtp.example.com",
        from_email="support@example.com",
    )


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """Create test database engine."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def dispatch(settings: Settings) -> AsyncGenerator[DispatchService, None]:
    service = build_dispatch(settings)
    yield service
    await service.close()


@pytest.fixture
def hub() -> RealtimeHub:
    return RealtimeHub()


@pytest_asyncio.fixture
async def agent(db: AsyncSession) -> User:
    """Create test agent."""
    user = User(id=uuid4(), first_name="Ana", last_name="Lopez", email="ana@example.com")
    db.add(user)
    await db.flush()
    return user


@pytest_asyncio.fixture
async def other_agent(db: AsyncSession) -> User:
    user = User(id=uuid4(), first_name="Bruno", last_name="Diaz", email="bruno@example.com")
    db.add(user)
    await db.flush()
    return user


@pytest_asyncio.fixture
async def customer(db: AsyncSession) -> Customer:
    """Create test customer."""
    customer = Customer(
        id=uuid4(),
        first_name="Maria",
        last_name="Garcia",
        phone="5215512345678",
        source="whatsapp",
    )
    db.add(customer)
    await db.flush()
    return customer


@pytest_asyncio.fixture
async def conversation(db: AsyncSession, customer: Customer) -> Conversation:
    """Create a WhatsApp conversation with the test customer."""
    conversation = Conversation(
        id=uuid4(),
        platform=Platform.WHATSAPP.value,
        platform_id=customer.phone,
        customer_id=customer.id,
        status=ConversationStatus.NEW.value,
        meta={"phone_number": customer.phone},
    )
    db.add(conversation)
    await db.flush()
    return conversation


@pytest.fixture
def auth_headers(agent: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(agent.id)}"}


@pytest_asyncio.fixture
async def client(
    db: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    dispatch: DispatchService,
    hub: RealtimeHub,
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client bound to the app, sharing the test session and services."""

    async def _get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_dispatch] = lambda: dispatch
    app.dependency_overrides[get_realtime_hub] = lambda: hub
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def _whatsapp_text_payload(
    text: str = "Hi",
    phone: str = "5215512345678",
    name: str = "Maria Garcia",
    message_id: str = "wamid.HBgM001",
    timestamp: str = "1700000000",
) -> dict:
    """A WhatsApp Cloud API webhook carrying one text message."""
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "WABA_ID",
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "messaging_product": "whatsapp",
                            "contacts": [{"wa_id": phone, "profile": {"name": name}}],
                            "messages": [
                                {
                                    "from": phone,
                                    "id": message_id,
                                    "timestamp": timestamp,
                                    "type": "text",
                                    "text": {"body": text},
                                }
                            ],
                        },
                    }
                ],
            }
        ],
    }


@pytest.fixture
def whatsapp_payload():
    """Builder for WhatsApp text webhooks."""
    return _whatsapp_text_payload
