import os

# Settings are read at import time, so the test environment must be in place first
os.environ.setdefault("ENV", "testing")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-unit-tests")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("KV_BACKEND", "memory")

import fakeredis
import pytest
from datetime import timedelta
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from typing import Generator

from main import app
from core.config import settings
from core.database import Base
from core.kv_store import RedisKeyValueStore
from services.auth_service import AuthService
from services.credential_verifier import CredentialVerifier
from services.session_store import SessionStore
from services.token_codec import TokenCodec
from services.user_service import UserService
from utils.deps import get_db, get_kv_store

from tests.helpers import TEST_PASSWORD

# SYNC SQLite for testing (matches sync service layer)
SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False}
)

TestingSessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)


@pytest.fixture
def session() -> Generator[Session, None, None]:
    """
    Creates a fresh, empty database for each test.
    """
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def redis_client():
    """In-process Redis double; every test gets its own server state."""
    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture
def kv_store(redis_client):
    return RedisKeyValueStore(redis_client)


@pytest.fixture
def user_service(session) -> UserService:
    return UserService(session)


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(settings.SECRET_KEY, settings.ALGORITHM)


@pytest.fixture
def auth_service(user_service, kv_store, codec) -> AuthService:
    return AuthService(
        users=user_service,
        credentials=CredentialVerifier(user_service),
        sessions=SessionStore(kv_store, key_prefix=settings.REDIS_KEY_PREFIX),
        codec=codec,
        access_token_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        refresh_token_ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )


@pytest.fixture
def registered_user(user_service):
    """A user whose password is TEST_PASSWORD."""
    return user_service.register("test@example.com", TEST_PASSWORD, "Test", "User")


@pytest.fixture
def other_user(user_service):
    return user_service.register("other@example.com", TEST_PASSWORD, "Other", "User")


@pytest.fixture
async def client(session: Session, kv_store):
    """
    Yields an HTTP client that talks to the app using the test database
    and the fake Redis.
    """
    def override_get_db():
        yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_kv_store] = lambda: kv_store

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()

