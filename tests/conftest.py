"""
Conftest
"""

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import huechat.models  # noqa: F401
from huechat.chat import ChatService
from huechat.database import Base, get_db
from huechat.main import create_app
from huechat.messages import RetentionSweeper
from huechat.typing_registry import TypingRegistry

TEST_DB_URL = "sqlite://"
PASSWORD = "hunter2"


class FakeClock:
    """Naive UTC clock that only moves when a test says so."""

    def __init__(self, start: datetime = datetime(2026, 3, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine():
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def typing_registry(clock):
    return TypingRegistry(5, clock=clock)


@pytest.fixture
def sweeper():
    return RetentionSweeper(retention=timedelta(hours=48), interval=timedelta(minutes=5))


@pytest.fixture
def chat(db, typing_registry, sweeper, clock):
    return ChatService(db, typing_registry, sweeper, clock)


@pytest.fixture
def signup(chat):
    """Register an identity and return its session token."""
    def _signup(identity: str) -> str:
        return chat.register(identity, PASSWORD).token
    return _signup


@pytest.fixture
def app(engine, clock):
    app = create_app()
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.state.clock = clock
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def make_client(app):
    """One TestClient per simulated browser, each with its own cookie jar."""
    clients = []

    def _make(identity: str | None = None) -> TestClient:
        client = TestClient(app)
        clients.append(client)
        if identity:
            response = client.post("/auth/signup", json={"identity": identity, "password": PASSWORD})
            assert response.status_code == 201
        return client

    yield _make
    for client in clients:
        client.close()
