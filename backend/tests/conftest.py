from __future__ import annotations

import base64
import json
import os
import sys
import tempfile
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Callable, Generator

import pytest

# Ensure the project root (which exposes the ``backend`` package) is on ``sys.path``
PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Listings count and fetch on separate connections, so the database must be a
# real file shared by every connection rather than an in-memory SQLite.
_TEST_DB_DIR = Path(tempfile.mkdtemp(prefix="estate-assistant-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{(_TEST_DB_DIR / 'test.db').as_posix()}"
os.environ["JWT_SECRET"] = base64.urlsafe_b64encode(os.urandom(32)).decode()
os.environ["ACCESS_TOKEN_EXPIRE_MINUTES"] = "60"
os.environ["RUN_MIGRATIONS_ON_STARTUP"] = "0"
os.environ["ENABLE_IDLE_MONITOR"] = "0"
os.environ["WHATSAPP_TRANSPORT"] = "console"
os.environ.pop("REDIS_URL", None)

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from backend.app import models  # noqa: E402
from backend.app.database import Base, SessionLocal, engine  # noqa: E402
from backend.app.main import app  # noqa: E402
from backend.app.security import generate_password_hash  # noqa: E402
from backend.app.services.job_monitor import JobMonitor  # noqa: E402

AGENT_PASSWORD = "Str0ngPassw0rd"


@pytest.fixture(scope="session", autouse=True)
def setup_database() -> Generator[None, None, None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(autouse=True)
def _clean_tables() -> Generator[None, None, None]:
    yield
    with engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())
    JobMonitor.reset()
    app.dependency_overrides.clear()


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_agent(db_session: Session) -> Callable[..., models.Agent]:
    counter = {"value": 0}

    def _make_agent(**overrides) -> models.Agent:
        counter["value"] += 1
        number = counter["value"]
        values = {
            "email": f"agent{number}@example.com",
            "password_hash": generate_password_hash(AGENT_PASSWORD, iterations=1_000),
            "full_name": f"Agent {number}",
            "whatsapp_number": f"+2010000000{number:02d}",
            "status": models.AgentStatus.ACTIVE,
            "settings": {},
        }
        values.update(overrides)
        agent = models.Agent(**values)
        db_session.add(agent)
        db_session.commit()
        db_session.refresh(agent)
        return agent

    return _make_agent


@pytest.fixture
def agent(make_agent) -> models.Agent:
    return make_agent(email="owner@example.com", full_name="Mona Hassan")


@pytest.fixture
def raw_client() -> Generator[TestClient, None, None]:
    with TestClient(app) as test_client:
        yield test_client


def _login(test_client: TestClient, email: str) -> str:
    response = test_client.post(
        "/auth/login", json={"email": email, "password": AGENT_PASSWORD}
    )
    assert response.status_code == 200, response.text
    return response.json()["tokens"]["access_token"]


@pytest.fixture
def client(agent: models.Agent) -> Generator[TestClient, None, None]:
    with TestClient(app) as test_client:
        token = _login(test_client, agent.email)
        test_client.headers.update({"Authorization": f"Bearer {token}"})
        yield test_client


@pytest.fixture
def login() -> Callable[[TestClient, str], str]:
    return _login


@pytest.fixture
def make_property(db_session: Session) -> Callable[..., models.Property]:
    def _make_property(agent: models.Agent, **overrides) -> models.Property:
        values = {
            "project_name": "Palm Hills",
            "property_type": "apartment",
            "city": "New Cairo",
            "district": "Fifth Settlement",
            "area": Decimal("150"),
            "bedrooms": 3,
            "bathrooms": 2,
            "base_price": Decimal("3000000"),
            "price_per_meter": Decimal("20000"),
            "currency": "EGP",
            "amenities": ["pool"],
            "images": [],
            "documents": [],
            "status": models.PropertyStatus.AVAILABLE,
        }
        values.update(overrides)
        prop = models.Property(agent_id=agent.id, **values)
        db_session.add(prop)
        db_session.commit()
        db_session.refresh(prop)
        return prop

    return _make_property


@pytest.fixture
def make_conversation(db_session: Session) -> Callable[..., models.Conversation]:
    def _make_conversation(
        agent: models.Agent, *, messages: tuple[str, ...] = (), **overrides
    ) -> models.Conversation:
        now = datetime.now(timezone.utc)
        values = {
            "customer_phone": "+201234567890",
            "customer_name": "Ahmed Ali",
            "status": models.ConversationStatus.ACTIVE,
            "lead_score": 0,
            "started_at": now,
            "last_activity_at": now,
            "created_at": now,
            "meta": {},
        }
        values.update(overrides)
        conversation = models.Conversation(agent_id=agent.id, **values)
        db_session.add(conversation)
        db_session.flush()
        for offset, content in enumerate(messages):
            db_session.add(
                models.Message(
                    conversation_id=conversation.id,
                    role=models.MessageRole.USER if offset % 2 == 0 else models.MessageRole.ASSISTANT,
                    content=content,
                    created_at=values["created_at"] + timedelta(seconds=offset),
                )
            )
        db_session.commit()
        db_session.refresh(conversation)
        return conversation

    return _make_conversation


class FakeRedis:
    """Minimal stand-in for the subset of ``redis.Redis`` the session store uses."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.set_calls: list[dict] = []

    def get(self, key: str):
        return self.values.get(key)

    def set(self, key: str, value: str, keepttl: bool = False, **kwargs) -> bool:
        self.set_calls.append({"key": key, "keepttl": keepttl, **kwargs})
        self.values[key] = value
        if not keepttl:
            self.ttls.pop(key, None)
        return True

    def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            removed += int(self.values.pop(key, None) is not None)
            self.ttls.pop(key, None)
        return removed


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def put_session(fake_redis: FakeRedis) -> Callable[..., dict]:
    def _put_session(
        phone: str = "+201234567890",
        state: str = "ACTIVE",
        *,
        customer_id: str | None = None,
        **context,
    ) -> dict:
        customer_id = customer_id or f"whatsapp:{phone}"
        document = {
            "id": "session-1",
            "customerId": customer_id,
            "agentId": "agent-1",
            "state": state,
            "startTime": "2024-10-01T10:00:00+00:00",
            "context": {
                "messageHistory": [{"role": "user", "content": "Hello"}],
                "extractedInfo": {"budget": 3000000},
                "lastActivity": "2024-10-01T10:05:00+00:00",
                **context,
            },
        }
        fake_redis.values[f"session:{customer_id}"] = json.dumps(document)
        fake_redis.ttls[f"session:{customer_id}"] = 86400
        return document

    return _put_session


@pytest.fixture
def read_session(fake_redis: FakeRedis) -> Callable[..., dict]:
    def _read_session(phone: str = "+201234567890", *, customer_id: str | None = None) -> dict:
        customer_id = customer_id or f"whatsapp:{phone}"
        return json.loads(fake_redis.values[f"session:{customer_id}"])

    return _read_session
