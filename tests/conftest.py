"""
Shared fixtures.

Environment is pinned before anything from trailverse is imported, so the
settings object sees an in-memory SQLite database and no upstream keys.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENABLE_SCHEDULED_TASKS"] = "false"
os.environ["SECRET_KEY"] = "test-secret"
for _key in ("ANTHROPIC_API_KEY", "OPENAI_API_KEY", "OPENWEATHER_API_KEY", "NPS_API_KEY",
             "SENTRY_DSN", "INITIAL_ADMIN_EMAIL"):
    os.environ[_key] = ""

from datetime import timedelta
from types import SimpleNamespace
from typing import Dict, Optional

import pytest
from fastapi.testclient import TestClient

from trailverse.api.deps import get_facts_aggregator, get_provider_registry
from trailverse.core.facts import FactsAggregator
from trailverse.core.models import UserRole
from trailverse.core.providers import ProviderRegistry
from trailverse.core.security import create_access_token
from trailverse.crud import crud_user
from trailverse.db.base import Base
from trailverse.db.session import SessionLocal, engine
from trailverse.main import app


class FakeUpstreamError(Exception):
    """Mimics the SDK error shape: message plus status_code"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FakeClaudeMessages:
    def __init__(self, outcomes: Optional[Dict[str, object]] = None, text: str = "Claude says hi"):
        self.outcomes = outcomes or {}
        self.text = text
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.get(kwargs["model"])
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(
            content=[SimpleNamespace(type="text", text=outcome or self.text)],
            usage=SimpleNamespace(input_tokens=12, output_tokens=30),
        )

    @property
    def models_called(self):
        return [call["model"] for call in self.calls]


class FakeClaudeClient:
    def __init__(self, outcomes=None, text: str = "Claude says hi"):
        self.messages = FakeClaudeMessages(outcomes, text)


class FakeOpenAICompletions:
    def __init__(self, error: Optional[Exception] = None, text: str = "OpenAI says hi"):
        self.error = error
        self.text = text
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=self.text))],
            usage=SimpleNamespace(prompt_tokens=20, completion_tokens=10),
        )


class FakeOpenAIClient:
    def __init__(self, error=None, text: str = "OpenAI says hi"):
        self.chat = SimpleNamespace(completions=FakeOpenAICompletions(error, text))


@pytest.fixture(autouse=True)
def database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def claude_client():
    return FakeClaudeClient()


@pytest.fixture
def openai_client():
    return FakeOpenAIClient()


@pytest.fixture
def registry(claude_client, openai_client):
    return ProviderRegistry({"claude": claude_client, "openai": openai_client})


@pytest.fixture
def client(registry):
    app.dependency_overrides[get_provider_registry] = lambda: registry
    # No keys configured: facts always come back empty
    app.dependency_overrides[get_facts_aggregator] = lambda: FactsAggregator()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make_user(role: UserRole = UserRole.USER, daily_tokens_used: int = 0, reset_days_ago: int = 0):
        counter["n"] += 1
        user = crud_user.create_user(db, email=f"hiker{counter['n']}@example.com", full_name="Test Hiker", role=role)
        user.daily_tokens_used = daily_tokens_used
        user.last_reset_date = user.last_reset_date - timedelta(days=reset_days_ago)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


def auth_headers(user) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
