import os
from collections.abc import Generator
from unittest.mock import MagicMock

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-the-suite")
os.environ.setdefault("FIRST_SUPERUSER_PASSWORD", "superuser-password")
os.environ.setdefault("SQLALCHEMY_DATABASE_URI", "sqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("LLM_PROVIDER", "openai")
# Placeholder keys keep every provider in demo mode unless a test swaps the client.
os.environ.setdefault("LLM_API_KEY", "sk-test-key")
os.environ.setdefault("OPENAI_API_KEY", "sk-test-key")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from app.agent.analysis_agent import PropertyAnalysisAgent, get_analysis_agent  # noqa: E402
from app.api.deps import get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.models import User  # noqa: E402
from app.tests.utils import auth_headers, make_user  # noqa: E402


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session) -> Generator[TestClient, None, None]:
    def get_db_override() -> Session:
        return session

    app.dependency_overrides[get_db] = get_db_override
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def user(session: Session) -> User:
    return make_user(session, "investor@example.com", first_name="Jane", last_name="Doe")


@pytest.fixture
def user_headers(user: User) -> dict[str, str]:
    return auth_headers(user)


@pytest.fixture
def superuser(session: Session) -> User:
    return make_user(session, "admin@example.com", is_superuser=True, first_name="Ada")


@pytest.fixture
def superuser_headers(superuser: User) -> dict[str, str]:
    return auth_headers(superuser)


@pytest.fixture
def use_llm(client: TestClient):
    """Route POST /api/analysis through an agent backed by the given mock client."""

    def _use(llm: MagicMock, timeout: float = 5.0) -> MagicMock:
        app.dependency_overrides[get_analysis_agent] = lambda: PropertyAnalysisAgent(
            llm, timeout=timeout
        )
        return llm

    return _use
