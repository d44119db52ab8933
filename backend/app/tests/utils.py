from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

from sqlmodel import Session

from app import crud
from app.agent.llm_client import Completion
from app.core import security
from app.models import User, UserCreate

LIVE_ANALYSIS = (
    "# US Real Estate Analysis\n\n"
    "## Phase 1: Core Property & Market Value Analysis\n"
    "- **ARV (After Repair Value):** $510,000\n"
    "## Phase 11: Offer Calculations\n"
    "**Cash MAO:** $305,000\n"
)


def make_user(
    session: Session,
    email: str,
    password: str = "password123",
    **fields,
) -> User:
    return crud.create_user(
        session=session,
        user_create=UserCreate(email=email, password=password, **fields),
    )


def auth_headers(user: User, expires_delta: timedelta = timedelta(hours=1)) -> dict[str, str]:
    token = security.create_access_token(user.id, expires_delta=expires_delta)
    return {"Authorization": f"Bearer {token}"}


def mock_llm(
    text: str = LIVE_ANALYSIS, tokens_used: int = 1234, side_effect=None
) -> MagicMock:
    llm = MagicMock()
    llm.provider = "openai"
    llm.is_configured = True
    llm.generate_text = AsyncMock(
        return_value=Completion(text=text, tokens_used=tokens_used, model="gpt-4o"),
        side_effect=side_effect,
    )
    return llm
