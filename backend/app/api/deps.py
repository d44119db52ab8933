import logging
from collections.abc import Generator
from typing import Annotated, Any

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from app import crud
from app.agent.analysis_agent import PropertyAnalysisAgent, get_analysis_agent
from app.core import security
from app.core.config import settings
from app.core.db import engine
from app.models import User
from app.schemas import TokenPayload

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


SessionDep = Annotated[Session, Depends(get_db)]
TokenDep = Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)]
AnalysisAgentDep = Annotated[PropertyAnalysisAgent, Depends(get_analysis_agent)]


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _decode_token(token: str) -> TokenPayload:
    payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[security.ALGORITHM])
    return TokenPayload(**payload)


def _load_active_user(session: Session, token_data: TokenPayload) -> User | None:
    try:
        user_id = int(token_data.sub or "")
    except ValueError:
        return None
    user = session.get(User, user_id)
    if not user or not user.is_active:
        return None
    return user


def get_current_user(session: SessionDep, credentials: TokenDep) -> User:
    if credentials is None:
        raise _unauthorized("Access token required")
    try:
        token_data = _decode_token(credentials.credentials)
    except ExpiredSignatureError:
        raise _unauthorized("Token expired")
    except (InvalidTokenError, ValidationError):
        raise _unauthorized("Invalid token")
    user = _load_active_user(session, token_data)
    if not user:
        raise _unauthorized("User not found or inactive")
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def get_optional_user(session: SessionDep, credentials: TokenDep) -> User | None:
    """Resolve the caller when a valid token is sent; anything else is treated as anonymous."""
    if credentials is None:
        return None
    try:
        token_data = _decode_token(credentials.credentials)
    except (InvalidTokenError, ValidationError):
        return None
    return _load_active_user(session, token_data)


OptionalUser = Annotated[User | None, Depends(get_optional_user)]


def get_current_active_superuser(current_user: CurrentUser) -> User:
    if not current_user.is_superuser:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="The user doesn't have enough privileges",
        )
    return current_user


def client_meta(request: Request) -> dict[str, str | None]:
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": (request.headers.get("user-agent") or "")[:512] or None,
    }


def record_event_safely(
    session: Session,
    request: Request,
    action: str,
    *,
    user_id: int | None,
    details: dict[str, Any] | None = None,
) -> None:
    """Write an audit event; a failure here is logged and never breaks the request."""
    try:
        crud.record_event(
            session=session,
            action=action,
            user_id=user_id,
            details=details,
            **client_meta(request),
        )
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Failed to record %s event: %s", action, exc)
