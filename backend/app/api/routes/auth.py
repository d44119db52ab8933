import logging
from datetime import timedelta
from typing import Any

from fastapi import APIRouter, HTTPException, Request, status

from app import crud
from app.api.deps import CurrentUser, SessionDep, record_event_safely
from app.core import security
from app.core.config import settings
from app.models import User, UserCreate
from app.schemas import (
    AuthResponse,
    LoginRequest,
    Message,
    RegisterRequest,
    UserPublic,
    VerifyResponse,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _issue_token(user: User) -> str:
    return security.create_access_token(
        user.id, expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(request: Request, session: SessionDep, user_in: RegisterRequest) -> Any:
    """
    Create an account and return a bearer token for it.
    """
    if crud.get_user_by_email(session=session, email=user_in.email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email address already exists",
        )

    user = crud.create_user(
        session=session,
        user_create=UserCreate(
            email=user_in.email,
            password=user_in.password,
            first_name=user_in.first_name,
            last_name=user_in.last_name,
        ),
    )
    record_event_safely(
        session,
        request,
        "user_registered",
        user_id=user.id,
        details={"email": user.email, "firstName": user.first_name, "lastName": user.last_name},
    )
    logger.info("Registered user %s", user.id)

    return AuthResponse(
        message="Account created successfully",
        user=UserPublic.from_user(user),
        token=_issue_token(user),
    )


@router.post("/login", response_model=AuthResponse)
def login(request: Request, session: SessionDep, credentials: LoginRequest) -> Any:
    user = crud.authenticate(
        session=session, email=credentials.email, password=credentials.password
    )
    if not user:
        raise HTTPException(status_code=401, detail="Incorrect email or password")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account disabled. Contact support.")

    record_event_safely(
        session, request, "user_login", user_id=user.id, details={"email": user.email}
    )
    return AuthResponse(
        message="Login successful",
        user=UserPublic.from_user(user),
        token=_issue_token(user),
    )


@router.get("/verify", response_model=VerifyResponse)
def verify(current_user: CurrentUser) -> Any:
    return VerifyResponse(message="Token is valid", user=UserPublic.from_user(current_user))


@router.post("/logout", response_model=Message)
def logout(request: Request, session: SessionDep, current_user: CurrentUser) -> Any:
    """
    Tokens are stateless; logging out only leaves an audit trail. The client drops its token.
    """
    record_event_safely(
        session,
        request,
        "user_logout",
        user_id=current_user.id,
        details={"email": current_user.email},
    )
    return Message(message="Logout successful")
