from datetime import datetime, timezone

from pydantic import EmailStr
from sqlalchemy import JSON, DateTime, Text
from sqlmodel import Field, SQLModel


def get_datetime_utc() -> datetime:
    return datetime.now(timezone.utc)


# Shared properties
class UserBase(SQLModel):
    email: EmailStr = Field(unique=True, index=True, max_length=255)
    first_name: str | None = Field(default=None, max_length=50)
    last_name: str | None = Field(default=None, max_length=50)
    is_active: bool = True
    is_superuser: bool = False


# Properties to receive on creation
class UserCreate(UserBase):
    password: str = Field(min_length=8, max_length=128)


# Database model
class User(UserBase, table=True):
    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    hashed_password: str
    subscription_status: str = Field(default="free", max_length=50)
    stripe_customer_id: str | None = Field(default=None, index=True, max_length=255)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class AnalysisBase(SQLModel):
    property_address: str = Field(max_length=500)
    acquisition_notes: str | None = Field(default=None, sa_type=Text)
    analysis_type: str = Field(default="standard", max_length=20, index=True)


class AnalysisCreate(AnalysisBase):
    ai_analysis: str
    tokens_used: int = 0
    processing_time: int = 0
    is_demo_mode: bool = False


class Analysis(AnalysisBase, table=True):
    __tablename__ = "analyses"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int | None = Field(
        default=None,
        foreign_key="users.id",
        nullable=True,
        ondelete="SET NULL",
        index=True,
    )
    ai_analysis: str = Field(sa_type=Text)
    tokens_used: int = 0
    processing_time: int = 0
    is_demo_mode: bool = False
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
        index=True,
    )


# Audit trail of user and system actions
class AnalyticsEvent(SQLModel, table=True):
    __tablename__ = "analytics"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int | None = Field(
        default=None,
        foreign_key="users.id",
        nullable=True,
        ondelete="SET NULL",
        index=True,
    )
    action: str = Field(max_length=100, index=True)
    details: dict | None = Field(default=None, sa_type=JSON)
    ip_address: str | None = Field(default=None, max_length=64)
    user_agent: str | None = Field(default=None, max_length=512)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
        index=True,
    )
