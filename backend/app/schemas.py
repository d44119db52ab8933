import math
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from app.models import Analysis, User

AnalysisType = Literal["standard", "detailed", "investment"]

PREVIEW_LENGTH = 200


class CamelModel(BaseModel):
    """Base for API payloads; the browser client speaks camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Generic message
class Message(CamelModel):
    message: str


class SuccessMessage(CamelModel):
    success: bool = True
    message: str


# Contents of JWT token
class TokenPayload(BaseModel):
    sub: str | None = None


class RegisterRequest(CamelModel):
    email: EmailStr = Field(max_length=255)
    password: str = Field(min_length=8, max_length=128)
    first_name: str | None = Field(default=None, min_length=2, max_length=50)
    last_name: str | None = Field(default=None, min_length=2, max_length=50)

    @field_validator("email")
    @classmethod
    def _lowercase_email(cls, value: str) -> str:
        return value.lower()


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def _lowercase_email(cls, value: str) -> str:
        return value.lower()


class UserPublic(CamelModel):
    id: int
    email: str
    first_name: str | None = None
    last_name: str | None = None
    is_superuser: bool = False

    @classmethod
    def from_user(cls, user: User) -> "UserPublic":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            is_superuser=user.is_superuser,
        )


class UserProfile(UserPublic):
    created_at: datetime | None = None
    subscription_status: str
    is_active: bool

    @classmethod
    def from_user(cls, user: User) -> "UserProfile":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            is_superuser=user.is_superuser,
            created_at=user.created_at,
            subscription_status=user.subscription_status,
            is_active=user.is_active,
        )


class AuthResponse(CamelModel):
    message: str
    user: UserPublic
    token: str


class VerifyResponse(CamelModel):
    message: str
    user: UserPublic


class ProfileResponse(CamelModel):
    success: bool = True
    user: UserProfile


class AnalysisRequest(CamelModel):
    property_address: str = Field(min_length=10, max_length=500)
    acquisition_notes: str | None = Field(default=None, max_length=2000)
    analysis_type: AnalysisType = "standard"


class AnalysisPublic(CamelModel):
    id: int
    property_address: str
    acquisition_notes: str | None = None
    ai_analysis: str
    analysis_type: str
    created_at: datetime | None = None
    processing_time: int
    tokens_used: int
    is_anonymous: bool
    is_demo_mode: bool

    @classmethod
    def from_record(cls, analysis: Analysis) -> "AnalysisPublic":
        return cls(
            id=analysis.id,
            property_address=analysis.property_address,
            acquisition_notes=analysis.acquisition_notes,
            ai_analysis=analysis.ai_analysis,
            analysis_type=analysis.analysis_type,
            created_at=analysis.created_at,
            processing_time=analysis.processing_time,
            tokens_used=analysis.tokens_used,
            is_anonymous=analysis.user_id is None,
            is_demo_mode=analysis.is_demo_mode,
        )


class AnalysisResponse(CamelModel):
    success: bool = True
    analysis: AnalysisPublic


def make_preview(text: str | None, length: int = PREVIEW_LENGTH) -> str:
    text = text or ""
    return text[:length] + "..." if len(text) > length else text


class AnalysisSummary(CamelModel):
    id: int
    property_address: str
    acquisition_notes: str | None = None
    analysis_type: str
    tokens_used: int
    created_at: datetime | None = None
    preview: str

    @classmethod
    def from_record(cls, analysis: Analysis) -> "AnalysisSummary":
        return cls(
            id=analysis.id,
            property_address=analysis.property_address,
            acquisition_notes=analysis.acquisition_notes,
            analysis_type=analysis.analysis_type,
            tokens_used=analysis.tokens_used,
            created_at=analysis.created_at,
            preview=make_preview(analysis.ai_analysis),
        )


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def build(cls, *, page: int, limit: int, total: int) -> "Pagination":
        total_pages = math.ceil(total / limit)
        return cls(
            current_page=page,
            total_pages=total_pages,
            total_items=total,
            items_per_page=limit,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        )


class AnalysesPage(CamelModel):
    success: bool = True
    analyses: list[AnalysisSummary]
    pagination: Pagination


class AnalysesSearchPage(AnalysesPage):
    search_query: str


class UserStats(CamelModel):
    total_analyses: int = 0
    total_tokens: int = 0
    last_analysis: datetime | None = None
    first_analysis: datetime | None = None
    last_30_days: int = Field(default=0, alias="last30Days")
    analysis_by_type: dict[str, int] = Field(default_factory=dict)


class UserStatsResponse(CamelModel):
    success: bool = True
    stats: UserStats
