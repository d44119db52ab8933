import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import Field, StrictBool
from sqlalchemy import func, or_
from sqlmodel import Session, col, select

from app import crud
from app.api.deps import (
    CurrentUser,
    SessionDep,
    get_current_active_superuser,
    record_event_safely,
)
from app.models import Analysis, AnalyticsEvent, User
from app.schemas import CamelModel, Pagination, SuccessMessage, make_preview

router = APIRouter(dependencies=[Depends(get_current_active_superuser)])
logger = logging.getLogger(__name__)


class UserTotals(CamelModel):
    total: int
    new_last_30_days: int = Field(alias="newLast30Days")
    active: int


class AnalysisTotals(CamelModel):
    total: int
    last_30_days: int = Field(alias="last30Days")
    total_tokens: int
    avg_tokens: int


class TypeUsage(CamelModel):
    count: int
    tokens: int


class TopUser(CamelModel):
    id: int
    email: str
    name: str
    total_analyses: int
    total_tokens: int


class DailyUsage(CamelModel):
    date: str
    analyses: int


class AdminStats(CamelModel):
    users: UserTotals
    analyses: AnalysisTotals
    analysis_by_type: dict[str, TypeUsage]
    top_users: list[TopUser]
    daily_usage: list[DailyUsage]


class AdminStatsResponse(CamelModel):
    success: bool = True
    stats: AdminStats


class AdminUser(CamelModel):
    id: int
    email: str
    first_name: str | None = None
    last_name: str | None = None
    created_at: datetime | None = None
    is_active: bool
    is_superuser: bool
    subscription_status: str
    total_analyses: int
    total_tokens: int
    last_analysis: datetime | None = None


class AdminUsersPage(CamelModel):
    success: bool = True
    users: list[AdminUser]
    pagination: Pagination


class UserStatusUpdate(CamelModel):
    is_active: StrictBool


class UserRef(CamelModel):
    email: str
    name: str


class AdminAnalysis(CamelModel):
    id: int
    property_address: str
    analysis_type: str
    tokens_used: int
    created_at: datetime | None = None
    user: UserRef | None = None
    preview: str


class AdminAnalysesPage(CamelModel):
    success: bool = True
    analyses: list[AdminAnalysis]
    pagination: Pagination


class AuditLog(CamelModel):
    id: int
    action: str
    details: dict[str, Any] | None = None
    created_at: datetime | None = None
    user: UserRef | None = None


class AuditLogsPage(CamelModel):
    success: bool = True
    logs: list[AuditLog]
    pagination: Pagination


def display_name(first_name: str | None, last_name: str | None) -> str:
    return f"{first_name or ''} {last_name or ''}".strip() or "User"


def _user_ref(user: User | None) -> UserRef | None:
    if user is None:
        return None
    return UserRef(email=user.email, name=display_name(user.first_name, user.last_name))


def _count(session: Session, model: type, *conditions: Any) -> int:
    return session.exec(select(func.count()).select_from(model).where(*conditions)).one()


@router.get("/stats", response_model=AdminStatsResponse)
def read_admin_stats(session: SessionDep) -> Any:
    now = datetime.now(timezone.utc)
    month_ago = now - timedelta(days=30)
    week_ago = now - timedelta(days=7)

    users = UserTotals(
        total=_count(session, User),
        new_last_30_days=_count(session, User, col(User.created_at) >= month_ago),
        active=_count(session, User, col(User.is_active).is_(True)),
    )

    total_tokens, avg_tokens = session.exec(
        select(
            func.coalesce(func.sum(Analysis.tokens_used), 0),
            func.coalesce(func.avg(Analysis.tokens_used), 0),
        )
    ).one()
    analyses = AnalysisTotals(
        total=_count(session, Analysis),
        last_30_days=_count(session, Analysis, col(Analysis.created_at) >= month_ago),
        total_tokens=total_tokens or 0,
        avg_tokens=round(avg_tokens or 0),
    )

    by_type_rows = session.exec(
        select(
            Analysis.analysis_type,
            func.count(col(Analysis.id)),
            func.coalesce(func.sum(Analysis.tokens_used), 0),
        ).group_by(Analysis.analysis_type)
    ).all()

    analysis_count = func.count(col(Analysis.id))
    top_rows = session.exec(
        select(User, analysis_count, func.coalesce(func.sum(Analysis.tokens_used), 0))
        .outerjoin(Analysis, col(Analysis.user_id) == User.id)
        .group_by(col(User.id))
        .order_by(analysis_count.desc(), col(User.id))
        .limit(10)
    ).all()

    day = func.date(Analysis.created_at)
    daily_rows = session.exec(
        select(day, func.count(col(Analysis.id)))
        .where(col(Analysis.created_at) >= week_ago)
        .group_by(day)
        .order_by(day.desc())
    ).all()

    stats = AdminStats(
        users=users,
        analyses=analyses,
        analysis_by_type={
            analysis_type: TypeUsage(count=count, tokens=tokens or 0)
            for analysis_type, count, tokens in by_type_rows
        },
        top_users=[
            TopUser(
                id=user.id,
                email=user.email,
                name=display_name(user.first_name, user.last_name),
                total_analyses=count,
                total_tokens=tokens or 0,
            )
            for user, count, tokens in top_rows
        ],
        daily_usage=[
            DailyUsage(
                date=value.isoformat() if isinstance(value, date) else str(value),
                analyses=count,
            )
            for value, count in daily_rows
        ],
    )
    return AdminStatsResponse(stats=stats)


@router.get("/users", response_model=AdminUsersPage)
def read_admin_users(
    session: SessionDep,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    search: str | None = None,
) -> Any:
    conditions = []
    if search:
        term = f"%{search}%"
        conditions.append(
            or_(
                col(User.email).ilike(term),
                col(User.first_name).ilike(term),
                col(User.last_name).ilike(term),
            )
        )

    total = _count(session, User, *conditions)
    rows = session.exec(
        select(
            User,
            func.count(col(Analysis.id)),
            func.coalesce(func.sum(Analysis.tokens_used), 0),
            func.max(Analysis.created_at),
        )
        .outerjoin(Analysis, col(Analysis.user_id) == User.id)
        .where(*conditions)
        .group_by(col(User.id))
        .order_by(col(User.created_at).desc(), col(User.id).desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    return AdminUsersPage(
        users=[
            AdminUser(
                id=user.id,
                email=user.email,
                first_name=user.first_name,
                last_name=user.last_name,
                created_at=user.created_at,
                is_active=user.is_active,
                is_superuser=user.is_superuser,
                subscription_status=user.subscription_status,
                total_analyses=count,
                total_tokens=tokens or 0,
                last_analysis=last_analysis,
            )
            for user, count, tokens, last_analysis in rows
        ],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )


@router.patch("/users/{id}/status", response_model=SuccessMessage)
def update_user_status(
    id: int,
    body: UserStatusUpdate,
    request: Request,
    session: SessionDep,
    current_user: CurrentUser,
) -> Any:
    if id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot change your own status")

    user = session.get(User, id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    crud.update_user_fields(session=session, db_user=user, is_active=body.is_active)
    record_event_safely(
        session,
        request,
        "admin_user_status_changed",
        user_id=current_user.id,
        details={"targetUserId": id, "newStatus": body.is_active},
    )
    logger.info("Admin %s set user %s active=%s", current_user.id, id, body.is_active)

    state = "activated" if body.is_active else "deactivated"
    return SuccessMessage(message=f"User {state} successfully")


@router.get("/analyses", response_model=AdminAnalysesPage)
def read_admin_analyses(
    session: SessionDep,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    type: str | None = None,
    user_id: int | None = Query(default=None, alias="userId"),
) -> Any:
    conditions = []
    if type:
        conditions.append(Analysis.analysis_type == type)
    if user_id is not None:
        conditions.append(Analysis.user_id == user_id)

    total = _count(session, Analysis, *conditions)
    rows = session.exec(
        select(Analysis, User)
        .outerjoin(User, col(Analysis.user_id) == User.id)
        .where(*conditions)
        .order_by(col(Analysis.created_at).desc(), col(Analysis.id).desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    return AdminAnalysesPage(
        analyses=[
            AdminAnalysis(
                id=analysis.id,
                property_address=analysis.property_address,
                analysis_type=analysis.analysis_type,
                tokens_used=analysis.tokens_used,
                created_at=analysis.created_at,
                user=_user_ref(user),
                preview=make_preview(analysis.ai_analysis),
            )
            for analysis, user in rows
        ],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )


@router.get("/logs", response_model=AuditLogsPage)
def read_admin_logs(
    session: SessionDep,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    action: str | None = None,
) -> Any:
    conditions = []
    if action:
        conditions.append(AnalyticsEvent.action == action)

    total = _count(session, AnalyticsEvent, *conditions)
    rows = session.exec(
        select(AnalyticsEvent, User)
        .outerjoin(User, col(AnalyticsEvent.user_id) == User.id)
        .where(*conditions)
        .order_by(col(AnalyticsEvent.created_at).desc(), col(AnalyticsEvent.id).desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    return AuditLogsPage(
        logs=[
            AuditLog(
                id=event.id,
                action=event.action,
                details=event.details,
                created_at=event.created_at,
                user=_user_ref(user),
            )
            for event, user in rows
        ],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )
