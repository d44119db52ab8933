import secrets
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any

from sqlalchemy import func, or_
from sqlmodel import Session, col, select

from app.core.security import get_password_hash, verify_password
from app.models import (
    Analysis,
    AnalysisCreate,
    AnalyticsEvent,
    User,
    UserCreate,
    get_datetime_utc,
)


def create_user(*, session: Session, user_create: UserCreate) -> User:
    db_obj = User.model_validate(
        user_create,
        update={
            "email": user_create.email.lower(),
            "hashed_password": get_password_hash(user_create.password),
        },
    )
    session.add(db_obj)
    session.commit()
    session.refresh(db_obj)
    return db_obj


def get_user_by_email(*, session: Session, email: str) -> User | None:
    statement = select(User).where(User.email == email.lower())
    session_user = session.exec(statement).first()
    return session_user


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    # Hash of a throwaway password, used so unknown emails cost the same as wrong passwords.
    return get_password_hash(secrets.token_urlsafe(16))


def authenticate(*, session: Session, email: str, password: str) -> User | None:
    db_user = get_user_by_email(session=session, email=email)
    if not db_user:
        verify_password(password, _dummy_hash())
        return None
    verified, updated_password_hash = verify_password(password, db_user.hashed_password)
    if not verified:
        return None
    if updated_password_hash:
        db_user.hashed_password = updated_password_hash
        session.add(db_user)
        session.commit()
        session.refresh(db_user)
    return db_user


def update_user_fields(*, session: Session, db_user: User, **fields: Any) -> User:
    db_user.sqlmodel_update(fields, update={"updated_at": get_datetime_utc()})
    session.add(db_user)
    session.commit()
    session.refresh(db_user)
    return db_user


def get_user_by_stripe_customer(*, session: Session, customer_id: str) -> User | None:
    statement = select(User).where(User.stripe_customer_id == customer_id)
    return session.exec(statement).first()


def record_event(
    *,
    session: Session,
    action: str,
    user_id: int | None = None,
    details: dict[str, Any] | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AnalyticsEvent:
    db_event = AnalyticsEvent(
        user_id=user_id,
        action=action,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    session.add(db_event)
    session.commit()
    session.refresh(db_event)
    return db_event


def create_analysis(
    *, session: Session, analysis_in: AnalysisCreate, user_id: int | None
) -> Analysis:
    db_analysis = Analysis.model_validate(analysis_in, update={"user_id": user_id})
    session.add(db_analysis)
    session.commit()
    session.refresh(db_analysis)
    return db_analysis


def get_user_analysis(
    *, session: Session, analysis_id: int, user_id: int
) -> Analysis | None:
    statement = select(Analysis).where(
        Analysis.id == analysis_id, Analysis.user_id == user_id
    )
    return session.exec(statement).first()


def list_user_analyses(
    *,
    session: Session,
    user_id: int,
    page: int,
    limit: int,
    query: str | None = None,
) -> tuple[list[Analysis], int]:
    """Return one page of a user's analyses, newest first, plus the total match count."""
    conditions = [Analysis.user_id == user_id]
    if query:
        term = f"%{query}%"
        conditions.append(
            or_(
                col(Analysis.property_address).ilike(term),
                col(Analysis.acquisition_notes).ilike(term),
            )
        )

    count_statement = select(func.count()).select_from(Analysis).where(*conditions)
    total = session.exec(count_statement).one()

    statement = (
        select(Analysis)
        .where(*conditions)
        .order_by(col(Analysis.created_at).desc(), col(Analysis.id).desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(session.exec(statement).all()), total


def delete_analysis(*, session: Session, analysis: Analysis) -> None:
    session.delete(analysis)
    session.commit()


def count_user_analyses_since(
    *, session: Session, user_id: int, since: datetime
) -> int:
    statement = (
        select(func.count())
        .select_from(Analysis)
        .where(Analysis.user_id == user_id, col(Analysis.created_at) >= since)
    )
    return session.exec(statement).one()


def get_user_stats(
    *, session: Session, user_id: int, now: datetime | None = None
) -> dict[str, Any]:
    now = now or datetime.now(timezone.utc)

    totals = session.exec(
        select(
            func.count(col(Analysis.id)),
            func.coalesce(func.sum(Analysis.tokens_used), 0),
            func.max(Analysis.created_at),
            func.min(Analysis.created_at),
        ).where(Analysis.user_id == user_id)
    ).one()
    total_analyses, total_tokens, last_analysis, first_analysis = totals

    by_type_rows = session.exec(
        select(Analysis.analysis_type, func.count(col(Analysis.id)))
        .where(Analysis.user_id == user_id)
        .group_by(Analysis.analysis_type)
    ).all()

    return {
        "total_analyses": total_analyses or 0,
        "total_tokens": total_tokens or 0,
        "last_analysis": last_analysis,
        "first_analysis": first_analysis,
        "last_30_days": count_user_analyses_since(
            session=session, user_id=user_id, since=now - timedelta(days=30)
        ),
        "analysis_by_type": {analysis_type: count for analysis_type, count in by_type_rows},
    }
