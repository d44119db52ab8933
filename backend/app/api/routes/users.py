from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request

from app import crud
from app.api.deps import CurrentUser, SessionDep, record_event_safely
from app.schemas import (
    AnalysesPage,
    AnalysesSearchPage,
    AnalysisSummary,
    Pagination,
    ProfileResponse,
    SuccessMessage,
    UserProfile,
    UserStats,
    UserStatsResponse,
)

router = APIRouter()

MIN_SEARCH_LENGTH = 3


@router.get("/analyses", response_model=AnalysesPage)
def read_analyses(
    session: SessionDep,
    current_user: CurrentUser,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
) -> Any:
    """
    Page through the caller's analyses, newest first.
    """
    analyses, total = crud.list_user_analyses(
        session=session, user_id=current_user.id, page=page, limit=limit
    )
    return AnalysesPage(
        analyses=[AnalysisSummary.from_record(a) for a in analyses],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )


@router.get("/analyses/search", response_model=AnalysesSearchPage)
def search_analyses(
    session: SessionDep,
    current_user: CurrentUser,
    q: str = Query(default=""),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
) -> Any:
    """
    Search the caller's analyses by property address or acquisition notes.
    """
    term = q.strip()
    if len(term) < MIN_SEARCH_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Search query must contain at least {MIN_SEARCH_LENGTH} characters",
        )

    analyses, total = crud.list_user_analyses(
        session=session, user_id=current_user.id, page=page, limit=limit, query=term
    )
    return AnalysesSearchPage(
        analyses=[AnalysisSummary.from_record(a) for a in analyses],
        pagination=Pagination.build(page=page, limit=limit, total=total),
        search_query=q,
    )


@router.delete("/analyses/{id}", response_model=SuccessMessage)
def delete_analysis(
    id: int, request: Request, session: SessionDep, current_user: CurrentUser
) -> Any:
    analysis = crud.get_user_analysis(
        session=session, analysis_id=id, user_id=current_user.id
    )
    if not analysis:
        raise HTTPException(status_code=404, detail="Analysis not found")

    crud.delete_analysis(session=session, analysis=analysis)
    record_event_safely(
        session, request, "analysis_deleted", user_id=current_user.id, details={"analysisId": id}
    )
    return SuccessMessage(message="Analysis deleted successfully")


@router.get("/stats", response_model=UserStatsResponse)
def read_stats(session: SessionDep, current_user: CurrentUser) -> Any:
    stats = crud.get_user_stats(session=session, user_id=current_user.id)
    return UserStatsResponse(stats=UserStats(**stats))


@router.get("/profile", response_model=ProfileResponse)
def read_profile(current_user: CurrentUser) -> Any:
    return ProfileResponse(user=UserProfile.from_user(current_user))
