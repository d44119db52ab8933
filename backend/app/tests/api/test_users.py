from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, select

from app import crud
from app.core.config import settings
from app.models import Analysis, AnalysisCreate, AnalyticsEvent, User
from app.schemas import make_preview
from app.tests.utils import make_user

API = settings.API_V1_STR


def add_analysis(
    session: Session,
    user: User | None,
    address: str = "123 Main St, Austin, TX 78701",
    *,
    notes: str | None = None,
    analysis_type: str = "standard",
    text: str = "# Report\nA short analysis body for the history list.",
    tokens_used: int = 100,
) -> Analysis:
    return crud.create_analysis(
        session=session,
        analysis_in=AnalysisCreate(
            property_address=address,
            acquisition_notes=notes,
            analysis_type=analysis_type,
            ai_analysis=text,
            tokens_used=tokens_used,
            processing_time=250,
        ),
        user_id=user.id if user else None,
    )


def test_history_requires_token(client: TestClient):
    response = client.get(f"{API}/user/analyses")

    assert response.status_code == 401


def test_history_is_paginated_newest_first(
    client: TestClient, session: Session, user: User, user_headers: dict[str, str]
):
    for number in range(12):
        add_analysis(session, user, f"{number} Elm Street, Dallas, TX")
    add_analysis(session, make_user(session, "other@example.com"), "999 Other Road, Miami, FL")

    response = client.get(f"{API}/user/analyses?page=2&limit=5", headers=user_headers)

    assert response.status_code == 200
    body = response.json()
    assert [a["propertyAddress"] for a in body["analyses"]] == [
        f"{number} Elm Street, Dallas, TX" for number in (6, 5, 4, 3, 2)
    ]
    assert body["pagination"] == {
        "currentPage": 2,
        "totalPages": 3,
        "totalItems": 12,
        "itemsPerPage": 5,
        "hasNextPage": True,
        "hasPrevPage": True,
    }


def test_history_defaults_and_empty_list(client: TestClient, user_headers: dict[str, str]):
    response = client.get(f"{API}/user/analyses", headers=user_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["analyses"] == []
    assert body["pagination"]["currentPage"] == 1
    assert body["pagination"]["itemsPerPage"] == 10
    assert body["pagination"]["totalPages"] == 0
    assert body["pagination"]["hasNextPage"] is False


def test_history_preview_is_truncated(
    client: TestClient, session: Session, user: User, user_headers: dict[str, str]
):
    add_analysis(session, user, text="A" * 450)
    add_analysis(session, user, "456 Oak Avenue, Denver, CO", text="Short body")

    analyses = client.get(f"{API}/user/analyses", headers=user_headers).json()["analyses"]

    assert analyses[0]["preview"] == "Short body"
    assert analyses[1]["preview"] == "A" * 200 + "..."


def test_history_preview_of_exact_length_is_not_marked(
    client: TestClient, session: Session, user: User, user_headers: dict[str, str]
):
    add_analysis(session, user, text="B" * 200)

    analyses = client.get(f"{API}/user/analyses", headers=user_headers).json()["analyses"]

    assert analyses[0]["preview"] == "B" * 200


@pytest.mark.parametrize(
    "text, expected",
    [
        (None, ""),
        ("", ""),
        ("C" * 199, "C" * 199),
        ("C" * 200, "C" * 200),
        ("C" * 201, "C" * 200 + "..."),
    ],
)
def test_make_preview(text, expected):
    assert make_preview(text) == expected


def test_history_rejects_bad_paging(client: TestClient, user_headers: dict[str, str]):
    response = client.get(f"{API}/user/analyses?page=0", headers=user_headers)

    assert response.status_code == 400


def test_search_matches_address_and_notes(
    client: TestClient, session: Session, user: User, user_headers: dict[str, str]
):
    add_analysis(session, user, "100 Ocean Drive, Miami, FL")
    add_analysis(session, user, "200 Pine Street, Denver, CO", notes="Ocean view from the attic")
    add_analysis(session, user, "300 Ross Avenue, Dallas, TX")

    response = client.get(f"{API}/user/analyses/search?q=ocean", headers=user_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["searchQuery"] == "ocean"
    assert body["pagination"]["totalItems"] == 2
    assert {a["propertyAddress"] for a in body["analyses"]} == {
        "100 Ocean Drive, Miami, FL",
        "200 Pine Street, Denver, CO",
    }


def test_search_requires_three_characters(client: TestClient, user_headers: dict[str, str]):
    response = client.get(f"{API}/user/analyses/search?q=%20ab%20", headers=user_headers)

    assert response.status_code == 400
    assert response.json() == {"error": "Search query must contain at least 3 characters"}


def test_delete_own_analysis(
    client: TestClient, session: Session, user: User, user_headers: dict[str, str]
):
    analysis = add_analysis(session, user)
    analysis_id = analysis.id

    response = client.delete(f"{API}/user/analyses/{analysis_id}", headers=user_headers)

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Analysis deleted successfully"}
    assert session.get(Analysis, analysis_id) is None
    event = session.exec(
        select(AnalyticsEvent).where(AnalyticsEvent.action == "analysis_deleted")
    ).one()
    assert event.details == {"analysisId": analysis_id}


def test_delete_other_users_analysis_is_not_found(
    client: TestClient, session: Session, user_headers: dict[str, str]
):
    analysis = add_analysis(session, make_user(session, "other@example.com"))

    response = client.delete(f"{API}/user/analyses/{analysis.id}", headers=user_headers)

    assert response.status_code == 404
    assert session.get(Analysis, analysis.id) is not None


def test_stats(client: TestClient, session: Session, user: User, user_headers: dict[str, str]):
    add_analysis(session, user, tokens_used=100)
    add_analysis(session, user, analysis_type="investment", tokens_used=300)
    old = add_analysis(session, user, analysis_type="investment", tokens_used=50)
    old.created_at = datetime.now(timezone.utc) - timedelta(days=45)
    session.add(old)
    session.commit()

    response = client.get(f"{API}/user/stats", headers=user_headers)

    assert response.status_code == 200
    stats = response.json()["stats"]
    assert stats["totalAnalyses"] == 3
    assert stats["totalTokens"] == 450
    assert stats["last30Days"] == 2
    assert stats["analysisByType"] == {"standard": 1, "investment": 2}
    assert stats["firstAnalysis"] is not None
    assert stats["lastAnalysis"] is not None


def test_stats_for_new_user(client: TestClient, user_headers: dict[str, str]):
    stats = client.get(f"{API}/user/stats", headers=user_headers).json()["stats"]

    assert stats["totalAnalyses"] == 0
    assert stats["totalTokens"] == 0
    assert stats["lastAnalysis"] is None
    assert stats["analysisByType"] == {}


def test_profile(client: TestClient, user: User, user_headers: dict[str, str]):
    response = client.get(f"{API}/user/profile", headers=user_headers)

    assert response.status_code == 200
    profile = response.json()["user"]
    assert profile["email"] == "investor@example.com"
    assert profile["firstName"] == "Jane"
    assert profile["subscriptionStatus"] == "free"
    assert profile["isActive"] is True


def test_deleting_user_keeps_analyses_anonymous(session: Session):
    owner = make_user(session, "leaving@example.com")
    analysis = add_analysis(session, owner)

    session.delete(owner)
    session.commit()
    session.refresh(analysis)

    assert analysis.user_id is None
