from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, select

from app import crud
from app.api.routes.admin import display_name
from app.core.config import settings
from app.models import AnalysisCreate, AnalyticsEvent, User
from app.tests.utils import make_user

API = settings.API_V1_STR


def add_analysis(session: Session, user: User | None, analysis_type: str = "standard", tokens: int = 100):
    return crud.create_analysis(
        session=session,
        analysis_in=AnalysisCreate(
            property_address="123 Main St, Austin, TX 78701",
            analysis_type=analysis_type,
            ai_analysis="# Report\n" + "Body " * 60,
            tokens_used=tokens,
        ),
        user_id=user.id if user else None,
    )


@pytest.mark.parametrize(
    "path",
    ["/admin/stats", "/admin/users", "/admin/analyses", "/admin/logs"],
)
def test_admin_routes_forbid_regular_users(
    client: TestClient, user_headers: dict[str, str], path: str
):
    response = client.get(f"{API}{path}", headers=user_headers)

    assert response.status_code == 403
    assert response.json() == {"error": "The user doesn't have enough privileges"}


def test_admin_routes_require_token(client: TestClient):
    assert client.get(f"{API}/admin/stats").status_code == 401


def test_admin_stats(
    client: TestClient,
    session: Session,
    user: User,
    superuser: User,
    superuser_headers: dict[str, str],
):
    make_user(session, "inactive@example.com", is_active=False)
    add_analysis(session, user, "standard", 100)
    add_analysis(session, user, "investment", 300)
    add_analysis(session, superuser, "standard", 200)
    add_analysis(session, None, "detailed", 0)

    response = client.get(f"{API}/admin/stats", headers=superuser_headers)

    assert response.status_code == 200
    stats = response.json()["stats"]
    assert stats["users"] == {"total": 3, "newLast30Days": 3, "active": 2}
    assert stats["analyses"]["total"] == 4
    assert stats["analyses"]["last30Days"] == 4
    assert stats["analyses"]["totalTokens"] == 600
    assert stats["analyses"]["avgTokens"] == 150
    assert stats["analysisByType"]["standard"] == {"count": 2, "tokens": 300}
    assert stats["analysisByType"]["detailed"] == {"count": 1, "tokens": 0}
    assert stats["topUsers"][0]["email"] == "investor@example.com"
    assert stats["topUsers"][0]["name"] == "Jane Doe"
    assert stats["topUsers"][0]["totalAnalyses"] == 2
    assert stats["topUsers"][0]["totalTokens"] == 400
    assert sum(day["analyses"] for day in stats["dailyUsage"]) == 4


def test_admin_users_lists_totals_and_searches(
    client: TestClient,
    session: Session,
    user: User,
    superuser_headers: dict[str, str],
):
    add_analysis(session, user, tokens=120)
    add_analysis(session, user, tokens=80)
    make_user(session, "someone@example.com", first_name="Robin")

    response = client.get(f"{API}/admin/users", headers=superuser_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["pagination"]["totalItems"] == 3
    assert body["pagination"]["itemsPerPage"] == 20
    investor = next(u for u in body["users"] if u["email"] == "investor@example.com")
    assert investor["totalAnalyses"] == 2
    assert investor["totalTokens"] == 200
    assert investor["lastAnalysis"] is not None

    search = client.get(f"{API}/admin/users?search=robin", headers=superuser_headers).json()
    assert [u["email"] for u in search["users"]] == ["someone@example.com"]
    assert search["users"][0]["totalAnalyses"] == 0


def test_admin_can_deactivate_user(
    client: TestClient,
    session: Session,
    user: User,
    superuser: User,
    superuser_headers: dict[str, str],
):
    response = client.patch(
        f"{API}/admin/users/{user.id}/status",
        json={"isActive": False},
        headers=superuser_headers,
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "User deactivated successfully"}
    session.refresh(user)
    assert user.is_active is False
    event = session.exec(
        select(AnalyticsEvent).where(AnalyticsEvent.action == "admin_user_status_changed")
    ).one()
    assert event.user_id == superuser.id
    assert event.details == {"targetUserId": user.id, "newStatus": False}

    login = client.post(
        f"{API}/auth/login",
        json={"email": "investor@example.com", "password": "password123"},
    )
    assert login.status_code == 401


def test_admin_cannot_change_own_status(
    client: TestClient, superuser: User, superuser_headers: dict[str, str]
):
    response = client.patch(
        f"{API}/admin/users/{superuser.id}/status",
        json={"isActive": False},
        headers=superuser_headers,
    )

    assert response.status_code == 400


def test_admin_status_change_for_unknown_user(
    client: TestClient, superuser_headers: dict[str, str]
):
    response = client.patch(
        f"{API}/admin/users/9999/status",
        json={"isActive": True},
        headers=superuser_headers,
    )

    assert response.status_code == 404


def test_admin_status_requires_boolean(
    client: TestClient, user: User, superuser_headers: dict[str, str]
):
    response = client.patch(
        f"{API}/admin/users/{user.id}/status",
        json={"isActive": "nope"},
        headers=superuser_headers,
    )

    assert response.status_code == 400


def test_admin_analyses_filters(
    client: TestClient,
    session: Session,
    user: User,
    superuser: User,
    superuser_headers: dict[str, str],
):
    add_analysis(session, user, "investment")
    add_analysis(session, user, "standard")
    add_analysis(session, superuser, "investment")
    add_analysis(session, None, "investment")

    by_type = client.get(
        f"{API}/admin/analyses?type=investment", headers=superuser_headers
    ).json()
    assert by_type["pagination"]["totalItems"] == 3
    assert {a["analysisType"] for a in by_type["analyses"]} == {"investment"}
    assert any(a["user"] is None for a in by_type["analyses"])

    by_user = client.get(
        f"{API}/admin/analyses?userId={user.id}", headers=superuser_headers
    ).json()
    assert by_user["pagination"]["totalItems"] == 2
    assert by_user["analyses"][0]["user"] == {"email": "investor@example.com", "name": "Jane Doe"}
    assert by_user["analyses"][0]["preview"].endswith("...")


def test_admin_logs_filter_by_action(
    client: TestClient,
    session: Session,
    user: User,
    superuser_headers: dict[str, str],
):
    crud.record_event(session=session, action="user_login", user_id=user.id, details={"email": user.email})
    crud.record_event(session=session, action="analysis_started", details={"isAnonymous": True})
    old = crud.record_event(session=session, action="user_login", user_id=user.id)
    old.created_at = datetime.now(timezone.utc) - timedelta(days=2)
    session.add(old)
    session.commit()

    response = client.get(f"{API}/admin/logs?action=user_login", headers=superuser_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["pagination"]["totalItems"] == 2
    assert body["pagination"]["itemsPerPage"] == 50
    newest = body["logs"][0]
    assert newest["action"] == "user_login"
    assert newest["details"] == {"email": "investor@example.com"}
    assert newest["user"]["email"] == "investor@example.com"


def test_display_name_falls_back():
    assert display_name("Jane", "Doe") == "Jane Doe"
    assert display_name("Jane", None) == "Jane"
    assert display_name(None, None) == "User"
