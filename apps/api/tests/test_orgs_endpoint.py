from fastapi.testclient import TestClient
from postgrest_fake import FakePostgrest, auth_headers

from grc_api.main import app

ORG_ID = "11111111-1111-1111-1111-111111111111"


def test_list_organizations_requires_token() -> None:
    db = FakePostgrest()
    db.install()
    try:
        client = TestClient(app)
        response = client.get("/api/organizations")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 401


def test_list_organizations_merges_membership_and_drops_expired() -> None:
    db = FakePostgrest()
    db.seed(
        "organizations",
        {"id": ORG_ID, "name": "Acme", "slug": "acme"},
        {"id": "org-2", "name": "Old Client", "slug": "old-client"},
    )
    db.seed(
        "organization_members",
        {"org_id": ORG_ID, "user_id": "user-1", "role": "owner", "is_external_auditor": False},
        {
            "org_id": "org-2",
            "user_id": "user-1",
            "role": "auditor",
            "is_external_auditor": True,
            "access_expires_at": "2020-01-01T00:00:00Z",
        },
        {"org_id": "org-2", "user_id": "user-2", "role": "owner"},
    )
    db.install()
    try:
        client = TestClient(app)
        response = client.get("/api/organizations", headers=auth_headers())
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    data = response.json()["data"]
    assert len(data) == 1
    assert data[0]["id"] == ORG_ID
    assert data[0]["slug"] == "acme"
    assert data[0]["role"] == "owner"
    assert data[0]["is_external_auditor"] is False


def test_create_organization_adds_owner_membership() -> None:
    db = FakePostgrest()
    db.install()
    try:
        client = TestClient(app)
        response = client.post(
            "/api/organizations",
            json={"name": "Acme", "slug": "acme-co"},
            headers=auth_headers(),
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 201
    organization = response.json()["data"]
    assert organization["subscription_tier"] == "free"
    membership = db.tables["organization_members"][0]
    assert membership["org_id"] == organization["id"]
    assert membership["user_id"] == "user-1"
    assert membership["role"] == "owner"
    assert db.audit_events[0]["p_org_id"] == organization["id"]


def test_create_organization_rejects_bad_slug() -> None:
    db = FakePostgrest()
    db.install()
    try:
        client = TestClient(app)
        response = client.post(
            "/api/organizations",
            json={"name": "Acme", "slug": "Acme Co"},
            headers=auth_headers(),
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 400
    assert response.json() == {"error": "slug must contain only lowercase letters, numbers, and hyphens"}
    assert db.requests == []


def test_create_organization_duplicate_slug_is_conflict() -> None:
    db = FakePostgrest()
    db.seed("organizations", {"id": ORG_ID, "name": "Acme", "slug": "acme"})
    db.install()
    try:
        client = TestClient(app)
        response = client.post(
            "/api/organizations",
            json={"name": "Acme Again", "slug": "acme"},
            headers=auth_headers(),
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 409
    assert response.json() == {"error": "An organization with this slug already exists"}
    assert len(db.tables["organizations"]) == 1
    assert db.tables["organization_members"] == []


def test_create_organization_rolls_back_when_membership_fails() -> None:
    db = FakePostgrest()
    db.fail("organization_members", method="POST", message="permission denied")
    db.install()
    try:
        client = TestClient(app)
        response = client.post(
            "/api/organizations",
            json={"name": "Acme", "slug": "acme"},
            headers=auth_headers(),
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to create organization"}
    assert db.tables["organizations"] == []
    assert len(db.requests_to("organizations", "DELETE")) == 1
    assert db.audit_events == []


def test_get_organization_includes_stats() -> None:
    db = FakePostgrest()
    db.seed("organizations", {"id": ORG_ID, "name": "Acme", "slug": "acme"})
    db.seed(
        "evidence_tasks",
        {"org_id": ORG_ID, "status": "open"},
        {"org_id": ORG_ID, "status": "in_progress"},
        {"org_id": ORG_ID, "status": "done"},
    )
    db.seed(
        "vendors",
        {"org_id": ORG_ID, "status": "active", "risk_level": "critical"},
        {"org_id": ORG_ID, "status": "active", "risk_level": "low"},
        {"org_id": ORG_ID, "status": "inactive", "risk_level": "high"},
    )
    db.rpc_results["get_control_status_summary"] = [{"total": 10, "effective": 4}]
    db.rpc_results["get_risks_by_severity"] = [{"severity": "high", "count": 2}]
    db.install()
    try:
        client = TestClient(app)
        response = client.get(f"/api/organizations/{ORG_ID}")
        missing = client.get("/api/organizations/nope")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.json()["data"]["stats"] == {
        "controls": {"total": 10, "effective": 4},
        "risks": [{"severity": "high", "count": 2}],
        "open_tasks": 2,
        "vendors": {"total": 2, "high_risk": 1},
    }
    assert missing.status_code == 404
    assert missing.json() == {"error": "Organization not found"}


def test_update_organization_requires_admin_role() -> None:
    db = FakePostgrest()
    db.seed("organizations", {"id": ORG_ID, "name": "Acme", "slug": "acme"})
    db.seed("organization_members", {"org_id": ORG_ID, "user_id": "user-1", "role": "viewer"})
    db.install()
    try:
        client = TestClient(app)
        response = client.patch(f"/api/organizations/{ORG_ID}", json={"name": "Renamed"}, headers=auth_headers())
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 403
    assert response.json() == {"error": "Forbidden"}
    assert db.tables["organizations"][0]["name"] == "Acme"


def test_update_organization_keeps_slug() -> None:
    db = FakePostgrest()
    db.seed("organizations", {"id": ORG_ID, "name": "Acme", "slug": "acme"})
    db.seed("organization_members", {"org_id": ORG_ID, "user_id": "user-1", "role": "admin"})
    db.install()
    try:
        client = TestClient(app)
        response = client.patch(
            f"/api/organizations/{ORG_ID}",
            json={"name": "Renamed", "slug": "hijacked"},
            headers=auth_headers(),
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.json()["data"]["name"] == "Renamed"
    assert response.json()["data"]["slug"] == "acme"
    assert db.audit_events[0]["p_changes"]["old"]["name"] == "Acme"
