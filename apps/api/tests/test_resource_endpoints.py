from fastapi.testclient import TestClient
from postgrest_fake import FakePostgrest, auth_headers

from grc_api.main import app

ORG_ID = "11111111-1111-1111-1111-111111111111"


def test_asset_create_defaults_criticality_and_audits() -> None:
    db = FakePostgrest()
    db.install()
    try:
        client = TestClient(app)
        response = client.post(
            "/api/assets",
            json={"org_id": ORG_ID, "name": "Payroll DB", "type": "database"},
            headers=auth_headers(),
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["criticality"] == "medium"
    assert db.audit_events[0]["p_resource_type"] == "assets"
    assert db.audit_events[0]["p_resource_id"] == data["id"]


def test_asset_create_reports_missing_fields() -> None:
    db = FakePostgrest()
    db.install()
    try:
        client = TestClient(app)
        response = client.post("/api/assets", json={"org_id": ORG_ID}, headers=auth_headers())
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 400
    assert response.json() == {"error": "name and type are required"}
    assert db.requests == []


def test_asset_list_filters_and_sorts_by_name() -> None:
    db = FakePostgrest()
    db.seed(
        "assets",
        {"id": "b", "org_id": ORG_ID, "name": "Beta", "type": "database"},
        {"id": "a", "org_id": ORG_ID, "name": "Alpha", "type": "database"},
        {"id": "c", "org_id": ORG_ID, "name": "Gamma", "type": "laptop"},
    )
    db.install()
    try:
        client = TestClient(app)
        response = client.get(f"/api/assets?org_id={ORG_ID}&type=database")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert [row["id"] for row in response.json()["data"]] == ["a", "b"]


def test_asset_patch_ignores_immutable_columns() -> None:
    db = FakePostgrest()
    db.seed("assets", {"id": "asset-1", "org_id": ORG_ID, "name": "Old"})
    db.install()
    try:
        client = TestClient(app)
        response = client.patch(
            "/api/assets/asset-1",
            json={"name": "New", "org_id": "other-org", "id": "hijack"},
            headers=auth_headers(),
        )
        empty = client.patch("/api/assets/asset-1", json={"org_id": "other-org"}, headers=auth_headers())
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    data = response.json()["data"]
    assert (data["id"], data["org_id"], data["name"]) == ("asset-1", ORG_ID, "New")
    assert empty.status_code == 400
    assert empty.json() == {"error": "No fields to update"}
    event = db.audit_events[0]
    assert event["p_action"] == "update"
    assert event["p_changes"]["old"]["name"] == "Old"
    assert event["p_changes"]["new"]["name"] == "New"


def test_asset_delete_removes_row() -> None:
    db = FakePostgrest()
    db.seed("assets", {"id": "asset-1", "org_id": ORG_ID, "name": "Old"})
    db.install()
    try:
        client = TestClient(app)
        response = client.delete("/api/assets/asset-1", headers=auth_headers())
        again = client.delete("/api/assets/asset-1", headers=auth_headers())
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert db.tables["assets"] == []
    assert again.status_code == 404
    assert db.audit_events[0]["p_action"] == "delete"


def test_audit_create_starts_in_planning() -> None:
    db = FakePostgrest()
    db.install()
    try:
        client = TestClient(app)
        response = client.post(
            "/api/audits",
            json={"org_id": ORG_ID, "name": "SOC 2 Type II", "audit_type": "external"},
            headers=auth_headers(),
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["status"] == "planning"
    assert data["scope"] == []


def test_audit_list_includes_findings_count() -> None:
    db = FakePostgrest()
    db.seed(
        "audits",
        {"id": "audit-1", "org_id": ORG_ID, "created_at": "2026-01-01T00:00:00+00:00"},
        {"id": "audit-2", "org_id": ORG_ID, "created_at": "2026-01-02T00:00:00+00:00"},
    )
    db.seed(
        "audit_findings",
        {"audit_id": "audit-1", "org_id": ORG_ID},
        {"audit_id": "audit-1", "org_id": ORG_ID},
        {"audit_id": "audit-2", "org_id": ORG_ID},
    )
    db.install()
    try:
        client = TestClient(app)
        response = client.get(f"/api/audits?org_id={ORG_ID}")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    counts = {row["id"]: row["findings_count"] for row in response.json()["data"]}
    assert counts == {"audit-1": 2, "audit-2": 1}
    assert [row["id"] for row in response.json()["data"]] == ["audit-2", "audit-1"]
    assert len(db.requests_to("audit_findings", "HEAD")) == 2


def test_audit_list_fails_when_a_count_fails() -> None:
    db = FakePostgrest()
    db.seed("audits", {"id": "audit-1", "org_id": ORG_ID})
    db.fail("audit_findings", message="count failed")
    db.install()
    try:
        client = TestClient(app)
        response = client.get(f"/api/audits?org_id={ORG_ID}")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json() == {"error": "count failed"}


def test_audit_archive_closes_audit() -> None:
    db = FakePostgrest()
    db.seed("audits", {"id": "audit-1", "org_id": ORG_ID, "status": "in_progress"})
    db.install()
    try:
        client = TestClient(app)
        response = client.delete("/api/audits/audit-1", headers=auth_headers())
    finally:
        app.dependency_overrides.clear()

    assert response.json() == {"success": True}
    assert db.tables["audits"][0]["status"] == "closed"


def test_audit_finding_create_sets_open_status() -> None:
    db = FakePostgrest()
    db.install()
    try:
        client = TestClient(app)
        response = client.post(
            "/api/audits/audit-1/findings",
            json={"org_id": ORG_ID, "title": "MFA gaps", "severity": "high"},
            headers=auth_headers(),
        )
        listed = client.get("/api/audits/audit-1/findings")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 201
    assert response.json()["data"]["status"] == "open"
    assert response.json()["data"]["audit_id"] == "audit-1"
    assert [row["title"] for row in listed.json()["data"]] == ["MFA gaps"]
    assert db.audit_events[0]["p_action"] == "finding.created"


def test_audit_detail_embeds_findings() -> None:
    db = FakePostgrest()
    db.seed("audits", {"id": "audit-1", "org_id": ORG_ID, "name": "SOC 2"})
    db.seed("audit_findings", {"id": "finding-1", "audit_id": "audit-1", "org_id": ORG_ID})
    db.install()
    try:
        client = TestClient(app)
        response = client.get("/api/audits/audit-1")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert [row["id"] for row in response.json()["data"]["audit_findings"]] == ["finding-1"]


def test_incident_create_has_no_default_status() -> None:
    db = FakePostgrest()
    db.install()
    try:
        client = TestClient(app)
        response = client.post(
            "/api/incidents",
            json={"org_id": ORG_ID, "title": "Phishing", "severity": "medium"},
            headers=auth_headers(),
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 201
    assert "status" not in response.json()["data"]
    assert response.json()["data"]["affected_systems"] == []


def test_incident_timeline_is_chronological() -> None:
    db = FakePostgrest()
    db.seed(
        "incident_timeline",
        {"id": "t2", "incident_id": "inc-1", "created_at": "2026-01-02T00:00:00+00:00"},
        {"id": "t1", "incident_id": "inc-1", "created_at": "2026-01-01T00:00:00+00:00"},
    )
    db.install()
    try:
        client = TestClient(app)
        added = client.post(
            "/api/incidents/inc-1/timeline",
            json={"event_type": "note", "description": "Contained"},
            headers=auth_headers(),
        )
        response = client.get("/api/incidents/inc-1/timeline")
    finally:
        app.dependency_overrides.clear()

    assert added.status_code == 201
    assert added.json()["data"]["incident_id"] == "inc-1"
    seeded = [row["id"] for row in response.json()["data"] if row["id"] in {"t1", "t2"}]
    assert seeded == ["t1", "t2"]
    assert db.audit_events == []


def test_incident_archive_closes_incident() -> None:
    db = FakePostgrest()
    db.seed("incidents", {"id": "inc-1", "org_id": ORG_ID, "status": "open"})
    db.install()
    try:
        client = TestClient(app)
        response = client.delete("/api/incidents/inc-1", headers=auth_headers())
        missing = client.delete("/api/incidents/nope", headers=auth_headers())
    finally:
        app.dependency_overrides.clear()

    assert response.json() == {"success": True}
    assert db.tables["incidents"][0]["status"] == "closed"
    assert missing.status_code == 404
    assert missing.json() == {"error": "Incident not found"}


def test_integrations_list_includes_stats() -> None:
    db = FakePostgrest()
    db.seed(
        "integrations",
        {"org_id": ORG_ID, "name": "GitHub", "status": "active", "sync_status": "connected"},
        {"org_id": ORG_ID, "name": "Jira", "status": "active", "sync_status": "error"},
        {"org_id": ORG_ID, "name": "Okta", "status": "pending", "sync_status": "pending"},
    )
    db.install()
    try:
        client = TestClient(app)
        response = client.get(f"/api/integrations?org_id={ORG_ID}")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    body = response.json()
    assert [row["name"] for row in body["data"]] == ["GitHub", "Jira", "Okta"]
    assert body["stats"] == {"active": 2, "error": 1, "total": 3}


def test_integration_create_starts_pending() -> None:
    db = FakePostgrest()
    db.install()
    try:
        client = TestClient(app)
        response = client.post(
            "/api/integrations",
            json={"org_id": ORG_ID, "name": "GitHub", "type": "github"},
            headers=auth_headers(),
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["status"] == "pending"
    assert data["sync_status"] == "pending"


def test_cloud_account_list_counts_findings() -> None:
    db = FakePostgrest()
    db.seed("cloud_accounts", {"id": "acct-1", "org_id": ORG_ID, "provider": "aws"})
    db.seed(
        "cspm_findings",
        {"cloud_account_id": "acct-1", "org_id": ORG_ID},
        {"cloud_account_id": "acct-1", "org_id": ORG_ID},
    )
    db.install()
    try:
        client = TestClient(app)
        response = client.get(f"/api/cloud-accounts?org_id={ORG_ID}")
        created = client.post(
            "/api/cloud-accounts",
            json={"org_id": ORG_ID, "provider": "gcp", "account_id": "proj-1"},
            headers=auth_headers(),
        )
    finally:
        app.dependency_overrides.clear()

    assert response.json()["data"][0]["findings_count"] == 2
    assert created.status_code == 201
    assert created.json()["data"]["sync_status"] == "pending"


def test_cspm_stats_by_provider_and_severity() -> None:
    db = FakePostgrest()
    db.seed(
        "cloud_accounts",
        {"org_id": ORG_ID, "provider": "aws", "sync_status": "connected"},
        {"org_id": ORG_ID, "provider": "aws", "sync_status": "error"},
        {"org_id": ORG_ID, "provider": "azure", "sync_status": "connected"},
    )
    db.seed(
        "cspm_findings",
        {"org_id": ORG_ID, "severity": "high"},
        {"org_id": ORG_ID, "severity": "high"},
        {"org_id": ORG_ID, "severity": "low"},
    )
    db.install()
    try:
        client = TestClient(app)
        response = client.get(f"/api/cspm/stats?org_id={ORG_ID}")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.json()["data"] == {
        "total_accounts": 3,
        "accounts_by_provider": {"aws": 2, "azure": 1},
        "total_findings": 3,
        "findings_by_severity": {"high": 2, "low": 1},
        "accounts_with_errors": 1,
    }


def test_finding_create_stamps_detection_time() -> None:
    db = FakePostgrest()
    db.install()
    try:
        client = TestClient(app)
        response = client.post(
            "/api/findings",
            json={"org_id": ORG_ID, "title": "Open port", "severity": "critical"},
            headers=auth_headers(),
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["status"] == "open"
    assert data["first_detected_at"]


def test_store_errors_are_rendered_with_store_message() -> None:
    db = FakePostgrest()
    db.fail("findings", message="relation does not exist")
    db.install()
    try:
        client = TestClient(app)
        response = client.get(f"/api/findings?org_id={ORG_ID}")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json() == {"error": "relation does not exist"}
