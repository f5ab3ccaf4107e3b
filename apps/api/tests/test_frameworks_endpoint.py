from fastapi.testclient import TestClient
from postgrest_fake import FakePostgrest, auth_headers

from grc_api.main import app


def test_list_frameworks_is_global_with_requirement_counts() -> None:
    db = FakePostgrest()
    db.seed(
        "frameworks",
        {"id": "fw-soc2", "code": "SOC2", "name": "SOC 2"},
        {"id": "fw-iso", "code": "ISO27001", "name": "ISO 27001"},
    )
    db.seed(
        "framework_requirements",
        {"framework_id": "fw-iso", "code": "A.5.1"},
        {"framework_id": "fw-iso", "code": "A.5.2"},
    )
    db.install()
    try:
        client = TestClient(app)
        response = client.get("/api/frameworks")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    data = response.json()["data"]
    assert [row["id"] for row in data] == ["fw-iso", "fw-soc2"]
    assert data[0]["framework_requirements"] == [{"count": 2}]


def test_create_framework_is_custom_and_owned() -> None:
    db = FakePostgrest()
    db.install()
    try:
        client = TestClient(app)
        response = client.post(
            "/api/frameworks",
            json={"code": "INTERNAL", "name": "Internal Policy"},
            headers=auth_headers(),
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["is_custom"] is True
    assert data["created_by"] == "user-1"
    assert db.audit_events == []


def test_update_builtin_framework_is_forbidden() -> None:
    db = FakePostgrest()
    db.seed("frameworks", {"id": "fw-soc2", "code": "SOC2", "name": "SOC 2", "is_custom": False})
    db.install()
    try:
        client = TestClient(app)
        response = client.patch("/api/frameworks/fw-soc2", json={"name": "Changed"}, headers=auth_headers())
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 403
    assert response.json() == {"error": "Cannot modify built-in frameworks"}
    assert db.tables["frameworks"][0]["name"] == "SOC 2"


def test_update_custom_framework_keeps_ownership_columns() -> None:
    db = FakePostgrest()
    db.seed(
        "frameworks",
        {"id": "fw-1", "code": "INTERNAL", "name": "Internal", "is_custom": True, "created_by": "user-1"},
    )
    db.install()
    try:
        client = TestClient(app)
        response = client.patch(
            "/api/frameworks/fw-1",
            json={"name": "Internal v2", "is_custom": False, "created_by": "user-9"},
            headers=auth_headers(),
        )
        missing = client.patch("/api/frameworks/nope", json={"name": "x"}, headers=auth_headers())
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["name"] == "Internal v2"
    assert data["is_custom"] is True
    assert data["created_by"] == "user-1"
    assert missing.status_code == 404


def test_framework_domains_and_requirements_follow_display_order() -> None:
    db = FakePostgrest()
    db.seed(
        "framework_domains",
        {"id": "d2", "framework_id": "fw-1", "display_order": 2},
        {"id": "d1", "framework_id": "fw-1", "display_order": 1},
    )
    db.seed(
        "framework_requirements",
        {"id": "r2", "framework_id": "fw-1", "display_order": 2},
        {"id": "r1", "framework_id": "fw-1", "display_order": 1},
        {"id": "rx", "framework_id": "fw-2", "display_order": 0},
    )
    db.install()
    try:
        client = TestClient(app)
        domains = client.get("/api/frameworks/fw-1/domains")
        requirements = client.get("/api/frameworks/fw-1/requirements")
    finally:
        app.dependency_overrides.clear()

    assert [row["id"] for row in domains.json()["data"]] == ["d1", "d2"]
    assert [row["id"] for row in requirements.json()["data"]] == ["r1", "r2"]
