"""
HTTP surface tests using the Flask test client and a fresh in-memory database
per test.

Covers:
- Health, security headers and the error envelope
- Catalog browse and search with program tagging
- Plan CRUD, import and requirement reports per user
- Program upload validation
- The token-guarded sync trigger
"""

import pytest

import catalog_sync
import config
import server
from catalog_store import upsert_courses

USER = {"X-User-Id": "student-1"}

CATALOG_ROWS = [
    {"course_id": "006720", "subject_code": "MATH", "catalog_number": "135", "course_code": "MATH135",
     "title": "Algebra for Honours Mathematics", "requirements_description": ""},
    {"course_id": "011246", "subject_code": "STAT", "catalog_number": "230", "course_code": "STAT230",
     "title": "Probability", "requirements_description": "Prereq: MATH 135"},
    {"course_id": "004380", "subject_code": "ENGL", "catalog_number": "119", "course_code": "ENGL119",
     "title": "Communications in Mathematics & Computer Science", "requirements_description": ""},
    {"course_id": "001234", "subject_code": "HIST", "catalog_number": "101", "course_code": "HIST101",
     "title": "World History", "requirements_description": ""},
]

UPLOADED_PROGRAM = {
    "name": "History Minor",
    "relevantSubjects": ["HIST"],
    "requirements": [{"description": "Survey", "options": ["HIST101", "HIST102"]}],
}


@pytest.fixture
def client():
    server.app.config["TESTING"] = True
    server.configure_database("sqlite://")
    with server._session_factory.begin() as session:
        upsert_courses(session, CATALOG_ROWS, "1255")
    with server.app.test_client() as c:
        yield c


def _error_code(resp):
    body = resp.get_json()
    assert body["mode"] == "error"
    return body["error"]["error_code"]


# ── Health / headers / errors ────────────────────────────────────────────────

class TestHealthAndHeaders:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == "ok"
        assert data["program_name"] == "Computational Mathematics"

    def test_security_headers(self, client):
        resp = client.get("/courses")
        assert resp.headers.get("X-Frame-Options") == "DENY"
        assert resp.headers.get("X-Content-Type-Options") == "nosniff"
        assert resp.headers.get("Referrer-Policy") == "same-origin"

    def test_unknown_route_uses_error_envelope(self, client):
        resp = client.get("/nope")
        assert resp.status_code == 404
        assert _error_code(resp) == "NOT_FOUND"

    def test_wrong_method(self, client):
        resp = client.delete("/courses")
        assert resp.status_code == 405
        assert _error_code(resp) == "METHOD_NOT_ALLOWED"

    def test_invalid_json_body(self, client):
        resp = client.post("/plan", data="{not json", headers=USER, content_type="application/json")
        assert resp.status_code == 400
        assert _error_code(resp) == "INVALID_INPUT"


# ── Catalog ──────────────────────────────────────────────────────────────────

class TestCourses:
    def test_list_all(self, client):
        data = client.get("/courses").get_json()
        assert data["count"] == 4
        assert data["program_name"] == "Computational Mathematics"

    def test_program_only_uses_shared_tagging(self, client):
        data = client.get("/courses?program_only=true").get_json()
        codes = {c["course_code"] for c in data["courses"]}
        # ENGL119 is outside the subject list but required
        assert codes == {"MATH135", "STAT230", "ENGL119"}

    def test_required_only(self, client):
        data = client.get("/courses?required_only=1").get_json()
        assert {c["course_code"] for c in data["courses"]} == {"MATH135", "STAT230", "ENGL119"}

    def test_relevant_by_subject_alone(self, client):
        with server._session_factory.begin() as session:
            upsert_courses(session, [{
                "course_id": "013010", "subject_code": "PMATH", "catalog_number": "351",
                "course_code": "PMATH351", "title": "Real Analysis", "requirements_description": "",
            }], "1255")
        courses = client.get("/courses?program_only=true").get_json()["courses"]
        pmath = next(c for c in courses if c["course_code"] == "PMATH351")
        assert pmath["is_required"] is False
        assert pmath["program_relevant"] is True

        required = client.get("/courses?required_only=true").get_json()["courses"]
        assert "PMATH351" not in {c["course_code"] for c in required}

    def test_search(self, client):
        data = client.get("/courses?search=stat%20230").get_json()
        assert [c["course_code"] for c in data["courses"]] == ["STAT230"]

    def test_subject_filter(self, client):
        data = client.get("/courses?subject=HIST").get_json()
        assert [c["course_code"] for c in data["courses"]] == ["HIST101"]

    def test_search_with_uploaded_program(self, client):
        resp = client.post("/courses/search", json={"program": UPLOADED_PROGRAM, "program_only": True})
        data = resp.get_json()
        assert data["program_name"] == "History Minor"
        assert [c["course_code"] for c in data["courses"]] == ["HIST101"]
        assert data["courses"][0]["is_required"] is True

    def test_search_with_invalid_program(self, client):
        resp = client.post("/courses/search", json={"program": {"requirements": []}})
        assert resp.status_code == 400
        assert _error_code(resp) == "INVALID_PROGRAM"


# ── Program ──────────────────────────────────────────────────────────────────

class TestProgram:
    def test_get_default(self, client):
        program = client.get("/program").get_json()["program"]
        assert program["name"] == "Computational Mathematics"
        assert len(program["requirements"]) == 12

    def test_validate_upload(self, client):
        resp = client.post("/program/validate", json=UPLOADED_PROGRAM)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["requirement_count"] == 1
        assert data["program"]["relevant_subjects"] == ["HIST"]

    def test_validate_names_bad_index(self, client):
        doc = {"requirements": [{"options": ["CS135"]}, {"options": []}]}
        resp = client.post("/program/validate", json=doc)
        assert resp.status_code == 400
        assert "Requirement 2" in resp.get_json()["error"]["message"]


# ── Plan ─────────────────────────────────────────────────────────────────────

class TestPlan:
    def test_requires_user(self, client):
        resp = client.get("/plan")
        assert resp.status_code == 401
        assert _error_code(resp) == "UNAUTHENTICATED"

    def test_add_and_get(self, client):
        resp = client.post("/plan", json={"courseCode": "math 135", "term": "1A"}, headers=USER)
        assert resp.status_code == 201
        assert resp.get_json()["entry"] == {"course_code": "MATH135", "term": "1A", "completed": False}

        data = client.get("/plan", headers=USER).get_json()
        assert data["plan"] == [{"course_code": "MATH135", "term": "1A", "completed": False}]
        assert data["by_term"][0] == {"term": "1A", "courses": data["plan"]}

    def test_plans_are_per_user(self, client):
        client.post("/plan", json={"courseCode": "MATH135", "term": "1A"}, headers=USER)
        data = client.get("/plan", headers={"X-User-Id": "student-2"}).get_json()
        assert data["plan"] == []

    def test_add_requires_code_and_term(self, client):
        resp = client.post("/plan", json={"courseCode": "MATH135"}, headers=USER)
        assert resp.status_code == 400

    def test_add_duplicate(self, client):
        client.post("/plan", json={"courseCode": "MATH135", "term": "1A"}, headers=USER)
        resp = client.post("/plan", json={"course_code": "MATH135", "term": "1B"}, headers=USER)
        assert resp.status_code == 409
        assert _error_code(resp) == "DUPLICATE_COURSE"

    def test_update(self, client):
        client.post("/plan", json={"courseCode": "MATH135", "term": "1A"}, headers=USER)
        resp = client.put("/plan/MATH135", json={"completed": True, "term": "1B"}, headers=USER)
        assert resp.status_code == 200
        assert resp.get_json()["entry"] == {"course_code": "MATH135", "term": "1B", "completed": True}

    def test_update_nothing(self, client):
        client.post("/plan", json={"courseCode": "MATH135", "term": "1A"}, headers=USER)
        resp = client.put("/plan/MATH135", json={}, headers=USER)
        assert resp.status_code == 400

    def test_update_missing(self, client):
        resp = client.put("/plan/CS135", json={"term": "1A"}, headers=USER)
        assert resp.status_code == 404
        assert _error_code(resp) == "NOT_FOUND"

    def test_delete(self, client):
        client.post("/plan", json={"courseCode": "MATH135", "term": "1A"}, headers=USER)
        resp = client.delete("/plan/MATH135", headers=USER)
        assert resp.status_code == 200
        assert client.get("/plan", headers=USER).get_json()["plan"] == []

    def test_delete_missing(self, client):
        assert client.delete("/plan/MATH135", headers=USER).status_code == 404


class TestPlanImport:
    def test_import(self, client):
        payload = [
            {"subjectCode": "MATH", "catalogNumber": "135", "term": "1A", "completed": "yes"},
            {"course_code": "CS135"},
            {"courseCode": "CS135", "term": "1A"},
        ]
        resp = client.post("/plan/import", json=payload, headers=USER)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["imported"]["duplicates_collapsed"] == 1
        plan = {e["course_code"]: e for e in data["plan"]}
        assert plan["MATH135"]["completed"] is True
        assert plan["CS135"]["term"] == "1A"

    def test_import_rejects_whole_batch(self, client):
        payload = [{"course_code": "CS135"}, {"term": "1A"}]
        resp = client.post("/plan/import", json=payload, headers=USER)
        assert resp.status_code == 400
        assert _error_code(resp) == "INVALID_PLAN"
        assert client.get("/plan", headers=USER).get_json()["plan"] == []

    def test_rate_limit_enforced_outside_testing(self):
        server.app.config["TESTING"] = False
        try:
            server.configure_database("sqlite://")
            with server.app.test_client() as c:
                test_ip = "10.99.88.77"
                with server._rate_limit_lock:
                    server._rate_limit_tracker[test_ip] = []
                statuses = [
                    c.post(
                        "/plan/import",
                        json=[],
                        headers=USER,
                        environ_base={"REMOTE_ADDR": test_ip},
                    ).status_code
                    for _ in range(server._RATE_LIMIT_MAX + 1)
                ]
        finally:
            server.app.config["TESTING"] = True
        assert statuses[:-1] == [200] * server._RATE_LIMIT_MAX
        assert statuses[-1] == 429


# ── Requirements ─────────────────────────────────────────────────────────────

class TestRequirements:
    def test_plan_requirements_count_planned_courses(self, client):
        client.post("/plan", json={"courseCode": "MATH145", "term": "1A"}, headers=USER)
        client.post("/plan", json={"courseCode": "MATH135", "term": "1A", "completed": False}, headers=USER)
        data = client.get("/plan/requirements", headers=USER).get_json()
        algebra = data["requirements"][0]
        assert algebra == {
            "description": "Algebra for Honours Mathematics",
            "fulfilled": True,
            "fulfilled_by": "MATH135",
        }
        assert data["summary"]["satisfied"] == 1
        assert data["summary"]["total"] == 12

    def test_plan_requirements_with_uploaded_program(self, client):
        client.post("/plan", json={"courseCode": "HIST102", "term": "1A"}, headers=USER)
        resp = client.post("/plan/requirements", json={"program": UPLOADED_PROGRAM}, headers=USER)
        data = resp.get_json()
        assert data["program_name"] == "History Minor"
        assert data["requirements"] == [{"description": "Survey", "fulfilled": True, "fulfilled_by": "HIST102"}]

    def test_check_ad_hoc_courses(self, client):
        resp = client.post("/requirements/check", json={"courses": "CS 136, asdf, MATH135", "program": {
            "name": "Core",
            "requirements": [{"description": "Core", "options": ["CS135", "CS136"]}],
        }})
        data = resp.get_json()
        assert data["requirements"] == [{"description": "Core", "fulfilled": True, "fulfilled_by": "CS136"}]
        assert data["invalid"] == ["asdf"]
        assert data["not_in_catalog"] == ["CS136"]


# ── Sync trigger ─────────────────────────────────────────────────────────────

class TestSyncTrigger:
    RECORDS = [
        {"courseId": "006720", "subjectCode": "MATH", "catalogNumber": "135", "title": "Algebra"},
        {"courseId": "011246", "subjectCode": "STAT", "catalogNumber": "230", "title": "Probability"},
    ]

    def test_disabled_without_token(self, client, monkeypatch):
        monkeypatch.setattr(config, "SYNC_TOKEN", "")
        assert client.post("/sync-courses").status_code == 404

    def test_wrong_token(self, client, monkeypatch):
        monkeypatch.setattr(config, "SYNC_TOKEN", "s3cret")
        resp = client.post("/sync-courses", headers={"X-Sync-Token": "guess"})
        assert resp.status_code == 403
        assert _error_code(resp) == "FORBIDDEN"

    def test_sync_runs(self, client, monkeypatch):
        monkeypatch.setattr(config, "SYNC_TOKEN", "s3cret")
        monkeypatch.setattr(catalog_sync, "fetch_catalog", lambda term_code, api_key, transport=None: self.RECORDS)
        resp = client.post("/sync-courses", headers={"X-Sync-Token": "s3cret"})
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["success"] is True
        assert data["upserted"] == 2
        assert data["archived"] == 4

        courses = client.get("/courses").get_json()["courses"]
        assert {c["course_code"] for c in courses} == {"MATH135", "STAT230"}

    def test_sync_failure_keeps_catalog(self, client, monkeypatch):
        def failing_fetch(term_code, api_key, transport=None):
            raise catalog_sync.CatalogSyncError("Catalog API rejected the key (HTTP 401).", status_code=502)

        monkeypatch.setattr(config, "SYNC_TOKEN", "s3cret")
        monkeypatch.setattr(catalog_sync, "fetch_catalog", failing_fetch)
        resp = client.post("/sync-courses", headers={"X-Sync-Token": "s3cret"})
        assert resp.status_code == 502
        assert _error_code(resp) == "SYNC_FAILED"
        assert client.get("/courses").get_json()["count"] == 4
