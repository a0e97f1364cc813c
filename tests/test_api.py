from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from moderation_engine.api.main import create_app
from moderation_engine.models.content import ContentRef
from moderation_engine.models.enums import ContentType

USER = {"X-Actor-Id": "reporter-1"}
OWNER = {"X-Actor-Id": "owner-1"}
REVIEWER = {"X-Actor-Id": "mod-1", "X-Actor-Role": "reviewer"}
ADMIN = {"X-Actor-Id": "admin-1", "X-Actor-Role": "admin"}

REPORT_BODY = {
    "contentType": "post",
    "contentId": "post-1",
    "contentOwner": "owner-1",
    "reportReason": "harassment_bullying",
    "description": "Insults in every comment",
}


@pytest.fixture
def client(engine):
    return TestClient(create_app(engine))


def _submit(client, body=None, headers=USER):
    response = client.post("/reports", json=body or REPORT_BODY, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_health_and_guidelines_are_public(client):
    assert client.get("/health").json()["status"] == "ok"
    body = client.get("/guidelines").json()
    assert body["guidelines"]["version"] == "1.0.0"
    assert client.get("/guidelines/1.0.0").status_code == 200
    assert client.get("/guidelines/0.0.1").status_code == 404


def test_missing_identity_is_unauthenticated(client):
    assert client.post("/reports", json=REPORT_BODY).status_code == 401
    assert client.post("/reports", json=REPORT_BODY,
                       headers={"X-Actor-Id": "u", "X-Actor-Role": "superuser"}).status_code == 401


def test_submit_report(client):
    body = _submit(client)
    assert body["success"]
    assert body["status"] == "pending"
    assert body["priority"] == "medium"

    escalated = _submit(client, {**REPORT_BODY, "reportReason": "child_safety"})
    assert escalated["status"] == "escalated"
    assert escalated["priority"] == "critical"


def test_invalid_report_body(client):
    response = client.post("/reports", json={**REPORT_BODY, "reportReason": "rudeness"}, headers=USER)
    assert response.status_code == 422
    response = client.post("/reports", json={**REPORT_BODY, "description": "x" * 1001}, headers=USER)
    assert response.status_code == 422


def test_reviewer_endpoints_require_role(client):
    response = client.get("/reports/pending", headers=USER)
    assert response.status_code == 403
    assert response.json()["code"] == "not_authorized"
    assert response.json()["success"] is False


def test_report_visibility(client):
    report_id = _submit(client)["reportId"]
    assert client.get(f"/reports/{report_id}", headers=USER).status_code == 200
    assert client.get(f"/reports/{report_id}", headers=OWNER).status_code == 200
    assert client.get(f"/reports/{report_id}", headers={"X-Actor-Id": "someone"}).status_code == 404
    assert client.get(f"/reports/{uuid4()}", headers=REVIEWER).status_code == 404


def test_review_flow_with_appeal(client):
    report_id = _submit(client)["reportId"]

    pending = client.get("/reports/pending", headers=REVIEWER).json()["reports"]
    assert [r["id"] for r in pending] == [report_id]

    claimed = client.put(f"/reports/{report_id}/claim", headers=REVIEWER)
    assert claimed.json()["status"] == "under_review"

    reviewed = client.put(f"/reports/{report_id}/review", headers=REVIEWER,
                          json={"action": "user_suspended", "reason": "Targeted harassment"})
    assert reviewed.status_code == 200
    body = reviewed.json()
    assert body["accountStatus"] == "suspended"
    violation_id = body["violationId"]

    again = client.put(f"/reports/{report_id}/review", headers=REVIEWER,
                       json={"action": "user_warned", "reason": "again"})
    assert again.status_code == 409
    assert again.json()["code"] == "already_decided"
    assert again.json()["state"]["status"] == "resolved"

    history = client.get("/violations/user/owner-1", headers=REVIEWER).json()
    assert history["rollingStrikeCount"] == 1
    assert history["standing"]["status"] == "suspended"

    assert client.post(f"/violations/{violation_id}/appeal", headers=USER,
                       json={"reason": "not mine"}).status_code == 404
    filed = client.post(f"/violations/{violation_id}/appeal", headers=OWNER, json={"reason": "Misread"})
    assert filed.status_code == 201
    duplicate = client.post(f"/reports/{report_id}/appeal", headers=OWNER, json={"reason": "Again"})
    assert duplicate.status_code == 409
    assert duplicate.json()["code"] == "already_appealed"

    appeals = client.get("/appeals/pending", headers=REVIEWER).json()["appeals"]
    assert appeals[0]["target_id"] == violation_id

    decided = client.put(f"/appeals/violation/{violation_id}/review", headers=REVIEWER,
                         json={"decision": "overturned", "notes": "Wrong user"})
    assert decided.status_code == 200
    assert decided.json()["appeal"]["status"] == "overturned"

    standing = client.get("/accounts/owner-1/standing", headers=OWNER).json()["standing"]
    assert standing["status"] == "active"
    assert client.get("/accounts/owner-1/standing", headers=USER).status_code == 403


def test_unknown_review_action(client):
    report_id = _submit(client)["reportId"]
    response = client.put(f"/reports/{report_id}/review", headers=REVIEWER,
                          json={"action": "shadowban", "reason": "x"})
    assert response.status_code == 422


def test_dismiss(client):
    report_id = _submit(client)["reportId"]
    response = client.put(f"/reports/{report_id}/dismiss", headers=REVIEWER, json={"reason": "Fine"})
    assert response.json()["status"] == "dismissed"
    assert client.post(f"/reports/{report_id}/appeal", headers=OWNER,
                       json={"reason": "?"}).status_code == 409


def test_content_review_and_moderation(client, engine, content_store):
    content_store.put(ContentRef(content_type=ContentType.POST, content_id="post-1"),
                      text="stupid idiot moron loser")
    report = _submit(client)
    case_id = engine.intake.get_report(report["reportId"]).case_id

    cases = client.get("/content/review", headers=REVIEWER).json()["cases"]
    assert [c["id"] for c in cases] == [str(case_id)]

    assert client.put(f"/content/{case_id}/claim", headers=REVIEWER).json()["status"] == "under_review"
    removed = client.put(f"/content/{case_id}/moderate", headers=REVIEWER, json={"action": "remove"})
    assert removed.json()["case"]["visibility"] == "removed"

    again = client.put(f"/content/{case_id}/decide", headers=REVIEWER, json={"decision": "approved"})
    assert again.status_code == 409
    assert client.put(f"/content/{case_id}/moderate", headers=REVIEWER,
                      json={"action": "hide"}).status_code == 422


def test_queue(client):
    _submit(client)
    _submit(client, {**REPORT_BODY, "contentId": "post-2", "reportReason": "terrorism"})
    items = client.get("/queue", headers=REVIEWER).json()
    assert [item["priority"] for item in items] == ["critical", "medium"]


def test_publish_guidelines_requires_admin(client):
    current = client.get("/guidelines").json()["guidelines"]
    new_version = {**current, "version": "2.0.0", "is_active": False, "published_at": None}

    assert client.post("/guidelines", json=new_version, headers=REVIEWER).status_code == 403
    created = client.post("/guidelines", json=new_version, headers=ADMIN)
    assert created.status_code == 201
    assert created.json()["isActive"] is True
    assert client.get("/guidelines").json()["guidelines"]["version"] == "2.0.0"

    duplicate = client.post("/guidelines", json=new_version, headers=ADMIN)
    assert duplicate.status_code == 409
    assert duplicate.json()["code"] == "duplicate_version"


def test_hidden_report_looks_missing(client):
    report_id = _submit(client)["reportId"]
    stranger = {"X-Actor-Id": "someone"}

    hidden = client.get(f"/reports/{report_id}", headers=stranger)
    missing_id = uuid4()
    missing = client.get(f"/reports/{missing_id}", headers=stranger)

    assert hidden.status_code == missing.status_code == 404
    assert hidden.json()["code"] == missing.json()["code"]
    assert hidden.json()["message"] == f"Report {report_id} not found"
    assert missing.json()["message"] == f"Report {missing_id} not found"


def test_hidden_violation_looks_missing(client):
    report_id = _submit(client)["reportId"]
    client.put(f"/reports/{report_id}/claim", headers=REVIEWER)
    violation_id = client.put(f"/reports/{report_id}/review", headers=REVIEWER,
                              json={"action": "user_warned", "reason": "Insults"}).json()["violationId"]
    stranger = {"X-Actor-Id": "someone"}

    hidden = client.post(f"/violations/{violation_id}/appeal", headers=stranger, json={"reason": "?"})
    missing = client.post(f"/violations/{uuid4()}/appeal", headers=stranger, json={"reason": "?"})

    assert hidden.status_code == missing.status_code == 404
    assert hidden.json()["code"] == missing.json()["code"] == "not_found"
    assert client.post(f"/reports/{report_id}/appeal", headers=stranger,
                       json={"reason": "?"}).status_code == 404
