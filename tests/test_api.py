"""
End-to-end tests for the REST API.
"""
import hashlib
from datetime import datetime, timezone

import pytest
from fastapi import status


def evidence_json(name="evidence.pdf"):
    return {
        "name": name,
        "file_name": name,
        "file_path": f"evidence/{name}",
        "file_size": 1024,
        "mime_type": "application/pdf",
        "checksum": hashlib.sha256(name.encode()).hexdigest(),
    }


@pytest.fixture
def headers(people):
    return {"X-Actor-Id": str(people["auditor"])}


@pytest.fixture
def owner_headers(people):
    return {"X-Actor-Id": str(people["owner"])}


@pytest.fixture
def reviewer_headers(people):
    return {"X-Actor-Id": str(people["reviewer"])}


@pytest.fixture
def audit_id(client, people, headers):
    response = client.post(
        "/api/v1/audits",
        json={
            "name": "FY24 IT General Controls",
            "type": "IT",
            "entity_id": people["entity"],
            "lead_auditor_id": people["auditor"],
            "period_start": "2023-01-01",
            "period_end": "2023-12-31",
        },
        headers=headers,
    )
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()["id"]


@pytest.fixture
def observation_id(client, audit_id, people, headers):
    response = client.post(
        "/api/v1/observations",
        json={
            "audit_id": audit_id,
            "title": "Shared admin accounts",
            "description": "Domain admin credentials are shared by the infrastructure team.",
            "risk_rating": "HIGH",
            "owner_id": people["owner"],
            "reviewer_id": people["reviewer"],
            "open_date": "2024-01-01",
        },
        headers=headers,
    )
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()["id"]


def test_create_audit_returns_number(client, audit_id):
    response = client.get(f"/api/v1/audits/{audit_id}")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["audit_number"] == "AUD-2024-0001"
    assert data["status"] == "PLANNED"


def test_create_observation_computes_deadline(client, observation_id):
    data = client.get(f"/api/v1/observations/{observation_id}").json()

    assert data["status"] == "OPEN"
    assert data["global_sequence"] == "OBS-2024-000001"
    assert data["sla_days"] == 30
    assert data["target_date"] == "2024-01-31"
    assert data["original_target_date"] == "2024-01-31"


def test_mutations_require_actor_header(client, audit_id):
    response = client.post(
        "/api/v1/observations",
        json={"audit_id": audit_id, "title": "No actor", "description": "x", "risk_rating": "LOW"},
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "X-Actor-Id" in response.json()["detail"]


def test_patch_cannot_set_status(client, observation_id, headers):
    response = client.patch(f"/api/v1/observations/{observation_id}", json={"status": "CLOSED"}, headers=headers)

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert client.get(f"/api/v1/observations/{observation_id}").json()["status"] == "OPEN"


def test_extension_without_reason_is_rejected(client, observation_id, headers):
    response = client.patch(
        f"/api/v1/observations/{observation_id}", json={"target_date": "2024-03-01"}, headers=headers
    )

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    body = response.json()
    assert body["error"] == "VALIDATION_FAILED"
    assert body["details"]["field"] == "extension_reason"
    assert "trace_id" in body


def test_extension_with_reason(client, observation_id, headers):
    response = client.patch(
        f"/api/v1/observations/{observation_id}",
        json={"target_date": "2024-03-01", "extension_reason": "Awaiting vendor fix"},
        headers=headers,
    )

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["target_date"] == "2024-03-01"
    assert data["extension_count"] == 1
    assert data["original_target_date"] == "2024-01-31"


def test_invalid_transition_is_409(client, observation_id, headers):
    response = client.post(
        f"/api/v1/observations/{observation_id}/transition", json={"status": "UNDER_REVIEW"}, headers=headers
    )

    assert response.status_code == status.HTTP_409_CONFLICT
    body = response.json()
    assert body["error"] == "INVALID_TRANSITION"
    assert body["details"]["from_status"] == "OPEN"
    assert body["details"]["to_status"] == "UNDER_REVIEW"


def test_unknown_observation_is_404(client, headers):
    response = client.get("/api/v1/observations/99999")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["error"] == "NOT_FOUND"


def test_evidence_gate_precondition_is_reported(client, observation_id, owner_headers):
    client.post(
        f"/api/v1/observations/{observation_id}/transition", json={"status": "IN_PROGRESS"}, headers=owner_headers
    )

    response = client.post(f"/api/v1/observations/{observation_id}/submit", headers=owner_headers)

    assert response.status_code == status.HTTP_409_CONFLICT
    body = response.json()
    assert body["error"] == "INVALID_STATE"
    assert body["details"]["precondition"] == "no evidence uploaded"


def test_full_evidence_review_flow(client, observation_id, headers, owner_headers, reviewer_headers):
    upload = client.post(
        f"/api/v1/observations/{observation_id}/evidence", json=evidence_json(), headers=owner_headers
    )
    assert upload.status_code == status.HTTP_201_CREATED
    evidence_id = upload.json()["id"]
    assert client.get(f"/api/v1/observations/{observation_id}").json()["status"] == "IN_PROGRESS"

    duplicate = client.post(
        f"/api/v1/observations/{observation_id}/evidence", json=evidence_json(), headers=owner_headers
    )
    assert duplicate.status_code == status.HTTP_409_CONFLICT

    submitted = client.post(f"/api/v1/observations/{observation_id}/submit", headers=owner_headers)
    assert submitted.json()["status"] == "EVIDENCE_SUBMITTED"

    locked = client.patch(
        f"/api/v1/observations/{observation_id}", json={"management_response": "Done"}, headers=owner_headers
    )
    assert locked.status_code == status.HTTP_403_FORBIDDEN

    started = client.post(f"/api/v1/observations/{observation_id}/begin-review", headers=reviewer_headers)
    assert started.json()["status"] == "UNDER_REVIEW"

    reviewed = client.post(
        f"/api/v1/evidence/{evidence_id}/review", json={"decision": "APPROVED"}, headers=reviewer_headers
    )
    assert reviewed.json()["status"] == "APPROVED"

    closed = client.post(f"/api/v1/observations/{observation_id}/approve-and-close", headers=reviewer_headers)
    assert closed.status_code == status.HTTP_200_OK
    assert closed.json()["status"] == "CLOSED"
    assert closed.json()["closed_at"] is not None

    history = client.get(f"/api/v1/observations/{observation_id}/history").json()
    assert [entry["to_status"] for entry in history] == [
        "OPEN", "IN_PROGRESS", "EVIDENCE_SUBMITTED", "UNDER_REVIEW", "CLOSED",
    ]

    frozen = client.patch(f"/api/v1/observations/{observation_id}", json={"title": "Edit"}, headers=headers)
    assert frozen.status_code == status.HTTP_403_FORBIDDEN
    assert frozen.json()["error"] == "FORBIDDEN"


def test_rejection_and_supersede_flow(client, observation_id, owner_headers, reviewer_headers):
    first = client.post(
        f"/api/v1/observations/{observation_id}/evidence", json=evidence_json("v1.pdf"), headers=owner_headers
    ).json()
    client.post(f"/api/v1/observations/{observation_id}/submit", headers=owner_headers)
    client.post(f"/api/v1/observations/{observation_id}/begin-review", headers=reviewer_headers)

    missing_reason = client.post(
        f"/api/v1/evidence/{first['id']}/review", json={"decision": "REJECTED"}, headers=reviewer_headers
    )
    assert missing_reason.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    client.post(
        f"/api/v1/evidence/{first['id']}/review",
        json={"decision": "REJECTED", "rejection_reason": "Screenshot is illegible"},
        headers=reviewer_headers,
    )
    assert client.get(f"/api/v1/observations/{observation_id}").json()["status"] == "REJECTED"

    replacement = client.post(
        f"/api/v1/evidence/{first['id']}/supersede", json=evidence_json("v2.pdf"), headers=owner_headers
    )
    assert replacement.status_code == status.HTTP_201_CREATED
    assert replacement.json()["version"] == 2
    assert replacement.json()["supersedes_id"] == first["id"]

    listing = client.get(f"/api/v1/observations/{observation_id}/evidence").json()
    assert [item["id"] for item in listing["items"]] == [replacement.json()["id"]]
    everything = client.get(
        f"/api/v1/observations/{observation_id}/evidence", params={"include_superseded": True}
    ).json()
    assert everything["total"] == 2

    stats = client.get(f"/api/v1/observations/{observation_id}/evidence/stats").json()
    assert stats["total"] == 1
    assert stats["pending_review"] == 1
    assert stats["superseded"] == 1


def test_assignment_endpoints(client, observation_id, people, headers):
    response = client.post(
        f"/api/v1/observations/{observation_id}/assign-owner", json={"user_id": people["reviewer"]}, headers=headers
    )
    assert response.json()["owner_id"] == people["reviewer"]

    missing = client.post(
        f"/api/v1/observations/{observation_id}/assign-reviewer", json={"user_id": 31337}, headers=headers
    )
    assert missing.status_code == status.HTTP_404_NOT_FOUND


def test_list_and_filter_observations(client, observation_id, audit_id, headers):
    response = client.get("/api/v1/observations", params={"audit_id": audit_id, "status": "OPEN"})

    data = response.json()
    assert data["total"] == 1
    assert data["items"][0]["id"] == observation_id

    assert client.get("/api/v1/observations", params={"status": "CLOSED"}).json()["total"] == 0


def test_audit_lifecycle_and_delete_guard(client, audit_id, observation_id, headers):
    started = client.post(f"/api/v1/audits/{audit_id}/transition", json={"status": "IN_PROGRESS"}, headers=headers)
    assert started.json()["status"] == "IN_PROGRESS"
    assert started.json()["actual_start_date"] is not None

    bad = client.post(f"/api/v1/audits/{audit_id}/transition", json={"status": "CLOSED"}, headers=headers)
    assert bad.status_code == status.HTTP_409_CONFLICT

    blocked = client.delete(f"/api/v1/audits/{audit_id}", headers=headers)
    assert blocked.status_code == status.HTTP_409_CONFLICT
    assert blocked.json()["error"] == "CONFLICT"

    assert client.delete(f"/api/v1/observations/{observation_id}", headers=headers).status_code == 204
    assert client.delete(f"/api/v1/audits/{audit_id}", headers=headers).status_code == 204
    assert client.get(f"/api/v1/audits/{audit_id}").status_code == status.HTTP_404_NOT_FOUND


def test_audit_stats_endpoint(client, audit_id, observation_id):
    data = client.get(f"/api/v1/audits/{audit_id}/stats").json()

    assert data["total"] == 1
    assert data["by_status"]["OPEN"] == 1
    assert data["by_risk_rating"]["HIGH"] == 1
    assert data["overdue"] == 0


def test_sla_rule_crud_and_resolve(client, headers):
    created = client.post(
        "/api/v1/sla-rules",
        json={"name": "Critical IT", "risk_rating": "CRITICAL", "audit_type": "IT", "base_days": 7, "priority": 5},
        headers=headers,
    )
    assert created.status_code == status.HTTP_201_CREATED
    rule_id = created.json()["id"]

    resolved = client.get(
        "/api/v1/sla-rules/resolve",
        params={"risk_rating": "CRITICAL", "audit_type": "IT", "open_date": "2024-01-01"},
    ).json()
    assert resolved["sla_days"] == 7
    assert resolved["rule_id"] == rule_id
    assert resolved["target_date"] == "2024-01-08"

    fallback = client.get("/api/v1/sla-rules/resolve", params={"risk_rating": "CRITICAL"}).json()
    assert fallback["sla_days"] == 14
    assert fallback["rule_id"] is None

    updated = client.patch(f"/api/v1/sla-rules/{rule_id}", json={"base_days": 5}, headers=headers)
    assert updated.json()["base_days"] == 5

    invalid = client.patch(f"/api/v1/sla-rules/{rule_id}", json={"warning_days": 0}, headers=headers)
    assert invalid.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    deactivated = client.delete(f"/api/v1/sla-rules/{rule_id}", headers=headers)
    assert deactivated.json()["is_active"] is False
    assert client.get("/api/v1/sla-rules", params={"active_only": True}).json()["total"] == 0


def test_sweep_job_endpoint(client, observation_id, clock, sink, people):
    clock.set(datetime(2024, 2, 2, 1, 0, tzinfo=timezone.utc))

    first = client.post("/api/v1/jobs/sweep-overdue")
    second = client.post("/api/v1/jobs/sweep-overdue")

    assert first.status_code == status.HTTP_200_OK
    assert first.json()["job"] == "sweep-overdue"
    assert first.json()["processed"] == 1
    assert second.json()["processed"] == 0

    observation = client.get(f"/api/v1/observations/{observation_id}").json()
    assert observation["status"] == "OVERDUE"
    assert observation["status_changed_by_id"] is None
    assert "OVERDUE_ALERT" in sink.to(people["owner"])

    history = client.get(f"/api/v1/observations/{observation_id}/history").json()
    assert history[-1]["changed_by_source"] == "system"

    overdue = client.get("/api/v1/observations/overdue").json()
    assert [item["id"] for item in overdue] == [observation_id]


def test_reminder_job_endpoints(client, observation_id, clock):
    clock.set(datetime(2024, 1, 24, 8, 0, tzinfo=timezone.utc))
    assert client.post("/api/v1/jobs/due-date-reminders").json()["processed"] == 1

    clock.set(datetime(2024, 2, 5, 8, 0, tzinfo=timezone.utc))
    assert client.post("/api/v1/jobs/overdue-alerts").json()["processed"] == 1


def test_api_key_required_when_configured(client_with_auth):
    response = client_with_auth.get("/api/v1/observations")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED

    wrong = client_with_auth.get("/api/v1/observations", headers={"X-API-Key": "nope"})
    assert wrong.status_code == status.HTTP_401_UNAUTHORIZED

    ok = client_with_auth.get("/api/v1/observations", headers={"X-API-Key": "test-key"})
    assert ok.status_code == status.HTTP_200_OK


def test_health_is_public_when_api_key_configured(client_with_auth):
    assert client_with_auth.get("/api/v1/health").status_code == status.HTTP_200_OK
