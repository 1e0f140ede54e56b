from __future__ import annotations

from app.services.employee_service import employee_service


def _new_session(client) -> str:
    response = client.post("/api/v1/sessions")
    assert response.status_code == 201
    return response.json()["session_id"]


def test_create_session_starts_idle(client):
    session_id = _new_session(client)

    response = client.get(f"/api/v1/sessions/{session_id}")
    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "idle"
    assert data["record"] is None


def test_unknown_session_is_404(client):
    response = client.get("/api/v1/sessions/sess_missing")
    assert response.status_code == 404


def test_open_detail_aggregates_record(client):
    session_id = _new_session(client)

    response = client.post(
        f"/api/v1/sessions/{session_id}/open",
        json={"employee_id": "emp001", "seed": {"id": "emp001", "name": "Ahmed Al-Mansouri"}},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "ready"
    assert data["record_id"] == "emp001"
    assert data["seed"]["name"] == "Ahmed Al-Mansouri"
    record = data["record"]
    assert record["bankDetails"]["bankName"] == "Qatar National Bank"
    assert "advances" not in record
    slots = record["subcollections"]
    assert slots["advances"]["status"] == "loaded"
    assert [item["date"] for item in slots["transactions"]["items"]] == [
        "2025-08-31",
        "2025-07-31",
        "2025-04-15",
    ]


def test_open_missing_employee_fails_with_message(client):
    session_id = _new_session(client)

    response = client.post(f"/api/v1/sessions/{session_id}/open", json={"employee_id": "nobody"})

    data = response.json()
    assert data["state"] == "failed"
    assert data["error"]["kind"] == "not_found"
    assert data["error"]["message"] == "Employee record not found."


def test_retry_from_ready_is_conflict(client):
    session_id = _new_session(client)
    client.post(f"/api/v1/sessions/{session_id}/open", json={"employee_id": "emp002"})

    response = client.post(f"/api/v1/sessions/{session_id}/retry")
    assert response.status_code == 409


def test_retry_after_failure_counts_attempts(client):
    session_id = _new_session(client)
    client.post(f"/api/v1/sessions/{session_id}/open", json={"employee_id": "nobody"})

    response = client.post(f"/api/v1/sessions/{session_id}/retry")

    data = response.json()
    assert data["state"] == "failed"
    assert data["retry_count"] == 1


def test_save_edits_updates_record(client):
    session_id = _new_session(client)
    client.post(f"/api/v1/sessions/{session_id}/open", json={"employee_id": "emp002"})

    response = client.patch(
        f"/api/v1/sessions/{session_id}/record",
        json={"fields": {"position": "Head of HR", "qid": {"expiry": "2027-03-20"}}},
    )

    assert response.status_code == 200
    record = response.json()["record"]
    assert record["position"] == "Head of HR"
    assert record["qid"]["expiry"] == "2027-03-20"
    assert record["qid"]["number"] == "28912345678"

    # A fresh load sees the stored change
    reopened = client.post(f"/api/v1/sessions/{session_id}/open", json={"employee_id": "emp002"})
    assert reopened.json()["record"]["position"] == "Head of HR"


def test_save_subcollection_edit_is_rejected(client):
    session_id = _new_session(client)
    client.post(f"/api/v1/sessions/{session_id}/open", json={"employee_id": "emp001"})

    response = client.patch(f"/api/v1/sessions/{session_id}/record", json={"fields": {"transactions": []}})

    assert response.status_code == 422
    assert "Sub-collections" in response.json()["detail"]


def test_save_before_open_is_conflict(client):
    session_id = _new_session(client)

    response = client.patch(f"/api/v1/sessions/{session_id}/record", json={"fields": {"name": "x"}})
    assert response.status_code == 409


def test_empty_edit_set_is_rejected(client):
    session_id = _new_session(client)

    response = client.patch(f"/api/v1/sessions/{session_id}/record", json={"fields": {}})
    assert response.status_code == 422


def test_close_detail_returns_idle(client):
    session_id = _new_session(client)
    client.post(f"/api/v1/sessions/{session_id}/open", json={"employee_id": "emp001"})

    response = client.post(f"/api/v1/sessions/{session_id}/close")

    assert response.json()["state"] == "idle"
    assert response.json()["record"] is None


def test_delete_session(client):
    session_id = _new_session(client)

    assert client.delete(f"/api/v1/sessions/{session_id}").status_code == 204
    assert client.get(f"/api/v1/sessions/{session_id}").status_code == 404
    assert client.delete(f"/api/v1/sessions/{session_id}").status_code == 404
    assert employee_service.sessions.get(session_id) is None
