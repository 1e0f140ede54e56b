from __future__ import annotations

from unittest.mock import AsyncMock, patch

from app.core.errors import NETWORK, TransportError
from app.services.employee_service import employee_service


def test_list_employees_returns_summaries(client):
    response = client.get("/api/v1/employees")

    assert response.status_code == 200
    data = response.json()
    assert [e["id"] for e in data] == ["emp001", "emp002"]
    assert data[0]["passport"]["number"] == "A1234567"
    assert "transactions" not in data[0]


def test_list_employees_search_by_qid(client):
    response = client.get("/api/v1/employees", params={"q": "28912345678"})

    assert [e["id"] for e in response.json()] == ["emp002"]


def test_list_employees_paging(client):
    response = client.get("/api/v1/employees", params={"skip": 1, "limit": 1})

    assert [e["id"] for e in response.json()] == ["emp002"]


def test_list_employees_store_failure_is_502(client):
    failing = AsyncMock(side_effect=TransportError(NETWORK, "network unreachable"))
    with patch.object(employee_service.source, "list_records", failing):
        response = client.get("/api/v1/employees")

    assert response.status_code == 502


def test_record_salary_payment(client):
    response = client.post(
        "/api/v1/employees/emp002/payments",
        json={"type": "salary", "amount": 12000},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["amount"] == 12000
    assert data["type"] == "salary"
    assert data["processedBy"] == "Admin"


def test_record_advance_then_repay(client):
    created = client.post(
        "/api/v1/employees/emp002/payments",
        json={"type": "advance", "amount": 1000, "description": "Rent"},
    )
    assert created.status_code == 201
    advance = created.json()
    assert advance["status"] == "pending"
    assert advance["repaid"] is False

    response = client.post(f"/api/v1/employees/emp002/advances/{advance['id']}/repay")
    assert response.status_code == 204


def test_payment_for_unknown_employee_is_404(client):
    response = client.post("/api/v1/employees/nobody/payments", json={"type": "bonus", "amount": 10})
    assert response.status_code == 404


def test_payment_validation(client):
    assert client.post("/api/v1/employees/emp001/payments", json={"amount": 0}).status_code == 422
    assert (
        client.post("/api/v1/employees/emp001/payments", json={"type": "gift", "amount": 5}).status_code == 422
    )


def test_repay_unknown_advance_is_404(client):
    response = client.post("/api/v1/employees/emp001/advances/missing/repay")
    assert response.status_code == 404
