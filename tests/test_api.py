from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from payreq.core.permissions import ALL_PERMISSIONS, LegacyRole
from payreq.models import Notification


def _payment_request_body(unit_price="1000000", **extra):
    body = {
        "client": {"name": "Client Ltd", "email": "billing@client.example"},
        "items": [{"description": "Consulting", "quantity": "1", "unit_price": unit_price}],
        "due_date": (date.today() + timedelta(days=30)).isoformat(),
    }
    body.update(extra)
    return body


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_requests_without_token_are_unauthorized(client):
    response = client.get("/api/v1/payment-requests")
    assert response.status_code == 401

    response = client.get("/api/v1/payment-requests", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


def test_inactive_user_is_forbidden(client, make_user, auth_headers):
    disabled = make_user(role_names=["ADMINISTRATOR"], is_active=False)
    response = client.get("/api/v1/payment-requests", headers=auth_headers(disabled))
    assert response.status_code == 403


def test_token_cookie_is_accepted(client, admin, auth_headers):
    token = auth_headers(admin)["Authorization"].split(" ", 1)[1]
    client.cookies.set("access_token", token)
    response = client.get("/api/v1/payment-requests")
    assert response.status_code == 200


def test_payment_request_lifecycle(client, db, admin, manager, auth_headers):
    headers = auth_headers(admin)

    response = client.post("/api/v1/payment-requests", json=_payment_request_body(), headers=headers)
    assert response.status_code == 201
    created = response.json()
    assert created["status"] == "draft"
    assert created["request_number"].startswith(f"PR-{date.today():%y-%m}-")
    assert Decimal(created["total_amount"]) == Decimal("1000000")
    assert created["client"]["name"] == "Client Ltd"

    request_id = created["id"]
    response = client.patch(
        f"/api/v1/payment-requests/{request_id}/status",
        json={"status": "pending", "version_id": created["version_id"]},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "pending"

    response = client.post(
        f"/api/v1/payment-requests/{request_id}/payments",
        json={"payment_method": "bank_transfer", "paid_amount": "400000", "transaction_id": "TX-9"},
        headers=headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "partially_paid"
    assert Decimal(body["payment_details"]["remaining_amount"]) == Decimal("600000")
    assert body["payment_details"]["transaction_id"] == "TX-9"

    response = client.get(f"/api/v1/payment-requests/{request_id}/payments", headers=headers)
    assert [Decimal(p["amount"]) for p in response.json()] == [Decimal("400000")]

    listing = client.get("/api/v1/payment-requests", params={"status": "partially_paid"}, headers=headers).json()
    assert listing["total"] == 1
    assert listing["pages"] == 1

    inbox = client.get("/api/v1/notifications", headers=auth_headers(manager)).json()
    assert inbox["unread_count"] == 3
    assert inbox["items"][0]["related_to"] == {"kind": "PaymentRequest", "id": request_id}


def test_domain_errors_are_rendered_with_kind(client, admin, auth_headers):
    headers = auth_headers(admin)
    request_id = client.post("/api/v1/payment-requests", json=_payment_request_body(), headers=headers).json()["id"]

    response = client.patch(
        f"/api/v1/payment-requests/{request_id}/status", json={"status": "paid"}, headers=headers
    )
    assert response.status_code == 400
    assert response.json() == {
        "detail": "Invalid status transition from draft to paid",
        "error": "invalid_status_transition",
        "from_status": "draft",
        "to_status": "paid",
    }

    response = client.get("/api/v1/payment-requests/9999", headers=headers)
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"

    response = client.patch(
        f"/api/v1/payment-requests/{request_id}/status", json={"status": "pending", "version_id": 99},
        headers=headers,
    )
    assert response.status_code == 409
    assert response.json()["error"] == "concurrent_modification"


def test_payload_validation(client, admin, auth_headers):
    headers = auth_headers(admin)

    response = client.post("/api/v1/payment-requests", json=_payment_request_body(items=[]), headers=headers)
    assert response.status_code == 422

    response = client.post(
        "/api/v1/payment-requests", json=_payment_request_body(currency="dollars"), headers=headers
    )
    assert response.status_code == 422

    response = client.get("/api/v1/payment-requests", params={"sort_order": "sideways"}, headers=headers)
    assert response.status_code == 422


def test_employee_cannot_approve(client, employee, auth_headers):
    headers = auth_headers(employee)
    created = client.post(
        "/api/v1/payment-requests", json=_payment_request_body(submit=True), headers=headers
    ).json()

    response = client.patch(
        f"/api/v1/payment-requests/{created['id']}/status", json={"status": "approved"}, headers=headers
    )
    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"


def test_expense_request_flow(client, employee, manager, auth_headers):
    headers = auth_headers(employee)

    response = client.post("/api/v1/expense-requests", json={
        "title": "Conference ticket",
        "expense_date": "2025-05-02",
        "amount": "100",
        "currency": "usd",
        "exchange_rate": "24000",
        "category": "training",
    }, headers=headers)
    assert response.status_code == 201
    created = response.json()
    assert created["request_number"] == "EXP-00001"
    assert created["currency"] == "USD"
    assert Decimal(created["amount_in_vnd"]) == Decimal("2400000")

    response = client.patch(
        f"/api/v1/expense-requests/{created['id']}/status", json={"status": "submitted"}, headers=headers
    )
    assert response.json()["status"] == "submitted"

    response = client.patch(
        f"/api/v1/expense-requests/{created['id']}/status", json={"status": "approved"},
        headers=auth_headers(manager),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "approved"

    categories = client.get("/api/v1/expense-requests/categories", headers=headers).json()
    assert {"value": "training", "label": "Training"} in categories


def test_role_endpoints(client, admin, employee, auth_headers):
    headers = auth_headers(admin)

    roles = client.get("/api/v1/roles", headers=headers).json()
    assert [role["role_name"] for role in roles[:4]] == ["ACCOUNTANT", "ADMINISTRATOR", "EMPLOYEE", "MANAGER"]

    response = client.post("/api/v1/roles", json={
        "role_name": "Auditor", "description": "Read only", "permissions": ["report:read"]
    }, headers=headers)
    assert response.status_code == 201
    auditor = response.json()
    assert auditor["permissions"] == ["report:read"]
    assert auditor["is_system_role"] is False

    response = client.post("/api/v1/roles", json={"role_name": "Auditor"}, headers=headers)
    assert response.status_code == 409
    assert response.json()["error"] == "duplicate_role_name"

    response = client.post(f"/api/v1/roles/assign/{employee.id}", json={"role_ids": [auditor["id"]]}, headers=headers)
    assert response.status_code == 200
    assert [role["role_name"] for role in response.json()["roles"]] == ["Auditor"]

    response = client.delete(f"/api/v1/roles/{auditor['id']}", headers=headers)
    assert response.status_code == 409
    assert response.json() == {
        "detail": "Cannot delete role: 1 user(s) are assigned to this role",
        "error": "role_in_use",
        "user_count": 1,
    }

    groups = client.get("/api/v1/roles/permissions/all", headers=headers).json()
    assert any(group["category"] == "Payment request" for group in groups)


def test_permission_catalogue_requires_role_read(client, employee, auth_headers):
    response = client.get("/api/v1/roles/permissions/all", headers=auth_headers(employee))
    assert response.status_code == 403


def test_notification_endpoints(client, db, admin, manager, auth_headers):
    client.post("/api/v1/payment-requests", json=_payment_request_body(), headers=auth_headers(admin))
    client.post("/api/v1/payment-requests", json=_payment_request_body(), headers=auth_headers(admin))
    headers = auth_headers(manager)

    assert client.get("/api/v1/notifications/unread-count", headers=headers).json() == {"unread_count": 2}

    first = client.get("/api/v1/notifications", headers=headers).json()["items"][0]
    response = client.patch(f"/api/v1/notifications/{first['id']}/read", headers=headers)
    assert response.json()["is_read"] is True

    assert client.patch("/api/v1/notifications/read-all", headers=headers).json() == {"updated": 1}

    response = client.delete(f"/api/v1/notifications/{first['id']}", headers=headers)
    assert response.status_code == 200
    db.expire_all()
    assert db.query(Notification).filter(Notification.user_id == manager.id).count() == 1

    other = db.query(Notification).filter(Notification.user_id == manager.id).one()
    response = client.patch(f"/api/v1/notifications/{other.id}/read", headers=auth_headers(admin))
    assert response.status_code == 404


def test_my_permissions(client, employee, make_user, auth_headers):
    response = client.get("/api/v1/roles/me/permissions", headers=auth_headers(employee))
    assert response.status_code == 200
    body = response.json()
    assert body["user_id"] == employee.id
    assert "payment_request:create" in body["permissions"]
    assert "role:delete" not in body["permissions"]
    assert body["permissions"] == sorted(body["permissions"])

    legacy_admin = make_user(legacy_role=LegacyRole.ADMIN)
    body = client.get("/api/v1/roles/me/permissions", headers=auth_headers(legacy_admin)).json()
    assert body["role_ids"] == []
    assert body["legacy_role"] == "admin"
    assert set(body["permissions"]) == set(ALL_PERMISSIONS)
