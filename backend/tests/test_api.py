"""
Tests for the HTTP layer: authentication, capabilities and error mapping.

The store dependency is replaced by the in-memory store; the application
lifespan (database check) is not started.
"""

import uuid
from decimal import Decimal

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from supply_ledger.core.database import get_store
from supply_ledger.core.permissions import (
    DELETE_INVOICE,
    DELETE_LPO,
    DELETE_PAYMENT,
    Actor,
    require,
)
from supply_ledger.core.exceptions import AuthorizationError
from supply_ledger.core.security import create_access_token, decode_token
from supply_ledger.main import app


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def _headers(actor: Actor) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(str(actor.id), actor.role)}"}


# ============================================================
# Tests for authentication
# ============================================================


class TestAuthentication:

    def test_health_is_public(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_missing_token(self, client):
        response = client.get("/api/v1/stock/movements")

        assert response.status_code == 401
        assert response.json()["detail"] == "Authentication token not provided"

    def test_garbage_token(self, client):
        response = client.get("/api/v1/stock/movements", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401

    def test_unknown_user(self, client, unprovisioned_admin):
        response = client.get("/api/v1/stock/movements", headers=_headers(unprovisioned_admin))

        assert response.status_code == 401
        assert response.json()["detail"] == "User not found"

    def test_token_roundtrip(self):
        token = decode_token(create_access_token("user-1", "accountant"))

        assert token.sub == "user-1"
        assert token.role == "accountant"
        assert token.type == "access"

    def test_expired_token(self):
        with pytest.raises(HTTPException) as exc_info:
            decode_token(create_access_token("user-1", "admin", expires_minutes=-1))

        assert exc_info.value.status_code == 401


# ============================================================
# Tests for capabilities
# ============================================================


class TestPermissions:

    def test_admin_holds_everything(self):
        assert Actor(role="admin").has("anything")
        assert Actor.system().has(DELETE_PAYMENT)

    def test_role_defaults(self):
        assert Actor(role="accountant").has(DELETE_INVOICE)
        assert not Actor(role="sales").has(DELETE_INVOICE)
        assert Actor(role="stock_controller").has(DELETE_LPO)
        assert not Actor(role="viewer").has(DELETE_LPO)

    def test_explicit_grant(self):
        assert Actor(role="viewer", permissions=frozenset({DELETE_INVOICE})).has(DELETE_INVOICE)

    def test_denial_message(self):
        with pytest.raises(AuthorizationError, match="You do not have permission to delete invoices"):
            require(Actor(role="sales"), DELETE_INVOICE)


# ============================================================
# Tests for endpoints
# ============================================================


class TestEndpoints:

    def test_create_invoice(self, client, store, admin, customer, product):
        body = {
            "customer_id": str(customer["id"]),
            "items": [{
                "product_id": str(product["id"]),
                "description": "Nitrile gloves",
                "quantity": "2",
                "unit_price": "100",
                "tax_percentage": "16",
            }],
        }

        response = client.post("/api/v1/invoices/", json=body, headers=_headers(admin))

        assert response.status_code == 201
        payload = response.json()
        assert payload["primary"]["invoice_number"].startswith("INV-")
        assert Decimal(str(payload["primary"]["total_amount"])) == Decimal("232.00")
        assert store.get("products", product["id"])["stock_quantity"] == Decimal("48")

    def test_viewer_cannot_delete_invoice(self, client, store, viewer, seed_invoice):
        invoice = seed_invoice()

        response = client.delete(f"/api/v1/invoices/{invoice['id']}", headers=_headers(viewer))

        assert response.status_code == 403
        assert response.json()["error_code"] == "FORBIDDEN"
        assert response.json()["detail"] == "You do not have permission to delete invoices"
        assert store.get("invoices", invoice["id"]) is not None

    def test_viewer_cannot_delete_payment(self, client, store, viewer):
        response = client.delete(f"/api/v1/payments/{uuid.uuid4()}", headers=_headers(viewer))

        assert response.status_code == 403
        assert store.count_calls(target="payments") == 0

    def test_invalid_payment_invoice_id(self, client, admin, customer):
        body = {
            "company_id": str(uuid.uuid4()),
            "customer_id": str(customer["id"]),
            "invoice_id": "INV-1",
            "amount": "500",
        }

        response = client.post("/api/v1/payments/", json=body, headers=_headers(admin))

        assert response.status_code == 422
        assert response.json()["error_code"] == "BUSINESS_VALIDATION_ERROR"
        assert response.json()["detail"] == "Invalid invoice ID"

    def test_record_payment_scoped_to_company(self, client, store, admin, customer, seed_invoice):
        invoice = seed_invoice()
        body = {
            "company_id": str(uuid.uuid4()),
            "customer_id": str(customer["id"]),
            "invoice_id": str(invoice["id"]),
            "amount": "160",
        }

        response = client.post("/api/v1/payments/", json=body, headers=_headers(admin))

        assert response.status_code == 201
        assert response.json()["primary"]["path"] == "atomic"
        row = store.get("invoices", invoice["id"])
        assert row["balance_due"] == Decimal("1000.00")
        assert row["status"] == "partial"
