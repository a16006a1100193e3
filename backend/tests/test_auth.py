"""
Authentication and authorization tests.

Verifies:
- Customer registration validation and uniqueness
- Login/logout/me with bearer session tokens
- Unauthenticated requests return 401, wrong role returns 403
- Admin user management guards
"""

import pytest

from conftest import auth_headers, token_for
from eazzymart.extensions import db
from eazzymart.models import User
from eazzymart.models.auth import ROLE_CASHIER, ROLE_CUSTOMER
from eazzymart.services import auth_service, order_service, session_service


# =============================================================================
# REGISTRATION
# =============================================================================


class TestRegistration:

    def test_register_creates_customer(self, client, db_session):
        resp = client.post("/api/auth/register", json={
            "username": "juandelacruz",
            "password": "Password123",
            "email": "Juan@Example.com",
            "firstname": "Juan",
            "birth_date": "1995-04-12",
            "role": "admin",
            "is_verified": True,
        })
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["success"] is True
        user = body["user"]
        assert user["role"] == ROLE_CUSTOMER
        assert user["email"] == "juan@example.com"
        assert user["is_verified"] is False
        assert user["birth_date"] == "1995-04-12"
        assert "password_hash" not in user

    def test_password_is_hashed(self, db_session):
        user = auth_service.register_customer({"username": "hashcheck", "password": "Password123"})
        assert user.password_hash != "Password123"
        assert user.password_hash.startswith("$2")
        assert auth_service.verify_password("Password123", user.password_hash)
        assert not auth_service.verify_password("wrong-pass", user.password_hash)

    @pytest.mark.parametrize("payload,message", [
        ({"username": "short", "password": "Password123"}, "Username"),
        ({"username": "longenough", "password": "short"}, "Password must be at least 8"),
        ({"username": "longenough", "password": "Password123", "email": "not-an-email"}, "Invalid email"),
        ({"username": "longenough", "password": "Password123", "birth_date": "12/04/1995"}, "birth_date"),
    ])
    def test_register_validation(self, client, db_session, payload, message):
        resp = client.post("/api/auth/register", json=payload)
        assert resp.status_code == 400
        assert message in resp.get_json()["message"]

    def test_duplicate_username_and_email(self, client, customer):
        resp = client.post("/api/auth/register", json={"username": "customer1", "password": "Password123"})
        assert resp.status_code == 409
        assert resp.get_json()["message"] == "Username already exists"

        resp = client.post("/api/auth/register", json={
            "username": "someoneelse",
            "password": "Password123",
            "email": "CUSTOMER1@example.com",
        })
        assert resp.status_code == 409
        assert resp.get_json()["message"] == "Email already registered"


# =============================================================================
# SESSIONS
# =============================================================================


class TestSessions:

    def test_login_by_username_or_email(self, client, customer):
        for identifier in ("customer1", "customer1@example.com"):
            resp = client.post("/api/auth/login", json={"username": identifier, "password": "Password123"})
            assert resp.status_code == 200
            body = resp.get_json()
            assert body["token"]
            assert body["user"]["username"] == "customer1"
            assert body["user"]["last_login_at"] is not None

    def test_login_rejects_bad_password(self, client, customer):
        resp = client.post("/api/auth/login", json={"username": "customer1", "password": "nope-nope"})
        assert resp.status_code == 401
        assert resp.get_json() == {"success": False, "message": "Invalid credentials"}

    def test_login_requires_fields(self, client, db_session):
        resp = client.post("/api/auth/login", json={"username": "customer1"})
        assert resp.status_code == 400

    def test_inactive_user_cannot_login(self, client, customer):
        auth_service.update_user(customer.id, {"is_active": False})
        resp = client.post("/api/auth/login", json={"username": "customer1", "password": "Password123"})
        assert resp.status_code == 401

    def test_me_and_logout(self, client, customer):
        token = client.post(
            "/api/auth/login", json={"username": "customer1", "password": "Password123"}
        ).get_json()["token"]
        headers = auth_headers(token)

        resp = client.get("/api/auth/me", headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["user"]["id"] == customer.id

        assert client.post("/api/auth/logout", headers=headers).status_code == 200

        resp = client.get("/api/auth/me", headers=headers)
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Invalid or expired token"

    def test_missing_and_garbage_tokens(self, client, db_session):
        resp = client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Authentication required"

        resp = client.get("/api/auth/me", headers=auth_headers("not-a-real-token"))
        assert resp.status_code == 401

    def test_token_stored_hashed(self, customer):
        session, token = session_service.create_session(customer.id)
        assert session.token_hash == session_service.hash_token(token)
        assert session.token_hash != token

    def test_deactivation_revokes_sessions(self, client, customer):
        headers = auth_headers(token_for(customer))
        auth_service.update_user(customer.id, {"is_active": False})
        assert client.get("/api/auth/me", headers=headers).status_code == 401


# =============================================================================
# ROLE CHECKS
# =============================================================================


class TestRoleChecks:

    @pytest.mark.parametrize("method,path", [
        ("GET", "/api/users"),
        ("POST", "/api/users"),
        ("GET", "/api/orders"),
        ("GET", "/api/orders/mine"),
        ("PUT", "/api/orders/ORD-20260101-0001/accept"),
        ("POST", "/api/inventory/stock-entries"),
        ("GET", "/api/reports/sales"),
        ("GET", "/api/sales"),
        ("GET", "/api/return-refunds"),
    ])
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    @pytest.mark.parametrize("method,path", [
        ("GET", "/api/users"),
        ("GET", "/api/orders"),
        ("PUT", "/api/orders/ORD-20260101-0001/status"),
        ("POST", "/api/inventory/stock-entries"),
        ("GET", "/api/reports/sales"),
        ("POST", "/api/products"),
    ])
    def test_customer_denied_staff_routes(self, client, customer_headers, method, path):
        resp = getattr(client, method.lower())(path, json={}, headers=customer_headers)
        assert resp.status_code == 403
        assert resp.get_json()["message"] == "Permission denied"

    def test_cashier_denied_user_admin(self, client, cashier_headers):
        assert client.get("/api/users", headers=cashier_headers).status_code == 403
        resp = client.post("/api/products", json={"name": "X", "price": "1.00"}, headers=cashier_headers)
        assert resp.status_code == 403


# =============================================================================
# USER ADMINISTRATION
# =============================================================================


class TestUserAdmin:

    def test_admin_creates_staff(self, client, admin_headers):
        resp = client.post("/api/users", json={
            "username": "newcashier",
            "password": "Password123",
            "email": "newcashier@example.com",
            "role": ROLE_CASHIER,
        }, headers=admin_headers)
        assert resp.status_code == 201
        assert resp.get_json()["user"]["role"] == ROLE_CASHIER

    def test_admin_lists_users_by_role(self, client, admin_headers, customer, cashier):
        resp = client.get("/api/users?role=customer", headers=admin_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["count"] == 1
        assert body["users"][0]["username"] == "customer1"

    def test_admin_cannot_deactivate_or_delete_self(self, client, admin, admin_headers):
        resp = client.put(f"/api/users/{admin.id}", json={"is_active": False}, headers=admin_headers)
        assert resp.status_code == 400
        resp = client.delete(f"/api/users/{admin.id}", headers=admin_headers)
        assert resp.status_code == 400

    def test_update_rejects_taken_username(self, client, admin_headers, customer, other_customer):
        resp = client.put(
            f"/api/users/{other_customer.id}", json={"username": "customer1"}, headers=admin_headers
        )
        assert resp.status_code == 409

    def test_delete_user_without_orders(self, client, admin_headers, customer):
        token_for(customer)
        user_id = customer.id
        resp = client.delete(f"/api/users/{user_id}", headers=admin_headers)
        assert resp.status_code == 200
        assert db_get_user(user_id) is None

    def test_delete_user_with_orders_deactivates(self, client, admin_headers, customer, products):
        order_service.create_order(
            [{"product_id": products["rice"], "quantity": 1}],
            order_type="Pickup",
            payment_method="Cash On Delivery",
            user_id=customer.id,
        )
        resp = client.delete(f"/api/users/{customer.id}", headers=admin_headers)
        assert resp.status_code == 200
        user = db_get_user(customer.id)
        assert user is not None
        assert user.is_active is False

    def test_unknown_user(self, client, admin_headers):
        assert client.put("/api/users/9999", json={}, headers=admin_headers).status_code == 404


def db_get_user(user_id):
    return db.session.get(User, user_id, populate_existing=True)
