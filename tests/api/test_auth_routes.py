"""Tests for registration, login and token resolution."""

import re
from datetime import timedelta

import pytest

from gigboard.api.auth import AUTH_COOKIE_NAME, create_access_token
from gigboard.api.config import get_settings


def _code(services) -> str:
    return re.search(r"\b(\d{6})\b", services.notifier.emails[-1][2]).group(1)


@pytest.fixture
def registration():
    return {
        "role": "worker",
        "name": "Ravi",
        "email": "Ravi@Example.com",
        "phone": "9876543210",
        "password": "s3cret-pass",
        "address": {"city": "Bengaluru", "location": {"lat": 12.97, "lon": 77.59}},
        "skills": ["Plumber"],
        "experience": 4,
    }


class TestRegistration:
    def test_register_verify_login(self, client, services, registration):
        response = client.post("/api/auth/register", json=registration)
        assert response.status_code == 201
        user = response.json()["user"]
        assert user["email"] == "ravi@example.com"
        assert user["role"] == "worker"

        # Temporary accounts cannot log in yet
        blocked = client.post(
            "/api/auth/login", json={"email_or_phone": "ravi@example.com", "password": "s3cret-pass"}
        )
        assert blocked.status_code == 401
        assert blocked.json()["code"] == "REGISTRATION_INCOMPLETE"

        verified = client.post(
            "/api/auth/verify-otp", json={"email": "ravi@example.com", "otp": _code(services)}
        )
        assert verified.status_code == 200
        body = verified.json()
        assert body["token"]
        assert body["user"]["skills"] == ["plumber"]
        assert "password_hash" not in body["user"]
        assert AUTH_COOKIE_NAME in verified.cookies

        login = client.post(
            "/api/auth/login", json={"email_or_phone": "9876543210", "password": "s3cret-pass"}
        )
        assert login.status_code == 200
        assert login.json()["user"]["id"] == user["id"]

    def test_invalid_role(self, client, registration):
        registration["role"] = "admin"
        response = client.post("/api/auth/register", json=registration)
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid role. Must be client or worker."

    def test_duplicate_account(self, client, make_worker, registration):
        registration["email"] = make_worker().email
        response = client.post("/api/auth/register", json=registration)
        assert response.status_code == 409
        assert response.json()["code"] == "ACCOUNT_EXISTS"
        assert response.json()["field"] == "email"

    def test_wrong_code(self, client, services, registration):
        client.post("/api/auth/register", json=registration)
        wrong = "111111" if _code(services) != "111111" else "222222"

        response = client.post("/api/auth/verify-otp", json={"email": "ravi@example.com", "otp": wrong})
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "INCORRECT_OTP"
        assert body["remaining_attempts"] == 2

    def test_negative_experience_rejected(self, client, registration):
        registration["experience"] = -1
        assert client.post("/api/auth/register", json=registration).status_code == 422


class TestLogin:
    def test_unknown_account(self, client):
        response = client.post(
            "/api/auth/login", json={"email_or_phone": "ghost@example.com", "password": "whatever1"}
        )
        assert response.status_code == 404
        assert response.json()["code"] == "USER_NOT_FOUND"

    def test_wrong_password(self, client, make_client):
        response = client.post(
            "/api/auth/login", json={"email_or_phone": make_client().email, "password": "whatever1"}
        )
        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_CREDENTIALS"

    def test_cookie_session(self, client, make_client, password):
        user = make_client()
        client.post("/api/auth/login", json={"email_or_phone": user.email, "password": password})

        me = client.get("/api/auth/verify")
        assert me.status_code == 200
        assert me.json()["user"] == {
            "id": user.id,
            "role": "client",
            "name": user.name,
            "email": user.email,
        }

        client.post("/api/auth/logout")
        assert client.get("/api/auth/verify").status_code == 401


class TestTokens:
    def test_expired_token(self, client, make_client):
        token = create_access_token(
            make_client().id, "client", get_settings(), expires_delta=timedelta(seconds=-1)
        )
        response = client.get("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid or expired token"

    def test_unknown_role_in_token(self, client):
        token = create_access_token("someone", "superuser", get_settings())
        response = client.get("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_deleted_user(self, client, auth_headers, make_worker, services):
        worker = make_worker()
        services.identity.delete_user("worker", worker.id)
        assert client.get("/api/auth/verify", headers=auth_headers(worker)).status_code == 401
