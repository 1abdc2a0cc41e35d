"""
HTTP tests for /api/auth and the shared response envelope.
"""

import pytest

from conftest import PASSWORD, get_tokens, auth_headers


REGISTER_BODY = {
    "email": "shopper@example.com",
    "password": PASSWORD,
    "profile": {"name": "Shopper", "phone": "+919833333333"},
}


class TestRegisterRoute:
    def test_register_returns_201_with_user_and_tokens(self, client):
        resp = client.post("/api/auth/register", json=REGISTER_BODY)

        assert resp.status_code == 201
        body = resp.json
        assert body["success"] is True
        assert body["message"] == "User registered successfully"
        assert body["data"]["user"]["email"] == "shopper@example.com"
        assert "password_hash" not in body["data"]["user"]
        assert body["data"]["tokens"]["token_type"] == "Bearer"

    def test_duplicate_email_is_409(self, client):
        client.post("/api/auth/register", json=REGISTER_BODY)
        resp = client.post("/api/auth/register", json={
            **REGISTER_BODY,
            "profile": {"name": "Shopper", "phone": "+919844444444"},
        })
        assert resp.status_code == 409
        assert resp.json == {"success": False, "message": "User with this email already exists"}

    def test_weak_password_is_400(self, client):
        resp = client.post("/api/auth/register", json={**REGISTER_BODY, "password": "password"})
        assert resp.status_code == 400
        assert resp.json["success"] is False

    def test_admin_cannot_self_register(self, client):
        resp = client.post("/api/auth/register", json={**REGISTER_BODY, "role": "ADMIN"})
        assert resp.status_code == 400


class TestLoginRoute:
    def test_login_success(self, client, customer):
        resp = client.post("/api/auth/login", json={"email": customer.email, "password": PASSWORD})
        assert resp.status_code == 200
        assert resp.json["message"] == "Login successful"
        assert resp.json["data"]["user"]["id"] == customer.id

    def test_missing_fields_is_400(self, client):
        resp = client.post("/api/auth/login", json={"email": "x@example.com"})
        assert resp.status_code == 400

    @pytest.mark.parametrize(
        "body",
        [
            {"email": "customer@example.com", "password": 12345678},
            {"email": ["customer@example.com"], "password": PASSWORD},
            ["customer@example.com", PASSWORD],
        ],
    )
    def test_malformed_credentials_are_400(self, client, customer, body):
        resp = client.post("/api/auth/login", json=body)
        assert resp.status_code == 400
        assert resp.json["success"] is False

    @pytest.mark.parametrize(
        "email,password",
        [("customer@example.com", "Wrong-password1!"), ("ghost@example.com", PASSWORD)],
    )
    def test_bad_credentials_are_401_and_identical(self, client, customer, email, password):
        resp = client.post("/api/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 401
        assert resp.json["message"] == "Invalid email or password"

    def test_deactivated_account_is_403(self, client, customer, auth_service):
        auth_service.deactivate(customer.id)
        resp = client.post("/api/auth/login", json={"email": customer.email, "password": PASSWORD})
        assert resp.status_code == 403


class TestTokenRoutes:
    def test_me_requires_token(self, client):
        resp = client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.json["message"] == "Access token required"

    def test_me_with_token(self, client, customer_headers, customer):
        resp = client.get("/api/auth/me", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["user"]["email"] == customer.email

    def test_refresh_rotates_and_rejects_reuse(self, client, customer):
        tokens = get_tokens(client, customer.email)

        first = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert first.status_code == 200
        new_tokens = first.json["data"]["tokens"]
        assert new_tokens["refresh_token"] != tokens["refresh_token"]

        replay = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert replay.status_code == 401

    def test_replayed_refresh_token_ends_the_rotated_session_too(self, client, customer):
        tokens = get_tokens(client, customer.email)
        rotated = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        current = rotated.json["data"]["tokens"]["refresh_token"]

        replay = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert replay.status_code == 401

        after = client.post("/api/auth/refresh", json={"refresh_token": current})
        assert after.status_code == 401

        # a fresh login starts a new chain
        get_tokens(client, customer.email)

    def test_refresh_requires_token(self, client):
        resp = client.post("/api/auth/refresh", json={})
        assert resp.status_code == 400

    @pytest.mark.parametrize("body", [["refresh_token"], {"refresh_token": 123}])
    def test_refresh_rejects_malformed_body(self, client, body):
        resp = client.post("/api/auth/refresh", json=body)
        assert resp.status_code == 400

    def test_refresh_with_garbage_is_401(self, client):
        resp = client.post("/api/auth/refresh", json={"refresh_token": "garbage"})
        assert resp.status_code == 401

    def test_logout_blacklists_access_token(self, client, customer):
        tokens = get_tokens(client, customer.email)
        headers = auth_headers(tokens["access_token"])

        resp = client.post("/api/auth/logout", headers=headers)
        assert resp.status_code == 200

        assert client.get("/api/auth/me", headers=headers).status_code == 401
        refresh = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert refresh.status_code == 401

    def test_logout_all_keeps_access_token_until_expiry(self, client, customer):
        tokens = get_tokens(client, customer.email)
        headers = auth_headers(tokens["access_token"])

        resp = client.post("/api/auth/logout-all", headers=headers)
        assert resp.status_code == 200
        assert resp.json["message"] == "Logged out from all devices"

        assert client.get("/api/auth/me", headers=headers).status_code == 200
        refresh = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert refresh.status_code == 401


class TestEnvelope:
    def test_unknown_api_path(self, client):
        resp = client.get("/api/does-not-exist")
        assert resp.status_code == 404
        assert resp.json == {"success": False, "message": "API endpoint not found"}

    def test_wrong_method(self, client):
        resp = client.get("/api/auth/login")
        assert resp.status_code == 405
        assert resp.json["success"] is False

    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json["data"]["checks"]["database"]["status"] == "healthy"
        assert resp.json["data"]["checks"]["token_store"]["status"] == "healthy"

    def test_cors_for_allowed_origin(self, client):
        resp = client.get("/api/health", headers={"Origin": "http://localhost:5173"})
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

    def test_no_cors_for_unknown_origin(self, client):
        resp = client.get("/api/health", headers={"Origin": "http://evil.example"})
        assert "Access-Control-Allow-Origin" not in resp.headers
