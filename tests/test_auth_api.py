from datetime import datetime, timedelta, timezone

import jwt

from conftest import PASSWORD, bearer


def login(client, identifier: str, password: str = PASSWORD):
    return client.post("/api/auth/login", json={"username_or_email": identifier, "password": password})


class TestRegister:
    def test_register_returns_user_and_token(self, client):
        res = client.post(
            "/api/auth/register",
            json={
                "username": "john_doe",
                "email": "John.Doe@Example.com",
                "password": PASSWORD,
                "confirm_password": PASSWORD,
                "first_name": "John",
                "last_name": "Doe",
            },
        )
        assert res.status_code == 201, res.text
        body = res.json()
        assert body["success"] is True
        assert body["message"] == "User registered successfully"
        user = body["data"]["user"]
        assert user["email"] == "john.doe@example.com"
        assert user["full_name"] == "John Doe"
        assert user["is_active"] is True
        assert "password_hash" not in user
        assert body["data"]["token"]
        assert body["meta"]["version"]
        assert body["meta"]["timestamp"]

    def test_duplicate_email_and_username(self, client, register_user):
        register_user()
        payload = {
            "username": "john_doe",
            "email": "other@example.com",
            "password": PASSWORD,
            "confirm_password": PASSWORD,
            "first_name": "John",
            "last_name": "Doe",
        }
        res = client.post("/api/auth/register", json=payload)
        assert res.status_code == 409
        assert res.json()["message"] == "Username is already taken"

        payload.update(username="someone_else", email="john_doe@example.com")
        res = client.post("/api/auth/register", json=payload)
        assert res.status_code == 409
        assert res.json()["message"] == "User with this email already exists"
        assert res.json()["error"]["code"] == "CONFLICT"

    def test_weak_password_rejected(self, client):
        res = client.post(
            "/api/auth/register",
            json={
                "username": "weak",
                "email": "weak@example.com",
                "password": "password",
                "confirm_password": "password",
                "first_name": "Weak",
                "last_name": "User",
            },
        )
        assert res.status_code == 422
        assert res.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_password_confirmation_must_match(self, client):
        res = client.post(
            "/api/auth/register",
            json={
                "username": "mismatch",
                "email": "mismatch@example.com",
                "password": PASSWORD,
                "confirm_password": PASSWORD + "x",
                "first_name": "Miss",
                "last_name": "Match",
            },
        )
        assert res.status_code == 422


class TestLogin:
    def test_login_by_username_or_email(self, client, register_user):
        register_user()
        res = login(client, "john_doe")
        assert res.status_code == 200
        assert res.json()["message"] == "Login successful"
        assert res.json()["data"]["user"]["last_login"] is not None

        res = login(client, "JOHN_DOE@example.com")
        assert res.status_code == 200

    def test_invalid_credentials(self, client, register_user):
        register_user()
        res = login(client, "john_doe", "Wrong@1234")
        assert res.status_code == 401
        assert res.json()["message"] == "Invalid credentials"

        res = login(client, "nobody")
        assert res.status_code == 401
        assert res.json()["message"] == "Invalid credentials"

    def test_lockout_after_repeated_failures(self, client, register_user, settings):
        register_user()
        for _ in range(settings.max_login_attempts):
            assert login(client, "john_doe", "Wrong@1234").status_code == 401

        res = login(client, "john_doe")
        assert res.status_code == 423
        assert res.json()["error"]["code"] == "ACCOUNT_LOCKED"

    def test_corrupt_stored_hash_is_invalid_credentials(self, app, client, register_user):
        user_id = register_user()["user"]["id"]
        app.state.store.users.update(user_id, {"password_hash": "pbkdf2_sha256$oops$salt$00"})
        res = login(client, "john_doe")
        assert res.status_code == 401
        assert res.json()["message"] == "Invalid credentials"

    def test_expired_lock_restarts_count(self, app, client, register_user, settings):
        user_id = register_user()["user"]["id"]
        users = app.state.store.users
        users.update(
            user_id,
            {"login_attempts": settings.max_login_attempts, "lock_until": datetime.now() - timedelta(minutes=1)},
        )

        assert login(client, "john_doe", "Wrong@1234").status_code == 401
        stored = users.get(user_id)
        assert stored["login_attempts"] == 1
        assert stored["lock_until"] is None

        assert login(client, "john_doe").status_code == 200

    def test_lock_applies_to_issued_tokens(self, app, client, register_user):
        data = register_user()
        assert client.get("/api/users/profile", headers=bearer(data["token"])).status_code == 200

        app.state.store.users.update(data["user"]["id"], {"lock_until": datetime.now() + timedelta(minutes=30)})
        res = client.get("/api/users/profile", headers=bearer(data["token"]))
        assert res.status_code == 423
        assert res.json()["error"]["code"] == "ACCOUNT_LOCKED"

    def test_success_resets_failed_attempts(self, client, register_user, settings):
        register_user()
        for _ in range(settings.max_login_attempts - 1):
            login(client, "john_doe", "Wrong@1234")
        assert login(client, "john_doe").status_code == 200
        for _ in range(settings.max_login_attempts - 1):
            login(client, "john_doe", "Wrong@1234")
        assert login(client, "john_doe").status_code == 200


class TestTokens:
    def test_missing_and_malformed_header(self, client):
        res = client.get("/api/users/profile")
        assert res.status_code == 401
        assert res.json()["message"] == "No token provided"

        res = client.get("/api/users/profile", headers={"Authorization": "Token abc"})
        assert res.status_code == 401
        assert res.json()["message"] == "No token provided"

    def test_invalid_token(self, client):
        res = client.get("/api/users/profile", headers=bearer("not.a.jwt"))
        assert res.status_code == 401
        assert res.json()["message"] == "Invalid or malformed token"

    def test_expired_token(self, client, register_user, settings):
        user_id = register_user()["user"]["id"]
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        token = jwt.encode(
            {
                "sub": user_id,
                "iat": past,
                "exp": past + timedelta(hours=1),
                "iss": settings.jwt_issuer,
                "aud": settings.jwt_audience,
            },
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )
        res = client.get("/api/users/profile", headers=bearer(token))
        assert res.status_code == 401
        assert res.json()["message"] == "Token has expired"

    def test_token_for_unknown_user(self, client, settings):
        token = jwt.encode(
            {
                "sub": "ghost",
                "exp": datetime.now(timezone.utc) + timedelta(hours=1),
                "iss": settings.jwt_issuer,
                "aud": settings.jwt_audience,
            },
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )
        res = client.get("/api/users/profile", headers=bearer(token))
        assert res.status_code == 401
        assert res.json()["message"] == "User not found"

    def test_refresh_and_logout(self, client, headers):
        res = client.post("/api/auth/refresh", headers=headers)
        assert res.status_code == 200
        token = res.json()["data"]["token"]
        assert client.get("/api/users/profile", headers=bearer(token)).status_code == 200

        res = client.post("/api/auth/logout", headers=headers)
        assert res.status_code == 200
        assert res.json()["message"] == "Logout successful"


class TestPasswordReset:
    def test_forgot_and_reset(self, client, register_user):
        register_user()
        res = client.post("/api/auth/forgot-password", json={"email": "john_doe@example.com"})
        assert res.status_code == 200
        reset_token = res.json()["data"]["reset_token"]

        new_password = "Changed@456"
        res = client.post(
            "/api/auth/reset-password",
            json={"token": reset_token, "new_password": new_password, "confirm_new_password": new_password},
        )
        assert res.status_code == 200, res.text
        assert res.json()["message"] == "Password reset successful"
        assert res.json()["data"]["token"]

        assert login(client, "john_doe").status_code == 401
        assert login(client, "john_doe", new_password).status_code == 200

        # tokens are single use
        res = client.post(
            "/api/auth/reset-password",
            json={"token": reset_token, "new_password": new_password, "confirm_new_password": new_password},
        )
        assert res.status_code == 400
        assert res.json()["message"] == "Invalid or expired reset token"

    def test_unknown_email_gets_same_message(self, client, register_user):
        register_user()
        known = client.post("/api/auth/forgot-password", json={"email": "john_doe@example.com"}).json()
        unknown = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"}).json()
        assert known["message"] == unknown["message"]
        assert unknown["data"] is None

    def test_token_hidden_outside_development(self, settings, register_user):
        from dataclasses import replace

        from fastapi.testclient import TestClient

        from todofolio.main import create_app

        client = TestClient(create_app(replace(settings, app_env="production")))
        res = client.post(
            "/api/auth/register",
            json={
                "username": "prod_user",
                "email": "prod@example.com",
                "password": PASSWORD,
                "confirm_password": PASSWORD,
                "first_name": "Prod",
                "last_name": "User",
            },
        )
        assert res.status_code == 201
        res = client.post("/api/auth/forgot-password", json={"email": "prod@example.com"})
        assert res.status_code == 200
        assert res.json()["data"] is None


class TestUsers:
    def test_profile_update(self, client, headers):
        res = client.put("/api/users/profile", json={"first_name": "Johnny"}, headers=headers)
        assert res.status_code == 200
        assert res.json()["data"]["full_name"] == "Johnny Doe"

        res = client.put("/api/users/profile", json={"avatar": "ftp://nope"}, headers=headers)
        assert res.status_code == 422

        res = client.put("/api/users/profile", json={}, headers=headers)
        assert res.status_code == 422

    def test_change_password(self, client, headers):
        res = client.put(
            "/api/users/change-password",
            json={"current_password": "Wrong@1234", "new_password": "Fresh@789", "confirm_new_password": "Fresh@789"},
            headers=headers,
        )
        assert res.status_code == 400
        assert res.json()["message"] == "Current password is incorrect"

        res = client.put(
            "/api/users/change-password",
            json={"current_password": PASSWORD, "new_password": PASSWORD, "confirm_new_password": PASSWORD},
            headers=headers,
        )
        assert res.status_code == 400
        assert res.json()["message"] == "New password must be different from current password"

        res = client.put(
            "/api/users/change-password",
            json={"current_password": PASSWORD, "new_password": "Fresh@789", "confirm_new_password": "Fresh@789"},
            headers=headers,
        )
        assert res.status_code == 200
        assert login(client, "john_doe", "Fresh@789").status_code == 200

    def test_delete_account(self, client, headers):
        res = client.delete("/api/users/account", headers=headers)
        assert res.status_code == 200
        assert res.json()["message"] == "Account deleted successfully"

        res = client.get("/api/users/profile", headers=headers)
        assert res.status_code == 401
        assert res.json()["message"] == "User account is inactive"

        assert login(client, "john_doe").status_code == 401
