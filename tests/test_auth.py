from datetime import datetime, timedelta, timezone

import jwt
import pytest

import metrics
import security
from conftest import auth
from errors import AuthError


class TestRegister:

    def test_register_login_me_scenario(self, client):
        res = client.post("/api/auth/register", json={"name": "Alice", "email": "a@x.com", "password": "secret1"})
        assert res.status_code == 201
        body = res.json()
        assert set(body) == {"id", "name", "email", "role", "token"}
        assert body["role"] == "customer"

        res = client.post("/api/auth/login", json={"email": "a@x.com", "password": "secret1"})
        assert res.status_code == 200
        token = res.json()["token"]

        res = client.get("/api/auth/me", headers=auth(token))
        assert res.status_code == 200
        me = res.json()
        assert me["email"] == "a@x.com"
        assert me["role"] == "customer"
        assert "password_hash" not in me

    @pytest.mark.parametrize("email", ["c@x.com", "dana.smith@shop.co", "Eve@Mail.net"])
    def test_registered_token_resolves_to_customer(self, client, db, settings, email):
        res = client.post("/api/auth/register", json={"name": "Someone", "email": email, "password": "hunter22"})
        assert res.status_code == 201
        user = security.verify_token(db, settings, res.json()["token"])
        assert user["role"] == "customer"
        assert user["id"] == res.json()["id"]

    def test_password_is_hashed(self, customer, db):
        stored = db["user"].find_one({"email": "a@x.com"})
        assert stored["password_hash"] != "secret1"
        assert stored["password_hash"].startswith("$argon2")

    def test_counts_registrations(self, register):
        before = metrics.sample("users_registered_total")
        register(email="count@x.com")
        assert metrics.sample("users_registered_total") == before + 1

    @pytest.mark.parametrize(
        "payload, field",
        [
            ({"name": "   ", "email": "a@x.com", "password": "secret1"}, "name"),
            ({"name": "Alice", "email": "not-an-email", "password": "secret1"}, "email"),
            ({"name": "Alice", "email": "a@x.com", "password": "12345"}, "password"),
        ],
    )
    def test_validation_errors(self, client, db, payload, field):
        res = client.post("/api/auth/register", json=payload)
        assert res.status_code == 400
        assert field in [e["field"] for e in res.json()["errors"]]
        assert db["user"].count_documents({}) == 0

    def test_duplicate_email(self, client, customer):
        res = client.post("/api/auth/register", json={"name": "Other", "email": "a@x.com", "password": "secret2"})
        assert res.status_code == 400
        assert res.json() == {"message": "User already exists"}


class TestLogin:

    def test_unknown_email_and_wrong_password_look_identical(self, client, customer):
        missing_before = metrics.sample("auth_failures_total", {"reason": "user_not_found"})
        wrong_before = metrics.sample("auth_failures_total", {"reason": "invalid_password"})

        unknown = client.post("/api/auth/login", json={"email": "nobody@x.com", "password": "secret1"})
        wrong = client.post("/api/auth/login", json={"email": "a@x.com", "password": "wrong-one"})

        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json() == {"message": "Invalid credentials"}
        assert metrics.sample("auth_failures_total", {"reason": "user_not_found"}) == missing_before + 1
        assert metrics.sample("auth_failures_total", {"reason": "invalid_password"}) == wrong_before + 1

    def test_failure_reasons_are_distinct(self, db, settings, customer):
        with pytest.raises(AuthError) as missing:
            security.login(db, settings, "nobody@x.com", "secret1")
        with pytest.raises(AuthError) as wrong:
            security.login(db, settings, "a@x.com", "nope-nope")
        assert missing.value.reason == "user_not_found"
        assert wrong.value.reason == "invalid_password"
        assert missing.value.message == wrong.value.message

    def test_malformed_login_body(self, client):
        res = client.post("/api/auth/login", json={"email": "a@x.com"})
        assert res.status_code == 400
        assert "errors" in res.json()


class TestTokens:

    def test_me_without_token(self, client):
        res = client.get("/api/auth/me")
        assert res.status_code == 401
        assert res.json()["message"] == "Not authorized, no token"

    def test_garbage_token(self, client):
        res = client.get("/api/auth/me", headers=auth("not.a.token"))
        assert res.status_code == 401

    def test_token_signed_with_other_secret(self, client, customer):
        forged = jwt.encode({"id": customer["id"]}, "other-secret", algorithm="HS256")
        res = client.get("/api/auth/me", headers=auth(forged))
        assert res.status_code == 401

    def test_expired_token(self, client, customer, settings):
        past = datetime.now(timezone.utc) - timedelta(days=8)
        expired = jwt.encode(
            {"id": customer["id"], "iat": past, "exp": past + timedelta(days=7)},
            settings.jwt_secret,
            algorithm="HS256",
        )
        res = client.get("/api/auth/me", headers=auth(expired))
        assert res.status_code == 401
        assert res.json()["message"] == "Not authorized, token expired"

    def test_token_without_expiry(self, client, customer, settings):
        forever = jwt.encode({"id": customer["id"]}, settings.jwt_secret, algorithm="HS256")
        res = client.get("/api/auth/me", headers=auth(forever))
        assert res.status_code == 401
        assert res.json()["message"] == "Not authorized, token failed"

    def test_token_without_user_id(self, client, settings):
        exp = datetime.now(timezone.utc) + timedelta(days=1)
        anonymous = jwt.encode({"exp": exp}, settings.jwt_secret, algorithm="HS256")
        assert client.get("/api/auth/me", headers=auth(anonymous)).status_code == 401

    def test_token_lifetime_is_seven_days(self, customer, settings):
        payload = jwt.decode(customer["token"], settings.jwt_secret, algorithms=["HS256"])
        assert payload["id"] == customer["id"]
        assert payload["exp"] - payload["iat"] == 7 * 24 * 3600

    def test_token_for_deleted_user(self, client, db, customer):
        db["user"].delete_many({"email": "a@x.com"})
        res = client.get("/api/auth/me", headers=auth(customer["token"]))
        assert res.status_code == 401

    def test_require_role(self):
        security.require_role({"id": "1", "role": "admin"}, "admin")
        with pytest.raises(AuthError) as exc:
            security.require_role({"id": "2", "role": "customer"}, "admin")
        assert exc.value.reason == "forbidden"
        assert exc.value.status_code == 403


class TestProfile:

    def test_partial_update_rotates_token(self, client, customer, settings):
        res = client.put(
            "/api/auth/profile",
            json={"phone": "555-0101", "address": {"city": "Austin", "country": "US"}},
            headers=auth(customer["token"]),
        )
        assert res.status_code == 200
        body = res.json()
        assert body["name"] == "Alice"
        assert body["phone"] == "555-0101"
        assert body["address"]["city"] == "Austin"
        assert jwt.decode(body["token"], settings.jwt_secret, algorithms=["HS256"])["id"] == customer["id"]

    def test_empty_values_leave_fields_unchanged(self, client, customer):
        res = client.put("/api/auth/profile", json={"name": ""}, headers=auth(customer["token"]))
        assert res.status_code == 200
        assert res.json()["name"] == "Alice"

    def test_empty_email_keeps_current_email(self, client, customer):
        res = client.put("/api/auth/profile", json={"name": "Alicia", "email": ""}, headers=auth(customer["token"]))
        assert res.status_code == 200
        assert res.json()["name"] == "Alicia"
        assert res.json()["email"] == "a@x.com"

    def test_empty_password_keeps_current_password(self, client, customer):
        res = client.put("/api/auth/profile", json={"name": "Alicia", "password": ""}, headers=auth(customer["token"]))
        assert res.status_code == 200
        assert res.json()["name"] == "Alicia"
        assert client.post("/api/auth/login", json={"email": "a@x.com", "password": "secret1"}).status_code == 200

    def test_password_change(self, client, customer):
        res = client.put("/api/auth/profile", json={"password": "newsecret"}, headers=auth(customer["token"]))
        assert res.status_code == 200
        assert client.post("/api/auth/login", json={"email": "a@x.com", "password": "secret1"}).status_code == 401
        assert client.post("/api/auth/login", json={"email": "a@x.com", "password": "newsecret"}).status_code == 200

    def test_email_taken_by_someone_else(self, client, customer, other_customer):
        res = client.put("/api/auth/profile", json={"email": "b@x.com"}, headers=auth(customer["token"]))
        assert res.status_code == 400
        assert res.json() == {"message": "Email already in use"}

    def test_requires_token(self, client):
        assert client.put("/api/auth/profile", json={"name": "X"}).status_code == 401


class TestSeedAdmin:

    def test_seed_is_idempotent(self, db, settings):
        assert security.seed_admin(db, settings) is not None
        assert security.seed_admin(db, settings) is None
        admins = list(db["user"].find({"role": "admin"}))
        assert len(admins) == 1
        assert admins[0]["email"] == settings.admin_email
