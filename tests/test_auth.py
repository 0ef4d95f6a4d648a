"""Tests for token verification and the admin gate."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from bson import ObjectId

from config import settings
from conftest import auth_headers
from errors import AuthenticationError
from security import authenticate, candidate_tokens, create_token, decode_token, hash_password, token_for_user, verify_password


class TestPasswords:
    def test_hash_round_trip(self):
        hashed = hash_password("secret123")
        assert hashed != "secret123"
        assert verify_password("secret123", hashed)
        assert not verify_password("wrong", hashed)

    def test_missing_hash(self):
        assert not verify_password("secret123", None)


class TestTokens:
    def test_decode_expired(self):
        token = jwt.encode(
            {"id": str(ObjectId()), "exp": datetime.now(timezone.utc) - timedelta(seconds=5)},
            settings.jwt_secret,
            algorithm="HS256",
        )
        with pytest.raises(AuthenticationError, match="Token expired"):
            decode_token(token)

    def test_decode_wrong_secret(self):
        token = jwt.encode({"id": "x"}, "another-secret", algorithm="HS256")
        with pytest.raises(AuthenticationError, match="Invalid token"):
            decode_token(token)

    def test_candidates_prefer_header(self):
        assert candidate_tokens("a", "b") == ["a", "b"]
        assert candidate_tokens("a", "a") == ["a"]
        assert candidate_tokens(None, "b") == ["b"]
        assert candidate_tokens(None, None) == []

    def test_falls_back_to_cookie_when_header_invalid(self, db, user):
        assert authenticate(db, ["garbage", token_for_user(user)])["_id"] == user["_id"]

    def test_no_tokens(self, db):
        with pytest.raises(AuthenticationError, match="No token provided"):
            authenticate(db, [])

    def test_deleted_user(self, db, user):
        token = token_for_user(user)
        db["user"].delete_one({"_id": user["_id"]})
        with pytest.raises(AuthenticationError, match="User not found"):
            authenticate(db, [token])

    def test_payload_without_id(self, db):
        with pytest.raises(AuthenticationError, match="Invalid token payload"):
            authenticate(db, [create_token({"email": "x@example.com"})])


class TestAuthApi:
    def test_bearer_header(self, client, user):
        response = client.get("/api/users/profile", headers=auth_headers(user))
        assert response.status_code == 200
        assert response.json()["user"]["email"] == user["email"]
        assert "password_hash" not in response.json()["user"]

    def test_cookie(self, client, user):
        client.cookies.set("token", token_for_user(user))
        assert client.get("/api/users/profile").status_code == 200

    def test_invalid_token(self, client):
        response = client.get("/api/users/profile", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Invalid token", "errors": []}

    def test_admin_gate(self, client, user, admin):
        assert client.get("/api/admin/stats", headers=auth_headers(user)).status_code == 403

        response = client.get("/api/admin/stats", headers=auth_headers(admin))
        assert response.status_code == 200
        assert response.json()["users"] == 2
