"""
Tests for authentication endpoints (signup and login).

These tests verify:
  - Successful signup creates an UNAPPROVED user and returns a JWT
  - Duplicate email signup is rejected (409 Conflict), case-insensitively
  - Successful login returns a valid JWT
  - Wrong password and unknown email get the same 401 (anti-enumeration)
  - Short passwords and invalid bodies are rejected (422)
  - Protected endpoints reject missing, forged and expired tokens
  - The house ATM user can never log in
"""

from datetime import timedelta

from sqlalchemy import select

from app.models.user import User, UserRole
from app.security import create_access_token


SIGNUP = {
    "email": "newuser@example.com",
    "password": "StrongPass99!",
    "first_name": "Jane",
    "last_name": "Doe",
}


# ---------------------------------------------------------------------------
# Signup Tests
# ---------------------------------------------------------------------------

class TestSignup:
    """Tests for POST /auth/signup."""

    async def test_signup_success(self, client):
        """A valid signup should return 201 with user_id, role, and token."""
        response = await client.post("/auth/signup", json=SIGNUP)
        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "newuser@example.com"
        assert data["role"] == "UNAPPROVED"
        assert data["token_type"] == "bearer"
        assert "token" in data
        assert "user_id" in data

    async def test_signup_opens_no_accounts(self, client):
        """Accounts are only opened on approval."""
        response = await client.post("/auth/signup", json=SIGNUP)
        headers = {"Authorization": f"Bearer {response.json()['token']}"}

        accounts = await client.get("/accounts", headers=headers)
        assert accounts.status_code == 200
        assert accounts.json() == []

    async def test_signup_with_phone(self, client, db_session):
        """Signup should accept and store an optional phone number."""
        response = await client.post(
            "/auth/signup",
            json={**SIGNUP, "phone": "+31-6-1234-5678"},
        )
        assert response.status_code == 201

        user = (await db_session.execute(select(User))).scalar_one()
        assert user.phone == "+31-6-1234-5678"
        assert user.role == UserRole.UNAPPROVED

    async def test_password_is_hashed(self, client, db_session):
        """The stored hash is an Argon2 hash, never the plaintext."""
        await client.post("/auth/signup", json=SIGNUP)

        user = (await db_session.execute(select(User))).scalar_one()
        assert user.hashed_password != SIGNUP["password"]
        assert user.hashed_password.startswith("$argon2")

    async def test_signup_duplicate_email(self, client):
        """Signing up with an already-registered email should return 409."""
        response1 = await client.post("/auth/signup", json=SIGNUP)
        assert response1.status_code == 201

        response2 = await client.post(
            "/auth/signup",
            json={**SIGNUP, "email": "NewUser@Example.com"},
        )
        assert response2.status_code == 409
        assert response2.json()["error_type"] == "duplicate_email"
        assert "already registered" in response2.json()["detail"]

    async def test_signup_short_password(self, client):
        """Passwords shorter than 8 characters should be rejected."""
        response = await client.post("/auth/signup", json={**SIGNUP, "password": "short"})
        assert response.status_code == 422

    async def test_signup_invalid_email(self, client):
        response = await client.post("/auth/signup", json={**SIGNUP, "email": "not-an-email"})
        assert response.status_code == 422

    async def test_signup_missing_fields(self, client):
        response = await client.post("/auth/signup", json={"email": "missing@example.com"})
        assert response.status_code == 422

    async def test_signup_empty_first_name(self, client):
        response = await client.post("/auth/signup", json={**SIGNUP, "first_name": ""})
        assert response.status_code == 422


# ---------------------------------------------------------------------------
# Login Tests
# ---------------------------------------------------------------------------

class TestLogin:
    """Tests for POST /auth/login."""

    async def test_login_success(self, client):
        """Login with correct credentials should return a token."""
        await client.post("/auth/signup", json=SIGNUP)

        response = await client.post(
            "/auth/login",
            json={"email": SIGNUP["email"], "password": SIGNUP["password"]},
        )
        assert response.status_code == 200
        data = response.json()
        assert "token" in data
        assert data["token_type"] == "bearer"

    async def test_login_wrong_password(self, client):
        """Login with wrong password should return 401."""
        await client.post("/auth/signup", json=SIGNUP)

        response = await client.post(
            "/auth/login",
            json={"email": SIGNUP["email"], "password": "WrongPassword!"},
        )
        assert response.status_code == 401
        assert response.json()["error_type"] == "invalid_credentials"
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_login_nonexistent_email(self, client):
        """Login with an email that doesn't exist should return 401.

        The error message must be identical to the wrong-password case to
        prevent user enumeration attacks.
        """
        response = await client.post(
            "/auth/login",
            json={"email": "nobody@example.com", "password": "SomePassword123!"},
        )
        assert response.status_code == 401
        assert "Invalid email or password" in response.json()["detail"]

    async def test_login_token_works_for_protected_endpoint(self, client):
        """The token from login should grant access to protected endpoints."""
        await client.post("/auth/signup", json=SIGNUP)
        login_response = await client.post(
            "/auth/login",
            json={"email": SIGNUP["email"], "password": SIGNUP["password"]},
        )
        token = login_response.json()["token"]

        profile_response = await client.get(
            "/users/me",
            headers={"Authorization": f"Bearer {token}"},
        )
        assert profile_response.status_code == 200
        assert profile_response.json()["email"] == SIGNUP["email"]
        assert profile_response.json()["accounts"] == []

    async def test_house_atm_user_cannot_log_in(self, client, house_account):
        """The ATM user is inactive, so login fails like any bad credential."""
        response = await client.post(
            "/auth/login",
            json={"email": "atm@yieldbank.com", "password": "anything-at-all"},
        )
        assert response.status_code == 401


# ---------------------------------------------------------------------------
# Token Validation Tests
# ---------------------------------------------------------------------------

class TestTokenValidation:
    """Tests for JWT token validation on protected endpoints."""

    async def test_no_token_returns_401(self, client):
        response = await client.get("/users/me")
        assert response.status_code == 401

    async def test_invalid_token_returns_401(self, client):
        """An invalid/forged token should return 401."""
        response = await client.get(
            "/users/me",
            headers={"Authorization": "Bearer totally.fake.token"},
        )
        assert response.status_code == 401

    async def test_malformed_auth_header_returns_401(self, client):
        response = await client.get(
            "/users/me",
            headers={"Authorization": "NotBearer sometoken"},
        )
        assert response.status_code == 401

    async def test_token_of_deleted_user_returns_401(self, client, make_user):
        """A valid token for a user that no longer exists is rejected."""
        customer = await make_user()
        employee = await make_user(role=UserRole.EMPLOYEE)

        deleted = await client.delete(f"/users/{customer.user_id}", headers=employee.headers)
        assert deleted.status_code == 204

        response = await client.get("/users/me", headers=customer.headers)
        assert response.status_code == 401

    async def test_expired_token_returns_401(self, client, make_user):
        customer = await make_user()
        token = create_access_token(
            {"sub": str(customer.user_id)}, expires_delta=timedelta(minutes=-1)
        )

        response = await client.get("/users/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401


class TestHealth:
    async def test_health_is_public(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
