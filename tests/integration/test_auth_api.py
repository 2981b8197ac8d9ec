"""Integration tests for /api/auth."""

import base64

import base58
import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from droplets_api.security import UNSIGNED_SIGNUP_SIGNATURE


def signed_signup(username: str, message: str = "Join Droplets of Creation") -> tuple[dict, object]:
    key = Ed25519PrivateKey.generate()
    address = base58.b58encode(key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw))
    body = {
        "username": username,
        "password": "password123",
        "solana_address": address.decode(),
        "signed_message": message,
        "signature": base64.b64encode(key.sign(message.encode())).decode(),
    }
    return body, key


class TestSignup:
    """Test POST /api/auth/signup."""

    @pytest.mark.asyncio
    async def test_unsigned_signup_sets_cookie(self, client):
        response = await client.post(
            "/api/auth/signup",
            json={
                "username": "rainy",
                "password": "password123",
                "solana_address": "7" * 44,
                "signature": UNSIGNED_SIGNUP_SIGNATURE,
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["user"]["username"] == "rainy"
        assert "password_hash" not in body["data"]["user"]
        assert body["data"]["token"]

        cookie = response.headers["set-cookie"].lower()
        assert cookie.startswith("session=")
        assert "httponly" in cookie
        assert "secure" in cookie
        assert "samesite=none" in cookie
        assert "max-age=604800" in cookie

    @pytest.mark.asyncio
    async def test_signed_signup(self, client):
        body, _ = signed_signup("signer")

        response = await client.post("/api/auth/signup", json=body)

        assert response.status_code == 200
        assert response.json()["data"]["user"]["solana_address"] == body["solana_address"]

    @pytest.mark.asyncio
    async def test_bad_signature(self, client):
        body, _ = signed_signup("forger")
        body["signed_message"] = "something else"

        response = await client.post("/api/auth/signup", json=body)

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Invalid signature"}

    @pytest.mark.asyncio
    async def test_duplicate_username(self, client, signup):
        await signup("taken")

        response = await client.post(
            "/api/auth/signup",
            json={
                "username": "taken",
                "password": "password123",
                "solana_address": "8" * 44,
                "signature": UNSIGNED_SIGNUP_SIGNATURE,
            },
        )

        assert response.status_code == 409
        assert response.json()["error"] == "User already exists"

    @pytest.mark.asyncio
    async def test_validation_errors(self, client):
        response = await client.post(
            "/api/auth/signup",
            json={"username": "ab", "password": "123", "signature": "x"},
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert "Required field 'solana_address' is missing" in error
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_blank_username(self, client):
        response = await client.post(
            "/api/auth/signup",
            json={
                "username": "    ",
                "password": "password123",
                "solana_address": "9" * 44,
                "signature": UNSIGNED_SIGNUP_SIGNATURE,
            },
        )

        assert response.status_code == 400
        assert "Username cannot be empty" in response.json()["error"]

    @pytest.mark.asyncio
    async def test_invalid_json(self, client):
        response = await client.post(
            "/api/auth/signup",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert "Invalid JSON format" in response.json()["error"]


class TestLogin:
    """Test login, session use and logout."""

    @pytest.mark.asyncio
    async def test_login_and_me(self, client, signup):
        account = await signup("drizzle", password="secret-pass")

        response = await client.post(
            "/api/auth/login", json={"username": "drizzle", "password": "secret-pass"}
        )
        assert response.status_code == 200
        token = response.json()["data"]["token"]
        assert token != account["token"]
        client.cookies.clear()

        me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["data"]["user"]["id"] == account["user"]["id"]

    @pytest.mark.asyncio
    async def test_cookie_session(self, client, signup):
        await signup("cookie", password="secret-pass")

        await client.post("/api/auth/login", json={"username": "cookie", "password": "secret-pass"})
        me = await client.get("/api/auth/me")

        assert me.status_code == 200
        assert me.json()["data"]["user"]["username"] == "cookie"

    @pytest.mark.asyncio
    async def test_wrong_password(self, client, signup):
        await signup("drizzle", password="secret-pass")

        response = await client.post(
            "/api/auth/login", json={"username": "drizzle", "password": "nope-nope"}
        )

        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Invalid credentials"}

    @pytest.mark.asyncio
    async def test_unknown_user(self, client):
        response = await client.post(
            "/api/auth/login", json={"username": "ghost", "password": "whatever"}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_me_requires_session(self, client):
        response = await client.get("/api/auth/me")

        assert response.status_code == 401
        assert response.json()["error"] == "No session token found. Please log in again."

    @pytest.mark.asyncio
    async def test_forged_token(self, client):
        response = await client.get("/api/auth/me", headers={"Authorization": "Bearer abc.def.ghi"})

        assert response.status_code == 401
        assert response.json()["error"] == "Session expired. Please log in again."

    @pytest.mark.asyncio
    async def test_logout_revokes_token(self, client, signup):
        """A logged out token stops working even though the JWT is still valid."""
        account = await signup()

        response = await client.post("/api/auth/logout", headers=account["headers"])
        assert response.status_code == 200
        assert response.json()["success"] is True

        me = await client.get("/api/auth/me", headers=account["headers"])
        assert me.status_code == 401

    @pytest.mark.asyncio
    async def test_logout_without_session(self, client):
        response = await client.post("/api/auth/logout")
        assert response.status_code == 200


class TestWalletVerify:
    """Test POST /api/auth/wallet/verify."""

    @pytest.mark.asyncio
    async def test_verify_own_wallet(self, client):
        body, key = signed_signup("walleter")
        signup_response = await client.post("/api/auth/signup", json=body)
        token = signup_response.json()["data"]["token"]
        client.cookies.clear()

        message = "prove it"
        response = await client.post(
            "/api/auth/wallet/verify",
            json={
                "signed_message": message,
                "signature": base64.b64encode(key.sign(message.encode())).decode(),
            },
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 200
        assert response.json()["data"] == {"verified": True}

    @pytest.mark.asyncio
    async def test_verify_with_other_key(self, client, signup):
        account = await signup()
        other = Ed25519PrivateKey.generate()

        response = await client.post(
            "/api/auth/wallet/verify",
            json={
                "signed_message": "prove it",
                "signature": base64.b64encode(other.sign(b"prove it")).decode(),
            },
            headers=account["headers"],
        )

        assert response.status_code == 400


class TestChangePassword:
    """Test POST /api/auth/change-password."""

    @pytest.mark.asyncio
    async def test_change_password_revokes_other_sessions(self, client, signup):
        account = await signup("mover", password="old-password")
        second = await client.post(
            "/api/auth/login", json={"username": "mover", "password": "old-password"}
        )
        other_token = second.json()["data"]["token"]
        client.cookies.clear()

        response = await client.post(
            "/api/auth/change-password",
            json={"current_password": "old-password", "new_password": "new-password"},
            headers=account["headers"],
        )

        assert response.status_code == 200
        assert response.json()["data"]["sessions_revoked"] == 1

        current = await client.get("/api/auth/me", headers=account["headers"])
        assert current.status_code == 200
        revoked = await client.get(
            "/api/auth/me", headers={"Authorization": f"Bearer {other_token}"}
        )
        assert revoked.status_code == 401

        old = await client.post(
            "/api/auth/login", json={"username": "mover", "password": "old-password"}
        )
        assert old.status_code == 401
        new = await client.post(
            "/api/auth/login", json={"username": "mover", "password": "new-password"}
        )
        assert new.status_code == 200

    @pytest.mark.asyncio
    async def test_wrong_current_password(self, client, signup):
        account = await signup()

        response = await client.post(
            "/api/auth/change-password",
            json={"current_password": "not-it", "new_password": "new-password"},
            headers=account["headers"],
        )

        assert response.status_code == 401
        assert response.json()["error"] == "Current password is incorrect"

    @pytest.mark.asyncio
    async def test_new_password_too_short(self, client, signup):
        account = await signup()

        response = await client.post(
            "/api/auth/change-password",
            json={"current_password": "password123", "new_password": "123"},
            headers=account["headers"],
        )

        assert response.status_code == 400
