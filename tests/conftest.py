"""Shared test fixtures."""

import itertools
import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

# Set test environment before the application reads its settings
os.environ["DROPLETS_ENV"] = "development"
os.environ["DROPLETS_LOG_LEVEL"] = "ERROR"
os.environ["DROPLETS_RATE_LIMIT"] = "1000/minute"
os.environ["DROPLETS_BCRYPT_ROUNDS"] = "4"
os.environ["DROPLETS_IMAGE_RETRY_BASE_DELAY"] = "0"
os.environ["DROPLETS_WORLD_UPDATE_BASE_DELAY"] = "0"
os.environ["DROPLETS_JWT_SECRET"] = "test-jwt-secret"
os.environ["DROPLETS_ADMIN_TOKEN"] = "test-admin-token"
for name in ("AWS_LAMBDA_FUNCTION_NAME", "DROPLETS_REDIS_URL", "DROPLETS_STABILITY_API_KEY"):
    os.environ.pop(name, None)

import base58  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from mock_provider import MockImageProvider  # noqa: E402

from droplets_api import app  # noqa: E402
from droplets_api.config import Settings  # noqa: E402
from droplets_api.factory import Services, build_services  # noqa: E402
from droplets_api.security import UNSIGNED_SIGNUP_SIGNATURE  # noqa: E402

ADMIN_TOKEN = "test-admin-token"

SignupHelper = Callable[..., Awaitable[dict[str, Any]]]


def random_wallet_address() -> str:
    """Base58 encoding of 32 random bytes, shaped like a Solana address."""
    return base58.b58encode(os.urandom(32)).decode()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings pointing every store at a temporary directory."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'droplets.db'}",
        blob_url=f"file://{tmp_path / 'images'}",
    )


@pytest.fixture
def image_provider() -> MockImageProvider:
    return MockImageProvider()


@pytest_asyncio.fixture
async def services(
    test_settings: Settings, image_provider: MockImageProvider
) -> AsyncGenerator[Services, None]:
    """Fully wired services on a temp SQLite file, in-memory KV and temp blob dir."""
    services = build_services(test_settings, image_provider=image_provider)
    await services.startup()
    yield services
    await services.shutdown()


@pytest_asyncio.fixture
async def client(services: Services) -> AsyncGenerator[AsyncClient, None]:
    """Test client fixture - services injected via app.state."""
    app.state.services = services

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="https://test") as ac:
        yield ac

    app.state.services = None


@pytest.fixture
def signup(client: AsyncClient) -> SignupHelper:
    """Create accounts through the API and return their bearer headers."""
    counter = itertools.count(1)

    async def _signup(username: str | None = None, password: str = "password123") -> dict[str, Any]:
        username = username or f"droplet{next(counter)}"
        response = await client.post(
            "/api/auth/signup",
            json={
                "username": username,
                "password": password,
                "solana_address": random_wallet_address(),
                "signed_message": "",
                "signature": UNSIGNED_SIGNUP_SIGNATURE,
            },
        )
        assert response.status_code == 200, response.text
        client.cookies.clear()
        data = response.json()["data"]
        return {
            "user": data["user"],
            "token": data["token"],
            "headers": {"Authorization": f"Bearer {data['token']}"},
        }

    return _signup


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}
