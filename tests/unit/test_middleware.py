"""Tests for middleware functionality."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

import pytest
from fastapi import Request, Response

from droplets_api.exceptions import AuthenticationError
from droplets_api.middleware import (
    add_request_id,
    get_current_user,
    get_services,
    get_session_token,
    require_admin,
)


def make_request(headers: dict[str, str] | None = None, cookies: dict[str, str] | None = None):
    request = Mock(spec=Request)
    request.headers = headers or {}
    request.cookies = cookies or {}
    request.state = SimpleNamespace()
    request.method = "GET"
    request.url = Mock(path="/test")
    request.client = None
    return request


def with_services(request, **attributes):
    request.app = SimpleNamespace(state=SimpleNamespace(services=SimpleNamespace(**attributes)))
    return request


async def call_next(request):
    response = Mock(spec=Response)
    response.headers = {}
    response.status_code = 200
    return response


class TestRequestIDMiddleware:
    """Test request ID middleware."""

    @pytest.mark.asyncio
    async def test_preserves_existing_header(self):
        request = make_request({"X-Request-ID": "existing-id-123"})

        response = await add_request_id(request, call_next)

        assert request.state.request_id == "existing-id-123"
        assert response.headers["X-Request-ID"] == "existing-id-123"

    @pytest.mark.asyncio
    async def test_generates_new_id(self):
        request = make_request()

        with patch("droplets_api.middleware.uuid.uuid4", return_value="generated-uuid-456"):
            response = await add_request_id(request, call_next)

        assert request.state.request_id == "generated-uuid-456"
        assert response.headers["X-Request-ID"] == "generated-uuid-456"


class TestSessionToken:
    """Test where the session token is read from."""

    def test_bearer_header(self):
        assert get_session_token(make_request({"Authorization": "Bearer abc"})) == "abc"

    def test_cookie(self):
        assert get_session_token(make_request(cookies={"session": "from-cookie"})) == "from-cookie"

    def test_header_wins_over_cookie(self):
        request = make_request({"Authorization": "Bearer from-header"}, {"session": "from-cookie"})
        assert get_session_token(request) == "from-header"

    def test_missing(self):
        assert get_session_token(make_request({"Authorization": "Basic xyz"})) is None


class TestCurrentUser:
    """Test get_current_user."""

    @pytest.mark.asyncio
    async def test_no_token(self):
        request = with_services(make_request(), auth=AsyncMock())

        with pytest.raises(AuthenticationError, match="No session token"):
            await get_current_user(request)

    @pytest.mark.asyncio
    async def test_unknown_session(self):
        auth = AsyncMock()
        auth.authenticate.return_value = None
        request = with_services(make_request({"Authorization": "Bearer stale"}), auth=auth)

        with pytest.raises(AuthenticationError, match="Session expired"):
            await get_current_user(request)

    @pytest.mark.asyncio
    async def test_valid_session(self):
        user = {"id": "user-1", "username": "alice"}
        auth = AsyncMock()
        auth.authenticate.return_value = user
        request = with_services(make_request({"Authorization": "Bearer good"}), auth=auth)

        assert await get_current_user(request) == user
        assert request.state.session_token == "good"
        auth.authenticate.assert_awaited_once_with("good")


class TestRequireAdmin:
    """Test admin bearer check."""

    @pytest.mark.asyncio
    async def test_matching_token(self):
        request = with_services(
            make_request({"Authorization": "Bearer s3cret"}),
            settings=SimpleNamespace(admin_token="s3cret"),
        )
        await require_admin(request)

    @pytest.mark.asyncio
    async def test_wrong_token(self):
        request = with_services(
            make_request({"Authorization": "Bearer guess"}),
            settings=SimpleNamespace(admin_token="s3cret"),
        )
        with pytest.raises(AuthenticationError):
            await require_admin(request)

    @pytest.mark.asyncio
    async def test_unconfigured_token_rejects_everyone(self):
        request = with_services(
            make_request({"Authorization": "Bearer "}),
            settings=SimpleNamespace(admin_token=None),
        )
        with pytest.raises(AuthenticationError):
            await require_admin(request)

    @pytest.mark.asyncio
    async def test_non_ascii_token_is_rejected(self):
        request = with_services(
            make_request({"Authorization": "Bearer é"}),
            settings=SimpleNamespace(admin_token="s3cret"),
        )
        with pytest.raises(AuthenticationError):
            await require_admin(request)

    @pytest.mark.asyncio
    async def test_non_ascii_configured_token(self):
        request = with_services(
            make_request({"Authorization": "Bearer clé"}),
            settings=SimpleNamespace(admin_token="clé"),
        )
        await require_admin(request)


def test_get_services_before_startup():
    request = make_request()
    request.app = SimpleNamespace(state=SimpleNamespace())

    with pytest.raises(RuntimeError, match="not initialized"):
        get_services(request)
