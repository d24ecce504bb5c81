"""Tests for API key authentication."""
import pytest
from httpx import AsyncClient, ASGITransport
from unittest.mock import MagicMock, patch
from contentpipe.main import app
from contentpipe.auth.api_key import API_KEY_HEADER, APIKeyRegistry, registry


@pytest.fixture
def auth_enabled():
    registry.add_key("test-key-123")
    with patch("contentpipe.auth.api_key.get_settings", return_value=MagicMock(REQUIRE_AUTH=True)):
        yield
    registry.remove_key("test-key-123")


@pytest.mark.asyncio
async def test_auth_disabled_allows_access():
    """Test that requests work when auth is disabled (default)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/v1/agents")
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_auth_enabled_rejects_without_key(auth_enabled):
    """Test that requests are rejected when auth is enabled but no key provided."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/v1/agents")
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "ApiKey"


@pytest.mark.asyncio
async def test_auth_enabled_rejects_invalid_key(auth_enabled):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/v1/agents", headers={API_KEY_HEADER: "wrong-key"})
        assert response.status_code == 403


@pytest.mark.asyncio
async def test_auth_enabled_accepts_valid_key(auth_enabled):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/v1/agents", headers={API_KEY_HEADER: "test-key-123"})
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_auth_enabled_without_keys_allows_access():
    """Test that enabling auth with an empty registry does not lock the API."""
    with patch("contentpipe.auth.api_key.get_settings", return_value=MagicMock(REQUIRE_AUTH=True)), \
            patch("contentpipe.auth.api_key.registry", APIKeyRegistry(keys="")):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/v1/agents")
            assert response.status_code == 200


@pytest.mark.asyncio
async def test_health_does_not_require_key(auth_enabled):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health")
        assert response.status_code == 200


def test_api_key_registry_validation():
    """Test API key registry validation."""
    keys = APIKeyRegistry(keys=" first , second,, ")

    assert keys.count() == 2
    assert keys.validate("first") is True
    assert keys.validate("invalid-key") is False

    keys.add_key("third")
    assert keys.validate("third") is True

    assert keys.remove_key("first") is True
    assert keys.remove_key("first") is False
    assert keys.validate("first") is False
