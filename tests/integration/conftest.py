"""
Integration Test Fixtures.

Fixtures for integration tests - real app, real repositories, test database.
These fixtures build on the root conftest.py database fixtures.
"""

from collections.abc import AsyncGenerator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from stickywall.backend.core.database import get_db_session
from stickywall.backend.core.dependencies import get_classifier
from stickywall.backend.services.classifier import ModerationVerdict

NOTES_URL = "/api/v1/notes"
SESSION_URL = "/api/v1/session"
ADMIN_URL = "/api/v1/admin"


# =============================================================================
# Collaborator Stubs
# =============================================================================


@pytest.fixture
def classifier() -> MagicMock:
    """
    Classifier stub. Approves with high confidence unless a test says otherwise.

    Usage:
        classifier.classify.return_value = ModerationVerdict(approved=False, ...)
    """
    stub = MagicMock()
    stub.classify = AsyncMock(
        return_value=ModerationVerdict(approved=True, reason="Looks fine", confidence=0.95),
    )
    return stub


# =============================================================================
# API Client Fixtures
# =============================================================================


@pytest.fixture
async def app(db_session: AsyncSession, classifier: MagicMock):
    """
    Application wired to the test database session and the classifier stub.

    Each test gets a fresh app, so the in-process rate limit fallback
    starts empty.
    """
    from stickywall.backend.main import create_app

    async def override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    application = create_app()
    application.dependency_overrides[get_db_session] = override_get_db_session
    application.dependency_overrides[get_classifier] = lambda: classifier

    yield application

    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """
    Test client over ASGI. Cookies set by the API persist across requests
    made with the same client, like a browser.

    Usage:
        async def test_health_endpoint(client: AsyncClient):
            response = await client.get("/health")
            assert response.status_code == 200
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as test_client:
        yield test_client


@pytest.fixture
async def other_client(app) -> AsyncGenerator[AsyncClient, None]:
    """A second visitor: own cookies and a different forwarded address."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-Forwarded-For": "198.51.100.77"},
    ) as test_client:
        yield test_client


# =============================================================================
# API Response Assertion Helpers
# =============================================================================


class ApiAssertions:
    """Helper class for API response assertions."""

    @staticmethod
    def assert_success(response: Any, expected_status: int = 200) -> dict[str, Any]:
        """
        Assert API response is successful.

        Returns:
            Response JSON data
        """
        assert response.status_code == expected_status, (
            f"Expected status {expected_status}, got {response.status_code}: "
            f"{response.text}"
        )
        data = response.json()
        assert data.get("success") is True, f"Response not successful: {data}"
        return data

    @staticmethod
    def assert_error(
        response: Any,
        expected_status: int,
        expected_code: str | None = None,
    ) -> dict[str, Any]:
        """
        Assert API response is an error.

        Returns:
            Response JSON data
        """
        assert response.status_code == expected_status, (
            f"Expected status {expected_status}, got {response.status_code}: "
            f"{response.text}"
        )
        data = response.json()
        assert data.get("success") is False, f"Response should be error: {data}"
        assert data.get("error") is not None, f"Missing error details: {data}"

        if expected_code:
            actual_code = data["error"].get("code")
            assert actual_code == expected_code, (
                f"Expected error code {expected_code}, got {actual_code}"
            )

        return data

    @staticmethod
    def assert_validation_error(
        response: Any,
        field: str | None = None,
    ) -> dict[str, Any]:
        """Assert API response is a request validation error (422)."""
        data = ApiAssertions.assert_error(response, 422, "VAL_REQUEST_INVALID")

        if field:
            errors = data["error"].get("details", {}).get("validation_errors", [])
            fields = [e.get("field", "") for e in errors]
            assert any(field in f for f in fields), (
                f"Expected validation error for field '{field}', "
                f"got errors for: {fields}"
            )

        return data


@pytest.fixture
def api() -> ApiAssertions:
    """Provide API assertion helpers."""
    return ApiAssertions()
