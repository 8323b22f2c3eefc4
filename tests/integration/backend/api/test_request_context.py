"""
Integration Tests for Request Context Middleware.

Tests that request context is properly propagated through the API.
"""

import pytest
from httpx import AsyncClient


class TestRequestIdHeader:
    """Tests for X-Request-ID header handling."""

    @pytest.mark.asyncio
    async def test_generates_request_id(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        assert len(response.headers["X-Request-ID"]) == 36

    @pytest.mark.asyncio
    async def test_propagates_provided_request_id(self, client: AsyncClient):
        response = await client.get("/api/v1/notes", headers={"X-Request-ID": "wall-req-1"})

        assert response.headers["X-Request-ID"] == "wall-req-1"
        assert response.json()["metadata"]["request_id"] == "wall-req-1"

    @pytest.mark.asyncio
    async def test_response_time_on_error(self, client: AsyncClient):
        """Should include timing even on error responses."""
        response = await client.get("/api/v1/notes/nonexistent-id")

        assert response.status_code == 404
        assert response.headers["X-Response-Time"].endswith("ms")


class TestRequestContextInErrors:
    """Tests for request context in error responses."""

    @pytest.mark.asyncio
    async def test_error_response_includes_request_id(self, client: AsyncClient):
        response = await client.get(
            "/api/v1/notes/nonexistent",
            headers={"X-Request-ID": "error-test-request-id"},
        )

        assert response.status_code == 404
        assert response.json()["metadata"]["request_id"] == "error-test-request-id"

    @pytest.mark.asyncio
    async def test_validation_error_includes_request_id(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/notes",
            json={},
            headers={"X-Request-ID": "validation-error-request-id"},
        )

        assert response.status_code == 422
        assert response.json()["metadata"]["request_id"] == "validation-error-request-id"


class TestBodySizeLimit:
    @pytest.mark.asyncio
    async def test_oversized_body_rejected(self, client: AsyncClient, api):
        """Bodies over max_body_size_bytes are refused before parsing."""
        payload = "x" * (1024 * 1024 + 1)
        response = await client.post(
            "/api/v1/notes",
            content=payload,
            headers={"Content-Type": "application/json"},
        )

        api.assert_error(response, 413, "VAL_PAYLOAD_TOO_LARGE")
