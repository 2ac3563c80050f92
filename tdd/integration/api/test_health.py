"""
Integration tests for health check and root endpoints.

These tests verify the basic API functionality and availability.
"""
import sys
from pathlib import Path

import pytest

# Add backend to path for imports
backend_path = Path(__file__).parent.parent.parent.parent / "backend"
sys.path.insert(0, str(backend_path))

from shared.assertions import assert_status_code, assert_json_contains


class TestHealthEndpoint:
    """Tests for GET /health endpoint."""

    async def test_health_returns_ok(self, client):
        """Health endpoint returns OK status."""
        response = await client.get("/health")
        assert_status_code(response, 200)
        assert_json_contains(response, {"status": "ok"})

    async def test_health_includes_app_name(self, client):
        """Health endpoint includes app name."""
        response = await client.get("/health")
        result = response.json()
        assert result["app"] == "repohost"


class TestRootEndpoint:
    """Tests for GET / endpoint."""

    async def test_root_returns_welcome(self, client):
        """Root endpoint returns welcome message."""
        response = await client.get("/")
        assert_status_code(response, 200)
        result = response.json()
        assert "repohost" in result["message"]

    async def test_root_includes_docs_and_git_prefix(self, client):
        """Root endpoint points at the docs and the Git endpoints."""
        response = await client.get("/")
        assert_json_contains(response, docs="/docs", git="/git")


class TestOpenAPISchema:
    """Tests for OpenAPI documentation endpoints."""

    async def test_openapi_includes_all_paths(self, client):
        """OpenAPI schema includes all expected paths."""
        response = await client.get("/openapi.json")
        assert_status_code(response, 200)
        paths = response.json()["paths"]

        expected_paths = [
            "/api/repos",
            "/api/repos/info",
            "/api/repos/{repo_name}",
            "/api/repos/{repo_name}/status",
            "/api/repos/{repo_name}/log",
            "/api/repos/{repo_name}/file",
            "/git/{repo_name}/info/refs",
            "/git/{repo_name}/git-upload-pack",
            "/git/{repo_name}/git-receive-pack",
            "/git/{repo_name}/HEAD",
        ]

        for path in expected_paths:
            assert path in paths, f"Expected path {path} not found in OpenAPI schema"
