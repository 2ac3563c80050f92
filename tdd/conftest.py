"""
Root conftest.py - Shared fixtures for all test types.

This file is automatically loaded by pytest and provides:
- Temporary repositories roots and RepositoryStore instances
- FastAPI test client wired to the temporary store
- HTTP Basic credentials for push tests
- A live uvicorn server for tests that drive a real Git client
"""
import base64
import shutil
import socket
import sys
import tempfile
import threading
import time
from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio
import uvicorn
from httpx import ASGITransport, AsyncClient

# Add backend and tdd to path for imports
backend_path = Path(__file__).parent.parent / "backend"
tdd_path = Path(__file__).parent
sys.path.insert(0, str(backend_path))
sys.path.insert(0, str(tdd_path))

from repohost.dependencies import get_authenticator, get_repo_store
from repohost.main import app
from repohost.services.auth import BasicAuthenticator
from repohost.services.engine import DulwichEngine
from repohost.services.paths import PathResolver
from repohost.services.repo_store import RepositoryStore

TEST_USERNAME = "pusher"
TEST_PASSWORD = "s3cret"


# -----------------------------------------------------------------------------
# Repository Storage Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def temp_repos_dir():
    """Create a temporary repositories root.

    Uses resolve() to get the full path and avoid Windows 8.3 short name issues
    that can cause dulwich init_bare to fail.
    """
    temp_dir = Path(tempfile.mkdtemp()).resolve()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def temp_source_dir():
    """A second temporary directory for clone sources outside the root."""
    temp_dir = Path(tempfile.mkdtemp()).resolve()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def repo_store(temp_repos_dir) -> RepositoryStore:
    """RepositoryStore over the temporary root, backed by dulwich."""
    return RepositoryStore(PathResolver(temp_repos_dir), DulwichEngine())


# -----------------------------------------------------------------------------
# API Client Fixtures
# -----------------------------------------------------------------------------

@pytest_asyncio.fixture
async def client(repo_store) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client for API testing.

    The application is pointed at the temporary repository store and a
    known set of push credentials.
    """
    app.dependency_overrides[get_repo_store] = lambda: repo_store
    app.dependency_overrides[get_authenticator] = lambda: BasicAuthenticator(
        {TEST_USERNAME: TEST_PASSWORD}, realm="repohost-test"
    )

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def live_server(repo_store):
    """Serve the application on a real socket and yield its base URL.

    Runs uvicorn in a daemon thread so blocking Git clients can talk to it.
    """
    app.dependency_overrides[get_repo_store] = lambda: repo_store
    app.dependency_overrides[get_authenticator] = lambda: BasicAuthenticator(
        {TEST_USERNAME: TEST_PASSWORD}, realm="repohost-test"
    )

    # Find an available port
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()

    config = uvicorn.Config(
        app, host="127.0.0.1", port=port, log_level="warning", log_config=None, lifespan="off"
    )
    server = uvicorn.Server(config)
    thread = threading.Thread(target=server.run, daemon=True)
    thread.start()

    deadline = time.monotonic() + 10
    while not server.started:
        assert thread.is_alive() and time.monotonic() < deadline, "Server failed to start"
        time.sleep(0.05)

    yield f"http://127.0.0.1:{port}"

    server.should_exit = True
    thread.join(timeout=5)
    app.dependency_overrides.clear()


@pytest.fixture
def credentials() -> tuple[str, str]:
    """Username and password of the test pusher."""
    return TEST_USERNAME, TEST_PASSWORD


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Authorization header for the test pusher."""
    token = base64.b64encode(f"{TEST_USERNAME}:{TEST_PASSWORD}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


# -----------------------------------------------------------------------------
# Marker-based fixtures
# -----------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _mark_test(request):
    """Automatically apply markers based on test location."""
    if "unit" in str(request.fspath):
        request.applymarker(pytest.mark.unit)
    elif "integration" in str(request.fspath):
        request.applymarker(pytest.mark.integration)
