"""Shared pytest fixtures for DirStore tests.

A single FastAPI app is created per test session to avoid duplicate
Prometheus metric registration errors (the instrumentator registers
metrics in the global prometheus_client registry).

The storage backend is manually installed on the app for each test, since
the lifespan context does not run under ASGITransport.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from dirstore.config import (
    DirStoreConfig,
    ObservabilityConfig,
    ServerConfig,
    StorageConfig,
)
from dirstore.server import create_app
from dirstore.storage.local import LocalStorageBackend


@pytest.fixture(scope="session")
def config() -> DirStoreConfig:
    """Create a test DirStoreConfig with metrics enabled."""
    return DirStoreConfig(
        server=ServerConfig(host="127.0.0.1", port=9010),
        storage=StorageConfig(root_dir="/tmp/dirstore-test"),
        observability=ObservabilityConfig(metrics=True),
    )


@pytest.fixture(scope="session")
def app(config: DirStoreConfig):
    """Create a single test FastAPI application for the whole session."""
    return create_app(config)


@pytest.fixture
async def storage(tmp_path):
    """Create and initialize a local storage backend in a temp directory."""
    backend = LocalStorageBackend(str(tmp_path / "objects"))
    await backend.init()
    yield backend
    await backend.close()


@pytest.fixture
async def client(app, storage) -> AsyncClient:
    """Create an async test client backed by a fresh storage root.

    Each test gets its own directory, so no state leaks between tests.
    """
    old_storage = getattr(app.state, "storage", None)
    app.state.storage = storage

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.state.storage = old_storage
