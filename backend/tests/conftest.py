"""
Memory Lane Backend — Test Configuration (conftest.py)
=======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Repository, schema and route tests run against a real SQLite file
       (aiosqlite) in pytest's tmp_path; pure validation tests need nothing.

Fixture Hierarchy (all function-scoped):
    ├── database:           Database on a fresh SQLite file, tables created
    │   └── db_session:     AsyncSession from that database
    ├── empty_database:     Database on a fresh SQLite file, no tables
    ├── image_store:        parametrized over database / inline / filesystem
    │   └── repository:     MemoryRepository using that store
    ├── app_settings:       Settings pointing at the temp database and storage
    │   └── test_client:    HTTPX AsyncClient for the app (database store)
    ├── filesystem_client:  HTTPX AsyncClient for the app (filesystem store)
    ├── mock_db_session:    AsyncMock session for failure-path tests
    └── sample_image_bytes / sample_png_bytes
"""

import os
import tempfile
from unittest.mock import AsyncMock, MagicMock

# Override settings for testing BEFORE any memorylane imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + os.path.join(
    tempfile.mkdtemp(prefix="memorylane_test_"), "default.db"
)
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="memorylane_uploads_")
os.environ["IMAGE_STORAGE"] = "database"
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from memorylane.config import Settings
from memorylane.database import Database
from memorylane.main import create_app
from memorylane.services.image_store import build_image_store
from memorylane.services.memory_repository import MemoryRepository


def sqlite_url(path) -> str:
    return f"sqlite+aiosqlite:///{path}"


# ══════════════════════════════════════════════════════════════════════════
# Database Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def database(tmp_path):
    """A Database on a throwaway SQLite file with every table created."""
    db = Database(sqlite_url(tmp_path / "memories.db"))
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def empty_database(tmp_path):
    """A Database on a throwaway SQLite file with no tables (migration tests)."""
    db = Database(sqlite_url(tmp_path / "empty.db"))
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def db_session(database):
    async with database.session() as session:
        yield session


@pytest.fixture
def mock_db_session():
    """
    Provides a mock async database session.

    Used where a test needs a query to fail in a specific way without a
    real database.
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.get = AsyncMock(return_value=None)
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


# ══════════════════════════════════════════════════════════════════════════
# Service Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture(params=["database", "inline", "filesystem"])
def image_store(request, tmp_path):
    """Each test using this fixture runs once per storage strategy."""
    return build_image_store(request.param, str(tmp_path / "uploads"))


@pytest.fixture
def repository(image_store):
    return MemoryRepository(image_store)


@pytest.fixture
def sample_image_bytes():
    """
    Minimal JPEG bytes: Start of Image (FFD8) + JFIF marker + End of Image (FFD9).

    Content is never sniffed, so this only has to be non-empty and stable.
    """
    return (
        b'\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00'
        b'\xff\xd9'
    )


@pytest.fixture
def sample_png_bytes():
    return b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


# ══════════════════════════════════════════════════════════════════════════
# API Client Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def app_settings(tmp_path):
    return Settings(
        database_url=sqlite_url(tmp_path / "memories.db"),
        image_storage="database",
        storage_root=str(tmp_path / "uploads"),
        environment="test",
        log_level="WARNING",
    )


def _client_for(app):
    # ASGITransport does not run the lifespan, so the test wires the
    # Database onto app.state itself.
    transport = ASGITransport(app=app)
    return AsyncClient(transport=transport, base_url="http://test")


@pytest_asyncio.fixture
async def test_client(database, app_settings):
    """
    HTTPX AsyncClient talking to a fresh app that uses the database store.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    app = create_app(app_settings)
    app.state.database = database
    async with _client_for(app) as client:
        yield client


@pytest_asyncio.fixture
async def filesystem_client(database, app_settings):
    fs_settings = app_settings.model_copy(update={"image_storage": "filesystem"})
    app = create_app(fs_settings)
    app.state.database = database
    async with _client_for(app) as client:
        yield client
