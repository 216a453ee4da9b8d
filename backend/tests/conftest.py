import os
import warnings

# Set environment variables BEFORE importing wishsync modules
os.environ["DATABASE_DSN"] = "sqlite+aiosqlite:///file:wishsync_tests?mode=memory&cache=shared&uri=true"
os.environ["LOG_LEVEL"] = "WARNING"

warnings.filterwarnings("ignore", category=DeprecationWarning)

import pytest
from httpx import ASGITransport, AsyncClient

from wishsync.client import WishlistClient
from wishsync.core.config import Settings
from wishsync.core.prefs import LocalPreferences
from wishsync.db.session import DocumentStore
from wishsync.main import create_app


def pytest_configure(config):
    warnings.filterwarnings("ignore", category=DeprecationWarning)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def store(tmp_path):
    store = DocumentStore(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await store.ensure_schema_ready()
    yield store
    await store.close()


@pytest.fixture
async def broken_store(tmp_path):
    """A store whose database file can never be opened."""
    store = DocumentStore(f"sqlite+aiosqlite:///{tmp_path / 'missing-dir' / 'store.db'}")
    yield store
    await store.close()


@pytest.fixture
def make_client(store, tmp_path):
    """Build one device (own preferences file) sharing the test store."""

    def _make(name: str, **overrides) -> WishlistClient:
        prefs = LocalPreferences(tmp_path / f"{name}-prefs.json")
        return WishlistClient(store, prefs, settings=Settings(**overrides))

    return _make


@pytest.fixture
async def async_client(store):
    app = create_app(store=store)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
