import sys
from pathlib import Path

project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from typing import AsyncGenerator

import pytest
import pytest_asyncio
import httpx
from httpx import AsyncClient

from file_registry_service.blob_store import LocalBlobStore
from file_registry_service.broadcaster import Broadcaster
from file_registry_service.config import settings
from file_registry_service.dependencies import get_registry, get_settings
from file_registry_service.main import app
from file_registry_service.registry import FileRegistry
from file_registry_service.schemas import Principal
from file_registry_service.stores import JsonMetadataStore, SqlMetadataStore

ALICE = Principal(id="student-alice", name="alice")
BOB = Principal(id="student-bob", name="bob")
ADMIN = Principal(id="admin-1", name="ms-admin", is_admin=True)

ALICE_HEADERS = {"X-Principal-Id": ALICE.id, "X-Principal-Name": ALICE.name}
BOB_HEADERS = {"X-Principal-Id": BOB.id, "X-Principal-Name": BOB.name}
ADMIN_HEADERS = {"X-Principal-Id": ADMIN.id, "X-Principal-Name": ADMIN.name, "X-Principal-Admin": "true"}

async def make_store(backend: str, tmp_path: Path):
    if backend == "sql":
        store = SqlMetadataStore(f"sqlite+aiosqlite:///{tmp_path / 'files.db'}")
    else:
        store = JsonMetadataStore(tmp_path / "data" / "files.json")
    await store.initialize()
    return store

@pytest_asyncio.fixture(scope="function", params=["json", "sql"])
async def metadata_store(request, tmp_path):
    store = await make_store(request.param, tmp_path)
    yield store
    await store.close()

@pytest_asyncio.fixture(scope="function")
async def json_store(tmp_path):
    store = await make_store("json", tmp_path)
    yield store
    await store.close()

@pytest_asyncio.fixture(scope="function")
async def sql_store(tmp_path):
    store = await make_store("sql", tmp_path)
    yield store
    await store.close()

@pytest.fixture(scope="function")
def blob_store(tmp_path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "uploads")

@pytest.fixture(scope="function")
def broadcaster() -> Broadcaster:
    return Broadcaster(queue_size=100)

@pytest.fixture(scope="function")
def registry(metadata_store, blob_store, broadcaster) -> FileRegistry:
    return FileRegistry(
        store=metadata_store,
        blobs=blob_store,
        broadcaster=broadcaster,
        max_upload_bytes=1024 * 1024,
        public_base_url="http://classroom.test",
    )

@pytest.fixture(scope="function")
def json_registry(json_store, blob_store, broadcaster) -> FileRegistry:
    return FileRegistry(
        store=json_store,
        blobs=blob_store,
        broadcaster=broadcaster,
        max_upload_bytes=1024 * 1024,
    )

@pytest.fixture(scope="function")
def test_settings():
    return settings.model_copy(update={"ALLOW_ANONYMOUS_UPLOADS": False, "RECENT_UPLOADS_LIMIT": 10, "GATEWAY_SECRET": None})

@pytest_asyncio.fixture(scope="function")
async def async_client(json_registry: FileRegistry, test_settings) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_registry] = lambda: json_registry
    app.dependency_overrides[get_settings] = lambda: test_settings

    transport = httpx.ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

    app.dependency_overrides.clear()

@pytest.fixture(scope="function")
def mock_registry_settings(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, 'STORAGE_BASE_PATH', tmp_path / "uploads_test")
    monkeypatch.setattr(settings, 'METADATA_BACKEND', "json")
    monkeypatch.setattr(settings, 'METADATA_JSON_PATH', tmp_path / "data_test" / "files.json")
    monkeypatch.setattr(settings, 'PUBLIC_BASE_URL', None)
    monkeypatch.setattr(settings, 'GATEWAY_SECRET', None)
    return settings
