# ─────────────────────────────────────────────────────────────────────────────
# Test Fixtures — shared across all tests
# ─────────────────────────────────────────────────────────────────────────────
# No network, no MongoDB, no Cloud Storage, no OpenAI:
#   - documents live in the in-memory store
#   - the storage SDK client is a MagicMock (uploads are asserted on it)
#   - remote images are served by httpx.MockTransport
#   - the OpenAI client is a MagicMock with AsyncMock endpoints
# ─────────────────────────────────────────────────────────────────────────────


from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from pinboard.config import Settings
from pinboard.main import create_app, init_state
from pinboard.rate_limit import limiter
from pinboard.schemas import UserProfile
from pinboard.services.labeler import AutoLabeler, LabelCatalog
from pinboard.services.pins import PinOrchestrator
from pinboard.services.relocator import ImageRelocator
from pinboard.services.tasks import BackgroundTaskRunner
from pinboard.storage.object_storage import ObjectStorage
from pinboard.store.documents import DocumentStore

BUCKET = "pinterest-clone"
OWNER_ID = "5cad310f7672ca00146485a8"
SAVER_ID = "5cad310f7672ca00146485b9"
LABELS_REPLY = '["TEST-LABEL-A", "TEST-LABEL-B"]'
AI_IMAGE_URL = "https://stub-ai-image-url/image.png"


def make_completion(content: str | None) -> SimpleNamespace:
    """Shape of an OpenAI chat completion, as far as the services read it."""
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def auth_headers(user: UserProfile) -> dict[str, str]:
    return {
        "X-User-Id": user.user_id,
        "X-User-Name": user.display_name,
        "X-User-Service": user.service,
    }


@pytest.fixture
def test_settings() -> Settings:
    """Settings configured for testing — memory store, named bucket, stub key."""
    return Settings(
        mongodb_url="",
        storage_bucket=BUCKET,
        openai_api_key="stub-key",
        log_json=False,
        log_level="DEBUG",
    )


@pytest.fixture
def owner() -> UserProfile:
    return UserProfile(user_id=OWNER_ID, display_name="tester-twitter", service="twitter")


@pytest.fixture
def saver() -> UserProfile:
    return UserProfile(user_id=SAVER_ID, display_name="tester-google", service="google")


@pytest.fixture
def store() -> DocumentStore:
    return DocumentStore()


@pytest.fixture
def mongo_database() -> MagicMock:
    """Stand-in for a pymongo AsyncDatabase; one AsyncMock-backed collection per name."""
    database = MagicMock()
    database.command = AsyncMock(return_value={"ok": 1.0})
    collections: dict[str, MagicMock] = {}

    def _collection(name: str) -> MagicMock:
        if name not in collections:
            collection = MagicMock()
            collection.name = name
            for method in (
                "insert_one",
                "count_documents",
                "find_one",
                "find_one_and_update",
                "find_one_and_delete",
            ):
                setattr(collection, method, AsyncMock())
            collections[name] = collection
        return collections[name]

    database.__getitem__.side_effect = _collection
    return database


@pytest.fixture
async def mongo_store(mongo_database: MagicMock, monkeypatch: pytest.MonkeyPatch) -> DocumentStore:
    """DocumentStore connected through a mocked AsyncMongoClient."""
    client = MagicMock()
    client.__getitem__.return_value = mongo_database
    client.close = AsyncMock()
    monkeypatch.setattr("pinboard.store.documents.AsyncMongoClient", MagicMock(return_value=client))

    store = DocumentStore(url="mongodb://mongo.test:27017", database="pinboard")
    await store.connect()
    return store


@pytest.fixture
def storage_client() -> MagicMock:
    """Stand-in for google.cloud.storage.Client."""
    return MagicMock()


@pytest.fixture
def uploaded_blob(storage_client: MagicMock) -> MagicMock:
    """The blob every upload writes to (MagicMock returns the same child)."""
    return storage_client.bucket.return_value.blob.return_value


@pytest.fixture
def storage(storage_client: MagicMock) -> ObjectStorage:
    return ObjectStorage(bucket_name=BUCKET, client=storage_client)


@pytest.fixture
def remote_images() -> dict[str, httpx.Response]:
    """URL → canned response. Unknown URLs answer 404."""
    return {
        "https://stub-4/cat.png": httpx.Response(
            200, content=b"Processed Image data", headers={"content-type": "image/png"}
        ),
    }


@pytest.fixture
async def http_client(remote_images: dict[str, httpx.Response]):
    def handler(request: httpx.Request) -> httpx.Response:
        canned = remote_images.get(f"{request.url.scheme}://{request.url.host}{request.url.path}")
        if canned is None:
            return httpx.Response(404)
        return httpx.Response(canned.status_code, content=canned.content, headers=canned.headers)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        yield client


@pytest.fixture
def openai_client() -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=make_completion(LABELS_REPLY))
    client.images.generate = AsyncMock(
        return_value=SimpleNamespace(data=[SimpleNamespace(url=AI_IMAGE_URL)])
    )
    return client


@pytest.fixture
def tasks() -> BackgroundTaskRunner:
    return BackgroundTaskRunner()


@pytest.fixture
def relocator(
    storage: ObjectStorage, http_client: httpx.AsyncClient, store: DocumentStore
) -> ImageRelocator:
    return ImageRelocator(storage, http_client, store.pin_links)


@pytest.fixture
def catalog(store: DocumentStore) -> LabelCatalog:
    return LabelCatalog(store.tags, cache_size=16)


@pytest.fixture
def labeler(openai_client: MagicMock, catalog: LabelCatalog) -> AutoLabeler:
    return AutoLabeler(openai_client, catalog, model="gpt-4o-mini", max_labels=10)


@pytest.fixture
def orchestrator(
    store: DocumentStore,
    relocator: ImageRelocator,
    labeler: AutoLabeler,
    tasks: BackgroundTaskRunner,
    test_settings: Settings,
) -> PinOrchestrator:
    return PinOrchestrator(store.pins, relocator, labeler, tasks, test_settings)


@pytest.fixture
def app(
    test_settings: Settings,
    store: DocumentStore,
    storage: ObjectStorage,
    http_client: httpx.AsyncClient,
    openai_client: MagicMock,
) -> FastAPI:
    """App with manually-initialized state.

    ASGITransport doesn't run the lifespan, so state is wired here.
    """
    app = create_app()
    init_state(
        app,
        test_settings,
        store=store,
        storage=storage,
        http=http_client,
        openai_client=openai_client,
    )
    limiter.reset()
    return app


@pytest.fixture
async def client(app: FastAPI):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
