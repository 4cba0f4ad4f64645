"""
Fixtures for HTTP contract tests.

The application is built by ``create_app`` with the in-memory database,
a mocked asset gateway, an image store served by ``httpx.MockTransport``
and an identity provider that trusts the ``X-Test-Identity`` header.
"""

import httpx
import pytest
from unittest.mock import AsyncMock

from fastapi.testclient import TestClient

from api.src.config import Settings
from api.src.database import MongoConnectionPool
from api.src.main import create_app
from tests.fakes import PNG_BYTES, FakeMongoClient, HeaderIdentityProvider


@pytest.fixture
def settings() -> Settings:
    return Settings(
        mongodb_url="mongodb://localhost:27017",
        cors_enabled=False,
        log_format="text",
    )


@pytest.fixture
def gateway() -> AsyncMock:
    gateway = AsyncMock()
    gateway.search_public_ids.return_value = []
    return gateway


@pytest.fixture
def image_store() -> httpx.AsyncClient:
    """Serves PNG bytes for every URL except ones ending in ``missing.jpg``."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("missing.jpg"):
            return httpx.Response(404)
        return httpx.Response(200, content=PNG_BYTES, headers={"Content-Type": "image/png"})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def app(settings, fake_db, gateway, image_store):
    pool = MongoConnectionPool(
        settings.mongodb_url,
        settings.mongodb_db_name,
        client_factory=lambda url, **kwargs: FakeMongoClient(fake_db),
    )
    return create_app(
        settings,
        db_pool=pool,
        asset_gateway=gateway,
        identity_provider=HeaderIdentityProvider(),
        download_client=image_store,
    )


@pytest.fixture
def client(app):
    with TestClient(app, follow_redirects=False) as client:
        yield client
