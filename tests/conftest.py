"""
Shared test fixtures.

Repositories run against a real ``MongoConnectionPool`` whose driver client
is the in-memory double from ``tests.fakes``.
"""

import pytest
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

from bson import ObjectId
from prometheus_client import CollectorRegistry

from api.src.database import MongoConnectionPool
from api.src.navigation import PathRevalidator
from shared.metrics import DataAccessMetrics
from tests.fakes import FakeDatabase, FakeMongoClient


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase("Pixelyze")


@pytest.fixture
def mongo_pool(fake_db) -> MongoConnectionPool:
    """Connection pool whose driver client is the in-memory double."""
    return MongoConnectionPool(
        "mongodb://localhost:27017",
        "Pixelyze",
        client_factory=lambda url, **kwargs: FakeMongoClient(fake_db),
    )


@pytest.fixture
def revalidator() -> PathRevalidator:
    return PathRevalidator()


@pytest.fixture
def metrics_registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def data_metrics(metrics_registry) -> DataAccessMetrics:
    return DataAccessMetrics(metrics_registry)


@pytest.fixture
def seed_account(fake_db):
    """Insert an account document and return it."""

    def _seed(identity_id: str = "user_ada", credit_balance: int = 10, **fields: Any) -> Dict[str, Any]:
        return fake_db["accounts"].seed(
            identity_id=identity_id,
            email=fields.pop("email", f"{identity_id}@pixelyze.dev"),
            username=fields.pop("username", identity_id),
            first_name=fields.pop("first_name", "Ada"),
            last_name=fields.pop("last_name", "Lovelace"),
            photo=None,
            plan_id=1,
            credit_balance=credit_balance,
            **fields,
        )

    return _seed


@pytest.fixture
def seed_images(fake_db):
    """Insert ``count`` images owned by ``author``; the last one is the newest."""

    def _seed(author: ObjectId, count: int, prefix: str = "img") -> List[Dict[str, Any]]:
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        return [
            fake_db["images"].seed(
                title=f"{prefix} {index}",
                transformation_type="restore",
                public_id=f"aniket_pixelyze/{prefix}_{index}",
                secure_url=f"https://res.cloudinary.com/demo/{prefix}_{index}.jpg",
                width=800,
                height=600,
                config={"restore": True},
                author=author,
                created_at=base + timedelta(minutes=index),
                updated_at=base + timedelta(minutes=index),
            )
            for index in range(count)
        ]

    return _seed
