"""
Unit tests for the account repository.

Tests cover:
- First sign-in account creation with default plan and credits
- Lookups by identity-provider id and by internal id
- Profile updates
- Credit spending and granting, never below zero
- Idempotent first sign-in sync backed by a unique identity index
"""

import pytest
from bson import ObjectId

from api.src.constants import CREDIT_FEE
from api.src.database import MongoConnectionPool
from api.src.errors import ConfigurationError, NotFoundError, ValidationError
from api.src.models.account import AccountCreate, AccountUpdate
from api.src.navigation import PathRevalidator
from api.src.repositories.account_repo import AccountRepository, to_object_id


@pytest.fixture
def repo(mongo_pool, data_metrics) -> AccountRepository:
    return AccountRepository(mongo_pool, metrics=data_metrics)


class TestToObjectId:
    """Test id parsing."""

    def test_valid_hex(self):
        oid = ObjectId()
        assert to_object_id(str(oid)) == oid

    def test_object_id_passthrough(self):
        oid = ObjectId()
        assert to_object_id(oid) is oid

    @pytest.mark.parametrize("value", ["", "not-an-id", "123", None])
    def test_malformed_is_none(self, value):
        assert to_object_id(value) is None


class TestCreateAccount:
    """Test account creation."""

    @pytest.mark.asyncio
    async def test_defaults(self, repo, fake_db):
        account = await repo.create_account(
            AccountCreate(identity_id="user_new", email="new@pixelyze.dev", username="newbie")
        )

        assert account.identity_id == "user_new"
        assert account.credit_balance == 10
        assert account.plan_id == 1
        stored = fake_db["accounts"].docs[0]
        assert str(stored["_id"]) == account.id
        assert stored["created_at"] == stored["updated_at"]


    @pytest.mark.asyncio
    async def test_duplicate_identity_is_rejected(self, repo, fake_db):
        await repo.ensure_indexes()
        data = AccountCreate(identity_id="user_new", email="new@pixelyze.dev", username="newbie")
        await repo.create_account(data)

        with pytest.raises(ValidationError) as exc_info:
            await repo.create_account(data)

        assert str(exc_info.value) == "Validation Error: An account already exists for this identity"
        assert len(fake_db["accounts"].docs) == 1


class TestEnsureIndexes:
    """Test index creation at startup."""

    @pytest.mark.asyncio
    async def test_unique_identity_index(self, repo, fake_db):
        await repo.ensure_indexes()

        assert fake_db["accounts"].indexes["identity_id_unique"] == {"fields": ["identity_id"], "unique": True}


class TestSyncAccount:
    """Test the first sign-in sync."""

    @pytest.mark.asyncio
    async def test_creates_then_returns_existing(self, repo, fake_db):
        await repo.ensure_indexes()
        data = AccountCreate(identity_id="user_new", email="new@pixelyze.dev", username="newbie")

        first = await repo.sync_account(data)
        second = await repo.sync_account(data)

        assert first.id == second.id
        assert first.credit_balance == 10
        assert len(fake_db["accounts"].docs) == 1

    @pytest.mark.asyncio
    async def test_existing_account_is_left_untouched(self, repo, seed_account, fake_db):
        doc = seed_account("user_ada", credit_balance=3)

        account = await repo.sync_account(
            AccountCreate(identity_id="user_ada", email="other@pixelyze.dev", username="renamed")
        )

        assert account.id == str(doc["_id"])
        assert account.credit_balance == 3
        assert account.username == "user_ada"
        assert len(fake_db["accounts"].docs) == 1


class TestGetAccount:
    """Test account lookups."""

    @pytest.mark.asyncio
    async def test_by_identity_id(self, repo, seed_account):
        doc = seed_account("user_ada", credit_balance=7)

        account = await repo.get_account_by_identity_id("user_ada")

        assert account.id == str(doc["_id"])
        assert account.credit_balance == 7

    @pytest.mark.asyncio
    async def test_unknown_identity_id(self, repo):
        with pytest.raises(NotFoundError) as exc_info:
            await repo.get_account_by_identity_id("user_missing")

        assert str(exc_info.value) == "Not Found Error: User not found"

    @pytest.mark.asyncio
    async def test_by_internal_id(self, repo, seed_account):
        doc = seed_account("user_ada")

        account = await repo.get_account_by_id(str(doc["_id"]))

        assert account.identity_id == "user_ada"

    @pytest.mark.asyncio
    async def test_malformed_internal_id_is_not_found(self, repo):
        with pytest.raises(NotFoundError):
            await repo.get_account_by_id("zzz")


class TestUpdateAccount:
    """Test profile updates."""

    @pytest.mark.asyncio
    async def test_update_fields(self, repo, seed_account):
        seed_account("user_ada")

        account = await repo.update_account(
            "user_ada", AccountUpdate(username="countess", first_name="Augusta", last_name="King")
        )

        assert account.username == "countess"
        assert account.first_name == "Augusta"

    @pytest.mark.asyncio
    async def test_update_unknown_identity(self, repo):
        with pytest.raises(NotFoundError, match="user not found"):
            await repo.update_account("user_missing", AccountUpdate(username="ghost"))


class TestUpdateCredits:
    """Test atomic credit balance changes."""

    @pytest.mark.asyncio
    async def test_spend_one_credit(self, repo, seed_account, metrics_registry):
        doc = seed_account("user_ada", credit_balance=3)

        account = await repo.update_credits(str(doc["_id"]), CREDIT_FEE)

        assert account.credit_balance == 2
        assert metrics_registry.get_sample_value("pixelyze_credits_changed_total", {"direction": "spent"}) == 1.0

    @pytest.mark.asyncio
    async def test_credit_change_revalidates_profile(self, mongo_pool, seed_account):
        revalidator = PathRevalidator()
        repo = AccountRepository(mongo_pool, revalidator=revalidator)
        doc = seed_account("user_ada", credit_balance=3)

        await repo.update_credits(str(doc["_id"]), CREDIT_FEE)

        assert revalidator.version("/profile") == 1

    @pytest.mark.asyncio
    async def test_grant_credits(self, repo, seed_account, metrics_registry):
        doc = seed_account("user_ada", credit_balance=0)

        account = await repo.update_credits(str(doc["_id"]), 5)

        assert account.credit_balance == 5
        assert metrics_registry.get_sample_value("pixelyze_credits_changed_total", {"direction": "granted"}) == 5.0

    @pytest.mark.asyncio
    async def test_insufficient_balance_leaves_balance_untouched(self, repo, seed_account, fake_db):
        doc = seed_account("user_ada", credit_balance=0)

        with pytest.raises(ValidationError, match="Insufficient credit balance"):
            await repo.update_credits(str(doc["_id"]), CREDIT_FEE)

        assert fake_db["accounts"].docs[0]["credit_balance"] == 0

    @pytest.mark.asyncio
    async def test_unknown_account(self, repo):
        with pytest.raises(NotFoundError):
            await repo.update_credits(str(ObjectId()), CREDIT_FEE)

    @pytest.mark.asyncio
    async def test_malformed_account_id(self, repo):
        with pytest.raises(NotFoundError):
            await repo.update_credits("bogus", 1)


class TestConnectionFailure:
    """Test that driver failures surface as normalized errors."""

    @pytest.mark.asyncio
    async def test_missing_url_is_configuration_error(self):
        repo = AccountRepository(MongoConnectionPool(None, "Pixelyze"))

        with pytest.raises(ConfigurationError) as exc_info:
            await repo.get_account_by_identity_id("user_ada")

        assert str(exc_info.value) == "Configuration Error: Missing MONGODB_URL"
