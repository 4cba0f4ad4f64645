"""
Account repository for database operations.

Provides async operations over the ``accounts`` collection: the first
sign-in sync, lookups by identity-provider id or internal id, profile
updates and credit balance changes. Accounts are never deleted here.
"""

import structlog
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from api.src.constants import ACCOUNT_COLLECTION
from api.src.database import MongoConnectionPool
from api.src.errors import NotFoundError, ValidationError, normalize
from api.src.models.account import (
    Account,
    AccountCreate,
    AccountUpdate,
    DEFAULT_CREDIT_BALANCE,
    DEFAULT_PLAN_ID,
)
from api.src.navigation import PROFILE_PATH, PathRevalidator
from shared.metrics import DataAccessMetrics

logger = structlog.get_logger(__name__)


def to_object_id(value: str) -> Optional[ObjectId]:
    """Parse a hex id, returning None for anything malformed."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def account_from_document(doc: Dict[str, Any]) -> Account:
    return Account(
        id=str(doc["_id"]),
        identity_id=doc["identity_id"],
        email=doc["email"],
        username=doc["username"],
        first_name=doc.get("first_name"),
        last_name=doc.get("last_name"),
        photo=doc.get("photo"),
        plan_id=doc.get("plan_id", DEFAULT_PLAN_ID),
        credit_balance=doc.get("credit_balance", DEFAULT_CREDIT_BALANCE),
    )


def new_account_document(data: AccountCreate) -> Dict[str, Any]:
    now = datetime.now(timezone.utc)
    return {
        **data.model_dump(),
        "plan_id": DEFAULT_PLAN_ID,
        "credit_balance": DEFAULT_CREDIT_BALANCE,
        "created_at": now,
        "updated_at": now,
    }


class AccountRepository:
    """Repository for account database operations."""

    def __init__(
        self,
        pool: MongoConnectionPool,
        metrics: Optional[DataAccessMetrics] = None,
        revalidator: Optional[PathRevalidator] = None,
    ):
        """
        Initialize account repository.

        Args:
            pool: MongoDB connection pool
            metrics: Optional operation metrics
            revalidator: Optional page path invalidation tracker
        """
        self.pool = pool
        self.metrics = metrics
        self.revalidator = revalidator

    async def _collection(self):
        db = await self.pool.get_connection()
        return db[ACCOUNT_COLLECTION]

    async def ensure_indexes(self) -> None:
        """Create the unique index that links one account to one identity."""
        try:
            accounts = await self._collection()
            await accounts.create_index([("identity_id", ASCENDING)], unique=True, name="identity_id_unique")
            logger.info("account_indexes_ensured")

        except Exception as e:
            normalize(e)

    async def create_account(self, data: AccountCreate) -> Account:
        """
        Create an account on first sign-in.

        Args:
            data: Identity-provider profile

        Returns:
            Created account

        Raises:
            ValidationError: If the identity is already linked to an account
        """
        try:
            accounts = await self._collection()
            doc = new_account_document(data)
            try:
                result = await accounts.insert_one(doc)
            except DuplicateKeyError:
                logger.warning("account_already_exists", identity_id=data.identity_id)
                raise ValidationError("An account already exists for this identity")
            doc["_id"] = result.inserted_id

            logger.info("account_created", account_id=str(result.inserted_id), identity_id=data.identity_id)
            return account_from_document(doc)

        except Exception as e:
            normalize(e)

    async def sync_account(self, data: AccountCreate) -> Account:
        """
        Return the account linked to an identity, creating it if needed.

        A single upsert against the unique ``identity_id`` index, so
        concurrent first sign-ins end up with one account.

        Args:
            data: Identity-provider profile

        Returns:
            Linked account
        """
        try:
            accounts = await self._collection()
            doc = await accounts.find_one_and_update(
                {"identity_id": data.identity_id},
                {"$setOnInsert": new_account_document(data)},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )

            logger.info("account_synced", account_id=str(doc["_id"]), identity_id=data.identity_id)
            return account_from_document(doc)

        except Exception as e:
            normalize(e)

    async def get_account_by_identity_id(self, identity_id: str) -> Account:
        """
        Get account by identity-provider id.

        Raises:
            NotFoundError: If no account is linked to the identity
        """
        try:
            accounts = await self._collection()
            doc = await accounts.find_one({"identity_id": identity_id})

            if not doc:
                logger.debug("account_not_found", identity_id=identity_id)
                raise NotFoundError("User not found")

            return account_from_document(doc)

        except Exception as e:
            normalize(e)

    async def get_account_by_id(self, account_id: str) -> Account:
        """
        Get account by internal id.

        Raises:
            NotFoundError: If the account does not exist
        """
        try:
            object_id = to_object_id(account_id)
            doc = None
            if object_id is not None:
                accounts = await self._collection()
                doc = await accounts.find_one({"_id": object_id})

            if not doc:
                logger.debug("account_not_found", account_id=account_id)
                raise NotFoundError("User not found")

            return account_from_document(doc)

        except Exception as e:
            normalize(e)

    async def update_account(self, identity_id: str, data: AccountUpdate) -> Account:
        """
        Update profile fields of the account linked to an identity.

        Raises:
            NotFoundError: If no account is linked to the identity
        """
        try:
            accounts = await self._collection()
            doc = await accounts.find_one_and_update(
                {"identity_id": identity_id},
                {"$set": {**data.model_dump(), "updated_at": datetime.now(timezone.utc)}},
                return_document=ReturnDocument.AFTER,
            )

            if not doc:
                logger.debug("account_not_found", identity_id=identity_id)
                raise NotFoundError("User update failed: user not found")

            logger.info("account_updated", account_id=str(doc["_id"]))
            return account_from_document(doc)

        except Exception as e:
            normalize(e)

    async def update_credits(self, account_id: str, credit_fee: int) -> Account:
        """
        Add ``credit_fee`` to the balance (negative values spend credits).

        The balance never goes below zero.

        Raises:
            NotFoundError: If the account does not exist
            ValidationError: If the balance cannot cover the fee
        """
        try:
            object_id = to_object_id(account_id)
            if object_id is None:
                raise NotFoundError("User credits update failed: user not found")

            query: Dict[str, Any] = {"_id": object_id}
            if credit_fee < 0:
                query["credit_balance"] = {"$gte": -credit_fee}

            accounts = await self._collection()
            doc = await accounts.find_one_and_update(
                query,
                {
                    "$inc": {"credit_balance": credit_fee},
                    "$set": {"updated_at": datetime.now(timezone.utc)},
                },
                return_document=ReturnDocument.AFTER,
            )

            if not doc:
                if await accounts.find_one({"_id": object_id}) is None:
                    raise NotFoundError("User credits update failed: user not found")
                logger.warning("insufficient_credits", account_id=account_id, credit_fee=credit_fee)
                raise ValidationError("Insufficient credit balance")

            if self.metrics is not None:
                direction = "spent" if credit_fee < 0 else "granted"
                self.metrics.credits_changed.labels(direction=direction).inc(abs(credit_fee))

            if self.revalidator is not None:
                self.revalidator.revalidate(PROFILE_PATH)

            logger.info(
                "account_credits_updated",
                account_id=account_id,
                credit_fee=credit_fee,
                credit_balance=doc["credit_balance"],
            )
            return account_from_document(doc)

        except Exception as e:
            normalize(e)
