"""
Image repository for database operations.

Provides async CRUD and paginated queries over the ``images`` collection.
Reads enrich each record with a summary of its owning account, the way a
populate on the ``author`` reference would. Writes signal invalidation of
the page path they affect and of the profile page, which lists the
owner's images.

Every failure is passed through ``normalize`` before leaving a method.
"""

import asyncio
import math
import structlog
from contextlib import nullcontext
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument

from api.src.constants import ACCOUNT_COLLECTION, IMAGE_COLLECTION
from api.src.database import MongoConnectionPool
from api.src.errors import AuthorizationError, NotFoundError, ValidationError, normalize
from api.src.models.account import AuthorSummary
from api.src.models.image import (
    ImageCreate,
    ImageListing,
    ImageRecord,
    ImageUpdate,
    PaginatedImages,
)
from api.src.navigation import PROFILE_PATH, Navigator, PathRevalidator
from api.src.repositories.account_repo import to_object_id
from api.src.services.asset_gateway import CloudinaryGateway
from api.src.utils.images import get_image_size
from shared.metrics import DataAccessMetrics

logger = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 9
AUTHOR_PROJECTION = {"first_name": 1, "last_name": 1, "identity_id": 1}
NEWEST_FIRST = [("updated_at", -1), ("_id", -1)]
MAX_SKIP = 2 ** 63 - 1


def image_from_document(doc: Dict[str, Any], author: Optional[AuthorSummary] = None) -> ImageRecord:
    fields = {key: value for key, value in doc.items() if key not in ("_id", "author")}
    return ImageRecord(
        id=str(doc["_id"]),
        author=author if author is not None else str(doc["author"]),
        **fields,
    )


def total_pages(total_count: int, page_size: int) -> int:
    return math.ceil(total_count / page_size)


def stored_fields(image: ImageCreate) -> Dict[str, Any]:
    """Mutable fields of an image with its rendered width and height."""
    fields = image.model_dump(exclude={"id"})
    fields["width"] = get_image_size(image.transformation_type, fields, "width")
    fields["height"] = get_image_size(image.transformation_type, fields, "height")
    return fields


class ImageRepository:
    """Repository for image database operations."""

    def __init__(
        self,
        pool: MongoConnectionPool,
        gateway: CloudinaryGateway,
        revalidator: PathRevalidator,
        metrics: Optional[DataAccessMetrics] = None,
    ):
        """
        Initialize image repository.

        Args:
            pool: MongoDB connection pool
            gateway: Remote asset search gateway
            revalidator: Page path invalidation tracker
            metrics: Optional operation metrics
        """
        self.pool = pool
        self.gateway = gateway
        self.revalidator = revalidator
        self.metrics = metrics

    def _track(self, operation: str):
        if self.metrics is None:
            return nullcontext()
        return self.metrics.track("images", operation)

    async def _collections(self):
        db = await self.pool.get_connection()
        return db[IMAGE_COLLECTION], db[ACCOUNT_COLLECTION]

    def _revalidate(self, path: str) -> None:
        for page_path in {path, PROFILE_PATH}:
            self.revalidator.revalidate(page_path)

    async def _with_authors(self, docs: List[Dict[str, Any]], accounts) -> List[ImageRecord]:
        author_ids = list({doc["author"] for doc in docs})
        authors: Dict[Any, AuthorSummary] = {}

        if author_ids:
            cursor = accounts.find({"_id": {"$in": author_ids}}, AUTHOR_PROJECTION)
            for account in await cursor.to_list(length=None):
                authors[account["_id"]] = AuthorSummary(
                    id=str(account["_id"]),
                    first_name=account.get("first_name"),
                    last_name=account.get("last_name"),
                    identity_id=account.get("identity_id"),
                )

        return [image_from_document(doc, authors.get(doc["author"])) for doc in docs]

    async def _page(
        self,
        images,
        accounts,
        query: Dict[str, Any],
        page: int,
        limit: int,
        *extra_counts: Dict[str, Any],
    ):
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive integers")

        skip_amount = (page - 1) * limit

        async def fetch_page() -> List[Dict[str, Any]]:
            # BSON cannot encode skips past the 8-byte range
            if skip_amount > MAX_SKIP:
                logger.debug("page_beyond_addressable_range", page=page, limit=limit)
                return []
            cursor = images.find(query).sort(NEWEST_FIRST).skip(skip_amount).limit(limit)
            return await cursor.to_list(length=None)

        docs, total_count, *counts = await asyncio.gather(
            fetch_page(),
            images.count_documents(query),
            *(images.count_documents(extra) for extra in extra_counts),
        )

        data = await self._with_authors(docs, accounts)
        return data, total_pages(total_count, limit), counts

    async def add_image(self, image: ImageCreate, owner_account_id: str, path: str) -> ImageRecord:
        """
        Store a new image owned by an account.

        Args:
            image: Image fields
            owner_account_id: Internal id of the owning account
            path: Page path to revalidate

        Returns:
            Created image record

        Raises:
            NotFoundError: If the owner account does not exist
        """
        try:
            with self._track("add"):
                images, accounts = await self._collections()

                owner_id = to_object_id(owner_account_id)
                owner = await accounts.find_one({"_id": owner_id}) if owner_id is not None else None
                if not owner:
                    logger.warning("image_owner_not_found", account_id=owner_account_id)
                    raise NotFoundError("User not found")

                now = datetime.now(timezone.utc)
                doc = {
                    **stored_fields(image),
                    "author": owner["_id"],
                    "created_at": now,
                    "updated_at": now,
                }
                result = await images.insert_one(doc)
                doc["_id"] = result.inserted_id

                self._revalidate(path)
                logger.info("image_created", image_id=str(result.inserted_id), account_id=owner_account_id)
                return image_from_document(doc)

        except Exception as e:
            normalize(e)

    async def update_image(self, image: ImageUpdate, caller_account_id: str, path: str) -> ImageRecord:
        """
        Replace the mutable fields of an image owned by the caller.

        Args:
            image: Image id and new field values
            caller_account_id: Internal id of the calling account
            path: Page path to revalidate

        Returns:
            Updated image record

        Raises:
            NotFoundError: If the image does not exist
            AuthorizationError: If the caller does not own the image
        """
        try:
            with self._track("update"):
                images, _ = await self._collections()

                image_id = to_object_id(image.id)
                existing = await images.find_one({"_id": image_id}) if image_id is not None else None
                if not existing:
                    logger.debug("image_not_found", image_id=image.id)
                    raise NotFoundError("Image not found")

                if str(existing["author"]) != caller_account_id:
                    logger.warning(
                        "image_update_forbidden",
                        image_id=image.id,
                        owner_id=str(existing["author"]),
                        caller_id=caller_account_id,
                    )
                    raise AuthorizationError("Only the owner can modify this image")

                updated = await images.find_one_and_update(
                    {"_id": image_id},
                    {"$set": {**stored_fields(image), "updated_at": datetime.now(timezone.utc)}},
                    return_document=ReturnDocument.AFTER,
                )
                if not updated:
                    raise NotFoundError("Image not found")

                self._revalidate(path)
                logger.info("image_updated", image_id=image.id, account_id=caller_account_id)
                return image_from_document(updated)

        except Exception as e:
            normalize(e)

    async def delete_image(
        self,
        image_id: str,
        navigator: Navigator,
        caller_account_id: str,
        redirect_to: str = "/",
    ) -> None:
        """
        Delete an image owned by the caller if it exists.

        Deleting an absent image is not an error. ``navigator`` is sent to
        ``redirect_to`` on every exit path, whether or not deletion failed.

        Args:
            image_id: Image id
            navigator: Receives the post-delete redirect
            caller_account_id: Internal id of the calling account
            redirect_to: Redirect target

        Raises:
            AuthorizationError: If the caller does not own the image
        """
        try:
            with self._track("delete"):
                object_id = to_object_id(image_id)
                existing = None
                if object_id is not None:
                    images, _ = await self._collections()
                    existing = await images.find_one({"_id": object_id})

                if not existing:
                    logger.debug("image_not_found", image_id=image_id)
                    return

                if str(existing["author"]) != caller_account_id:
                    logger.warning(
                        "image_delete_forbidden",
                        image_id=image_id,
                        owner_id=str(existing["author"]),
                        caller_id=caller_account_id,
                    )
                    raise AuthorizationError("Only the owner can delete this image")

                result = await images.delete_one({"_id": object_id, "author": existing["author"]})
                if result.deleted_count:
                    self._revalidate(redirect_to)
                    logger.info("image_deleted", image_id=image_id, account_id=caller_account_id)

        except Exception as e:
            normalize(e)
        finally:
            navigator.redirect(redirect_to)

    async def get_image_by_id(self, image_id: str) -> ImageRecord:
        """
        Get an image with its owner's summary.

        Raises:
            NotFoundError: If the image does not exist
        """
        try:
            with self._track("get_by_id"):
                images, accounts = await self._collections()

                object_id = to_object_id(image_id)
                doc = await images.find_one({"_id": object_id}) if object_id is not None else None
                if not doc:
                    logger.debug("image_not_found", image_id=image_id)
                    raise NotFoundError("Image not found")

                records = await self._with_authors([doc], accounts)
                return records[0]

        except Exception as e:
            normalize(e)

    async def get_all_images(
        self,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        search_query: Optional[str] = None,
    ) -> ImageListing:
        """
        List images, most recently updated first.

        With a search query, only images whose ``public_id`` matches a
        remote asset search hit are listed. ``total_pages`` is computed from
        the filtered count; ``saved_images`` counts every stored image.

        Args:
            page: 1-indexed page number
            limit: Page size
            search_query: Remote search expression

        Returns:
            Page of images with page count and saved image count
        """
        try:
            with self._track("get_all"):
                images, accounts = await self._collections()

                query: Dict[str, Any] = {}
                if search_query:
                    public_ids = await self.gateway.search_public_ids(search_query)
                    query = {"public_id": {"$in": public_ids}}

                data, pages, (saved_images,) = await self._page(images, accounts, query, page, limit, {})

                logger.debug(
                    "images_listed",
                    page=page,
                    limit=limit,
                    search_query=search_query,
                    returned=len(data),
                    total_pages=pages,
                )
                return ImageListing(data=data, total_pages=pages, saved_images=saved_images)

        except Exception as e:
            normalize(e)

    async def get_user_images(
        self,
        owner_account_id: str,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> PaginatedImages:
        """
        List one account's images, most recently updated first.

        Args:
            owner_account_id: Internal id of the owning account
            page: 1-indexed page number
            limit: Page size

        Returns:
            Page of images with page count
        """
        try:
            with self._track("get_by_owner"):
                images, accounts = await self._collections()

                owner_id = to_object_id(owner_account_id)
                data, pages, _ = await self._page(images, accounts, {"author": owner_id}, page, limit)
                return PaginatedImages(data=data, total_pages=pages)

        except Exception as e:
            normalize(e)
