"""
Image and account action endpoints.

Provides REST API endpoints for:
- Image CRUD (add, update, delete, get one, list with search)
- Image download as a PNG attachment
- First sign-in account sync
- Credit balance changes

Writes require an authenticated caller with a synced account. Image
reads are public.
"""

import shutil
import tempfile
import httpx
import structlog
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import FileResponse, RedirectResponse
from pydantic import BaseModel, Field, field_validator
from starlette.background import BackgroundTask

from api.src.config import Settings
from api.src.dependencies import (
    get_account_repository,
    get_current_account,
    get_download_client,
    get_image_repository,
    get_pagination_params,
    get_settings_dependency,
    require_caller_identity_id,
    PaginationParams,
)
from api.src.errors import AuthorizationError, PixelyzeError
from api.src.models.account import Account, AccountCreate, CreditUpdate
from api.src.models.image import ImageCreate, ImageRecord, ImageUpdate
from api.src.models.pages import ErrorResponse, GalleryPage, PageLinks
from api.src.navigation import HOME_PATH, Navigator, is_page_path
from api.src.repositories.account_repo import AccountRepository
from api.src.repositories.image_repo import ImageRepository
from api.src.utils.images import download
from api.src.utils.query import page_links, remove_keys_from_query

logger = structlog.get_logger(__name__)

images_router = APIRouter(
    prefix="/images",
    tags=["Images"],
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        403: {"model": ErrorResponse, "description": "Forbidden"},
        404: {"model": ErrorResponse, "description": "Not Found"},
        422: {"model": ErrorResponse, "description": "Validation Error"}
    }
)

accounts_router = APIRouter(
    prefix="/accounts",
    tags=["Accounts"],
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        404: {"model": ErrorResponse, "description": "Not Found"},
    }
)


class ImageWriteRequest(BaseModel):
    image: ImageCreate
    path: str = Field(default=HOME_PATH, description="Page path to revalidate")

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not is_page_path(v):
            raise ValueError(f"Unknown page path: {v}")
        return v


class AddImageRequest(ImageWriteRequest):
    pass


class UpdateImageRequest(ImageWriteRequest):
    pass


# ============================================================================
# IMAGE ENDPOINTS
# ============================================================================


@images_router.post("", response_model=ImageRecord, status_code=status.HTTP_201_CREATED)
async def add_image(
    body: AddImageRequest,
    account: Account = Depends(get_current_account),
    images: ImageRepository = Depends(get_image_repository),
) -> ImageRecord:
    """Store a new image owned by the caller."""
    return await images.add_image(body.image, account.id, body.path)


@images_router.put("/{image_id}", response_model=ImageRecord)
async def update_image(
    image_id: str,
    body: UpdateImageRequest,
    account: Account = Depends(get_current_account),
    images: ImageRepository = Depends(get_image_repository),
) -> ImageRecord:
    """Replace an image's fields. Only the owner may do this."""
    update = ImageUpdate(id=image_id, **body.image.model_dump())
    return await images.update_image(update, account.id, body.path)


@images_router.delete("/{image_id}", status_code=status.HTTP_303_SEE_OTHER)
async def delete_image(
    image_id: str,
    account: Account = Depends(get_current_account),
    images: ImageRepository = Depends(get_image_repository),
    settings: Settings = Depends(get_settings_dependency),
) -> RedirectResponse:
    """
    Delete one of the caller's images and navigate home.

    The redirect is answered whether or not the deletion succeeded; a
    failure, including an attempt on someone else's image, is logged.
    """
    navigator = Navigator()
    try:
        await images.delete_image(image_id, navigator, account.id, redirect_to=settings.home_path)
    except PixelyzeError as e:
        logger.warning("image_delete_failed", image_id=image_id, account_id=account.id, error=str(e))

    return RedirectResponse(navigator.target or settings.home_path, status_code=status.HTTP_303_SEE_OTHER)


@images_router.get("/{image_id}", response_model=ImageRecord)
async def get_image(
    image_id: str,
    images: ImageRepository = Depends(get_image_repository),
) -> ImageRecord:
    """One image with its owner's summary."""
    return await images.get_image_by_id(image_id)


@images_router.get(
    "/{image_id}/download",
    response_class=FileResponse,
    responses={200: {"content": {"image/png": {}}, "description": "Image file"}},
)
async def download_image(
    image_id: str,
    images: ImageRepository = Depends(get_image_repository),
    client: httpx.AsyncClient = Depends(get_download_client),
) -> FileResponse:
    """Fetch an image from storage and return it as a named PNG attachment."""
    record = await images.get_image_by_id(image_id)
    url = record.transformation_url or record.secure_url

    directory = tempfile.mkdtemp(prefix="pixelyze-")
    try:
        target = await download(url, record.title, directory, client=client)
    except PixelyzeError:
        shutil.rmtree(directory, ignore_errors=True)
        raise

    return FileResponse(
        target,
        media_type="image/png",
        filename=target.name,
        background=BackgroundTask(shutil.rmtree, directory, ignore_errors=True),
    )


@images_router.get("", response_model=GalleryPage)
async def list_images(
    request: Request,
    pagination: PaginationParams = Depends(get_pagination_params),
    query: Optional[str] = Query(None, description="Remote asset search expression"),
    images: ImageRepository = Depends(get_image_repository),
) -> GalleryPage:
    """Gallery page, optionally narrowed by a remote asset search."""
    listing = await images.get_all_images(page=pagination.page, limit=pagination.limit, search_query=query)

    return GalleryPage(
        **listing.model_dump(),
        links=PageLinks(**page_links(request.query_params, pagination.page, listing.total_pages)),
        clear_search_url=remove_keys_from_query(request.query_params, ["query", "page"]) if query else None,
    )


# ============================================================================
# ACCOUNT ENDPOINTS
# ============================================================================


@accounts_router.post("/sync", response_model=Account)
async def sync_account(
    body: AccountCreate,
    caller_id: str = Depends(require_caller_identity_id),
    accounts: AccountRepository = Depends(get_account_repository),
) -> Account:
    """
    Link the caller's identity to an account, creating it on first sign-in.

    Returns the existing account when one is already linked.
    """
    if body.identity_id != caller_id:
        logger.warning("account_sync_identity_mismatch", identity_id=body.identity_id, caller_id=caller_id)
        raise AuthorizationError("Accounts can only be synced for the signed-in identity")

    return await accounts.sync_account(body)


@accounts_router.get("/me", response_model=Account)
async def get_my_account(account: Account = Depends(get_current_account)) -> Account:
    return account


@accounts_router.post("/me/credits", response_model=Account)
async def update_my_credits(
    body: CreditUpdate,
    account: Account = Depends(get_current_account),
    accounts: AccountRepository = Depends(get_account_repository),
) -> Account:
    """Spend (negative fee) or add credits. Defaults to one transformation's fee."""
    return await accounts.update_credits(account.id, body.credit_fee)
