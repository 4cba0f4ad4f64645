"""
Page controllers.

Each controller authenticates the caller, loads the caller's account,
reads what the page needs and returns a render model. Unauthenticated
callers, and authentication failures raised along the way, are sent to
the sign-in page. Every other failure reaches the application's error
handlers.
"""

import structlog
from typing import Optional
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from api.src.config import Settings
from api.src.constants import TRANSFORMATION_TYPES
from api.src.dependencies import (
    get_account_repository,
    get_caller_identity_id,
    get_image_repository,
    get_revalidator,
    get_settings_dependency,
)
from api.src.errors import AuthenticationError
from api.src.models.pages import AddTransformationPage, ErrorResponse, PageLinks, ProfilePage
from api.src.navigation import PROFILE_PATH, PathRevalidator
from api.src.repositories.account_repo import AccountRepository
from api.src.repositories.image_repo import ImageRepository
from api.src.utils.query import deep_merge, page_links, parse_query

logger = structlog.get_logger(__name__)

router = APIRouter(
    tags=["Pages"],
    responses={
        307: {"description": "Redirect to sign-in or error page"},
        404: {"model": ErrorResponse, "description": "Not Found"},
    }
)


def _redirect(path: str) -> RedirectResponse:
    return RedirectResponse(path, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


def page_number(raw: Optional[str]) -> int:
    """Lenient page parsing: anything that is not a positive integer is page 1."""
    try:
        number = int(raw)
    except (TypeError, ValueError):
        return 1
    return number if number > 0 else 1


@router.get(PROFILE_PATH, response_model=ProfilePage, summary="Profile page")
async def profile_page(
    request: Request,
    page: Optional[str] = None,
    caller_id: Optional[str] = Depends(get_caller_identity_id),
    accounts: AccountRepository = Depends(get_account_repository),
    images: ImageRepository = Depends(get_image_repository),
    revalidator: PathRevalidator = Depends(get_revalidator),
    settings: Settings = Depends(get_settings_dependency),
):
    """Credit balance and the caller's own images, one page at a time."""
    if not caller_id:
        return _redirect(settings.sign_in_path)

    current_page = page_number(page)

    try:
        account = await accounts.get_account_by_identity_id(caller_id)
        paginated = await images.get_user_images(account.id, page=current_page, limit=settings.pagination_default_limit)
    except AuthenticationError as e:
        logger.warning("profile_page_auth_failed", error=str(e))
        return _redirect(settings.sign_in_path)

    render_model = ProfilePage(
        credit_balance=account.credit_balance,
        image_count=len(paginated.data),
        paginated_images=paginated,
        page=current_page,
        links=PageLinks(**page_links(request.query_params, current_page, paginated.total_pages)),
    )
    return JSONResponse(
        render_model.model_dump(mode="json"),
        headers={"ETag": f'W/"profile-{revalidator.version(PROFILE_PATH)}"'},
    )


@router.get(
    "/transformations/add/{transformation_type}",
    response_model=AddTransformationPage,
    summary="New transformation page",
)
async def add_transformation_page(
    request: Request,
    transformation_type: str,
    caller_id: Optional[str] = Depends(get_caller_identity_id),
    accounts: AccountRepository = Depends(get_account_repository),
    settings: Settings = Depends(get_settings_dependency),
):
    """
    Form defaults for one transformation type plus the caller's balance.

    ``config[...]`` query params prefill the form: they win over the
    catalogue defaults, which fill in everything they leave out.
    """
    if not caller_id:
        return _redirect(settings.sign_in_path)

    transformation = TRANSFORMATION_TYPES.get(transformation_type)
    if transformation is None:
        logger.info("unknown_transformation_type", transformation_type=transformation_type)
        return _redirect(settings.error_path)

    try:
        account = await accounts.get_account_by_identity_id(caller_id)
    except AuthenticationError as e:
        logger.warning("transformation_page_auth_failed", error=str(e))
        return _redirect(settings.sign_in_path)

    prefill = parse_query(str(request.query_params)).get("config")
    if not isinstance(prefill, dict):
        prefill = None

    return AddTransformationPage(
        transformation_type=transformation["type"],
        title=transformation["title"],
        subtitle=transformation["subtitle"],
        transformation_config=deep_merge(prefill, transformation["config"]),
        owner_id=account.id,
        credit_balance=account.credit_balance,
    )
