"""
FastAPI dependency injection for database, identity and repositories.

Provides injectable dependencies for:
- The MongoDB connection pool owned by the application lifespan
- Caller identity (session token verification)
- The caller's account
- Repository instances
- Pagination parameters

Shared resources live on ``app.state`` and are created by the lifespan
in ``api.src.main``; nothing here is a module-level singleton.
"""

import httpx
import structlog
from typing import Optional
from fastapi import Depends, Query, Request

from api.src.config import get_settings, Settings
from api.src.database import MongoConnectionPool
from api.src.errors import AuthenticationError
from api.src.models.account import Account
from api.src.navigation import PathRevalidator
from api.src.repositories.account_repo import AccountRepository
from api.src.repositories.image_repo import ImageRepository
from api.src.services.identity import ClerkIdentityProvider

logger = structlog.get_logger(__name__)


# ============================================================================
# SHARED RESOURCES
# ============================================================================


def get_db_pool(request: Request) -> MongoConnectionPool:
    """
    Get the MongoDB connection pool.

    Raises:
        RuntimeError: If the application lifespan has not created it
    """
    pool = getattr(request.app.state, "db_pool", None)
    if pool is None:
        logger.error("database_pool_not_initialized")
        raise RuntimeError("Database pool not initialized. It is created by the application lifespan.")
    return pool


def get_identity_provider(request: Request) -> ClerkIdentityProvider:
    return request.app.state.identity_provider


def get_revalidator(request: Request) -> PathRevalidator:
    return request.app.state.revalidator


# ============================================================================
# REPOSITORY DEPENDENCIES
# ============================================================================


def get_account_repository(request: Request) -> AccountRepository:
    """
    Get account repository instance.

    Example:
        @app.get("/accounts/me")
        async def me(repo: AccountRepository = Depends(get_account_repository)):
            ...
    """
    return request.app.state.account_repo


def get_image_repository(request: Request) -> ImageRepository:
    """
    Get image repository instance.

    Example:
        @app.get("/images/{image_id}")
        async def get_image(
            image_id: str,
            repo: ImageRepository = Depends(get_image_repository)
        ):
            return await repo.get_image_by_id(image_id)
    """
    return request.app.state.image_repo


# ============================================================================
# IDENTITY DEPENDENCIES
# ============================================================================


async def get_caller_identity_id(
    request: Request,
    identity: ClerkIdentityProvider = Depends(get_identity_provider)
) -> Optional[str]:
    """
    Identity-provider id of the caller, or None when unauthenticated.

    Page controllers use this and redirect to sign-in on None.
    """
    caller_id = await identity.get_current_caller_id(request)
    if caller_id:
        structlog.contextvars.bind_contextvars(identity_id=caller_id)
    return caller_id


async def require_caller_identity_id(
    caller_id: Optional[str] = Depends(get_caller_identity_id)
) -> str:
    """
    Identity-provider id of the caller.

    Raises:
        AuthenticationError: If the request is not authenticated
    """
    if not caller_id:
        logger.warning("auth_missing_credentials")
        raise AuthenticationError("Authentication required")
    return caller_id


async def get_current_account(
    caller_id: str = Depends(require_caller_identity_id),
    accounts: AccountRepository = Depends(get_account_repository)
) -> Account:
    """The account linked to the authenticated caller."""
    return await accounts.get_account_by_identity_id(caller_id)


# ============================================================================
# UTILITY DEPENDENCIES
# ============================================================================


def get_settings_dependency(request: Request) -> Settings:
    """Settings the application was built with."""
    return getattr(request.app.state, "settings", None) or get_settings()


class PaginationParams:
    """Pagination parameters for image listings."""

    def __init__(self, page: int = 1, limit: Optional[int] = None, default_limit: Optional[int] = None):
        """
        Initialize pagination parameters.

        Args:
            page: 1-indexed page number
            limit: Page size
            default_limit: Page size used when limit is not given
        """
        self.page = page
        self.limit = limit or default_limit or get_settings().pagination_default_limit


async def get_pagination_params(
    page: int = Query(1, ge=1, description="1-indexed page number"),
    limit: Optional[int] = Query(None, ge=1, le=100, description="Page size"),
    settings: Settings = Depends(get_settings_dependency)
) -> PaginationParams:
    """Get pagination parameters from query string."""
    return PaginationParams(page=page, limit=limit, default_limit=settings.pagination_default_limit)


def get_download_client(request: Request) -> httpx.AsyncClient:
    """HTTP client used to fetch stored images for download."""
    return request.app.state.download_client
