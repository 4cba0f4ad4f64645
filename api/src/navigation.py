"""
Navigation primitives shared by repositories, helpers and routers.

- ``Navigator`` records the redirect an operation asks for; the router
  turns it into an HTTP redirect.
- ``current_location`` holds the path of the request being served. It is
  set by ``NavigationContextMiddleware`` and is empty outside a request.
- ``PathRevalidator`` tracks which page paths were invalidated by writes.
  Only the app's own page paths are tracked.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Iterator, Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from api.src.constants import TRANSFORMATION_TYPES

logger = structlog.get_logger(__name__)

HOME_PATH = "/"
PROFILE_PATH = "/profile"

PAGE_PATHS: FrozenSet[str] = frozenset(
    [HOME_PATH, PROFILE_PATH, "/credits"]
    + [f"/transformations/add/{name}" for name in TRANSFORMATION_TYPES]
)

current_location: ContextVar[Optional[str]] = ContextVar("current_location", default=None)


def is_page_path(path: str) -> bool:
    return path in PAGE_PATHS


class Navigator:
    """Collects the redirect target requested during an operation."""

    def __init__(self) -> None:
        self.target: Optional[str] = None

    def redirect(self, path: str) -> None:
        logger.debug("navigation_redirect", path=path)
        self.target = path

    @property
    def redirected(self) -> bool:
        return self.target is not None


class PathRevalidator:
    """
    Per-path invalidation versions for cached page views.

    Paths outside ``PAGE_PATHS`` are ignored, so the tables never hold
    more than one entry per page.
    """

    def __init__(self) -> None:
        self._versions: Dict[str, int] = {}
        self._revalidated_at: Dict[str, datetime] = {}

    def revalidate(self, path: str) -> int:
        if not is_page_path(path):
            logger.warning("path_revalidation_ignored", path=path)
            return 0

        version = self._versions.get(path, 0) + 1
        self._versions[path] = version
        self._revalidated_at[path] = datetime.now(timezone.utc)
        logger.info("path_revalidated", path=path, version=version)
        return version

    def version(self, path: str) -> int:
        return self._versions.get(path, 0)

    def revalidated_at(self, path: str) -> Optional[datetime]:
        return self._revalidated_at.get(path)


@contextmanager
def navigation_context(path: str) -> Iterator[None]:
    """Make ``path`` the current location for the enclosed block."""
    token = current_location.set(path)
    try:
        yield
    finally:
        current_location.reset(token)


class NavigationContextMiddleware(BaseHTTPMiddleware):
    """Expose the request path as the current navigation location."""

    async def dispatch(self, request: Request, call_next):
        with navigation_context(request.url.path):
            return await call_next(request)
