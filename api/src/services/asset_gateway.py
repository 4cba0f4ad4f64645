"""
Remote asset gateway for the Cloudinary resource search API.

Only search is needed by the data-access layer: image bytes and
transformations stay with the remote service. Every search is scoped to
one storage folder; the caller's query is appended as a conjunction.
"""

from typing import Any, Dict, List, Optional

import httpx
import structlog
from pydantic import BaseModel

from api.src.errors import ConfigurationError, normalize

logger = structlog.get_logger(__name__)


class RemoteAsset(BaseModel):
    """One search hit, reduced to what repositories consume."""
    public_id: str
    secure_url: Optional[str] = None
    format: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None


class CloudinaryGateway:
    """Minimal async client for the Cloudinary search endpoint."""

    _MAX_RESULTS = 500

    def __init__(
        self,
        *,
        cloud_name: Optional[str],
        api_key: Optional[str],
        api_secret: Optional[str],
        folder: str,
        base_url: str = "https://api.cloudinary.com/v1_1",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._cloud_name = cloud_name
        self._api_key = api_key
        self._api_secret = api_secret
        self.folder = folder
        self._base_url = base_url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _ensure_configured(self) -> None:
        if not (self._cloud_name and self._api_key and self._api_secret):
            logger.error("cloudinary_not_configured")
            raise ConfigurationError("Cloudinary credentials are not properly configured")

    @property
    def search_url(self) -> str:
        return f"{self._base_url}/{self._cloud_name}/resources/search"

    def build_expression(self, query: Optional[str] = None) -> str:
        """Folder filter, with ``AND <query>`` appended when a query is given."""
        expression = f"folder={self.folder}"
        if query:
            expression += f" AND {query}"
        return expression

    async def search(self, query: Optional[str] = None) -> List[RemoteAsset]:
        """
        Search the storage folder.

        Follows ``next_cursor`` until every match has been collected.

        Args:
            query: Search expression appended to the folder filter

        Returns:
            Matching assets
        """
        try:
            self._ensure_configured()
            expression = self.build_expression(query)
            assets: List[RemoteAsset] = []
            cursor: Optional[str] = None

            while True:
                body: Dict[str, Any] = {"expression": expression, "max_results": self._MAX_RESULTS}
                if cursor:
                    body["next_cursor"] = cursor

                response = await self._client.post(
                    self.search_url,
                    json=body,
                    auth=(self._api_key, self._api_secret),
                )
                response.raise_for_status()
                payload = response.json()

                assets.extend(RemoteAsset.model_validate(item) for item in payload.get("resources", []))
                cursor = payload.get("next_cursor")
                if not cursor:
                    break

            logger.info("cloudinary_search_completed", expression=expression, matches=len(assets))
            return assets

        except httpx.HTTPError as e:
            logger.error("cloudinary_search_failed", error=str(e), query=query)
            normalize(e)
        except Exception as e:
            normalize(e)

    async def search_public_ids(self, query: Optional[str] = None) -> List[str]:
        """Public ids of every asset matching ``query``."""
        return [asset.public_id for asset in await self.search(query)]

    async def aclose(self) -> None:
        await self._client.aclose()
