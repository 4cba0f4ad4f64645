"""
Identity provider boundary.

Session tokens issued by Clerk are verified against the provider's JWKS
endpoint. The only thing the rest of the service needs is the caller's
identity-provider id (the ``sub`` claim), or ``None`` when the request is
not authenticated.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import httpx
import structlog
from jose import JWTError, jwt
from starlette.requests import Request

from api.src.errors import AuthenticationError, ConfigurationError

logger = structlog.get_logger(__name__)


class ClerkIdentityProvider:
    """Verifies session tokens and resolves the calling identity."""

    def __init__(
        self,
        *,
        jwks_url: Optional[str],
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
        algorithm: str = "RS256",
        session_cookie: str = "__session",
        jwks_ttl: timedelta = timedelta(hours=1),
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.jwks_url = jwks_url
        self.issuer = issuer
        self.audience = audience
        self.algorithm = algorithm
        self.session_cookie = session_cookie
        self._jwks_ttl = jwks_ttl
        self._client = client or httpx.AsyncClient(timeout=10.0)
        self._jwks: Dict[str, Any] = {}
        self._jwks_fetched_at = datetime.min.replace(tzinfo=timezone.utc)
        # Shared task so concurrent callers wait on one fetch
        self._jwks_inflight: Optional[asyncio.Task] = None

    async def _fetch_jwks(self) -> Dict[str, Any]:
        try:
            response = await self._client.get(self.jwks_url)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            logger.error("jwks_fetch_failed", jwks_url=self.jwks_url, error=str(e))
            raise AuthenticationError(f"Failed to fetch signing keys: {e}") from e

    async def get_jwks(self) -> Dict[str, Any]:
        """Fetch and cache the signing keys."""
        if not self.jwks_url:
            logger.error("jwks_url_missing")
            raise ConfigurationError("Missing identity provider JWKS URL")

        if self._jwks and datetime.now(timezone.utc) - self._jwks_fetched_at < self._jwks_ttl:
            return self._jwks

        if self._jwks_inflight is not None:
            return await self._jwks_inflight

        self._jwks_inflight = asyncio.ensure_future(self._fetch_jwks())
        try:
            self._jwks = await self._jwks_inflight
            self._jwks_fetched_at = datetime.now(timezone.utc)
            return self._jwks
        finally:
            self._jwks_inflight = None

    def clear_jwks_cache(self) -> None:
        self._jwks = {}
        self._jwks_fetched_at = datetime.min.replace(tzinfo=timezone.utc)

    def extract_token(self, request: Request) -> Optional[str]:
        """Bearer token from the Authorization header, else the session cookie."""
        authorization = request.headers.get("Authorization")
        if authorization:
            scheme, _, credentials = authorization.partition(" ")
            if scheme.lower() == "bearer" and credentials:
                return credentials.strip()

        return request.cookies.get(self.session_cookie)

    async def verify_token(self, token: str) -> Dict[str, Any]:
        """
        Verify a session token.

        Returns:
            Decoded claims

        Raises:
            AuthenticationError: If the token is invalid or expired
        """
        jwks = await self.get_jwks()
        try:
            return jwt.decode(
                token,
                jwks,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                audience=self.audience,
                options={
                    "verify_signature": True,
                    "verify_exp": True,
                    "verify_aud": self.audience is not None,
                    "verify_iss": self.issuer is not None,
                },
            )
        except JWTError as e:
            raise AuthenticationError(f"Session token verification failed: {e}") from e

    async def get_current_caller_id(self, request: Request) -> Optional[str]:
        """
        Identity-provider id of the caller.

        Returns:
            The ``sub`` claim, or None when the request carries no valid token
        """
        token = self.extract_token(request)
        if not token:
            return None

        try:
            claims = await self.verify_token(token)
        except AuthenticationError as e:
            logger.warning("session_token_rejected", path=request.url.path, error=str(e))
            return None

        return claims.get("sub")

    async def aclose(self) -> None:
        await self._client.aclose()
