"""Player identity resolution through the Mojang API."""

import hashlib
import time
from typing import Dict, Optional, Tuple

import httpx

from ..errors import IdentityResolutionFailed
from ..logger import logger


def format_uuid(raw_uuid: str) -> str:
    """Format a 32-char UUID with dashes. Already dashed values pass through."""
    if "-" in raw_uuid:
        return raw_uuid.lower()
    raw_uuid = raw_uuid.lower()
    return "-".join(
        [
            raw_uuid[0:8],
            raw_uuid[8:12],
            raw_uuid[12:16],
            raw_uuid[16:20],
            raw_uuid[20:32],
        ]
    )


def fallback_uuid(player_name: str) -> str:
    """Deterministic identity derived from the lower-cased player name.

    Shaped as a version-4 UUID so it fits wherever a real one does.
    """
    digest = hashlib.sha256(player_name.lower().encode()).hexdigest()
    return "-".join(
        [
            digest[0:8],
            digest[8:12],
            "4" + digest[12:15],
            digest[16:20],
            digest[20:32],
        ]
    )


class IdentityResolver:
    """Maps display names to stable identities.

    Successful lookups are cached for ``cache_ttl_seconds``. Expired entries
    are dropped whenever a new one is stored. When the remote
    lookup fails the name is mapped to :func:`fallback_uuid`; fallbacks are
    not cached so the next join retries the remote service.
    """

    def __init__(
        self,
        api_url: str,
        timeout_seconds: float = 5.0,
        cache_ttl_seconds: float = 300.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize identity resolver.

        Args:
            api_url: Profile lookup endpoint, the name is appended as a path segment
            timeout_seconds: Request timeout
            cache_ttl_seconds: How long a resolved identity is reused
            client: HTTP client to use instead of a private one
        """
        self.api_url = api_url.rstrip("/")
        self.cache_ttl_seconds = cache_ttl_seconds
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._cache: Dict[str, Tuple[str, float]] = {}

    async def resolve(self, player_name: str) -> str:
        """Return the identity for a display name. Never raises for lookup failures."""
        key = player_name.lower()
        cached = self._cache.get(key)
        if cached and time.monotonic() - cached[1] < self.cache_ttl_seconds:
            return cached[0]

        try:
            uuid = await self._fetch_uuid(player_name)
        except IdentityResolutionFailed as e:
            uuid = fallback_uuid(player_name)
            logger.warning(
                f"Identity lookup failed for {player_name} ({e}), using fallback {uuid}"
            )
            return uuid

        if uuid is None:
            uuid = fallback_uuid(player_name)
            logger.info(f"No Mojang profile for {player_name}, using fallback {uuid}")
            return uuid

        self._remember(key, uuid)
        return uuid

    def _remember(self, key: str, uuid: str) -> None:
        now = time.monotonic()
        expired = [
            name
            for name, (_, cached_at) in self._cache.items()
            if now - cached_at >= self.cache_ttl_seconds
        ]
        for name in expired:
            del self._cache[name]
        self._cache[key] = (uuid, now)

    async def _fetch_uuid(self, player_name: str) -> Optional[str]:
        """Fetch the dashed UUID of a player, None if the name has no profile.

        Raises:
            IdentityResolutionFailed: On transport errors or unexpected responses
        """
        url = f"{self.api_url}/{player_name}"
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise IdentityResolutionFailed(f"{type(e).__name__}: {e}") from e

        if response.status_code in (204, 404):
            return None
        if response.status_code == 429:
            raise IdentityResolutionFailed("Mojang API rate limited")
        if response.status_code != 200:
            raise IdentityResolutionFailed(
                f"Unexpected Mojang API response {response.status_code}"
            )

        try:
            raw_uuid = response.json()["id"]
        except (ValueError, KeyError, TypeError) as e:
            raise IdentityResolutionFailed(f"Malformed Mojang API response: {e}") from e
        return format_uuid(raw_uuid)

    def clear_cache(self) -> None:
        self._cache.clear()

    async def aclose(self) -> None:
        await self._client.aclose()
