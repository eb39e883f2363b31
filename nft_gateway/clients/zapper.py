"""
Portfolio GraphQL client (Zapper-style) with ordered endpoint fallback.
"""
import logging
from typing import Any, Dict, Optional, Sequence

import httpx

from nft_gateway.clients.executor import RetryExecutor, read_json
from nft_gateway.errors import ConfigError
from nft_gateway.models.farcaster_models import FarcasterProfile
from nft_gateway.utils.normalize import normalize_portfolio_profile

logger = logging.getLogger(__name__)

PROVIDER = "portfolio"

PROFILE_FIELDS = """
    username
    fid
    metadata {
      displayName
      description
      imageUrl
      warpcast
    }
    custodyAddress
    connectedAddresses
"""

PROFILE_BY_FID_QUERY = """
query GetFarcasterProfile($fid: Int) {
  farcasterProfile(fid: $fid) {%s  }
}
""" % PROFILE_FIELDS

PROFILE_BY_USERNAME_QUERY = """
query GetFarcasterProfile($username: String) {
  farcasterProfile(username: $username) {%s  }
}
""" % PROFILE_FIELDS


def graphql_usable(response: httpx.Response) -> bool:
    """A GraphQL answer is usable unless it carries errors and no data."""
    try:
        body = response.json()
    except ValueError:
        return False
    if not isinstance(body, dict):
        return False
    return not (body.get("errors") and not body.get("data"))


class PortfolioClient:
    """Forwards GraphQL POSTs, walking the candidate endpoints in order."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        executor: RetryExecutor,
        api_key: Optional[str],
        endpoints: Sequence[str],
        auth_header: str = "x-zapper-api-key",
    ):
        self._http = http
        self._executor = executor
        self._api_key = api_key
        self._endpoints = tuple(endpoints)
        self._auth_header = auth_header

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    @property
    def endpoints(self) -> tuple:
        return self._endpoints

    def _headers(self) -> Dict[str, str]:
        if not self._api_key:
            raise ConfigError("PORTFOLIO_GRAPHQL_KEY is not configured")
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            self._auth_header: self._api_key,
        }

    async def execute(self, payload: Dict[str, Any]) -> Any:
        """POST a GraphQL payload; returns the decoded body of the first usable endpoint."""
        headers = self._headers()
        response = await self._executor.run_with_fallback(
            self._endpoints,
            lambda url: self._http.post(url, json=payload, headers=headers),
            PROVIDER,
            usable=graphql_usable,
        )
        return read_json(response, PROVIDER)

    async def farcaster_profile(
        self, fid: Optional[int] = None, username: Optional[str] = None
    ) -> Optional[FarcasterProfile]:
        if fid is not None:
            payload = {"query": PROFILE_BY_FID_QUERY, "variables": {"fid": fid}}
        else:
            payload = {"query": PROFILE_BY_USERNAME_QUERY, "variables": {"username": username}}
        body = await self.execute(payload)
        profile = ((body or {}).get("data") or {}).get("farcasterProfile")
        if not profile:
            logger.info(f"No portfolio profile for {fid if fid is not None else username}")
            return None
        return normalize_portfolio_profile(profile)
