"""
Farcaster profile lookup with provider fallback and a 15 minute cache.
"""
import logging
from typing import Optional

from nft_gateway.clients.neynar import SocialGraphClient
from nft_gateway.clients.zapper import PortfolioClient
from nft_gateway.errors import ConfigError, InvalidRequest, NotFound, UpstreamFailure
from nft_gateway.models.farcaster_models import FarcasterProfile
from nft_gateway.utils.cache import ResponseCache

logger = logging.getLogger(__name__)


def profile_cache_key(fid: Optional[int], username: Optional[str]) -> str:
    if fid is not None:
        return f"profile:fid:{fid}"
    return f"profile:username:{username}"


def clean_username(username: Optional[str]) -> Optional[str]:
    if username is None:
        return None
    username = username.strip().lstrip("@").lower()
    return username or None


class ProfileService:
    """Portfolio GraphQL first, social graph second; only hits are cached."""

    def __init__(
        self,
        portfolio: PortfolioClient,
        social: SocialGraphClient,
        cache: ResponseCache,
        ttl: float = 15 * 60,
    ):
        self._portfolio = portfolio
        self._social = social
        self._cache = cache
        self._ttl = ttl

    async def lookup(self, fid: Optional[int] = None, username: Optional[str] = None) -> FarcasterProfile:
        username = clean_username(username)
        if (fid is None) == (username is None):
            raise InvalidRequest("Provide exactly one of fid or username")
        if fid is not None and fid <= 0:
            raise InvalidRequest("fid must be a positive integer")
        if not self._portfolio.configured and not self._social.configured:
            raise ConfigError("Neither PORTFOLIO_GRAPHQL_KEY nor SOCIAL_GRAPH_KEY is configured")

        key = profile_cache_key(fid, username)
        return await self._cache.get_or_fetch(key, self._ttl, lambda: self._resolve(fid, username))

    async def _resolve(self, fid: Optional[int], username: Optional[str]) -> FarcasterProfile:
        label = fid if fid is not None else username
        portfolio_error: Optional[UpstreamFailure] = None

        if self._portfolio.configured:
            try:
                profile = await self._portfolio.farcaster_profile(fid=fid, username=username)
            except UpstreamFailure as e:
                logger.warning(f"Portfolio profile lookup for {label} failed: {e.message}")
                portfolio_error = e
            else:
                if profile is not None:
                    return profile

        if self._social.configured:
            if fid is not None:
                profile = await self._social.get_user_by_fid(fid)
            else:
                profile = await self._social.get_user_by_username(username)
            if profile is not None:
                return profile
        elif portfolio_error is not None:
            raise portfolio_error

        raise NotFound(f"No Farcaster profile found for {label}")
