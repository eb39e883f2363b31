# /nft_gateway/dependencies.py
"""
Process-wide wiring: one shared httpx client, the response cache, and the
upstream clients and services built from the Settings bundle.
"""
import logging
from typing import Optional

import httpx
from fastapi import Request

from nft_gateway.clients.alchemy import NFTProviderClient
from nft_gateway.clients.executor import RetryExecutor, RetryPolicy
from nft_gateway.clients.neynar import SocialGraphClient
from nft_gateway.clients.zapper import PortfolioClient
from nft_gateway.config import Settings
from nft_gateway.services.collection_friends import CollectionFriendsService
from nft_gateway.services.media_proxy import MAX_REDIRECTS, MediaProxy
from nft_gateway.services.owner_nfts import OwnerNFTsService
from nft_gateway.services.profiles import ProfileService
from nft_gateway.utils.cache import ResponseCache

logger = logging.getLogger(__name__)


def mask_secret(value: Optional[str]) -> str:
    if not value:
        return "<unset>"
    return value[:4] + "..."


class Gateway:
    """Everything a request handler needs, built once per application."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.http = httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(settings.upstream_timeout),
            max_redirects=MAX_REDIRECTS,
        )
        self.cache = ResponseCache()

        self.executor = RetryExecutor(RetryPolicy(
            attempts=settings.retry_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            timeout=settings.upstream_timeout,
        ))
        self.media_executor = self.executor.with_policy(timeout=settings.media_timeout)

        self.nft_provider = NFTProviderClient(
            self.http,
            self.executor,
            settings.nft_provider_key,
            host_template=settings.nft_provider_host_template,
        )
        self.social_graph = SocialGraphClient(
            self.http,
            self.executor,
            settings.social_graph_key,
            base_url=settings.social_graph_base_url,
            auth_header=settings.social_graph_auth_header,
            alt_auth_header=settings.social_graph_alt_auth_header,
        )
        self.portfolio = PortfolioClient(
            self.http,
            self.executor,
            settings.portfolio_graphql_key,
            endpoints=settings.portfolio_endpoints,
            auth_header=settings.portfolio_auth_header,
        )

        self.owner_nfts = OwnerNFTsService(
            self.nft_provider,
            cache=self.cache if settings.nft_cache_enabled else None,
            concurrency=settings.fanout_concurrency,
            pause=settings.fanout_pause,
            cache_ttl=settings.owner_nfts_ttl,
        )
        self.collection_friends = CollectionFriendsService(self.social_graph, self.nft_provider)
        self.profiles = ProfileService(self.portfolio, self.social_graph, self.cache, ttl=settings.profile_ttl)
        self.media = MediaProxy(self.http, self.media_executor)

    def log_configuration(self) -> None:
        s = self.settings
        logger.info(f"NFT provider key: {mask_secret(s.nft_provider_key)}")
        logger.info(f"Social graph key: {mask_secret(s.social_graph_key)}")
        logger.info(f"Portfolio GraphQL key: {mask_secret(s.portfolio_graphql_key)}")
        logger.info(f"Portfolio endpoints: {', '.join(s.portfolio_endpoints)}")
        logger.info(f"Owner NFT cache: {'enabled' if s.nft_cache_enabled else 'disabled'}")
        for key in s.missing_keys():
            logger.warning(f"{key} is not set; routes that need it will return config_error")

    async def aclose(self) -> None:
        await self.http.aclose()


def get_gateway(request: Request) -> Gateway:
    return request.app.state.gateway
