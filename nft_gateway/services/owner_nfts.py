"""
NFTsForOwners: fan-out of getNFTsForOwner across addresses x chains.
"""
import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from nft_gateway.clients.alchemy import NFTProviderClient
from nft_gateway.errors import ConfigError, UpstreamFailure
from nft_gateway.models.nft_models import PROVIDER_MAX_PAGE_SIZE, Chain, NFTPage, PartialErrors
from nft_gateway.utils.cache import ResponseCache
from nft_gateway.utils.normalize import NFTAccumulator, normalize_addresses, normalize_nft

logger = logging.getLogger(__name__)

MAX_ERROR_EXAMPLES = 3


def owner_cache_key(chain: Chain, address: str, page_key: Optional[str], page_size: int, exclude_spam: bool) -> str:
    base = f"nfts:{chain.value}:{address}:{page_key or ''}"
    return f"{base}|{page_size}|{'nospam' if exclude_spam else 'all'}"


class SubQueryResult:
    __slots__ = ("address", "chain", "payload", "error")

    def __init__(self, address: str, chain: Chain, payload: Optional[Dict[str, Any]] = None,
                 error: Optional[UpstreamFailure] = None):
        self.address = address
        self.chain = chain
        self.payload = payload
        self.error = error


class OwnerNFTsService:
    """Bounded fan-out over (address, chain) pairs with dedup by uniqueId."""

    def __init__(
        self,
        client: NFTProviderClient,
        cache: Optional[ResponseCache] = None,
        concurrency: int = 3,
        pause: float = 0.3,
        cache_ttl: float = 5 * 60,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = client
        self._cache = cache
        self._concurrency = max(1, concurrency)
        self._pause = pause
        self._cache_ttl = cache_ttl
        self._sleep = sleep

    async def _fetch_page(
        self, address: str, chain: Chain, page_size: int, page_key: Optional[str], exclude_spam: bool
    ) -> Dict[str, Any]:
        fetch = functools.partial(
            self._client.get_nfts_for_owner,
            address, chain, page_size=page_size, page_key=page_key, exclude_spam=exclude_spam,
        )
        if self._cache is None:
            return await fetch()
        key = owner_cache_key(chain, address, page_key, page_size, exclude_spam)
        return await self._cache.get_or_fetch(key, self._cache_ttl, fetch)

    async def _sub_query(
        self, address: str, chain: Chain, page_size: int, page_key: Optional[str], exclude_spam: bool
    ) -> SubQueryResult:
        try:
            payload = await self._fetch_page(address, chain, page_size, page_key, exclude_spam)
        except UpstreamFailure as e:
            logger.warning(f"Error fetching NFTs for {address} on {chain.value}: {e.message}")
            return SubQueryResult(address, chain, error=e)
        return SubQueryResult(address, chain, payload=payload if isinstance(payload, dict) else {})

    async def nfts_for_owners(
        self,
        owners: Sequence[Optional[str]],
        chains: Sequence[Chain],
        page_size: int = PROVIDER_MAX_PAGE_SIZE,
        exclude_spam: bool = True,
        page_key: Optional[str] = None,
    ) -> NFTPage:
        addresses = normalize_addresses(owners)
        if not addresses:
            return NFTPage()
        if not self._client.configured:
            raise ConfigError("NFT_PROVIDER_KEY is not configured")

        pairs: List[Tuple[str, Chain]] = [(address, chain) for address in addresses for chain in chains]
        single = len(pairs) == 1
        logger.info(f"Fetching NFTs for {len(addresses)} addresses across {len(chains)} chains")

        results: List[SubQueryResult] = []
        for batch_index, start in enumerate(range(0, len(pairs), self._concurrency)):
            if batch_index and self._pause > 0:
                await self._sleep(self._pause)
            batch = pairs[start:start + self._concurrency]
            results.extend(await asyncio.gather(*(
                self._sub_query(address, chain, page_size, page_key if single else None, exclude_spam)
                for address, chain in batch
            )))

        errors = [r.error for r in results if r.error is not None]
        if errors and len(errors) == len(results):
            # Nothing succeeded, so there is no partial answer to return.
            raise errors[0]

        accumulator = NFTAccumulator()
        has_more = False
        next_page_key = None
        for result in results:
            if result.error is not None:
                continue
            payload = result.payload
            for record in payload.get("ownedNfts") or []:
                nft = normalize_nft(record, result.chain.value, owner_address=result.address)
                if nft is not None:
                    accumulator.add(nft)
            if payload.get("pageKey"):
                has_more = True
                if single:
                    next_page_key = payload["pageKey"]

        nfts = accumulator.values()
        logger.info(f"Found {len(nfts)} unique NFTs ({accumulator.duplicates} duplicates merged)")

        partial = None
        if errors:
            partial = PartialErrors(
                count=len(errors),
                examples=[
                    f"{r.address} on {r.chain.value}: {r.error.message}"
                    for r in results if r.error is not None
                ][:MAX_ERROR_EXAMPLES],
            )

        return NFTPage(
            nfts=nfts,
            totalCount=len(nfts),
            hasMore=has_more,
            pageKey=next_page_key,
            partialErrors=partial,
        )

    async def metadata_batch(self, tokens: List[Dict[str, str]], chain: Chain) -> List:
        """Resolve (contract, tokenId) pairs into canonical NFTs, deduplicated."""
        records = await self._client.get_nft_metadata_batch(tokens, chain)
        accumulator = NFTAccumulator()
        for record in records:
            nft = normalize_nft(record, chain.value)
            if nft is not None:
                accumulator.add(nft)
        return accumulator.values()
