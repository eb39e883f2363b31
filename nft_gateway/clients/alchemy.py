"""
NFT provider client (Alchemy NFT API v3 layout).

The API key lives in the URL path, so URLs are never logged verbatim.
"""
import logging
from typing import Any, Dict, List, Optional, Set

import httpx

from nft_gateway.clients.executor import RetryExecutor, read_json
from nft_gateway.errors import ConfigError, UpstreamError
from nft_gateway.models.nft_models import METADATA_BATCH_LIMIT, PROVIDER_MAX_PAGE_SIZE, Chain
from nft_gateway.utils.normalize import lower_address

logger = logging.getLogger(__name__)

PROVIDER = "nft_provider"
RPC_PROVIDER = "optimism_rpc"

# Guards against a provider that keeps handing back a cursor.
MAX_OWNER_PAGES = 500


class NFTProviderClient:
    """Typed adapter over the per-chain NFT REST API."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        executor: RetryExecutor,
        api_key: Optional[str],
        host_template: str = "https://{network}.g.alchemy.com",
    ):
        self._http = http
        self._executor = executor
        self._api_key = api_key
        self._host_template = host_template

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _key(self) -> str:
        if not self._api_key:
            raise ConfigError("NFT_PROVIDER_KEY is not configured")
        return self._api_key

    def _host(self, network: str) -> str:
        return self._host_template.format(network=network)

    def _url(self, chain: Chain, operation: str) -> str:
        return f"{self._host(chain.network)}/nft/v3/{self._key()}/{operation}"

    async def _get(self, chain: Chain, operation: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = self._url(chain, operation)
        logger.info(f"{operation} on {chain.value} with params: {params}")
        response = await self._executor.run(
            lambda: self._http.get(url, params=params, headers={"Accept": "application/json"}),
            PROVIDER,
        )
        return read_json(response, PROVIDER)

    async def get_nfts_for_owner(
        self,
        owner: str,
        chain: Chain,
        page_size: int = PROVIDER_MAX_PAGE_SIZE,
        page_key: Optional[str] = None,
        exclude_spam: bool = False,
    ) -> Dict[str, Any]:
        """One page of getNFTsForOwner; returns the raw provider payload."""
        params: Dict[str, Any] = {
            "owner": owner,
            "withMetadata": "true",
            "pageSize": min(page_size, PROVIDER_MAX_PAGE_SIZE),
        }
        if page_key:
            params["pageKey"] = page_key
        if exclude_spam:
            params["excludeFilters[]"] = "SPAM"
        return await self._get(chain, "getNFTsForOwner", params)

    async def get_owners_for_contract(
        self,
        contract_address: str,
        chain: Chain,
        page_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"contractAddress": contract_address.lower(), "withTokenBalances": "false"}
        if page_key:
            params["pageKey"] = page_key
        return await self._get(chain, "getOwnersForContract", params)

    async def get_all_owners_for_contract(self, contract_address: str, chain: Chain) -> Set[str]:
        """Page through getOwnersForContract until the cursor runs out."""
        owners: Set[str] = set()
        page_key = None
        seen_keys = set()
        for _ in range(MAX_OWNER_PAGES):
            payload = await self.get_owners_for_contract(contract_address, chain, page_key)
            for owner in payload.get("owners") or []:
                # Owners come back either as bare strings or as {ownerAddress: ...}
                address = lower_address(owner if isinstance(owner, str) else (owner or {}).get("ownerAddress"))
                if address:
                    owners.add(address)
            page_key = payload.get("pageKey")
            if not page_key:
                break
            if page_key in seen_keys:
                raise UpstreamError(f"{PROVIDER} repeated owners cursor for {contract_address}", PROVIDER)
            seen_keys.add(page_key)
        else:
            # The join needs the complete owner set; a truncated one is an error.
            raise UpstreamError(f"Owners of {contract_address} span more than {MAX_OWNER_PAGES} pages", PROVIDER)
        logger.info(f"Found {len(owners)} owners for {contract_address} on {chain.value}")
        return owners

    async def get_nft_metadata_batch(self, tokens: List[Dict[str, str]], chain: Chain) -> List[Dict[str, Any]]:
        """getNFTMetadataBatch in chunks of at most METADATA_BATCH_LIMIT tokens."""
        url = self._url(chain, "getNFTMetadataBatch")
        records: List[Dict[str, Any]] = []
        for start in range(0, len(tokens), METADATA_BATCH_LIMIT):
            chunk = tokens[start:start + METADATA_BATCH_LIMIT]
            logger.info(f"getNFTMetadataBatch on {chain.value}: {len(chunk)} tokens")
            response = await self._executor.run(
                lambda: self._http.post(url, json={"tokens": chunk}, headers={"Accept": "application/json"}),
                PROVIDER,
            )
            payload = read_json(response, PROVIDER)
            # v3 wraps the list in {"nfts": [...]}; older responses are bare lists.
            if isinstance(payload, dict):
                payload = payload.get("nfts") or []
            if not isinstance(payload, list):
                raise UpstreamError("getNFTMetadataBatch returned an unexpected shape", PROVIDER)
            records.extend(payload)
        return records

    async def optimism_rpc(self, payload: Any) -> Any:
        """Forward a JSON-RPC body to the Optimism endpoint on the same account."""
        url = f"{self._host(Chain.OPTIMISM.network)}/v2/{self._key()}"
        response = await self._executor.run(
            lambda: self._http.post(url, json=payload, headers={"Content-Type": "application/json"}),
            RPC_PROVIDER,
        )
        return read_json(response, RPC_PROVIDER)
