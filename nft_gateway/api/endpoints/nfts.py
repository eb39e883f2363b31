# /nft_gateway/api/endpoints/nfts.py
"""
NFT ownership endpoints: single owner, many owners, and batch metadata.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from nft_gateway.dependencies import Gateway, get_gateway
from nft_gateway.errors import InvalidRequest
from nft_gateway.models.nft_models import (
    PROVIDER_MAX_PAGE_SIZE,
    MetadataRequest,
    MetadataResponse,
    NFTPage,
    OwnersRequest,
    clamp_page_size,
    parse_chain,
    parse_chains,
)

# Set up logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter()

ERROR_RESPONSES = {
    400: {"description": "Invalid request parameters"},
    429: {"description": "NFT provider rate limit exceeded"},
    500: {"description": "NFT_PROVIDER_KEY is not configured"},
    502: {"description": "NFT provider failed after retries"},
    504: {"description": "NFT provider timed out"},
}


@router.get(
    "/nft/owner",
    summary="NFTs held by one address",
    description="One page of getNFTsForOwner for a single address on one chain, normalized to the canonical NFT shape.",
    response_model=NFTPage,
    responses={200: {"description": "Successfully retrieved NFTs", "model": NFTPage}, **ERROR_RESPONSES},
)
async def get_owner_nfts(
    owner: str = Query(..., description="Wallet address"),
    chain: Optional[str] = Query(None, description="Chain tag (defaults to eth)"),
    pageSize: Optional[int] = Query(None, description=f"Page size (1-{PROVIDER_MAX_PAGE_SIZE})"),
    pageKey: Optional[str] = Query(None, description="Cursor from a previous response"),
    excludeSpam: bool = Query(True, description="Ask the provider to drop spam contracts"),
    gateway: Gateway = Depends(get_gateway),
) -> NFTPage:
    if not owner.strip():
        raise InvalidRequest("owner must be a non-empty address")
    chain_id = parse_chain(chain, strict=gateway.settings.strict_chains)
    logger.info(f"NFTs for owner {owner} on {chain_id.value}")
    return await gateway.owner_nfts.nfts_for_owners(
        [owner],
        [chain_id],
        page_size=clamp_page_size(pageSize),
        exclude_spam=excludeSpam,
        page_key=pageKey,
    )


@router.post(
    "/nft/owners",
    summary="NFTs held by many addresses",
    description="""
    Fans getNFTsForOwner out over every (address, chain) pair with bounded concurrency,
    then merges the results so each token appears once with all of its owners.

    Sub-query failures are reported under `partialErrors`; the request only fails
    when every sub-query fails.
    """,
    response_model=NFTPage,
    responses={200: {"description": "Successfully retrieved NFTs", "model": NFTPage}, **ERROR_RESPONSES},
)
async def get_owners_nfts(request: OwnersRequest, gateway: Gateway = Depends(get_gateway)) -> NFTPage:
    strict = gateway.settings.strict_chains
    if request.chains is not None:
        chains = parse_chains(request.chains, strict=strict)
    else:
        chains = [parse_chain(request.chain, strict=strict)]

    logger.info(f"NFTs for {len(request.owners)} owners on {', '.join(c.value for c in chains)}")
    return await gateway.owner_nfts.nfts_for_owners(
        request.owners,
        chains,
        page_size=clamp_page_size(request.pageSize),
        exclude_spam=request.excludeSpam,
        page_key=request.pageKey,
    )


@router.post(
    "/nft/metadata",
    summary="Batch NFT metadata",
    description="Resolves (contractAddress, tokenId) pairs via getNFTMetadataBatch, 100 tokens per upstream call.",
    response_model=MetadataResponse,
    responses={200: {"description": "Successfully retrieved metadata", "model": MetadataResponse}, **ERROR_RESPONSES},
)
async def get_nft_metadata(request: MetadataRequest, gateway: Gateway = Depends(get_gateway)) -> MetadataResponse:
    if not request.tokens:
        raise InvalidRequest("tokens must contain at least one entry")
    chain_id = parse_chain(request.chain, strict=gateway.settings.strict_chains)
    tokens = [{"contractAddress": t.contractAddress, "tokenId": t.tokenId} for t in request.tokens]
    nfts = await gateway.owner_nfts.metadata_batch(tokens, chain_id)
    return MetadataResponse(nfts=nfts, totalCount=len(nfts))
