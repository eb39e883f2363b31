# /nft_gateway/api/endpoints/collection_friends.py
"""
Collection friends endpoint - followed accounts that hold a collection.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from nft_gateway.dependencies import Gateway, get_gateway
from nft_gateway.errors import InvalidRequest
from nft_gateway.models.farcaster_models import CollectionFriendsResponse
from nft_gateway.models.nft_models import parse_chain

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get(
    "/nft/collection-friends",
    summary="Followed accounts holding a collection",
    description="Joins the viewer's following list (custody and verified addresses) against the contract's owner set.",
    response_model=CollectionFriendsResponse,
    responses={
        200: {"description": "Successfully computed friends", "model": CollectionFriendsResponse},
        400: {"description": "Invalid contract address, fid or limit"},
        500: {"description": "SOCIAL_GRAPH_KEY or NFT_PROVIDER_KEY is not configured"},
        502: {"description": "Upstream failure after retries"},
    },
)
async def get_collection_friends(
    contractAddress: str = Query(..., description="NFT contract address"),
    fid: int = Query(..., description="Viewer's Farcaster ID"),
    chain: Optional[str] = Query(None, description="Chain tag (defaults to eth)"),
    limit: int = Query(50, ge=1, le=1000, description="Maximum friends to return"),
    gateway: Gateway = Depends(get_gateway),
) -> CollectionFriendsResponse:
    """
    Find which accounts `fid` follows that hold `contractAddress`.

    - A followed account is emitted once per matching address
    - Order follows the following list
    - If `fid` follows nobody with an address, the NFT provider is not called
    """
    if not contractAddress.strip():
        raise InvalidRequest("contractAddress is required")
    if fid <= 0:
        raise InvalidRequest("fid must be a positive integer")

    chain_id = parse_chain(chain, strict=gateway.settings.strict_chains)
    return await gateway.collection_friends.collection_friends(contractAddress, fid, chain_id, limit=limit)
