# /nft_gateway/api/endpoints/profiles.py
"""
Farcaster profile lookup endpoint.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from nft_gateway.dependencies import Gateway, get_gateway
from nft_gateway.models.farcaster_models import FarcasterProfile

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get(
    "/profile/farcaster",
    summary="Get a Farcaster profile",
    description="Looks a profile up by fid or username (exactly one). Results are cached for 15 minutes.",
    response_model=FarcasterProfile,
    responses={
        200: {"description": "Successfully retrieved profile", "model": FarcasterProfile},
        400: {"description": "Both or neither of fid and username given"},
        404: {"description": "No profile found"},
        500: {"description": "No profile provider is configured"},
    },
)
async def get_farcaster_profile(
    fid: Optional[int] = Query(None, description="Farcaster ID"),
    username: Optional[str] = Query(None, description="Farcaster username"),
    gateway: Gateway = Depends(get_gateway),
) -> FarcasterProfile:
    logger.info(f"Profile lookup fid={fid} username={username}")
    return await gateway.profiles.lookup(fid=fid, username=username)
