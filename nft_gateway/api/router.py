# /nft_gateway/api/router.py
"""
API router that includes all endpoint routers.
"""
from fastapi import APIRouter
from nft_gateway.api.endpoints import (
    health,
    nfts,
    collection_friends,
    profiles,
    media,
    graphql,
    rpc,
)

# Create main router
router = APIRouter()

# Include all endpoint routers
router.include_router(health.router, tags=["Health"])
router.include_router(nfts.router, tags=["NFTs"])
router.include_router(collection_friends.router, tags=["NFTs"])
router.include_router(profiles.router, tags=["Farcaster Users"])
router.include_router(media.router, tags=["Media"])
router.include_router(graphql.router, tags=["GraphQL"])
router.include_router(rpc.router, tags=["RPC"])
