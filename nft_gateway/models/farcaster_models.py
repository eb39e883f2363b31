# /nft_gateway/models/farcaster_models.py
"""
Pydantic models for Farcaster-related endpoints.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class FarcasterProfile(BaseModel):
    """Profile in the gateway's canonical shape, whichever provider produced it."""
    fid: Optional[int] = Field(None, description="Farcaster user ID")
    username: Optional[str] = Field(None, description="Farcaster username")
    displayName: Optional[str] = Field(None, description="Display name")
    avatarUrl: Optional[str] = Field(None, description="Profile picture URL")
    custodyAddress: Optional[str] = Field(None, description="Lowercased custody address")
    connectedAddresses: List[str] = Field(default_factory=list, description="Lowercased verified addresses")
    bio: Optional[str] = Field(None, description="Profile description")
    source: Optional[str] = Field(None, description="Provider that answered")


class Friend(BaseModel):
    """A followed user who holds the contract."""
    fid: Optional[int] = None
    username: Optional[str] = None
    displayName: Optional[str] = None
    avatarUrl: Optional[str] = None
    address: str = Field(..., description="Lowercased address that matched")


class CollectionFriendsResponse(BaseModel):
    """Response model for collection friends endpoint."""
    contractAddress: str
    friends: List[Friend] = Field(default_factory=list)
    totalFriends: int = 0
    hasMore: bool = False


class GraphQLRequest(BaseModel):
    """GraphQL POST body forwarded to the portfolio provider."""
    query: str = Field(..., min_length=1)
    variables: Optional[Dict[str, Any]] = None
    operationName: Optional[str] = None
