"""
Pydantic models for NFT-related endpoints.
"""
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from nft_gateway.errors import InvalidRequest

PROVIDER_MAX_PAGE_SIZE = 100
METADATA_BATCH_LIMIT = 100


class Chain(str, Enum):
    """Closed set of supported chains."""
    ETH = "eth"
    POLYGON = "polygon"
    ARBITRUM = "arbitrum"
    OPTIMISM = "optimism"
    BASE = "base"
    ZORA = "zora"

    @property
    def network(self) -> str:
        return CHAIN_NETWORKS[self]


CHAIN_NETWORKS = {
    Chain.ETH: "eth-mainnet",
    Chain.POLYGON: "polygon-mainnet",
    Chain.ARBITRUM: "arb-mainnet",
    Chain.OPTIMISM: "opt-mainnet",
    Chain.BASE: "base-mainnet",
    Chain.ZORA: "zora-mainnet",
}

CHAIN_ALIASES = {
    "ethereum": Chain.ETH,
    "mainnet": Chain.ETH,
    "matic": Chain.POLYGON,
    "arb": Chain.ARBITRUM,
    "opt": Chain.OPTIMISM,
}

DEFAULT_CHAIN = Chain.ETH


def parse_chain(value: Optional[str], strict: bool = False) -> Chain:
    """
    Normalize a chain tag case-insensitively.

    Unknown or empty values fall back to eth unless strict is set, in which
    case an unknown (non-empty) value is an invalid request.
    """
    if value is None or not str(value).strip():
        return DEFAULT_CHAIN
    tag = str(value).strip().lower()
    try:
        return Chain(tag)
    except ValueError:
        pass
    if tag in CHAIN_ALIASES:
        return CHAIN_ALIASES[tag]
    if strict:
        raise InvalidRequest(f"Unsupported chain: {value}", details={"supported": [c.value for c in Chain]})
    return DEFAULT_CHAIN


def parse_chains(value: Union[None, str, List[str]], strict: bool = False) -> List[Chain]:
    """Parse a list or comma-separated string of chains, preserving order without repeats."""
    if value is None:
        return [DEFAULT_CHAIN]
    raw = value.split(",") if isinstance(value, str) else list(value)
    chains: List[Chain] = []
    for item in raw:
        if item is None or not str(item).strip():
            continue
        chain = parse_chain(item, strict)
        if chain not in chains:
            chains.append(chain)
    return chains or [DEFAULT_CHAIN]


def clamp_page_size(value: Optional[int]) -> int:
    if value is None:
        return PROVIDER_MAX_PAGE_SIZE
    return max(1, min(int(value), PROVIDER_MAX_PAGE_SIZE))


class Collection(BaseModel):
    """Collection summary attached to every NFT."""
    name: Optional[str] = Field(None, description="Collection name")
    symbol: Optional[str] = Field(None, description="Collection $symbol")
    tokenType: Optional[str] = Field(None, description="ERC721 / ERC1155")
    floorPriceUsd: Optional[float] = Field(None, description="Floor price if the provider reports one")


class NFT(BaseModel):
    """Canonical NFT record."""
    uniqueId: str = Field(..., description="sha-256 of chain|contract|tokenId")
    chain: str
    contractAddress: str
    tokenId: str
    name: Optional[str] = None
    description: Optional[str] = None
    imageUrl: str = ""
    rawImageUrl: str = ""
    collection: Collection = Field(default_factory=Collection)
    ownerAddress: Optional[str] = None
    ownerAddresses: List[str] = Field(default_factory=list)
    estimatedValueUsd: Optional[float] = None


class PartialErrors(BaseModel):
    """Summary of sub-queries that failed during a fan-out."""
    count: int
    examples: List[str] = Field(default_factory=list)


class NFTPage(BaseModel):
    """Response model for owner NFT queries."""
    nfts: List[NFT] = Field(default_factory=list)
    totalCount: int = 0
    hasMore: bool = False
    pageKey: Optional[str] = None
    partialErrors: Optional[PartialErrors] = None


class OwnersRequest(BaseModel):
    """Request body for POST /nft/owners."""
    owners: List[Optional[str]] = Field(..., description="Wallet addresses to query")
    chain: Optional[str] = Field(None, description="Single chain tag")
    chains: Optional[Union[List[str], str]] = Field(None, description="List or comma-separated chain tags")
    pageSize: Optional[int] = Field(None, description=f"Page size per sub-query (max {PROVIDER_MAX_PAGE_SIZE})")
    excludeSpam: bool = True
    pageKey: Optional[str] = None

    @field_validator("pageSize")
    @classmethod
    def validate_page_size(cls, v):
        return None if v is None else clamp_page_size(v)


class TokenRef(BaseModel):
    """A (contract, tokenId) pair."""
    contractAddress: str
    tokenId: str

    @field_validator("tokenId", mode="before")
    @classmethod
    def coerce_token_id(cls, v):
        if isinstance(v, int):
            return str(v)
        return v

    @field_validator("contractAddress")
    @classmethod
    def lower_contract(cls, v):
        return v.strip().lower()


class MetadataRequest(BaseModel):
    """Request body for POST /nft/metadata."""
    tokens: List[TokenRef]
    chain: Optional[str] = None


class MetadataResponse(BaseModel):
    nfts: List[NFT]
    totalCount: int
