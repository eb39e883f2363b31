"""
Normalizers that turn upstream payloads into canonical gateway records.
"""
import hashlib
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from nft_gateway.models.farcaster_models import FarcasterProfile
from nft_gateway.models.nft_models import NFT, Collection

logger = logging.getLogger(__name__)

SHAPE_V3 = "v3"
SHAPE_V2 = "v2"
SHAPE_CANONICAL = "canonical"
SHAPE_UNKNOWN = "unknown"


# --- Addresses ---

def lower_address(value: Any) -> Optional[str]:
    """Lowercase and trim an address; empty values become None."""
    if not isinstance(value, str):
        return None
    value = value.strip().lower()
    return value or None


def normalize_addresses(values: Optional[Iterable[Any]]) -> List[str]:
    """Lowercase, drop empties and repeats, keep first-seen order."""
    seen: Dict[str, None] = {}
    for value in values or []:
        address = lower_address(value)
        if address and address not in seen:
            seen[address] = None
    return list(seen)


# --- Identity ---

def normalize_token_id(token_id: Any) -> Optional[str]:
    """Token ids are carried as decimal strings; v2 hex ids are converted."""
    if token_id is None:
        return None
    if isinstance(token_id, int):
        return str(token_id)
    text = str(token_id).strip()
    if not text:
        return None
    if text.lower().startswith("0x"):
        try:
            return str(int(text, 16))
        except ValueError:
            return text.lower()
    return text


def make_unique_id(chain: str, contract_address: str, token_id: str) -> str:
    """sha-256 hex of lower(chain)|lower(contract)|tokenId."""
    key = f"{chain.lower()}|{contract_address.lower()}|{token_id}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


# --- NFT records ---

def detect_nft_shape(record: Dict[str, Any]) -> str:
    if "uniqueId" in record and "contractAddress" in record:
        return SHAPE_CANONICAL
    if isinstance(record.get("id"), dict) and "tokenId" in record["id"]:
        return SHAPE_V2
    if isinstance(record.get("contract"), dict) and "tokenId" in record:
        return SHAPE_V3
    return SHAPE_UNKNOWN


def _first(*values: Any) -> Optional[str]:
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _dig(data: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _usd(value: Any) -> Optional[float]:
    """Accept a bare number or a {valueUsd: ...} object."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, dict):
        inner = value.get("valueUsd")
        if isinstance(inner, (int, float)) and not isinstance(inner, bool):
            return float(inner)
    return None


def _metadata(record: Dict[str, Any]) -> Dict[str, Any]:
    metadata = _dig(record, "raw", "metadata")
    if not isinstance(metadata, dict):
        metadata = record.get("metadata")
    return metadata if isinstance(metadata, dict) else {}


def _first_media(record: Dict[str, Any]) -> Dict[str, Any]:
    media = record.get("media")
    if isinstance(media, list) and media and isinstance(media[0], dict):
        return media[0]
    return {}


def extract_image(record: Dict[str, Any]) -> Tuple[str, str]:
    """
    Pick the display image and the unproxied original.

    Priority: cached gateway URL, PNG conversion, thumbnail, original URL,
    metadata image/image_url, then the first media entry.
    """
    image = record.get("image")
    if isinstance(image, str):
        image = {"originalUrl": image}
    elif not isinstance(image, dict):
        image = {}
    metadata = _metadata(record)
    media = _first_media(record)

    chosen = _first(
        image.get("cachedUrl"),
        image.get("pngUrl"),
        image.get("thumbnailUrl"),
        image.get("originalUrl"),
        metadata.get("image"),
        metadata.get("image_url"),
        media.get("gateway"),
        media.get("thumbnail"),
        media.get("raw"),
    ) or ""
    raw = _first(
        image.get("originalUrl"),
        metadata.get("image"),
        metadata.get("image_url"),
        media.get("raw"),
    ) or chosen
    return chosen, raw


def _from_v3(record: Dict[str, Any]) -> Dict[str, Any]:
    contract = record.get("contract") or {}
    opensea = contract.get("openSeaMetadata") or {}
    metadata = _metadata(record)
    return {
        "contractAddress": contract.get("address"),
        "tokenId": record.get("tokenId"),
        "name": _first(record.get("name"), metadata.get("name")),
        "description": _first(record.get("description"), metadata.get("description")),
        "collection": Collection(
            name=_first(_dig(record, "collection", "name"), contract.get("name"), opensea.get("collectionName")),
            symbol=_first(contract.get("symbol")),
            tokenType=_first(record.get("tokenType"), contract.get("tokenType")),
            floorPriceUsd=_usd(opensea.get("floorPriceUsd")),
        ),
        "estimatedValueUsd": _usd(record.get("estimatedValue")),
    }


def _from_v2(record: Dict[str, Any]) -> Dict[str, Any]:
    contract = record.get("contract") or {}
    contract_metadata = record.get("contractMetadata") or {}
    metadata = _metadata(record)
    return {
        "contractAddress": contract.get("address"),
        "tokenId": _dig(record, "id", "tokenId"),
        "name": _first(record.get("title"), metadata.get("name")),
        "description": _first(record.get("description"), metadata.get("description")),
        "collection": Collection(
            name=_first(contract_metadata.get("name"), _dig(contract_metadata, "openSea", "collectionName")),
            symbol=_first(contract_metadata.get("symbol")),
            tokenType=_first(_dig(record, "id", "tokenMetadata", "tokenType"), contract_metadata.get("tokenType")),
            floorPriceUsd=_usd(_dig(contract_metadata, "openSea", "floorPriceUsd")),
        ),
        "estimatedValueUsd": _usd(record.get("estimatedValue")),
    }


def _from_unknown(record: Dict[str, Any]) -> Dict[str, Any]:
    collection = record.get("collection")
    contract_address = _first(
        record.get("contractAddress"),
        record.get("contract") if isinstance(record.get("contract"), str) else None,
        _dig(record, "contract", "address"),
        collection.get("address") if isinstance(collection, dict) else None,
    )
    collection_name = None
    if isinstance(collection, dict):
        collection_name = _first(collection.get("name"))
    return {
        "contractAddress": contract_address,
        "tokenId": record.get("tokenId") if record.get("tokenId") is not None else record.get("token_id"),
        "name": _first(record.get("name"), record.get("title")),
        "description": _first(record.get("description")),
        "collection": Collection(
            name=collection_name,
            floorPriceUsd=_usd(_dig(collection, "floorPrice")) if isinstance(collection, dict) else None,
        ),
        "estimatedValueUsd": _usd(record.get("estimatedValue") or record.get("estimatedValueUsd")),
    }


def _from_canonical(record: Dict[str, Any]) -> Dict[str, Any]:
    collection = record.get("collection") or {}
    return {
        "contractAddress": record.get("contractAddress"),
        "tokenId": record.get("tokenId"),
        "name": record.get("name"),
        "description": record.get("description"),
        "collection": Collection(**collection) if isinstance(collection, dict) else Collection(),
        "estimatedValueUsd": record.get("estimatedValueUsd"),
    }


SHAPE_CONVERTERS = {
    SHAPE_V3: _from_v3,
    SHAPE_V2: _from_v2,
    SHAPE_CANONICAL: _from_canonical,
    SHAPE_UNKNOWN: _from_unknown,
}


def normalize_nft(record: Dict[str, Any], chain: str, owner_address: Optional[str] = None) -> Optional[NFT]:
    """
    Build a canonical NFT from any recognised upstream record.

    Returns None when the record lacks a contract address or token id.
    """
    if not isinstance(record, dict):
        return None
    shape = detect_nft_shape(record)
    fields = SHAPE_CONVERTERS[shape](record)

    contract_address = lower_address(fields.pop("contractAddress"))
    token_id = normalize_token_id(fields.pop("tokenId"))
    if not contract_address or not token_id:
        logger.debug(f"Skipping {shape} record without identity: {str(record)[:120]}")
        return None

    if shape == SHAPE_CANONICAL:
        chain = record.get("chain") or chain
        image_url = record.get("imageUrl") or ""
        raw_image_url = record.get("rawImageUrl") or image_url
        owner_address = owner_address or record.get("ownerAddress")
        owners = normalize_addresses(record.get("ownerAddresses"))
    else:
        image_url, raw_image_url = extract_image(record)
        owners = []

    chain = chain.lower()
    owner = lower_address(owner_address)
    if owner and owner not in owners:
        owners.insert(0, owner)

    return NFT(
        uniqueId=make_unique_id(chain, contract_address, token_id),
        chain=chain,
        contractAddress=contract_address,
        tokenId=token_id,
        imageUrl=image_url,
        rawImageUrl=raw_image_url,
        ownerAddress=owner,
        ownerAddresses=owners,
        **fields,
    )


def merge_nft(existing: NFT, incoming: NFT) -> NFT:
    """Earliest record wins; later ones only contribute owners and blank fields."""
    for owner in incoming.ownerAddresses:
        if owner not in existing.ownerAddresses:
            existing.ownerAddresses.append(owner)
    if existing.ownerAddress is None and incoming.ownerAddress:
        existing.ownerAddress = incoming.ownerAddress
    for field in ("name", "description", "imageUrl", "rawImageUrl", "estimatedValueUsd"):
        if not getattr(existing, field) and getattr(incoming, field):
            setattr(existing, field, getattr(incoming, field))
    return existing


class NFTAccumulator:
    """Insertion-ordered dedup map keyed by uniqueId."""

    def __init__(self):
        self._items: Dict[str, NFT] = {}
        self.duplicates = 0

    def __len__(self) -> int:
        return len(self._items)

    def add(self, nft: NFT) -> bool:
        existing = self._items.get(nft.uniqueId)
        if existing is None:
            self._items[nft.uniqueId] = nft
            return True
        merge_nft(existing, nft)
        self.duplicates += 1
        return False

    def values(self) -> List[NFT]:
        return list(self._items.values())


# --- Profiles ---

def unwrap_social_user(entry: Any) -> Optional[Dict[str, Any]]:
    """Following entries arrive either as {object: follow, user: {...}} or as bare users."""
    if not isinstance(entry, dict):
        return None
    user = entry.get("user")
    if isinstance(user, dict):
        return user
    if "fid" in entry or "username" in entry:
        return entry
    return None


def _fid(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def normalize_social_user(entry: Dict[str, Any]) -> Optional[FarcasterProfile]:
    """Social-graph (Neynar-style) user -> FarcasterProfile."""
    user = unwrap_social_user(entry)
    if user is None:
        return None
    verified = user.get("verified_addresses") or user.get("verifiedAddresses") or {}
    eth_addresses = verified.get("eth_addresses") if isinstance(verified, dict) else verified
    return FarcasterProfile(
        fid=_fid(user.get("fid")),
        username=user.get("username"),
        displayName=_first(user.get("display_name"), user.get("displayName")),
        avatarUrl=_first(user.get("pfp_url"), _dig(user, "pfp", "url")),
        custodyAddress=lower_address(user.get("custody_address") or user.get("custodyAddress")),
        connectedAddresses=normalize_addresses(eth_addresses if isinstance(eth_addresses, list) else []),
        bio=_first(_dig(user, "profile", "bio", "text")),
        source="social",
    )


def normalize_portfolio_profile(profile: Dict[str, Any]) -> Optional[FarcasterProfile]:
    """Portfolio GraphQL farcasterProfile -> FarcasterProfile."""
    if not isinstance(profile, dict):
        return None
    metadata = profile.get("metadata") or {}
    return FarcasterProfile(
        fid=_fid(profile.get("fid")),
        username=profile.get("username"),
        displayName=_first(metadata.get("displayName"), profile.get("displayName")),
        avatarUrl=_first(metadata.get("imageUrl"), profile.get("avatarUrl")),
        custodyAddress=lower_address(profile.get("custodyAddress")),
        connectedAddresses=normalize_addresses(profile.get("connectedAddresses")),
        bio=_first(metadata.get("description")),
        source="portfolio",
    )


def profile_addresses(profile: FarcasterProfile) -> List[str]:
    """Custody address followed by verified addresses, without repeats."""
    return normalize_addresses([profile.custodyAddress, *profile.connectedAddresses])


def following_page(payload: Any) -> Tuple[List[FarcasterProfile], Optional[str]]:
    """Extract (users, next cursor) from either following-list payload layout."""
    if not isinstance(payload, dict):
        return [], None
    container = payload.get("result") if isinstance(payload.get("result"), dict) else payload
    entries = container.get("users") or []
    users = [p for p in (normalize_social_user(e) for e in entries) if p is not None]
    cursor = _dig(container, "next", "cursor")
    return users, cursor or None
