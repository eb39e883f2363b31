"""
CollectionFriends: which accounts a viewer follows also hold a given contract.
"""
import logging
from typing import Dict, List

from nft_gateway.clients.alchemy import NFTProviderClient
from nft_gateway.clients.neynar import SocialGraphClient
from nft_gateway.errors import ConfigError
from nft_gateway.models.farcaster_models import CollectionFriendsResponse, FarcasterProfile, Friend
from nft_gateway.models.nft_models import Chain
from nft_gateway.utils.normalize import lower_address, profile_addresses

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50


class CollectionFriendsService:
    """Joins the following list against the contract's owner set."""

    def __init__(self, social: SocialGraphClient, nfts: NFTProviderClient):
        self._social = social
        self._nfts = nfts

    async def collection_friends(
        self, contract_address: str, fid: int, chain: Chain, limit: int = DEFAULT_LIMIT
    ) -> CollectionFriendsResponse:
        contract = lower_address(contract_address) or ""
        if not self._social.configured:
            raise ConfigError("SOCIAL_GRAPH_KEY is not configured")
        if not self._nfts.configured:
            raise ConfigError("NFT_PROVIDER_KEY is not configured")

        logger.info(f"Collection friends for contract={contract}, fid={fid}, chain={chain.value}, limit={limit}")

        # address -> first following entry that claims it
        following = await self._social.get_all_following(fid)
        by_address: Dict[str, FarcasterProfile] = {}
        for profile in following:
            for address in profile_addresses(profile):
                by_address.setdefault(address, profile)

        if not by_address:
            logger.info(f"FID {fid} follows nobody with a known address")
            return CollectionFriendsResponse(contractAddress=contract)

        owners = await self._nfts.get_all_owners_for_contract(contract, chain)
        matched = [address for address in by_address if address in owners]
        logger.info(f"{len(matched)} of {len(by_address)} followed addresses hold {contract}")

        friends: List[Friend] = []
        for address in matched:
            profile = by_address[address]
            friends.append(Friend(
                fid=profile.fid,
                username=profile.username,
                displayName=profile.displayName or profile.username,
                avatarUrl=profile.avatarUrl,
                address=address,
            ))

        return CollectionFriendsResponse(
            contractAddress=contract,
            friends=friends[:limit],
            totalFriends=len(friends),
            hasMore=len(friends) > limit,
        )
