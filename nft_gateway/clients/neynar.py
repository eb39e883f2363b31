"""
Social-graph client (Neynar v2 Farcaster API layout).
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from nft_gateway.clients.executor import RetryExecutor, read_json
from nft_gateway.errors import ConfigError, UnauthorizedUpstream, UpstreamError
from nft_gateway.models.farcaster_models import FarcasterProfile
from nft_gateway.utils.normalize import following_page, normalize_social_user

logger = logging.getLogger(__name__)

PROVIDER = "social_graph"
FOLLOWING_PAGE_LIMIT = 100
MAX_FOLLOWING_PAGES = 200


class SocialGraphClient:
    """
    Read-only adapter over the social-graph REST API.

    Credentials are sent under the primary header; a 401/403 triggers exactly
    one retry under the alternate header name before giving up.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        executor: RetryExecutor,
        api_key: Optional[str],
        base_url: str = "https://api.neynar.com",
        auth_header: str = "x-api-key",
        alt_auth_header: str = "api_key",
    ):
        self._http = http
        self._executor = executor
        self._api_key = api_key
        self._base_url = base_url.rstrip("/") + "/v2/farcaster"
        self._auth_header = auth_header
        self._alt_auth_header = alt_auth_header

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _headers(self, header_name: str) -> Dict[str, str]:
        if not self._api_key:
            raise ConfigError("SOCIAL_GRAPH_KEY is not configured")
        return {"accept": "application/json", header_name: self._api_key}

    async def _get(self, path: str, params: Dict[str, Any]) -> Any:
        url = f"{self._base_url}{path}"
        headers = self._headers(self._auth_header)
        try:
            response = await self._executor.run(
                lambda: self._http.get(url, params=params, headers=headers), PROVIDER
            )
        except UnauthorizedUpstream as e:
            if not self._alt_auth_header or self._alt_auth_header == self._auth_header:
                raise
            logger.warning(f"{path} rejected {self._auth_header} ({e.status}); retrying with {self._alt_auth_header}")
            alt_headers = self._headers(self._alt_auth_header)
            response = await self._executor.run(
                lambda: self._http.get(url, params=params, headers=alt_headers), PROVIDER
            )
        return read_json(response, PROVIDER)

    async def get_following(self, fid: int, cursor: Optional[str] = None, limit: int = FOLLOWING_PAGE_LIMIT) -> Any:
        params: Dict[str, Any] = {"fid": fid, "limit": limit}
        if cursor:
            params["cursor"] = cursor
        return await self._get("/following", params)

    async def get_all_following(self, fid: int) -> List[FarcasterProfile]:
        """Page the following list until the cursor is exhausted."""
        users: List[FarcasterProfile] = []
        cursor = None
        seen_cursors = set()
        for _ in range(MAX_FOLLOWING_PAGES):
            payload = await self.get_following(fid, cursor)
            page_users, cursor = following_page(payload)
            users.extend(page_users)
            if not cursor:
                break
            if cursor in seen_cursors:
                raise UpstreamError(f"{PROVIDER} repeated following cursor for fid {fid}", PROVIDER)
            seen_cursors.add(cursor)
        else:
            raise UpstreamError(f"Following list of fid {fid} spans more than {MAX_FOLLOWING_PAGES} pages", PROVIDER)
        logger.info(f"FID {fid} follows {len(users)} users")
        return users

    async def get_user_by_fid(self, fid: int) -> Optional[FarcasterProfile]:
        payload = await self._get("/user/bulk", {"fids": str(fid)})
        users = payload.get("users") if isinstance(payload, dict) else None
        if not users:
            return None
        return normalize_social_user(users[0])

    async def get_user_by_username(self, username: str) -> Optional[FarcasterProfile]:
        try:
            payload = await self._get("/user/by_username", {"username": username})
        except UpstreamError as e:
            if e.status == 404:
                return None
            raise
        user = payload.get("user") if isinstance(payload, dict) else None
        if not user:
            return None
        return normalize_social_user(user)
