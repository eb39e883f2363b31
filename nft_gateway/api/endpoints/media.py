# /nft_gateway/api/endpoints/media.py
"""
Media proxy endpoint. Always answers 200 with media or an SVG placeholder.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from nft_gateway.dependencies import Gateway, get_gateway
from nft_gateway.services.media_proxy import placeholder

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get(
    "/media",
    summary="Proxy NFT media",
    description="""
    Fetches an image or video on behalf of the browser, rewriting ipfs://, ar:// and
    known CDN URLs first. Upstream failures, oversized bodies and non-media responses
    yield an SVG placeholder instead of an error.
    """,
    response_class=Response,
    responses={200: {"description": "Media bytes or SVG placeholder", "content": {"image/*": {}, "video/*": {}}}},
)
async def proxy_media(
    url: Optional[str] = Query(None, description="Media URL (http, https, ipfs or ar)"),
    gateway: Gateway = Depends(get_gateway),
) -> Response:
    try:
        result = await gateway.media.fetch(url)
    except Exception as e:
        logger.error(f"Unexpected media proxy error for {(url or '')[:200]}: {e}")
        result = placeholder()

    return Response(
        content=result.content,
        media_type=result.content_type,
        headers={"Cache-Control": result.cache_control},
    )
