# /nft_gateway/api/endpoints/rpc.py
"""
Optimism JSON-RPC pass-through used by the sign-in verification collaborator.
"""
import logging
from typing import Any

from fastapi import APIRouter, Body, Depends

from nft_gateway.dependencies import Gateway, get_gateway
from nft_gateway.errors import InvalidRequest

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post(
    "/rpc/optimism",
    summary="Optimism JSON-RPC proxy",
    description="Forwards a JSON-RPC request (or batch) to the Optimism node on the NFT provider account.",
    responses={
        400: {"description": "Body is not a JSON-RPC object or batch"},
        500: {"description": "NFT_PROVIDER_KEY is not configured"},
        502: {"description": "RPC node failed after retries"},
    },
)
async def optimism_rpc(payload: Any = Body(...), gateway: Gateway = Depends(get_gateway)) -> Any:
    if not isinstance(payload, (dict, list)):
        raise InvalidRequest("JSON-RPC body must be an object or an array")
    method = payload.get("method") if isinstance(payload, dict) else f"batch of {len(payload)}"
    logger.info(f"Optimism RPC: {method}")
    return await gateway.nft_provider.optimism_rpc(payload)
