# /nft_gateway/api/endpoints/health.py
"""
Liveness endpoint.
"""
from datetime import datetime, timezone

from fastapi import APIRouter

router = APIRouter()


@router.get(
    "/health",
    summary="Liveness probe",
    description="Returns ok with the current UTC time; never calls an upstream.",
)
async def health():
    timestamp = datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")
    return {"status": "ok", "timestamp": timestamp}
