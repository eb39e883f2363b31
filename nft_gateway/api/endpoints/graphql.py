# /nft_gateway/api/endpoints/graphql.py
"""
Portfolio GraphQL pass-through: an open route and a restricted one.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from nft_gateway.dependencies import Gateway, get_gateway
from nft_gateway.errors import InvalidRequest
from nft_gateway.models.farcaster_models import GraphQLRequest

logger = logging.getLogger(__name__)
router = APIRouter()

# Operations the restricted route forwards
ALLOWED_OPERATIONS = ("farcasterProfile",)

GRAPHQL_RESPONSES = {
    400: {"description": "Malformed body or operation not allowed"},
    500: {"description": "PORTFOLIO_GRAPHQL_KEY is not configured"},
    502: {"description": "Every portfolio endpoint failed"},
}


def _payload(request: GraphQLRequest) -> Dict[str, Any]:
    return request.model_dump(exclude_none=True)


@router.post(
    "/graphql/portfolio",
    summary="Portfolio GraphQL pass-through",
    description="Forwards any GraphQL POST to the portfolio provider, trying each candidate endpoint in order.",
    responses=GRAPHQL_RESPONSES,
)
async def portfolio_graphql(request: GraphQLRequest, gateway: Gateway = Depends(get_gateway)) -> Any:
    logger.info(f"Portfolio GraphQL operation={request.operationName or '<anonymous>'}")
    return await gateway.portfolio.execute(_payload(request))


@router.post(
    "/zapper",
    summary="Restricted portfolio GraphQL",
    description=f"Only forwards queries that use one of: {', '.join(ALLOWED_OPERATIONS)}.",
    responses=GRAPHQL_RESPONSES,
)
async def restricted_graphql(request: GraphQLRequest, gateway: Gateway = Depends(get_gateway)) -> Any:
    if not any(operation in request.query for operation in ALLOWED_OPERATIONS):
        logger.warning("Rejected GraphQL query outside the allowed operations")
        raise InvalidRequest(
            "Query not allowed on this route",
            details={"allowedOperations": list(ALLOWED_OPERATIONS)},
        )
    return await gateway.portfolio.execute(_payload(request))
