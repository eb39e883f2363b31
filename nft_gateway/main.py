# /nft_gateway/main.py
"""
Main application module for the gateway.
Builds the FastAPI app, wires middleware and error handlers, and includes all routes.
"""
import logging
import sys
import uuid
from typing import Optional

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from nft_gateway.api.router import router
from nft_gateway.config import Settings, get_settings
from nft_gateway.dependencies import Gateway
from nft_gateway.errors import (
    GatewayError,
    InternalError,
    InvalidRequest,
    MethodNotAllowed,
    NotFound,
)
from nft_gateway.middleware import CORS_HEADERS, RequestDeadlineMiddleware, error_response

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Direct all logging to stdout in a single format."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        stream=sys.stdout,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        force=True  # Override any previous configuration
    )
    # httpx logs full request URLs, and NFT provider URLs carry the API key
    logging.getLogger("httpx").setLevel(logging.WARNING)


def create_app(settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    """
    Application factory.

    `transport` replaces the network for every outbound call; tests pass an
    httpx.MockTransport here.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="NFT Gateway",
        description="Aggregation gateway for NFT ownership, Farcaster social graph and media",
    )
    app.state.settings = settings
    app.state.gateway = Gateway(settings, transport=transport)

    @app.on_event("startup")
    async def startup_event():
        """Fail fast in strict mode, otherwise just report what is configured"""
        logger.info("=== GATEWAY STARTING UP ===")
        settings.validate_strict()
        app.state.gateway.log_configuration()
        logger.info("=== GATEWAY READY ===")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Close the shared HTTP client"""
        logger.info("=== SHUTTING DOWN GATEWAY ===")
        await app.state.gateway.aclose()

    # --- Error handlers ---

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        level = logging.ERROR if exc.status_code >= 500 else logging.INFO
        logger.log(level, f"[{getattr(request.state, 'request_id', '-')}] {exc.kind}: {exc.message}")
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = [
            {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
            for error in exc.errors()
        ]
        return error_response(InvalidRequest("Invalid request parameters", details=details))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            error = NotFound(f"No route for {request.url.path}")
        elif exc.status_code == 405:
            error = MethodNotAllowed(f"{request.method} is not allowed on {request.url.path}")
        elif exc.status_code == 400:
            error = InvalidRequest(str(exc.detail))
        else:
            error = GatewayError(str(exc.detail))
            error.status_code = exc.status_code
        return error_response(error)

    # --- Middleware (last registered runs first) ---

    app.add_middleware(RequestDeadlineMiddleware, seconds=settings.request_deadline)

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id

        if request.method == "OPTIONS":
            response = Response(status_code=204)
        else:
            try:
                response = await call_next(request)
            except Exception:
                logger.exception(f"[{request_id}] Unhandled error on {request.method} {request.url.path}")
                response = error_response(InternalError("Internal server error"))
            logger.info(f"[{request_id}] {request.method} {request.url.path} -> {response.status_code}")

        response.headers.update(CORS_HEADERS)
        response.headers["X-Request-ID"] = request_id
        return response

    # Root endpoint
    @app.get("/", include_in_schema=False)
    async def root():
        return {"message": "NFT Gateway is running"}

    app.include_router(router)
    return app


setup_logging(get_settings().log_level)
app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("nft_gateway.main:app", host="0.0.0.0", port=get_settings().port)
