# /nft_gateway/middleware.py
"""
Cross-cutting HTTP concerns: CORS headers, error envelopes and the
end-to-end request deadline.
"""
import asyncio
import logging

from fastapi.responses import JSONResponse

from nft_gateway.errors import ClientCancelled, GatewayError, UpstreamTimeout

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Requested-With",
}


def error_response(error: GatewayError) -> JSONResponse:
    """Render a classified error as {error, message, details?}."""
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


class RequestDeadlineMiddleware:
    """
    Pure ASGI middleware that bounds the whole request.

    Expiry cancels the handler (and with it every in-flight upstream attempt)
    and answers 504 upstream_timeout, unless a response has already started.
    """

    def __init__(self, app, seconds: float):
        self.app = app
        self.seconds = seconds

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http" or not self.seconds or self.seconds <= 0:
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message):
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await asyncio.wait_for(self.app(scope, receive, send_wrapper), timeout=self.seconds)
        except asyncio.TimeoutError:
            logger.warning(f"Request deadline of {self.seconds}s exceeded: {scope['method']} {scope['path']}")
            if response_started:
                return
            error = UpstreamTimeout(f"Request exceeded the {self.seconds:g}s deadline", provider="gateway")
            await error_response(error)(scope, receive, send)
        except asyncio.CancelledError:
            # Nothing is written back; the connection is already gone.
            error = ClientCancelled(f"{scope['method']} {scope['path']} cancelled by the client")
            logger.info(f"{error.kind}: {error.message}")
            raise
