"""
Error kinds surfaced by the gateway and their HTTP mapping.
"""
from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base class for every classified failure."""
    kind = "internal_error"
    status_code = 500

    def __init__(self, message: str = "", details: Optional[Any] = None):
        super().__init__(message or self.kind)
        self.message = message or self.kind
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.kind, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class InvalidRequest(GatewayError):
    kind = "invalid_request"
    status_code = 400


class MethodNotAllowed(GatewayError):
    kind = "method_not_allowed"
    status_code = 405


class NotFound(GatewayError):
    kind = "not_found"
    status_code = 404


class ConfigError(GatewayError):
    kind = "config_error"
    status_code = 500


class InternalError(GatewayError):
    kind = "internal_error"
    status_code = 500


class ClientCancelled(GatewayError):
    """The caller went away; nothing is written back."""
    kind = "client_cancelled"
    status_code = 499


class UpstreamFailure(GatewayError):
    """Failure attributed to one upstream provider."""
    kind = "upstream_error"
    status_code = 502

    def __init__(
        self,
        message: str = "",
        provider: str = "upstream",
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        merged = {"provider": provider}
        if status is not None:
            merged["status"] = status
        if details:
            merged.update(details)
        super().__init__(message, merged)
        self.provider = provider
        self.status = status


class UpstreamError(UpstreamFailure):
    kind = "upstream_error"
    status_code = 502


class UnauthorizedUpstream(UpstreamFailure):
    kind = "unauthorized_upstream"
    status_code = 502


class UpstreamTimeout(UpstreamFailure):
    kind = "upstream_timeout"
    status_code = 504


class RateLimited(UpstreamFailure):
    kind = "rate_limited"
    status_code = 429
