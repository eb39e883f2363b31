# /nft_gateway/config.py
"""
Configuration settings for the gateway.
Loads environment variables once and freezes them into a Settings bundle
that is handed to every component at construction time.
"""
import os
from functools import lru_cache
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from nft_gateway.errors import ConfigError

# Load environment variables
load_dotenv(override=True)

# Upstream hosts
NFT_PROVIDER_HOST_TEMPLATE = "https://{network}.g.alchemy.com"
SOCIAL_GRAPH_BASE_URL = "https://api.neynar.com"
DEFAULT_PORTFOLIO_ENDPOINTS = (
    "https://public.zapper.xyz/graphql",
    "https://api.zapper.xyz/v2/graphql",
    "https://api.zapper.fi/v2/graphql",
)

DEFAULT_PORT = 3001

TRUTHY = ("1", "true", "yes", "on")


def _flag(value: Optional[str], default: bool = False) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in TRUTHY


def _number(env: Mapping[str, str], key: str, default, cast=float):
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}")


def _secret(env: Mapping[str, str], key: str) -> Optional[str]:
    value = (env.get(key) or "").strip()
    return value or None


class Settings(BaseModel):
    """Immutable configuration bundle."""
    model_config = ConfigDict(frozen=True)

    nft_provider_key: Optional[str] = Field(None, description="Alchemy-style NFT API key")
    social_graph_key: Optional[str] = Field(None, description="Neynar-style API key")
    portfolio_graphql_key: Optional[str] = Field(None, description="Zapper-style GraphQL key")
    portfolio_endpoints: Tuple[str, ...] = DEFAULT_PORTFOLIO_ENDPOINTS
    portfolio_auth_header: str = "x-zapper-api-key"
    farcaster_domain: Optional[str] = None

    nft_provider_host_template: str = NFT_PROVIDER_HOST_TEMPLATE
    social_graph_base_url: str = SOCIAL_GRAPH_BASE_URL
    social_graph_auth_header: str = "x-api-key"
    social_graph_alt_auth_header: str = "api_key"

    port: int = DEFAULT_PORT
    strict_config: bool = False
    strict_chains: bool = False
    nft_cache_enabled: bool = False

    request_deadline: float = 30.0
    upstream_timeout: float = 10.0
    media_timeout: float = 8.0
    retry_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 10.0
    fanout_concurrency: int = 3
    fanout_pause: float = 0.3
    profile_ttl: float = 15 * 60
    owner_nfts_ttl: float = 5 * 60
    log_level: str = "INFO"

    def missing_keys(self) -> list:
        keys = {
            "NFT_PROVIDER_KEY": self.nft_provider_key,
            "SOCIAL_GRAPH_KEY": self.social_graph_key,
            "PORTFOLIO_GRAPHQL_KEY": self.portfolio_graphql_key,
        }
        return [key for key, value in keys.items() if not value]

    def validate_strict(self) -> None:
        if self.strict_config and self.missing_keys():
            raise ConfigError(
                "Missing required environment variables",
                details={"missing": self.missing_keys()},
            )


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build a Settings bundle from the given mapping (defaults to os.environ)."""
    env = os.environ if env is None else env

    endpoints = tuple(
        e.strip() for e in (env.get("PORTFOLIO_ENDPOINTS") or "").split(",") if e.strip()
    ) or DEFAULT_PORTFOLIO_ENDPOINTS

    return Settings(
        nft_provider_key=_secret(env, "NFT_PROVIDER_KEY"),
        social_graph_key=_secret(env, "SOCIAL_GRAPH_KEY"),
        portfolio_graphql_key=_secret(env, "PORTFOLIO_GRAPHQL_KEY"),
        portfolio_endpoints=endpoints,
        portfolio_auth_header=env.get("PORTFOLIO_AUTH_HEADER") or "x-zapper-api-key",
        farcaster_domain=env.get("FARCASTER_DOMAIN"),
        social_graph_base_url=env.get("SOCIAL_GRAPH_BASE_URL") or SOCIAL_GRAPH_BASE_URL,
        social_graph_auth_header=env.get("SOCIAL_GRAPH_AUTH_HEADER") or "x-api-key",
        social_graph_alt_auth_header=env.get("SOCIAL_GRAPH_ALT_AUTH_HEADER") or "api_key",
        port=_number(env, "PORT", DEFAULT_PORT, int),
        strict_config=_flag(env.get("STRICT_CONFIG")),
        strict_chains=_flag(env.get("STRICT_CHAINS")),
        nft_cache_enabled=_flag(env.get("NFT_CACHE_ENABLED")),
        request_deadline=_number(env, "REQUEST_DEADLINE_SECONDS", 30.0),
        upstream_timeout=_number(env, "UPSTREAM_TIMEOUT_SECONDS", 10.0),
        media_timeout=_number(env, "MEDIA_TIMEOUT_SECONDS", 8.0),
        retry_attempts=_number(env, "RETRY_ATTEMPTS", 3, int),
        retry_base_delay=_number(env, "RETRY_BASE_DELAY_SECONDS", 1.0),
        fanout_concurrency=_number(env, "FANOUT_CONCURRENCY", 3, int),
        fanout_pause=_number(env, "FANOUT_PAUSE_SECONDS", 0.3),
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, read once."""
    return load_settings()
