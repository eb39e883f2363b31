import httpx
import pytest
from fastapi.testclient import TestClient

from nft_gateway.config import Settings
from nft_gateway.main import create_app
from tests.helpers import PORTFOLIO_ENDPOINTS, FakeUpstream


@pytest.fixture
def settings():
    return Settings(
        nft_provider_key="nft-key",
        social_graph_key="social-key",
        portfolio_graphql_key="portfolio-key",
        portfolio_endpoints=PORTFOLIO_ENDPOINTS,
        retry_base_delay=0,
        retry_max_delay=0,
        fanout_pause=0,
        request_deadline=10,
    )


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def app(settings, upstream):
    return create_app(settings, transport=httpx.MockTransport(upstream))


@pytest.fixture
def client(app):
    return TestClient(app)
