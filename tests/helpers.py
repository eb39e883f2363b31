"""Fake upstreams and payload builders shared by the test modules."""
import json

import httpx

NFT_HOST = "eth-mainnet.g.alchemy.com"
SOCIAL_HOST = "api.neynar.com"
PORTFOLIO_ENDPOINTS = (
    "https://portfolio-a.test/graphql",
    "https://portfolio-b.test/graphql",
    "https://portfolio-c.test/graphql",
)


class FakeUpstream:
    """
    Stand-in for every upstream, plugged into httpx.MockTransport.

    Routes match on method, host and path suffix. A route's reply is either a
    Response, a callable taking the request, or a list consumed one per call
    (the last entry repeats). Unmatched requests fail like an unreachable host.
    """

    def __init__(self):
        self.routes = []
        self.calls = []

    def add(self, method, host, path, reply):
        self.routes.append((method.upper(), host, path, reply))
        return self

    def count(self, host=None, path=None):
        return sum(
            1 for request in self.calls
            if (host is None or request.url.host == host) and (path is None or request.url.path.endswith(path))
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        for method, host, path, reply in self.routes:
            if request.method == method and request.url.host == host and request.url.path.endswith(path):
                if isinstance(reply, list):
                    reply = reply.pop(0) if len(reply) > 1 else reply[0]
                if callable(reply):
                    return reply(request)
                # fresh copy so a canned response can be served more than once
                return httpx.Response(reply.status_code, headers=reply.headers, content=reply.content)
        raise httpx.ConnectError(f"no route to {request.url.host}", request=request)


def json_response(body, status=200, headers=None):
    return httpx.Response(status, content=json.dumps(body).encode(), headers={
        "content-type": "application/json", **(headers or {})
    })


def v3_nft(contract, token_id, name=None, image=None):
    """Minimal getNFTsForOwner v3 record."""
    return {
        "contract": {"address": contract, "name": "Test Collection", "symbol": "TST", "tokenType": "ERC721"},
        "tokenId": token_id,
        "tokenType": "ERC721",
        "name": name or f"Token #{token_id}",
        "image": {"cachedUrl": image or f"https://cdn.test/{token_id}.png", "originalUrl": f"ipfs://Qm{token_id}"},
    }


def social_user(fid, username, custody=None, verified=()):
    return {
        "fid": fid,
        "username": username,
        "display_name": username.title(),
        "pfp_url": f"https://img.test/{username}.png",
        "custody_address": custody,
        "verified_addresses": {"eth_addresses": list(verified)},
    }
