import httpx
import pytest

from nft_gateway.clients.executor import RetryExecutor, RetryPolicy
from nft_gateway.services.media_proxy import (
    MediaProxy,
    host_headers,
    is_local_host,
    resolve_content_type,
    rewrite_url,
)
from tests.helpers import FakeUpstream

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
GIF = b"GIF89a" + b"\x00" * 16


def test_ipfs_and_arweave_rewrites():
    assert rewrite_url("ipfs://QmHash/1.png") == "https://cloudflare-ipfs.com/ipfs/QmHash/1.png"
    assert rewrite_url("ipfs://ipfs/QmHash") == "https://cloudflare-ipfs.com/ipfs/QmHash"
    assert rewrite_url("https://gateway.pinata.cloud/ipfs/QmHash/2.png") == "https://cloudflare-ipfs.com/ipfs/QmHash/2.png"
    assert rewrite_url("ar://tx123") == "https://arweave.net/tx123"
    assert rewrite_url("http://example.test/a.png") == "https://example.test/a.png"


def test_zora_renderer_ipfs_hash():
    url = "https://api.zora.co/renderer/stack-images?image=ipfs%3A%2F%2FbafyHash123&w=300"
    assert rewrite_url(url) == "https://cloudflare-ipfs.com/ipfs/bafyHash123"


def test_cdn_fixups():
    assert rewrite_url("https://nft-cdn.alchemy.com/eth-mainnet/abc123") == \
        "https://nft-cdn.alchemy.com/eth-mainnet/abc123/original"
    assert rewrite_url("https://nft-cdn.alchemy.com/eth-mainnet/abc123/thumb") == \
        "https://nft-cdn.alchemy.com/eth-mainnet/abc123/thumb"
    assert rewrite_url("https://i.seadn.io/gae/xyz?w=500&auto=format") == "https://i.seadn.io/gae/xyz?auto=format"


def test_per_host_headers():
    alchemy = host_headers("https://nft-cdn.alchemy.com/eth-mainnet/abc/original")
    assert alchemy["Referer"].startswith("https://dashboard.alchemy.com")
    opensea = host_headers("https://i.seadn.io/gae/xyz")
    assert opensea["Origin"] == "https://opensea.io"
    strict = host_headers("https://metadata.ens.domains/mainnet/avatar/x")
    assert "Origin" not in strict and "Referer" not in strict
    assert "User-Agent" in strict


def test_content_type_resolution():
    assert resolve_content_type("https://x.test/a", "image/png", b"anything") == "image/png"
    assert resolve_content_type("https://x.test/a", "application/octet-stream", GIF) == "image/gif"
    assert resolve_content_type("https://x.test/a.webm", None, b"\x00\x01") == "video/webm"
    assert resolve_content_type("https://x.test/a", None, b"\x00\x01") == "image/jpeg"
    assert resolve_content_type("https://x.test/a.png", "text/html", b"<html>") is None


def test_media_success(client, upstream):
    upstream.add("GET", "cloudflare-ipfs.com", "/ipfs/QmImage", httpx.Response(200, content=PNG))
    rv = client.get("/media", params={"url": "ipfs://QmImage"})
    assert rv.status_code == 200
    assert rv.headers["content-type"] == "image/png"
    assert rv.headers["cache-control"] == "public, max-age=86400"
    assert rv.content == PNG


def test_media_placeholder_when_unreachable(client, upstream):
    rv = client.get("/media", params={"url": "https://example.invalid/img.png"})
    assert rv.status_code == 200
    assert rv.headers["content-type"].startswith("image/svg+xml")
    assert "Image unavailable" in rv.text
    assert rv.headers["cache-control"] == "public, max-age=3600"
    # three attempts, no more
    assert upstream.count(host="example.invalid") == 3


def test_media_placeholder_on_terminal_status(client, upstream):
    upstream.add("GET", "img.test", "/gone.png", httpx.Response(404))
    rv = client.get("/media", params={"url": "https://img.test/gone.png"})
    assert rv.status_code == 200
    assert rv.headers["content-type"].startswith("image/svg+xml")
    assert upstream.count(host="img.test") == 1


def test_media_missing_url_and_loopback(client, upstream):
    rv = client.get("/media")
    assert rv.status_code == 200
    assert rv.headers["content-type"].startswith("image/svg+xml")

    rv = client.get("/media", params={"url": "http://127.0.0.1:8080/secret"})
    assert rv.status_code == 200
    assert rv.headers["content-type"].startswith("image/svg+xml")
    assert upstream.calls == []


def test_media_html_error_page_becomes_placeholder(client, upstream):
    upstream.add("GET", "img.test", "/a.png", httpx.Response(200, content=b"<html>blocked</html>",
                                                            headers={"content-type": "text/html"}))
    rv = client.get("/media", params={"url": "https://img.test/a.png"})
    assert rv.status_code == 200
    assert "Image unavailable" in rv.text


@pytest.mark.asyncio
async def test_oversized_body_is_aborted_without_retry():
    upstream = FakeUpstream()
    upstream.add("GET", "img.test", "/huge.png", httpx.Response(200, content=PNG * 100))
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as http:
        proxy = MediaProxy(http, RetryExecutor(RetryPolicy(attempts=3, base_delay=0, max_delay=0)), max_bytes=1024)
        result = await proxy.fetch("https://img.test/huge.png")

    assert result.placeholder
    assert result.content_type == "image/svg+xml"
    assert upstream.count(host="img.test") == 1


@pytest.mark.asyncio
async def test_media_retries_server_errors():
    upstream = FakeUpstream()
    upstream.add("GET", "img.test", "/flaky.gif", [httpx.Response(503), httpx.Response(200, content=GIF)])
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as http:
        proxy = MediaProxy(http, RetryExecutor(RetryPolicy(attempts=3, base_delay=0, max_delay=0)))
        result = await proxy.fetch("https://img.test/flaky.gif")

    assert not result.placeholder
    assert result.content_type == "image/gif"
    assert upstream.count(host="img.test") == 2


def test_local_host_detection():
    for host in ("localhost", "localhost.", "LOCALHOST", "127.0.0.1", "127.0.0.2", "127.1", "2130706433",
                 "0.0.0.0", "::1", "[::1]", "::ffff:127.0.0.1", "10.0.0.5", "192.168.1.1", "169.254.169.254",
                 "tile.localhost"):
        assert is_local_host(host), host
    for host in ("img.test", "cloudflare-ipfs.com", "8.8.8.8", "face.bad"):
        assert not is_local_host(host), host


def test_media_loopback_variants_are_refused(client, upstream):
    for url in ("http://127.0.0.2/secret.png", "http://127.1/secret.png",
                "http://[::ffff:127.0.0.1]/secret.png", "http://localhost./secret.png"):
        rv = client.get("/media", params={"url": url})
        assert rv.status_code == 200
        assert rv.headers["content-type"].startswith("image/svg+xml"), url
    assert upstream.calls == []


@pytest.mark.asyncio
async def test_redirect_to_loopback_is_not_followed():
    upstream = FakeUpstream()
    upstream.add("GET", "evil.test", "/a.png", httpx.Response(302, headers={"location": "http://127.0.0.1:8080/secret.png"}))
    upstream.add("GET", "127.0.0.1", "/secret.png", httpx.Response(200, content=PNG))
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as http:
        proxy = MediaProxy(http, RetryExecutor(RetryPolicy(attempts=3, base_delay=0, max_delay=0)))
        result = await proxy.fetch("https://evil.test/a.png")

    assert result.placeholder
    assert upstream.count(host="127.0.0.1") == 0
    # refusal is terminal, so the first hop is not retried
    assert upstream.count(host="evil.test") == 1


@pytest.mark.asyncio
async def test_public_redirects_are_followed():
    upstream = FakeUpstream()
    upstream.add("GET", "img.test", "/old.png", httpx.Response(301, headers={"location": "/new.png"}))
    upstream.add("GET", "img.test", "/new.png", httpx.Response(200, content=PNG))
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as http:
        proxy = MediaProxy(http, RetryExecutor(RetryPolicy(attempts=3, base_delay=0, max_delay=0)))
        result = await proxy.fetch("https://img.test/old.png")

    assert not result.placeholder
    assert result.content == PNG
    assert upstream.count(path="/new.png") == 1


@pytest.mark.asyncio
async def test_redirect_loop_gives_placeholder():
    upstream = FakeUpstream()
    upstream.add("GET", "img.test", "/loop.png", httpx.Response(302, headers={"location": "/loop.png"}))
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as http:
        proxy = MediaProxy(http, RetryExecutor(RetryPolicy(attempts=3, base_delay=0, max_delay=0)))
        result = await proxy.fetch("https://img.test/loop.png")

    assert result.placeholder
