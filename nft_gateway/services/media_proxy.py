"""
Media proxy: fetches NFT media for the browser and always answers with
something an <img> element can render.
"""
import asyncio
import functools
import ipaddress
import logging
import re
import socket
from typing import Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit
from xml.sax.saxutils import escape

import httpx

from nft_gateway.clients.executor import RetryExecutor
from nft_gateway.errors import UpstreamError, UpstreamFailure

logger = logging.getLogger(__name__)

PROVIDER = "media"

IPFS_GATEWAY = "https://cloudflare-ipfs.com/ipfs/"
ARWEAVE_GATEWAY = "https://arweave.net/"

MAX_BODY_BYTES = 10 * 1024 * 1024
MAX_REDIRECTS = 5
MAX_CAPTION = 30

SUCCESS_CACHE_CONTROL = "public, max-age=86400"
PLACEHOLDER_CACHE_CONTROL = "public, max-age=3600"
DEFAULT_CAPTION = "Image unavailable"
DEFAULT_CONTENT_TYPE = "image/jpeg"

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                  "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "image/avif,image/webp,image/apng,image/svg+xml,image/*,video/*,*/*;q=0.8",
}

ALCHEMY_CDN_HOST = "nft-cdn.alchemy.com"
OPENSEA_CDN_HOST = "i.seadn.io"
ZORA_RENDERER_HOST = "api.zora.co"

# Metadata hosts that reject requests carrying a foreign Origin/Referer.
STRICT_REFERRER_HOSTS = (
    "metadata.ens.domains",
    "api.zora.co",
    "arweave.net",
    "cloudflare-ipfs.com",
)

LOCAL_HOSTNAMES = ("localhost", "localhost.localdomain", "ip6-localhost", "ip6-loopback")
REDIRECT_STATUSES = (301, 302, 303, 307, 308)

EXTENSION_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "webp": "image/webp",
    "mp4": "video/mp4",
    "webm": "video/webm",
}

SIZE_SUFFIXES = ("/original", "/thumb")

ZORA_IPFS_PATTERNS = (
    re.compile(r"ipfs(?:%3a|:)%2f%2f([a-zA-Z0-9]+)", re.IGNORECASE),
    re.compile(r"ipfs://([a-zA-Z0-9]+)", re.IGNORECASE),
    re.compile(r"ipfs/([a-zA-Z0-9]+)", re.IGNORECASE),
)


class PayloadTooLarge(UpstreamError):
    """Body exceeded MAX_BODY_BYTES; never retried."""


class BlockedDestination(UpstreamError):
    """Target (or a redirect hop) resolves to a local or private address."""


class ProxyRequest:
    """One media fetch: original target, rewritten URL, per-host headers, attempt counter."""
    __slots__ = ("target_url", "rewritten_url", "headers", "attempt")

    def __init__(self, target_url: str, rewritten_url: str, headers: Dict[str, str]):
        self.target_url = target_url
        self.rewritten_url = rewritten_url
        self.headers = headers
        self.attempt = 0


class MediaResult:
    __slots__ = ("content", "content_type", "cache_control", "placeholder")

    def __init__(self, content: bytes, content_type: str, cache_control: str, placeholder: bool = False):
        self.content = content
        self.content_type = content_type
        self.cache_control = cache_control
        self.placeholder = placeholder


# --- URL rewriting ---

def _host(url: str) -> str:
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def _parse_ip(host: str):
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        pass
    # Shorthand IPv4 forms such as 127.1, 0x7f.0.0.1 or 2130706433
    if re.fullmatch(r"[0-9a-fx.]+", host):
        try:
            return ipaddress.IPv4Address(socket.inet_aton(host))
        except OSError:
            return None
    return None


def is_local_host(host: Optional[str]) -> bool:
    """True for loopback, private, link-local and unspecified targets."""
    host = (host or "").strip().lower().strip("[]").rstrip(".")
    if not host:
        return True
    if host in LOCAL_HOSTNAMES or host.endswith(".localhost"):
        return True
    ip = _parse_ip(host)
    if ip is None:
        return False
    if ip.version == 6 and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return ip.is_loopback or ip.is_private or ip.is_link_local or ip.is_unspecified or ip.is_reserved


def _fix_alchemy_cdn(url: str) -> str:
    parts = urlsplit(url)
    path = parts.path.rstrip("/")
    last_segment = path.rsplit("/", 1)[-1]
    if parts.query or path.endswith(SIZE_SUFFIXES) or "." in last_segment:
        return url
    return urlunsplit((parts.scheme, parts.netloc, path + "/original", "", parts.fragment))


def _strip_width(url: str) -> str:
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "w"]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def _zora_ipfs_hash(url: str) -> Optional[str]:
    for pattern in ZORA_IPFS_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def rewrite_url(url: str) -> str:
    """Apply the gateway rewrite rules in order."""
    url = url.strip()

    if url.lower().startswith("ipfs://"):
        path = url[len("ipfs://"):]
        if path.startswith("ipfs/"):
            path = path[len("ipfs/"):]
        url = IPFS_GATEWAY + path
    elif _host(url) == ZORA_RENDERER_HOST and "ipfs" in url.lower():
        ipfs_hash = _zora_ipfs_hash(url)
        if ipfs_hash:
            url = IPFS_GATEWAY + ipfs_hash
    elif "/ipfs/" in url:
        url = IPFS_GATEWAY + url.split("/ipfs/", 1)[1]

    if url.lower().startswith("ar://"):
        url = ARWEAVE_GATEWAY + url[len("ar://"):]

    if url.startswith("http://"):
        url = "https://" + url[len("http://"):]

    host = _host(url)
    if host == ALCHEMY_CDN_HOST:
        url = _fix_alchemy_cdn(url)
    elif host == OPENSEA_CDN_HOST:
        url = _strip_width(url)
    return url


def host_headers(url: str) -> Dict[str, str]:
    """Outbound headers for the (already rewritten) URL's host."""
    headers = dict(DEFAULT_HEADERS)
    host = _host(url)
    if host == ALCHEMY_CDN_HOST:
        headers["Origin"] = "https://dashboard.alchemy.com"
        headers["Referer"] = "https://dashboard.alchemy.com/"
    elif host == OPENSEA_CDN_HOST:
        headers["Origin"] = "https://opensea.io"
        headers["Referer"] = "https://opensea.io/"
    elif host in STRICT_REFERRER_HOSTS:
        headers.pop("Origin", None)
        headers.pop("Referer", None)
    return headers


def build_proxy_request(url: str) -> ProxyRequest:
    rewritten = rewrite_url(url)
    return ProxyRequest(url, rewritten, host_headers(rewritten))


# --- Content types ---

def sniff_content_type(body: bytes) -> Optional[str]:
    if body.startswith(b"\x89PNG"):
        return "image/png"
    if body.startswith(b"\xff\xd8"):
        return "image/jpeg"
    if body.startswith(b"GIF8"):
        return "image/gif"
    if body[:4] == b"RIFF" and body[8:12] == b"WEBP":
        return "image/webp"
    if body[4:8] == b"ftyp":
        return "video/mp4"
    if body.startswith(b"\x1a\x45\xdf\xa3"):
        return "video/webm"
    head = body[:256].lstrip().lower()
    if head.startswith(b"<svg") or (head.startswith(b"<?xml") and b"<svg" in body[:1024].lower()):
        return "image/svg+xml"
    return None


def content_type_from_extension(url: str) -> Optional[str]:
    path = urlsplit(url).path.lower()
    if "." not in path.rsplit("/", 1)[-1]:
        return None
    return EXTENSION_TYPES.get(path.rsplit(".", 1)[-1])


def resolve_content_type(url: str, declared: Optional[str], body: bytes) -> Optional[str]:
    """
    Keep a declared image/video type; otherwise sniff, then use the extension.

    Returns None for bodies that are clearly not media (e.g. an HTML error page).
    """
    declared = (declared or "").strip()
    if declared.lower().startswith(("image/", "video/")):
        return declared
    sniffed = sniff_content_type(body)
    if sniffed:
        return sniffed
    if declared.lower().startswith(("text/", "application/json")):
        return None
    return content_type_from_extension(url) or DEFAULT_CONTENT_TYPE


def placeholder_svg(caption: str = DEFAULT_CAPTION) -> bytes:
    caption = escape(caption[:MAX_CAPTION])
    return (
        '<svg xmlns="http://www.w3.org/2000/svg" width="200" height="200" viewBox="0 0 200 200">'
        '<rect width="200" height="200" fill="#f0f0f0"/>'
        '<text x="50%" y="50%" font-family="Arial" font-size="12" text-anchor="middle" fill="#888">'
        f"{caption}</text></svg>"
    ).encode("utf-8")


def placeholder(caption: str = DEFAULT_CAPTION) -> MediaResult:
    return MediaResult(placeholder_svg(caption), "image/svg+xml", PLACEHOLDER_CACHE_CONTROL, placeholder=True)


# --- Fetching ---

class MediaProxy:
    """Fetch with retries and a hard body cap; failures become the placeholder."""

    def __init__(self, http: httpx.AsyncClient, executor: RetryExecutor, max_bytes: int = MAX_BODY_BYTES):
        self._http = http
        self._executor = executor
        self._max_bytes = max_bytes

    async def _download(self, request: ProxyRequest) -> httpx.Response:
        request.attempt += 1
        url = httpx.URL(request.rewritten_url)
        # Redirects are followed by hand so every hop passes the local-host check.
        for _ in range(MAX_REDIRECTS + 1):
            if url.scheme not in ("http", "https") or is_local_host(url.host):
                raise BlockedDestination(f"refusing to fetch {str(url)[:200]}", PROVIDER)

            async with self._http.stream("GET", url, headers=request.headers, follow_redirects=False) as response:
                location = response.headers.get("location")
                if response.status_code in REDIRECT_STATUSES and location:
                    url = response.url.join(location)
                    continue
                return await self._read_capped(response)

        raise UpstreamError(f"more than {MAX_REDIRECTS} redirects", PROVIDER)

    async def _read_capped(self, response: httpx.Response) -> httpx.Response:
        content_type = response.headers.get("content-type")
        headers = {"content-type": content_type} if content_type else {}
        if response.status_code >= 400:
            return httpx.Response(response.status_code, headers=headers, request=response.request)

        declared = response.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self._max_bytes:
            raise PayloadTooLarge(f"declared {declared} bytes", PROVIDER)

        chunks = []
        total = 0
        async for chunk in response.aiter_bytes():
            total += len(chunk)
            if total > self._max_bytes:
                raise PayloadTooLarge(f"body exceeded {self._max_bytes} bytes", PROVIDER)
            chunks.append(chunk)
        return httpx.Response(
            response.status_code, headers=headers, content=b"".join(chunks), request=response.request
        )

    async def fetch(self, url: Optional[str]) -> MediaResult:
        if not url or not url.strip():
            logger.warning("Media request without url")
            return placeholder("Missing url")

        request = build_proxy_request(url)
        parts = urlsplit(request.rewritten_url)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            logger.warning(f"Unsupported media URL: {url[:200]}")
            return placeholder("Invalid url")
        if is_local_host(parts.hostname):
            logger.warning(f"Blocked media request to local resource: {url[:200]}")
            return placeholder()

        if request.rewritten_url != url:
            logger.info(f"Media rewrite: {url[:200]} -> {request.rewritten_url[:200]}")

        try:
            response = await self._executor.run(functools.partial(self._download, request), PROVIDER)
        except asyncio.CancelledError:
            raise
        except UpstreamFailure as e:
            logger.warning(f"Media fetch failed after {request.attempt} attempt(s) for {request.rewritten_url[:200]}: {e.message}")
            return placeholder()
        except httpx.InvalidURL as e:
            logger.warning(f"Rejected media URL {request.rewritten_url[:200]}: {e}")
            return placeholder("Invalid url")

        body = response.content
        if not body:
            logger.warning(f"Empty media body from {request.rewritten_url[:200]}")
            return placeholder()
        content_type = resolve_content_type(request.rewritten_url, response.headers.get("content-type"), body)
        if content_type is None:
            logger.warning(f"Non-media response ({response.headers.get('content-type')}) from {request.rewritten_url[:200]}")
            return placeholder()
        return MediaResult(body, content_type, SUCCESS_CACHE_CONTROL)
