import asyncio
import logging
import random
from types import MappingProxyType
from typing import Dict, List, Mapping, NamedTuple, Optional, Union
from urllib.parse import urlparse

import aiohttp
from aiohttp import ClientSession, ClientTimeout, TCPConnector
from aiohttp_proxy import ProxyConnector

from hosts.domain_templates import generate_headers
from routes.playlist_rewriter import (
    is_m3u8_content_type,
    is_m3u8_url,
    looks_like_m3u8,
    rewrite_m3u8,
)
from utils.cache import ResponseCache
from utils.decompress import DecompressionError, decompress_content
from utils.mime_types import DEFAULT_CONTENT_TYPE, M3U8_CONTENT_TYPE, get_streaming_content_type

logger = logging.getLogger(__name__)


class ProxyError(Exception):
    """Base error for a single proxied request. Carries the offending URL."""

    def __init__(self, message: str, url: str = None):
        super().__init__(message)
        self.message = message
        self.url = url


class InvalidUrlError(ProxyError):
    pass


class UpstreamTimeoutError(ProxyError):
    pass


class UpstreamError(ProxyError):
    def __init__(self, message: str, url: str = None, status: int = None):
        super().__init__(message, url)
        self.status = status


class FetchedResource(NamedTuple):
    content: bytes
    content_type: str
    status: int
    headers: Dict[str, str]


class ProxyResult(NamedTuple):
    content: Union[bytes, str]
    content_type: str
    cache_status: str
    status: int = 200
    headers: Mapping[str, str] = MappingProxyType({})


def validate_url(target_url: str):
    try:
        parsed = urlparse(target_url)
        # Raises ValueError on a non-numeric or out-of-range port
        parsed.port
    except ValueError as e:
        raise InvalidUrlError(f"Invalid URL format: {e}", target_url)

    if parsed.scheme not in ('http', 'https') or not parsed.hostname:
        raise InvalidUrlError("Invalid URL format", target_url)
    return parsed


class ProxyPipeline:
    """
    Fetch -> decompress -> classify -> rewrite -> cache, for one target URL at a time.

    The aiohttp session is shared across requests; certificate verification is
    disabled on purpose since many streaming origins are misconfigured.
    """

    def __init__(self, cache: ResponseCache, request_timeout: int = 30000, cache_ttl: int = 300, proxies: Optional[List[str]] = None):
        self.cache = cache
        self.request_timeout = request_timeout
        self.cache_ttl = cache_ttl
        self.proxies = proxies or []
        self.session = None
        self._session_lock = asyncio.Lock()

    def _get_random_proxy(self):
        return random.choice(self.proxies) if self.proxies else None

    async def _get_session(self):
        async with self._session_lock:
            if self.session is None or self.session.closed:
                proxy = self._get_random_proxy()
                if proxy:
                    logger.info(f"🌍 Using upstream proxy {proxy}")
                    connector = ProxyConnector.from_url(proxy, ssl=False)
                else:
                    connector = TCPConnector(
                        limit=100, limit_per_host=20,
                        keepalive_timeout=60, use_dns_cache=True, ssl=False
                    )
                # Decompression happens in the pipeline so failures can fall back to raw bytes
                self.session = ClientSession(connector=connector, auto_decompress=False)
        return self.session

    async def fetch_origin(self, target_url: str, headers: Dict[str, str]) -> FetchedResource:
        timeout_seconds = self.request_timeout / 1000
        session = await self._get_session()

        logger.debug(f"Proxying {target_url} with headers {list(headers.keys())}")

        try:
            async with session.get(
                target_url,
                headers=headers,
                allow_redirects=True,
                timeout=ClientTimeout(total=timeout_seconds),
            ) as resp:
                content = await resp.read()
                response_headers = {k.lower(): v for k, v in resp.headers.items()}
                content_type = response_headers.get('content-type') or DEFAULT_CONTENT_TYPE

                logger.info(f"✅ Fetched {target_url} [{resp.status}] {content_type} ({len(content)} bytes)")
                return FetchedResource(content, content_type, resp.status, response_headers)

        except asyncio.TimeoutError:
            logger.error(f"⏱️ Request timed out after {self.request_timeout}ms: {target_url}")
            raise UpstreamTimeoutError(f"Request timed out after {self.request_timeout}ms", target_url)
        except (aiohttp.ClientError, OSError) as e:
            logger.error(f"❌ Upstream request failed for {target_url}: {e}")
            raise UpstreamError(f"Upstream request failed: {e}", target_url)

    async def handle_proxy(self, target_url: str, proxy_base_path: str = "/proxy") -> ProxyResult:
        parsed = validate_url(target_url)

        cached = self.cache.get(target_url)
        if cached is not None:
            content, content_type = cached
            return ProxyResult(content, content_type, "HIT", 200, {})

        headers = generate_headers(parsed)
        fetched = await self.fetch_origin(target_url, headers)

        content = fetched.content
        forward_headers = {}
        decompression_failed = False

        content_encoding = fetched.headers.get('content-encoding')
        if content_encoding:
            logger.info(f"📦 Decompressing {content_encoding} content from {target_url} ({len(content)} bytes)")
            try:
                content = decompress_content(content, content_encoding)
            except DecompressionError as e:
                logger.warning(f"⚠️ {e}, continuing with original content")
                decompression_failed = True
                # The client still has to decode the body itself
                forward_headers['content-encoding'] = content_encoding

        content_type = get_streaming_content_type(target_url, content, fetched.content_type)
        if content_type != fetched.content_type:
            logger.info(f"🔎 Content-type override for {target_url}: {fetched.content_type} -> {content_type}")

        claims_playlist = is_m3u8_url(target_url) or is_m3u8_content_type(content_type)
        # Only a body that starts with "#E" is ever rewritten
        if claims_playlist and content[:2] == b"#E" and looks_like_m3u8(content):
            text = content.decode('utf-8', errors='replace')
            content = rewrite_m3u8(text, target_url, proxy_base_path)
            content_type = M3U8_CONTENT_TYPE

        if not 200 <= fetched.status < 300:
            logger.warning(f"⚠️ Upstream returned {fetched.status} for {target_url}, not caching")
        elif decompression_failed:
            logger.warning(f"⚠️ Not caching undecoded {content_encoding} content for {target_url}")
        else:
            self.cache.set(target_url, content, content_type, self.cache_ttl)

        return ProxyResult(content, content_type, "MISS", fetched.status, forward_headers)

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None
