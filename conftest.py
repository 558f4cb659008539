# Make the flat top-level modules (app, config) and packages (hosts, routes, utils)
# importable from tests/ without installing the project.
import asyncio
import gzip
import os
import sys

import pytest
from aiohttp import web

SERVICE_ROOT = os.path.dirname(__file__)

if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)

from utils.cache import ResponseCache  # noqa: E402

TS_PACKET_SIZE = 188


def make_ts_bytes(packets: int = 3) -> bytes:
    """Fake MPEG-TS payload: ``packets`` 188-byte packets each starting with the 0x47 sync byte."""
    packet = b"\x47" + b"\x00" * (TS_PACKET_SIZE - 1)
    return packet * packets


PLAYLIST = (
    "#EXTM3U\n"
    "#EXT-X-VERSION:3\n"
    '#EXT-X-KEY:METHOD=AES-128,URI="key.bin"\n'
    "#EXTINF:4.0,\n"
    "seg-1.ts\n"
    "#EXTINF:4.0,\n"
    "seg-2.ts\n"
)


def make_origin():
    """Fake streaming origin. ``hits`` counts requests per path."""
    hits = {}

    @web.middleware
    async def count_hits(request, handler):
        hits[request.path] = hits.get(request.path, 0) + 1
        return await handler(request)

    async def playlist(request):
        return web.Response(text=PLAYLIST, content_type="application/vnd.apple.mpegurl")

    async def gzipped_playlist(request):
        return web.Response(
            body=gzip.compress(PLAYLIST.encode()),
            headers={"Content-Type": "application/vnd.apple.mpegurl", "Content-Encoding": "gzip"},
        )

    async def broken_gzip(request):
        return web.Response(
            body=b"this was never gzip",
            headers={"Content-Type": "application/vnd.apple.mpegurl", "Content-Encoding": "gzip"},
        )

    async def ts_as_playlist(request):
        return web.Response(body=make_ts_bytes(), content_type="application/vnd.apple.mpegurl")

    async def html_as_playlist(request):
        return web.Response(body=b"<html>blocked</html>", content_type="application/x-mpegurl")

    async def padded_playlist(request):
        return web.Response(body=b"\n#EXTM3U\nseg-1.ts\n", content_type="application/vnd.apple.mpegurl")

    async def disguised_segment(request):
        return web.Response(body=make_ts_bytes(), content_type="image/jpeg")

    async def missing(request):
        return web.Response(status=404, text="gone")

    async def slow(request):
        await asyncio.sleep(1)
        return web.Response(text="too late")

    async def redirect(request):
        raise web.HTTPFound("/videos/show/index.m3u8")

    async def echo(request):
        return web.json_response({k.lower(): v for k, v in request.headers.items()})

    app = web.Application(middlewares=[count_hits])
    app.router.add_get("/videos/show/index.m3u8", playlist)
    app.router.add_get("/gz/index.m3u8", gzipped_playlist)
    app.router.add_get("/broken/index.m3u8", broken_gzip)
    app.router.add_get("/ts/index.m3u8", ts_as_playlist)
    app.router.add_get("/html/index.m3u8", html_as_playlist)
    app.router.add_get("/padded/index.m3u8", padded_playlist)
    app.router.add_get("/hls/chunk-012.jpg", disguised_segment)
    app.router.add_get("/missing.m3u8", missing)
    app.router.add_get("/slow", slow)
    app.router.add_get("/redirect", redirect)
    app.router.add_get("/echo", echo)
    return app, hits


@pytest.fixture
def ts_bytes():
    return make_ts_bytes()


@pytest.fixture
def cache():
    """Cache without the background sweeper, destroyed after the test."""
    cache = ResponseCache(default_ttl=300, start=False)
    yield cache
    cache.destroy()
