import logging
import sys
import time
from datetime import datetime, timezone

from aiohttp import web

import config
from routes.proxy_pipeline import (
    InvalidUrlError,
    ProxyPipeline,
    UpstreamError,
    UpstreamTimeoutError,
)
from utils.cache import ResponseCache

# --- Logging ---
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(levelname)s - %(name)s - %(message)s'
)

logger = logging.getLogger(__name__)

PROXY_PATH = "/proxy"

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Expose-Headers': 'Content-Length, Content-Range, Content-Type, Accept-Ranges, X-Cache',
}

AVAILABLE_ENDPOINTS = {
    "root": "/",
    "proxy": f"{PROXY_PATH}?url=<target_url>",
    "health": "/health",
    "cacheStats": "/cache/stats",
    "cacheClear": "/cache/clear",
}


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _client_ip(request) -> str:
    return request.headers.get('X-Forwarded-For') or request.headers.get('X-Real-IP') or request.remote or 'unknown'


@web.middleware
async def logging_middleware(request, handler):
    start = time.monotonic()
    status = 500
    try:
        response = await handler(request)
        status = response.status
        return response
    except web.HTTPException as e:
        status = e.status
        raise
    finally:
        duration = (time.monotonic() - start) * 1000
        logger.info(f"{request.method} {request.path} {status} {duration:.0f}ms ({_client_ip(request)})")


@web.middleware
async def error_middleware(request, handler):
    """JSON bodies for unknown routes and unhandled errors, CORS headers on everything."""
    try:
        response = await handler(request)
    except (web.HTTPNotFound, web.HTTPMethodNotAllowed):
        # The OPTIONS catch-all matches every path, so unrouted GETs surface as 405
        response = web.json_response(
            {"error": "Not found", "path": request.path, "availableEndpoints": AVAILABLE_ENDPOINTS},
            status=404,
        )
    except web.HTTPException:
        raise
    except Exception as e:
        logger.exception(f"❌ Unhandled error on {request.path}: {e}")
        response = web.json_response({"error": "Internal server error", "message": str(e)}, status=500)

    for name, value in CORS_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


class HLSProxy:
    """HTTP front-end of the proxy: routing, status codes and cache administration."""

    def __init__(self, cache: ResponseCache = None, pipeline: ProxyPipeline = None):
        self.cache = cache or ResponseCache(
            default_ttl=config.CACHE_TTL,
            cleanup_interval=config.CACHE_CLEANUP_INTERVAL,
        )
        self.pipeline = pipeline or ProxyPipeline(
            self.cache,
            request_timeout=config.REQUEST_TIMEOUT,
            cache_ttl=config.CACHE_TTL,
            proxies=config.GLOBAL_PROXIES,
        )
        self.started_at = time.monotonic()

        if config.GLOBAL_PROXIES:
            logger.info(f"🌍 Loaded {len(config.GLOBAL_PROXIES)} global proxies.")

    async def handle_root(self, request):
        return web.json_response({
            "name": "HLS Proxy",
            "version": "1.0.0",
            "description": "M3U8/HLS proxy with domain-specific anti-hotlinking support",
            "usage": {
                "proxy": f"{PROXY_PATH}?url=https://example.com/playlist.m3u8",
                "health": "/health",
                "cache": "/cache/stats",
            },
            "features": [
                "M3U8/HLS playlist proxying",
                "Automatic URL rewriting",
                "Domain-specific header injection",
                "Disguised segment detection",
                "Content decompression",
                "In-memory caching",
            ],
        })

    async def handle_health(self, request):
        return web.json_response({
            "status": "healthy",
            "uptime": round(time.monotonic() - self.started_at, 3),
            "cache": self.cache.stats(),
            "timestamp": _timestamp(),
        })

    async def handle_cache_stats(self, request):
        return web.json_response({**self.cache.stats(), "timestamp": _timestamp()})

    async def handle_cache_clear(self, request):
        self.cache.clear()
        return web.json_response({"message": "Cache cleared successfully", "timestamp": _timestamp()})

    async def handle_options(self, request):
        """CORS preflight."""
        headers = {
            'Access-Control-Allow-Origin': '*',
            'Access-Control-Allow-Methods': 'GET, POST, OPTIONS',
            'Access-Control-Allow-Headers': 'Content-Type, Authorization, X-Requested-With, Range',
            'Access-Control-Max-Age': '86400'
        }
        return web.Response(headers=headers)

    async def handle_proxy_request(self, request):
        target_url = request.query.get('url')

        if not target_url:
            return web.json_response({
                "error": "Missing required parameter: url",
                "usage": f"{PROXY_PATH}?url=https://example.com/playlist.m3u8",
            }, status=400)

        try:
            result = await self.pipeline.handle_proxy(target_url, PROXY_PATH)
        except InvalidUrlError:
            return web.json_response({"error": "Invalid URL format", "url": target_url}, status=400)
        except UpstreamTimeoutError as e:
            return web.json_response({"error": e.message, "url": target_url}, status=504)
        except UpstreamError as e:
            return web.json_response({"error": e.message, "url": target_url}, status=502)

        body = result.content.encode('utf-8') if isinstance(result.content, str) else result.content
        headers = {
            'Content-Type': result.content_type,
            'X-Cache': result.cache_status,
        }
        if 'content-encoding' in result.headers:
            headers['Content-Encoding'] = result.headers['content-encoding']

        return web.Response(body=body, status=result.status, headers=headers)

    async def cleanup(self):
        try:
            await self.pipeline.close()
        except Exception as e:
            logger.error(f"Error while closing the upstream session: {e}")
        finally:
            self.cache.destroy()


def create_app(cache: ResponseCache = None, pipeline: ProxyPipeline = None):
    """Create and configure the aiohttp application."""
    proxy = HLSProxy(cache=cache, pipeline=pipeline)

    app = web.Application(middlewares=[logging_middleware, error_middleware])

    app.router.add_get('/', proxy.handle_root)
    app.router.add_get('/health', proxy.handle_health)
    app.router.add_get('/cache/stats', proxy.handle_cache_stats)
    app.router.add_post('/cache/clear', proxy.handle_cache_clear)
    app.router.add_get(PROXY_PATH, proxy.handle_proxy_request)

    # CORS
    app.router.add_route('OPTIONS', '/{tail:.*}', proxy.handle_options)

    async def cleanup_handler(app):
        await proxy.cleanup()
    app.on_cleanup.append(cleanup_handler)

    return app


def main():
    """Start the server."""
    if sys.platform == 'win32':
        logging.getLogger('asyncio').setLevel(logging.CRITICAL)

    logger.info("🚀 Starting HLS Proxy Server ...")
    logger.info(f"📡 Listening on http://{config.HOST}:{config.PORT}")
    logger.info(f"💾 Cache TTL: {config.CACHE_TTL}s, ⏱️ request timeout: {config.REQUEST_TIMEOUT}ms")
    logger.info(f"🔗 Proxy: http://{config.HOST}:{config.PORT}{PROXY_PATH}?url=<url>")

    web.run_app(create_app(), host=config.HOST, port=config.PORT)


if __name__ == '__main__':
    main()
