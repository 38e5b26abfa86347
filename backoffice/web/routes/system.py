"""
System routes.

GET /health           — JSON liveness + process info (public)
GET /api/proxy-image  — stream a backend image with the user's token
"""

import logging
import os
import time
from urllib.parse import urlparse

from aiohttp import web

from backoffice.api.errors import ApiError, UnauthorizedError

logger = logging.getLogger(__name__)

routes = web.RouteTableDef()


def _format_uptime(seconds: float) -> str:
    """Format seconds into a human-readable uptime string."""
    s = int(seconds)
    days, s = divmod(s, 86400)
    hours, s = divmod(s, 3600)
    minutes, secs = divmod(s, 60)
    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    return f"{minutes}m {secs}s"


@routes.get("/health")
async def health(request: web.Request) -> web.Response:
    start_time = request.app.get("start_time", time.time())
    return web.json_response({
        "status": "ok",
        "app": request.app["config"].app_name,
        "pid": os.getpid(),
        "uptime": _format_uptime(time.time() - start_time),
        "backend": request.app["hal"].base_url,
    })


def is_backend_url(url: str, backend_base: str) -> bool:
    """True when ``url`` is an http(s) URL on the backend's host and port."""
    target = urlparse(url)
    backend = urlparse(backend_base)
    return target.scheme in ("http", "https") and target.netloc == backend.netloc


@routes.get("/api/proxy-image")
async def proxy_image(request: web.Request) -> web.Response:
    url = request.query.get("url", "").strip()
    if not url:
        return web.json_response({"error": "Image URL is required"}, status=400)

    client = request["backend"].client
    if url.startswith("/"):
        url = client.absolute(url)
    if not is_backend_url(url, client.base_url):
        logger.warning(f"Refusing to proxy image from foreign host: {url}")
        return web.json_response({"error": "Only backend images can be proxied"}, status=400)

    try:
        content, content_type = await client.fetch_bytes(url)
    except UnauthorizedError:
        raise
    except ApiError as e:
        return web.json_response({"error": f"Failed to fetch image: {e.message}"}, status=e.status)

    return web.Response(
        body=content,
        headers={
            "Content-Type": content_type or "image/jpeg",
            "Cache-Control": "public, max-age=31536000, immutable",
        },
    )
