# ============================================================
# Keep-alive web server: GET / and /health for uptime probes
# ============================================================

import logging

from aiohttp import web

log = logging.getLogger(__name__)


async def handle_root(request):
    return web.json_response({"message": "Bot is alive"})


async def handle_health(request):
    return web.json_response({"status": "OK", "message": "Bot is running"})


def create_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/", handle_root)
    app.router.add_get("/health", handle_health)
    return app


async def start_keep_alive(port: int, host: str = "0.0.0.0") -> web.AppRunner:
    """Serve the health routes on the running loop. Caller owns runner.cleanup()."""
    runner = web.AppRunner(create_app())
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    log.info("Keep-alive server running on port %d", port)
    return runner
