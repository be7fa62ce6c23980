"""
HTTP boundary: exposes ResultFetcher as GET /api/result/{roll}.

Also serves the health check and, for anything outside /api, the prebuilt
frontend bundle in config.static_dir.
"""

import time
from datetime import datetime, timezone

import aiohttp
from aiohttp import web
from loguru import logger

from .fetcher import ResultFetcher
from .records import ResultPayload
from .settings import DEFAULT_RESULT_CONFIG, ResultConfig

CONFIG_KEY = web.AppKey("config", ResultConfig)
FETCHER_KEY = web.AppKey("fetcher", ResultFetcher)


@web.middleware
async def log_requests(request: web.Request, handler):
    t0 = time.perf_counter()
    status = 500
    try:
        resp = await handler(request)
        status = resp.status
        return resp
    except web.HTTPException as e:
        status = e.status
        raise
    finally:
        ms = (time.perf_counter() - t0) * 1000
        logger.info(f"{request.method} {request.path_qs} {status} - {ms:.0f}ms")


@web.middleware
async def allow_any_origin(request: web.Request, handler):
    try:
        resp = await handler(request)
    except web.HTTPException as e:
        e.headers["Access-Control-Allow-Origin"] = "*"
        raise
    resp.headers["Access-Control-Allow-Origin"] = "*"
    return resp


async def health(request: web.Request) -> web.Response:
    return web.json_response({
        "status": "ok",
        "time": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
    })


async def result(request: web.Request) -> web.Response:
    roll = int(request.match_info["roll"])
    use_proxy = request.query.get("proxy") == "true"
    if use_proxy:
        logger.info(f"Using proxy for roll {roll} as requested by client")

    try:
        outcome = await request.app[FETCHER_KEY].fetch(roll, 0, use_proxy)
        return web.json_response(ResultPayload.from_outcome(outcome).to_json())
    except Exception as e:
        logger.exception(f"Endpoint error for roll {roll}: {e}")
        payload = ResultPayload(
            roll_number=roll,
            error="Server error while fetching data",
            error_detail=str(e) or type(e).__name__,
        )
        return web.json_response(payload.to_json(), status=500)


async def frontend(request: web.Request) -> web.StreamResponse:
    """
    Static pass-through for the frontend bundle.

    Existing files are served as-is; any other non-API path gets index.html
    so client-side routes resolve.
    """
    if request.path.startswith("/api"):
        raise web.HTTPNotFound()

    root = request.app[CONFIG_KEY].static_path.resolve()
    candidate = (root / request.match_info["tail"]).resolve()
    if candidate.is_file() and candidate.is_relative_to(root):
        return web.FileResponse(candidate)

    index = root / "index.html"
    if not index.is_file():
        raise web.HTTPNotFound()
    return web.FileResponse(index)


async def _client_session(app: web.Application):
    """One shared upstream session for the application's lifetime."""
    async with aiohttp.ClientSession() as session:
        app[FETCHER_KEY] = ResultFetcher(session, app[CONFIG_KEY])
        yield


def create_app(config: ResultConfig | None = None) -> web.Application:
    cfg = config or DEFAULT_RESULT_CONFIG

    app = web.Application(middlewares=[log_requests, allow_any_origin])
    app[CONFIG_KEY] = cfg
    app.cleanup_ctx.append(_client_session)

    app.router.add_get("/api/health", health)
    app.router.add_get(r"/api/result/{roll:\d+}", result)
    app.router.add_get("/{tail:.*}", frontend)
    return app


def run(config: ResultConfig | None = None, hostname: str = "localhost") -> None:
    cfg = config or DEFAULT_RESULT_CONFIG
    logger.info(f"Server running on port {cfg.port}")
    logger.info(f"- API: http://{hostname}:{cfg.port}/api/result/{{roll-number}}")
    logger.info(f"- Frontend: http://{hostname}:{cfg.port}/")
    web.run_app(create_app(cfg), host=cfg.host, port=cfg.port, print=None)
