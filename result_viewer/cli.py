import argparse
import asyncio
import sys

import aiohttp
from loguru import logger
from pydantic import ValidationError

from . import server
from .orchestrator import BatchOrchestrator
from .settings import DeploymentSettings, RunRequest, load_result_config


def configure_logging(verbose: bool = False) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")


async def fetch_range(api_url: str, run: RunRequest, use_proxy: bool = False) -> None:
    async with aiohttp.ClientSession() as session:
        orchestrator = BatchOrchestrator(session, api_url, use_proxy=use_proxy)
        snapshot = None
        async for snapshot in orchestrator.run(run.start_id, run.total, run.batch_size):
            pass

    if snapshot is None:
        logger.warning("No results found")
        return

    logger.info(f"Complete! {snapshot.completed} records retrieved, {snapshot.error_count} with errors")
    for record in snapshot.records:
        print(f"===== Roll Number {record.id} =====")
        print(record.html)


def main(argv: list[str] | None = None) -> None:
    p = argparse.ArgumentParser(prog="result-viewer")
    p.add_argument("--config", help="path to result_config.yaml")
    p.add_argument("--verbose", "-v", action="store_true")
    sub = p.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the result API and frontend server")
    serve.add_argument("--host")
    serve.add_argument("--port", type=int)
    serve.add_argument("--hostname", default="localhost", help="public hostname used in log lines")

    fetch = sub.add_parser("fetch", help="fetch a range of roll numbers through the API")
    fetch.add_argument("--api-url", help="API base URL, overrides --hostname")
    fetch.add_argument("--hostname", default="localhost", help="deployment hostname the client runs against")
    fetch.add_argument("--production-hostname", default=DeploymentSettings().production_hostname)
    fetch.add_argument("--start", type=int)
    fetch.add_argument("--total", type=int)
    fetch.add_argument("--batch-size", type=int)
    fetch.add_argument("--proxy", action="store_true", help="ask the API to use the CORS relay from the first attempt")

    args = p.parse_args(argv)
    configure_logging(args.verbose)
    config = load_result_config(args.config)

    if args.command == "serve":
        if args.host:
            config.host = args.host
        if args.port:
            config.port = args.port
        server.run(config, hostname=args.hostname)
        return

    try:
        run = RunRequest(
            start_id=args.start if args.start is not None else config.default_start_id,
            total=args.total if args.total is not None else config.default_total,
            batch_size=args.batch_size if args.batch_size is not None else config.batch_size,
        )
    except ValidationError as e:
        p.error(str(e))

    deployment = DeploymentSettings(
        hostname=args.hostname,
        production_hostname=args.production_hostname,
        port=config.port,
    )
    api_url = args.api_url
    if api_url is None:
        # Same-origin in production: resolve the relative base against the public host
        api_url = deployment.api_base_url or f"https://{deployment.production_hostname}"
    logger.info(f"Running in {'production' if deployment.is_production else 'development'} mode")
    logger.info(f"API base URL: {api_url}")

    asyncio.run(fetch_range(api_url, run, use_proxy=args.proxy))
