import asyncio
import re

import pytest
from aiohttp import test_utils, web

from result_viewer.settings import ResultConfig


class FakeUpstream:
    """
    Stands in for both the board's result site and the CORS relay.

    Responses are queued per roll number; the last queued response repeats.
    Roll numbers in `looping` redirect to themselves forever.
    Every call is recorded as (route, roll, headers) with route "direct" or "relay".
    """

    def __init__(self):
        self.pages: dict[int, list[tuple[int, str]]] = {}
        self.slow: dict[int, float] = {}
        self.looping: set[int] = set()
        self.calls: list[tuple[str, int, object]] = []
        self.server = None

    def respond(self, roll: int, *responses: tuple[int, str]) -> None:
        self.pages[roll] = list(responses)

    def routes(self, roll: int) -> list[str]:
        return [route for route, r, _ in self.calls if r == roll]

    async def _serve(self, route: str, roll: int, request: web.Request) -> web.Response:
        self.calls.append((route, roll, request.headers.copy()))
        if roll in self.looping:
            raise web.HTTPFound(request.path_qs)
        if roll in self.slow:
            await asyncio.sleep(self.slow[roll])

        queue = self.pages.get(roll, [(404, "Not Found")])
        status, body = queue.pop(0) if len(queue) > 1 else queue[0]
        return web.Response(status=status, text=body, content_type="text/html")

    async def _direct(self, request: web.Request) -> web.Response:
        return await self._serve("direct", int(request.match_info["roll"]), request)

    async def _relay(self, request: web.Request) -> web.Response:
        roll = int(re.search(r"/results/(\d+)\.html", request.query["url"]).group(1))
        return await self._serve("relay", roll, request)

    async def __aenter__(self):
        app = web.Application()
        app.router.add_get(r"/results/{roll:\d+}.html", self._direct)
        app.router.add_get("/relay", self._relay)
        self.server = test_utils.TestServer(app)
        await self.server.start_server()
        return self

    async def __aexit__(self, *exc):
        await self.server.close()

    @property
    def base_url(self) -> str:
        return f"http://{self.server.host}:{self.server.port}"

    def config(self, **overrides) -> ResultConfig:
        values = {
            "upstream_url_template": f"{self.base_url}/results/{{roll}}.html",
            "relay_url_template": f"{self.base_url}/relay?url={{url}}",
            "retry_delay_s": 0.0,
            "request_timeout_s": 2.0,
        }
        values.update(overrides)
        return ResultConfig(**values)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()
