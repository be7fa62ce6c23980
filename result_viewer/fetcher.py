import asyncio
import aiohttp
from loguru import logger

from .exceptions import UpstreamStatusError
from .policy import next_attempt
from .records import FetchOutcome, FetchRequest, FetchSuccess
from .settings import ResultConfig
from .utils import classify_failure, request_url


DEFAULT_HTTP_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "sec-ch-ua": '"Chromium";v="116", "Not A Brand";v="99"',
    "sec-ch-ua-mobile": "?0",
    "sec-ch-ua-platform": '"Windows"',
    "Sec-Fetch-Site": "same-origin",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Dest": "document",
    "Upgrade-Insecure-Requests": "1",
}

class ResultFetcher:
    """
    Fetches one result page per roll number, built on aiohttp.

    - Sends browser-like headers on every request
    - Retries up to config.max_retries times with a fixed delay
    - Switches to the CORS relay from the first retry onwards
    - Never raises for upstream trouble: returns a FetchFailure instead
    """

    def __init__(self, session: aiohttp.ClientSession, config: ResultConfig):
        self.session = session
        self.config = config
        self.headers = {
            **DEFAULT_HTTP_HEADERS,
            "User-Agent": config.user_agent,
            "Referer": config.referer,
        }

    async def fetch(self, roll: int, attempt: int = 0, use_proxy: bool = False) -> FetchOutcome:
        req = FetchRequest(id=roll, attempt=attempt, use_proxy=use_proxy)
        total = self.config.max_retries + 1
        calls = 0

        while True:
            calls += 1
            logger.info(f"Fetching result for roll number {roll}, attempt {req.attempt + 1}/{total}")
            try:
                html = await self._get(req)
                return FetchSuccess(id=roll, html=html, attempts=calls)
            except Exception as e:
                logger.warning(f"Error fetching roll number {roll}: {str(e) or type(e).__name__}")

                nxt = next_attempt(req, self.config)
                if nxt is None:
                    return classify_failure(roll, e, attempts=calls)

                if nxt.use_proxy and not req.use_proxy:
                    logger.info(f"Switching to proxy for roll number {roll}")
                logger.info(f"Retrying roll number {roll} in {self.config.retry_delay_s:g} seconds...")
                await asyncio.sleep(self.config.retry_delay_s)
                req = nxt

    async def _get(self, req: FetchRequest) -> str:
        """
        One HTTP GET for one attempt.

        Returns the body as text for any 2xx status.
        Raises UpstreamStatusError otherwise; transport errors propagate as-is.
        """
        url = request_url(req, self.config)
        timeout = aiohttp.ClientTimeout(total=self.config.request_timeout_s)

        async with self.session.get(
            url, headers=self.headers, timeout=timeout,
            allow_redirects=True, max_redirects=self.config.max_redirects,
        ) as resp:
            if not 200 <= resp.status < 300:
                raise UpstreamStatusError(resp.status, url)
            return await resp.text(errors="replace")
