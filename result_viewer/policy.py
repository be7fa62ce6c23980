"""
Policy module: decides what the next attempt for a roll number looks like
after a failed fetch.

The logic is:
- explicit
- configurable
- easily auditable

State is a FetchRequest. Every retry goes through the CORS relay, and once
the relay is in use it stays in use for the rest of the chain.
"""

from dataclasses import replace

from .records import FetchRequest
from .settings import DEFAULT_RESULT_CONFIG, ResultConfig


def next_attempt(req: FetchRequest, config: ResultConfig | None = None) -> FetchRequest | None:
    cfg = config or DEFAULT_RESULT_CONFIG

    if req.attempt >= cfg.max_retries:
        return None

    return replace(req, attempt=req.attempt + 1, use_proxy=True)


def routes_through_relay(req: FetchRequest) -> bool:
    return req.use_proxy or req.attempt > 0
