import asyncio
from html import escape
from urllib.parse import quote

import aiohttp

from .exceptions import UpstreamStatusError
from .records import ErrorKind, FetchFailure, FetchRequest
from .policy import routes_through_relay
from .settings import ResultConfig

# Errors where the request went out but nothing usable came back.
NO_RESPONSE_ERRORS = (
    asyncio.TimeoutError,
    aiohttp.ClientConnectionError,
    aiohttp.ClientPayloadError,
)


def direct_url(roll: int, config: ResultConfig) -> str:
    return config.upstream_url_template.format(roll=roll)


def request_url(req: FetchRequest, config: ResultConfig) -> str:
    """URL for one attempt: the upstream page, or the relay wrapping it."""
    url = direct_url(req.id, config)
    if routes_through_relay(req):
        # Same escaping as encodeURIComponent
        return config.relay_url_template.format(url=quote(url, safe="!~*'()"))
    return url


def classify_failure(roll: int, exc: BaseException, attempts: int = 1) -> FetchFailure:
    """
    Turn the last exception of a retry chain into a FetchFailure.

    - status 403                        -> FORBIDDEN
    - any other status                  -> UPSTREAM_STATUS (carries the code)
    - too many redirects                -> NO_RESPONSE
    - timeout / connection / payload    -> NO_RESPONSE
    - everything else                   -> UNKNOWN
    """
    detail = str(exc) or type(exc).__name__

    # Redirect cap hit: aiohttp reports status 0, no real answer was received
    if isinstance(exc, aiohttp.TooManyRedirects):
        return FetchFailure(id=roll, error_kind=ErrorKind.NO_RESPONSE, detail="Maximum number of redirects exceeded", attempts=attempts)

    if isinstance(exc, (UpstreamStatusError, aiohttp.ClientResponseError)) and exc.status >= 100:
        kind = ErrorKind.FORBIDDEN if exc.status == 403 else ErrorKind.UPSTREAM_STATUS
        return FetchFailure(id=roll, error_kind=kind, detail=detail, status=exc.status, attempts=attempts)

    if isinstance(exc, NO_RESPONSE_ERRORS):
        return FetchFailure(id=roll, error_kind=ErrorKind.NO_RESPONSE, detail=detail, attempts=attempts)

    return FetchFailure(id=roll, error_kind=ErrorKind.UNKNOWN, detail=detail, attempts=attempts)


def error_fragment(message: str, detail: str | None = None) -> str:
    """Fragment for an upstream scrape error reported by the result endpoint."""
    detail_html = f'<p class="text-sm mt-2">{escape(detail)}</p>' if detail else ""
    return (
        '<div class="bg-red-50 p-4 rounded-md text-red-700 mb-4">'
        '<p class="font-bold">Error:</p>'
        f"<p>{escape(message)}</p>"
        f"{detail_html}"
        "</div>"
    )


def request_error_fragment(message: str) -> str:
    """Fragment for a failed call to the result endpoint itself."""
    return (
        '<div class="bg-red-50 p-4 rounded-md text-red-700">'
        '<p class="font-bold">Request Error:</p>'
        f"<p>{escape(message)}</p>"
        "</div>"
    )
