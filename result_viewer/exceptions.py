"""Custom exceptions for the result fetcher."""

from __future__ import annotations


class UpstreamStatusError(Exception):
    """The upstream site (or the relay) answered with a non-2xx status."""

    def __init__(self, status: int, url: str):
        self.status = status
        self.url = url
        super().__init__(f"Request failed with status code {status}")
