"""
Client side of the viewer: walks a roll-number range in fixed-size batches
against the result endpoint and accumulates one record per roll number.
"""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass

import aiohttp
from loguru import logger
from pydantic import ValidationError

from .records import ResultPayload, ResultRecord
from .utils import error_fragment, request_error_fragment


def partition_ids(start_id: int, total: int, batch_size: int) -> list[list[int]]:
    """Split [start_id, start_id + total) into consecutive groups of batch_size."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")
    if total < 0:
        raise ValueError(f"total must not be negative, got {total}")

    ids = range(start_id, start_id + total)
    return [list(ids[i:i + batch_size]) for i in range(0, total, batch_size)]


class Accumulator:
    """Records of the current run keyed by roll number, last write wins."""

    def __init__(self):
        self._records: dict[int, ResultRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def merge(self, records: list[ResultRecord]) -> None:
        for record in records:
            self._records[record.id] = record

    def records(self) -> tuple[ResultRecord, ...]:
        return tuple(self._records.values())

    @property
    def error_count(self) -> int:
        return sum(1 for r in self._records.values() if r.failed)

    def progress(self, total: int) -> float:
        if total <= 0:
            return 100.0
        return min(100.0, len(self._records) / total * 100)


@dataclass(frozen=True)
class RunSnapshot:
    """
    State of a run after one batch has settled.

    Fields:
        records     : All records so far, in first-seen order.
        completed   : Number of distinct roll numbers retrieved.
        total       : Number of roll numbers requested.
        progress    : completed / total as a percentage, capped at 100.
        batch_index : 1-based index of the batch that just finished.
        batch_count : Number of batches in the run.
        error_count : Records that carry an error fragment.
    """
    records: tuple[ResultRecord, ...]
    completed: int
    total: int
    progress: float
    batch_index: int
    batch_count: int
    error_count: int

    @property
    def done(self) -> bool:
        return self.batch_index == self.batch_count


class BatchOrchestrator:
    """
    Drives the result endpoint for a range of roll numbers.

    - One group of batch_size requests in flight at a time
    - Groups run strictly one after another
    - Every failure becomes an error record for that roll number only
    """

    def __init__(self, session: aiohttp.ClientSession, base_url: str = "", use_proxy: bool = False):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.use_proxy = use_proxy

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def check_health(self) -> dict:
        async with self.session.get(self._url("/api/health")) as resp:
            resp.raise_for_status()
            return await resp.json()

    async def _advisory_health_check(self) -> None:
        try:
            logger.info(f"API health check: {await self.check_health()}")
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"API health check failed: {str(e) or type(e).__name__}")

    async def fetch_record(self, roll: int) -> ResultRecord:
        """
        Ask the endpoint for one roll number.

        Never raises for transport trouble: a failed call comes back as a
        record holding a request-error fragment.
        """
        path = f"/api/result/{roll}" + ("?proxy=true" if self.use_proxy else "")
        try:
            async with self.session.get(self._url(path)) as resp:
                if not 200 <= resp.status < 300:
                    raise aiohttp.ClientResponseError(
                        resp.request_info, resp.history, status=resp.status,
                        message=f"Server responded with status {resp.status}",
                    )
                payload = ResultPayload.model_validate(await resp.json())
        except aiohttp.ClientResponseError as e:
            logger.warning(f"Request for roll {roll} failed: {e.message}")
            return ResultRecord(id=roll, html=request_error_fragment(e.message), failed=True)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, ValidationError) as e:
            message = str(e) or type(e).__name__
            logger.warning(f"Request for roll {roll} failed: {message}")
            return ResultRecord(id=roll, html=request_error_fragment(message), failed=True)
        except Exception as e:
            logger.exception(f"Unexpected error requesting roll {roll}: {e}")
            return ResultRecord(id=roll, html=request_error_fragment(str(e) or type(e).__name__), failed=True)

        if payload.error:
            return ResultRecord(id=roll, html=error_fragment(payload.error, payload.error_detail), failed=True)
        return ResultRecord(id=roll, html=payload.result or "No data returned")

    async def fetch_batch(self, ids: list[int]) -> list[ResultRecord]:
        return list(await asyncio.gather(*(self.fetch_record(roll) for roll in ids)))

    async def run(self, start_id: int, total: int, batch_size: int) -> AsyncIterator[RunSnapshot]:
        """
        Fetch [start_id, start_id + total) and yield a snapshot after each batch.

        Every call starts from an empty accumulator. The health check runs
        alongside the batches; it never stops or delays the run and is
        cancelled if still pending when the run ends.
        """
        groups = partition_ids(start_id, total, batch_size)
        acc = Accumulator()
        health = asyncio.create_task(self._advisory_health_check())

        try:
            for index, ids in enumerate(groups, start=1):
                acc.merge(await self.fetch_batch(ids))
                snapshot = RunSnapshot(
                    records=acc.records(),
                    completed=len(acc),
                    total=total,
                    progress=acc.progress(total),
                    batch_index=index,
                    batch_count=len(groups),
                    error_count=acc.error_count,
                )
                logger.info(
                    f"Batch {index}/{len(groups)}: {snapshot.completed} of {total} records "
                    f"retrieved ({snapshot.progress:.0f}%)"
                )
                yield snapshot
        finally:
            if not health.done():
                health.cancel()
            await asyncio.gather(health, return_exceptions=True)
