from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Mapping, Optional

from .counter import RecursiveCounter
from .errors import ApuntesError, OperationCancelled
from .models import CountResult, ErrorKind, StoreEntry

logger = logging.getLogger(__name__)

DEFAULT_POOL_SIZE = 5


class AggregationOrchestrator:
    """Runs one recursive count per folder on a fixed pool of workers.

    Every folder handed in appears in the result. A failed count is recorded
    on its own ``CountResult`` and never stops the other workers.
    """

    def __init__(
        self, counter: RecursiveCounter, pool_size: int = DEFAULT_POOL_SIZE
    ) -> None:
        self._counter = counter
        self.pool_size = max(1, int(pool_size))

    async def count_all_folders(
        self,
        folders: Iterable[StoreEntry],
        cancel: Optional[asyncio.Event] = None,
    ) -> dict[str, CountResult]:
        keys: list[str] = []
        for entry in folders:
            if not entry.is_folder or entry.key in keys:
                continue
            keys.append(entry.key)
        if not keys:
            return {}

        queue: asyncio.Queue[str] = asyncio.Queue()
        for key in keys:
            queue.put_nowait(key)
        results: dict[str, CountResult] = {}
        workers = [
            asyncio.create_task(self._worker(queue, results, cancel))
            for _ in range(min(self.pool_size, len(keys)))
        ]
        try:
            await asyncio.gather(*workers)
        finally:
            for worker in workers:
                if not worker.done():
                    worker.cancel()

        if cancel is not None and cancel.is_set():
            raise OperationCancelled("Folder counting cancelled")
        failed = sum(1 for result in results.values() if not result.ok)
        if failed:
            logger.warning("%d of %d folder counts failed", failed, len(keys))
        return {key: results[key] for key in keys}

    async def _worker(
        self,
        queue: asyncio.Queue[str],
        results: dict[str, CountResult],
        cancel: Optional[asyncio.Event],
    ) -> None:
        while cancel is None or not cancel.is_set():
            try:
                key = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            results[key] = await self._count_one(key, cancel)

    async def _count_one(
        self, key: str, cancel: Optional[asyncio.Event]
    ) -> CountResult:
        try:
            total = await self._counter.count_files(key, cancel=cancel)
        except ApuntesError as exc:
            logger.warning("Counting %r failed (%s): %s", key, exc.kind.value, exc)
            return CountResult(prefix=key, error=exc.kind, message=exc.message)
        except Exception as exc:
            logger.exception("Unexpected error counting %r", key)
            return CountResult(
                prefix=key, error=ErrorKind.STORE_UNAVAILABLE, message=str(exc)
            )
        return CountResult(prefix=key, total_files=total)


def summarize(results: Mapping[str, CountResult]) -> Optional[ErrorKind]:
    if any(not result.ok for result in results.values()):
        return ErrorKind.PARTIAL_AGGREGATION_FAILURE
    return None
