"""
Work distribution across concurrent browser workers.
"""
import asyncio
import logging
import math
from typing import Awaitable, Callable, List, Sequence, TypeVar

from .config import ScraperConfig, clamp_workers

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def compute_worker_count(item_count: int, max_workers: int, items_per_worker: int) -> int:
    """min(maxWorkers, ceil(items / itemsPerWorker)); zero items need zero workers"""
    if item_count <= 0:
        return 0
    per_worker = items_per_worker if items_per_worker > 0 else 1
    return min(clamp_workers(max_workers), math.ceil(item_count / per_worker))


def chunk_items(items: Sequence[T], num_chunks: int) -> List[List[T]]:
    """Split into contiguous chunks of ceil(len / num_chunks), order preserved"""
    if not items or num_chunks < 1:
        return []
    size = math.ceil(len(items) / num_chunks)
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class WorkDistributor:
    """Fans a list of work items out to one worker coroutine per chunk"""

    def __init__(self, config: ScraperConfig):
        self.config = config

    def plan(self, items: Sequence[T]) -> List[List[T]]:
        if not items:
            return []
        if not self.config.parallel_enabled or len(items) <= self.config.items_per_worker:
            return [list(items)]
        workers = compute_worker_count(len(items), self.config.max_workers, self.config.items_per_worker)
        return chunk_items(items, workers)

    async def distribute(
        self,
        items: Sequence[T],
        worker: Callable[[List[T], int], Awaitable[List[R]]],
        request_id: str = "-",
    ) -> List[R]:
        """
        Run `worker(chunk, index)` for every chunk and concatenate the
        results in chunk order, whatever order the workers finish in.
        """
        chunks = self.plan(items)
        if not chunks:
            return []

        if len(chunks) == 1:
            logger.info(f"[{request_id}] [Sequential Mode] Scraping {len(items)} items with 1 browser")
            return list(await worker(chunks[0], 0))

        logger.info(
            f"[{request_id}] [Parallel Mode] Scraping {len(items)} items with {len(chunks)} browsers "
            f"(max: {self.config.max_workers})"
        )
        chunk_results = await asyncio.gather(
            *(worker(chunk, index) for index, chunk in enumerate(chunks)),
            return_exceptions=True,
        )

        results: List[R] = []
        for index, outcome in enumerate(chunk_results):
            if isinstance(outcome, BaseException):
                logger.error(f"[{request_id}] [Worker {index + 1}] Failed: {outcome}")
                raise outcome
            results.extend(outcome)
        return results
