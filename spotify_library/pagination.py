"""Concurrent fetching of offset-paginated collections.

The first page is fetched synchronously by the caller (it tells us the
total). Every remaining offset becomes a job on a shared queue served by a
bounded set of worker threads. The collector drains one result per offset,
keeps the first error by arrival order, and only then sorts the successful
pages by offset, so ordering never depends on network completion order.
"""

import logging
import queue
from dataclasses import dataclass
from threading import Event, Thread
from typing import Any, Callable, List, Optional, Sequence

from tqdm import tqdm

from .errors import OperationCancelledError, PaginationError

logger = logging.getLogger(__name__)

WORKER_COUNT = 8

PageFetcher = Callable[[int], Sequence[Any]]

_STOP = object()


@dataclass(frozen=True)
class PageResult:
    offset: int
    items: tuple = ()
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def remaining_offsets(total: int, page_size: int) -> List[int]:
    """Offsets after the first page: page_size, 2*page_size, ... < total."""
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    return list(range(page_size, max(0, int(total)), page_size))


class PageFetchCoordinator:
    """Bounded worker pool for one paginated fetch at a time.

    Workers live only for the duration of a single `run` call.
    """

    def __init__(self, worker_count: int = WORKER_COUNT, *, show_progress: bool = False, description: str = "Fetching pages"):
        if worker_count <= 0:
            raise ValueError("worker_count must be positive")
        self.worker_count = int(worker_count)
        self.show_progress = bool(show_progress)
        self.description = description

    def fetch_remaining(
        self,
        total: int,
        page_size: int,
        fetch: PageFetcher,
        cancel: Optional[Event] = None,
    ) -> List[Any]:
        """Fetch every page after the first and return their items in offset order."""
        merged: List[Any] = []
        for result in self.run(remaining_offsets(total, page_size), fetch, cancel):
            merged.extend(result.items)
        return merged

    def run(
        self,
        offsets: Sequence[int],
        fetch: PageFetcher,
        cancel: Optional[Event] = None,
    ) -> List[PageResult]:
        offsets = list(offsets)
        if not offsets:
            return []

        jobs: "queue.Queue[Any]" = queue.Queue()
        results: "queue.Queue[PageResult]" = queue.Queue()

        for offset in offsets:
            jobs.put(offset)
        worker_count = min(self.worker_count, len(offsets))
        for _ in range(worker_count):
            jobs.put(_STOP)

        workers = [
            Thread(
                target=self._work,
                args=(jobs, results, fetch, cancel),
                name=f"page-worker-{i}",
                daemon=True,
            )
            for i in range(worker_count)
        ]
        for worker in workers:
            worker.start()

        logger.debug("Fetching %d pages with %d workers", len(offsets), worker_count)

        collected: List[PageResult] = []
        first_error: Optional[PageResult] = None
        with tqdm(total=len(offsets), desc=self.description, unit="page", disable=not self.show_progress) as pbar:
            # Exactly one result per offset; never stop early.
            for _ in range(len(offsets)):
                result = results.get()
                pbar.update(1)
                if result.error is not None:
                    if first_error is None:
                        first_error = result
                    continue
                collected.append(result)

        for worker in workers:
            worker.join()

        if first_error is not None:
            logger.warning("Page fetch failed at offset %d: %s", first_error.offset, first_error.error)
            raise PaginationError(first_error.offset, first_error.error) from first_error.error

        if cancel is not None and cancel.is_set():
            raise OperationCancelledError("Paginated fetch was cancelled")

        collected.sort(key=lambda r: r.offset)
        return collected

    @staticmethod
    def _work(jobs: "queue.Queue[Any]", results: "queue.Queue[PageResult]", fetch: PageFetcher, cancel: Optional[Event]) -> None:
        while True:
            offset = jobs.get()
            if offset is _STOP:
                return

            if cancel is not None and cancel.is_set():
                results.put(PageResult(offset=offset, error=OperationCancelledError("Paginated fetch was cancelled")))
                continue

            # Every job must yield a result or the collector waits forever.
            try:
                items = fetch(offset)
            except BaseException as e:
                results.put(PageResult(offset=offset, error=e))
                continue
            results.put(PageResult(offset=offset, items=tuple(items or ())))
