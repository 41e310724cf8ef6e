"""Rate-limited, de-duplicating FIFO of URLs to crawl."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import replace
from typing import Awaitable, Callable, Deque, Iterable, List, Optional, Set

from . import config
from .fetcher import normalize_url
from .models import QueueItem

LOGGER = logging.getLogger(__name__)


class CrawlQueue:
    """Work queue for a single crawl run.

    Every URL is normalized before it is recorded, and a normalized URL is
    accepted at most once per run. :meth:`next` is the only pacing point: it
    sleeps until ``1 / rate`` seconds have passed since the previous dequeue.
    """

    def __init__(
        self,
        rate: float = config.DEFAULT_RATE,
        *,
        max_retries: int = config.QUEUE_MAX_RETRIES,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._items: Deque[QueueItem] = deque()
        self._visited: Set[str] = set()
        self._last_dequeue: Optional[float] = None
        self._clock = clock
        self._sleep = sleep
        self.max_retries = max_retries
        self.min_interval = 0.0
        self.set_rate(rate)

    @property
    def rate(self) -> float:
        return 1.0 / self.min_interval if self.min_interval else float("inf")

    def set_rate(self, per_second: float) -> None:
        if per_second <= 0:
            raise ValueError(f"rate must be positive, got {per_second!r}")
        self.min_interval = 1.0 / per_second

    def add(self, url: str, parent: Optional[str] = None, depth: int = 0) -> bool:
        """Enqueue *url* unless it has been seen this run."""
        normalized = normalize_url(url)
        if normalized in self._visited:
            return False
        self._visited.add(normalized)
        self._items.append(QueueItem(url=normalized, parent=parent, depth=depth))
        return True

    def add_all(
        self, urls: Iterable[str], parent: Optional[str] = None, depth: int = 0
    ) -> int:
        return sum(1 for url in urls if self.add(url, parent=parent, depth=depth))

    async def next(self) -> Optional[QueueItem]:
        """Dequeue the next item, sleeping as needed to honour the rate."""
        if not self._items:
            return None

        if self._last_dequeue is not None:
            elapsed = self._clock() - self._last_dequeue
            if elapsed < self.min_interval:
                await self._sleep(self.min_interval - elapsed)

        self._last_dequeue = self._clock()
        return self._items.popleft()

    def retry(self, item: QueueItem) -> bool:
        """Re-enqueue *item* for another attempt while its budget lasts.

        The URL is removed from the visited set and re-added together with
        the new item, so it is still recorded exactly once.
        """
        if item.retries >= self.max_retries:
            return False
        normalized = normalize_url(item.url)
        self._visited.discard(normalized)
        self._visited.add(normalized)
        self._items.append(replace(item, url=normalized, retries=item.retries + 1))
        LOGGER.debug("Re-queued %s (retry %d/%d)", normalized, item.retries + 1, self.max_retries)
        return True

    def has_visited(self, url: str) -> bool:
        return normalize_url(url) in self._visited

    def mark_visited(self, url: str) -> None:
        self._visited.add(normalize_url(url))

    @property
    def size(self) -> int:
        return len(self._items)

    @property
    def visited_count(self) -> int:
        return len(self._visited)

    @property
    def is_empty(self) -> bool:
        return not self._items

    def clear(self) -> None:
        self._items.clear()
        self._visited.clear()
        self._last_dequeue = None

    def get_queued(self) -> List[str]:
        return [item.url for item in self._items]

    def get_visited(self) -> List[str]:
        return list(self._visited)
