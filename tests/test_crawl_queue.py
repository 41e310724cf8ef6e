"""Tests for lrn_crawl.crawl_queue."""

from __future__ import annotations

import pytest

from lrn_crawl.crawl_queue import CrawlQueue

BASE = "https://docs.example.com"


class FakeClock:
    """Monotonic clock whose sleeps advance time instantly."""

    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _queue(rate: float = 2.0, clock: FakeClock | None = None) -> CrawlQueue:
    clock = clock or FakeClock()
    return CrawlQueue(rate, clock=clock, sleep=clock.sleep)


# ---------------------------------------------------------------------------
# Dedup
# ---------------------------------------------------------------------------


class TestDedup:
    def test_add_returns_false_for_duplicates(self):
        queue = _queue()
        assert queue.add(f"{BASE}/guide") is True
        assert queue.add(f"{BASE}/guide") is False
        assert queue.size == 1
        assert queue.visited_count == 1

    def test_fragments_are_ignored(self):
        queue = _queue()
        queue.add(f"{BASE}/guide#install")
        assert queue.add(f"{BASE}/guide#usage") is False
        assert queue.get_queued() == [f"{BASE}/guide"]

    def test_duplicate_does_not_change_order(self):
        queue = _queue()
        queue.add_all([f"{BASE}/a", f"{BASE}/b", f"{BASE}/c"])
        queue.add(f"{BASE}/a")
        assert queue.get_queued() == [f"{BASE}/a", f"{BASE}/b", f"{BASE}/c"]

    def test_add_all_counts_new_urls(self):
        queue = _queue()
        added = queue.add_all([f"{BASE}/a", f"{BASE}/a#x", f"{BASE}/b"], parent=f"{BASE}/")
        assert added == 2
        assert queue.size == 2

    def test_duplicate_does_not_reset_retry_state(self):
        queue = _queue()
        queue.add(f"{BASE}/a")
        item = queue._items[0]
        assert queue.retry(item) is True
        assert queue.add(f"{BASE}/a") is False
        assert [entry.retries for entry in queue._items] == [0, 1]

    def test_mark_visited_blocks_add(self):
        queue = _queue()
        queue.mark_visited(f"{BASE}/seen")
        assert queue.has_visited(f"{BASE}/seen#frag")
        assert queue.add(f"{BASE}/seen") is False
        assert queue.is_empty

    def test_clear(self):
        queue = _queue()
        queue.add_all([f"{BASE}/a", f"{BASE}/b"])
        queue.clear()
        assert queue.is_empty
        assert queue.visited_count == 0
        assert queue.get_visited() == []


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


class TestRateLimiting:
    @pytest.mark.asyncio
    async def test_successive_dequeues_are_spaced(self):
        clock = FakeClock()
        queue = _queue(rate=2.0, clock=clock)
        queue.add_all([f"{BASE}/a", f"{BASE}/b", f"{BASE}/c"])

        stamps = []
        while not queue.is_empty:
            await queue.next()
            stamps.append(clock.now)

        gaps = [later - earlier for earlier, later in zip(stamps, stamps[1:])]
        assert all(gap >= 0.5 for gap in gaps)
        assert clock.sleeps == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_only_remaining_interval_is_slept(self):
        clock = FakeClock()
        queue = _queue(rate=2.0, clock=clock)
        queue.add_all([f"{BASE}/a", f"{BASE}/b"])

        await queue.next()
        clock.now += 0.2  # time spent fetching
        await queue.next()
        assert clock.sleeps == [pytest.approx(0.3)]

    @pytest.mark.asyncio
    async def test_no_sleep_when_interval_already_passed(self):
        clock = FakeClock()
        queue = _queue(rate=2.0, clock=clock)
        queue.add_all([f"{BASE}/a", f"{BASE}/b"])

        await queue.next()
        clock.now += 3.0
        await queue.next()
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_set_rate_tightens_interval(self):
        clock = FakeClock()
        queue = _queue(rate=2.0, clock=clock)
        queue.set_rate(0.25)
        queue.add_all([f"{BASE}/a", f"{BASE}/b"])

        await queue.next()
        await queue.next()
        assert clock.sleeps == [4.0]
        assert queue.rate == pytest.approx(0.25)

    @pytest.mark.asyncio
    async def test_next_on_empty_queue(self):
        assert await _queue().next() is None

    def test_rate_must_be_positive(self):
        with pytest.raises(ValueError):
            _queue(rate=0)


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------


class TestRetry:
    @pytest.mark.asyncio
    async def test_retry_budget_is_three(self):
        queue = _queue()
        queue.add(f"{BASE}/flaky", parent=f"{BASE}/llms.txt")

        outcomes = []
        item = await queue.next()
        while item is not None:
            outcomes.append(queue.retry(item))
            item = await queue.next()

        assert outcomes == [True, True, True, False]

    @pytest.mark.asyncio
    async def test_retry_keeps_parent_and_increments_count(self):
        queue = _queue()
        queue.add(f"{BASE}/flaky", parent=f"{BASE}/llms.txt", depth=1)
        item = await queue.next()

        queue.retry(item)
        again = await queue.next()

        assert again.url == f"{BASE}/flaky"
        assert again.parent == f"{BASE}/llms.txt"
        assert again.depth == 1
        assert again.retries == 1
        assert item.retries == 0

    def test_retry_appends_to_back(self):
        queue = _queue()
        queue.add_all([f"{BASE}/a", f"{BASE}/b"])
        first = queue._items.popleft()
        queue.retry(first)
        assert queue.get_queued() == [f"{BASE}/b", f"{BASE}/a"]

    def test_retried_url_stays_visited_once(self):
        queue = _queue()
        queue.add(f"{BASE}/a")
        queue.retry(queue._items.popleft())
        assert queue.get_visited() == [f"{BASE}/a"]
        assert queue.visited_count == 1
