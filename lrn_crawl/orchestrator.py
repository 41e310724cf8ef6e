"""End-to-end crawl of a documentation manifest."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, List, Optional

from .converter import ConvertedContent, process_content
from .crawl_queue import CrawlQueue
from .errors import (
    CrawlError,
    HTTPStatusCrawlError,
    InvalidInputError,
    InvalidURLError,
    ManifestFetchError,
    REQUEUE_STATUS_CODES,
)
from .fetcher import Fetcher, is_same_origin, is_valid_url, normalize_url
from .links import extract_links, filter_by_patterns, normalize_patterns, process_links
from .manifest import require_manifest_type, resolve_manifest
from .models import CrawlOptions, CrawlReport, ManifestType, QueueItem
from .progress import ProgressReporter
from .robots import RobotsCache
from .storage import CrawlStorage, compute_hash

LOGGER = logging.getLogger(__name__)

SKIP_ROBOTS = "robots.txt"
SKIP_CROSS_ORIGIN = "redirect to different domain"
SKIP_UNCHANGED = "unchanged"
SKIP_DEADLINE = "crawl deadline"
RETRY_LATER = "retry later"

ContentProcessor = Callable[[str, str, str], ConvertedContent]


class CrawlRun:
    """State of one crawl: a single worker draining one queue."""

    def __init__(
        self,
        options: CrawlOptions,
        manifest_type: ManifestType,
        *,
        fetcher: Fetcher,
        robots: RobotsCache,
        queue: CrawlQueue,
        storage: CrawlStorage,
        progress: ProgressReporter,
        processor: ContentProcessor = process_content,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.options = options
        self.manifest_type = manifest_type
        self.fetcher = fetcher
        self.robots = robots
        self.queue = queue
        self.storage = storage
        self.progress = progress
        self.processor = processor
        self.clock = clock
        self.include = normalize_patterns(options.include)
        self.exclude = normalize_patterns(options.exclude)
        self.report = CrawlReport(
            metadata=storage.get_meta(),
            output_dir=storage.get_dir(),
            dry_run=options.dry_run,
        )

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def execute(self) -> CrawlReport:
        if self.manifest_type is ManifestType.llms_full:
            return await self._crawl_llms_full()

        seeds = await resolve_manifest(self.manifest_type, self.options.url, self.fetcher)
        label = "llms.txt" if self.manifest_type is ManifestType.llms_txt else "sitemap"
        self.progress.found_manifest(label, len(seeds))
        if self.include or self.exclude:
            seeds = filter_by_patterns(seeds, self.include, self.exclude)
            LOGGER.debug("%d URLs left after include/exclude filters", len(seeds))

        if self.options.dry_run:
            planned = list(seeds)
            if self.options.depth > 0:
                planned.extend(await self._discover(seeds))
            self.report.planned = planned
            self.progress.dry_run(planned)
            return self.report

        self.storage.init()
        await self._apply_crawl_delay()
        self.queue.add_all(seeds)
        self.progress.set_total(self.queue.size)

        await self._drain()

        self.storage.save_meta()
        self.progress.summary(str(self.storage.get_dir()))
        return self.report

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def _apply_crawl_delay(self) -> None:
        delay = await self.robots.crawl_delay(self.options.url)
        if delay and delay > self.queue.min_interval:
            self.queue.set_rate(1.0 / delay)
            self.progress.notice(f"Respecting robots.txt crawl-delay: {delay:g}s")

    async def _drain(self) -> None:
        deadline = None
        if self.options.max_duration is not None:
            deadline = self.clock() + self.options.max_duration

        while not self.queue.is_empty:
            if deadline is not None and self.clock() >= deadline:
                remaining = self.queue.get_queued()
                LOGGER.warning(
                    "Crawl deadline of %ss reached; %d URLs not fetched.",
                    self.options.max_duration,
                    len(remaining),
                )
                for url in remaining:
                    self._skip(url, SKIP_DEADLINE)
                break

            item = await self.queue.next()
            if item is None:
                break
            await self._process(item)

    async def _process(self, item: QueueItem) -> None:
        self.progress.start_url(item.url)

        if not await self.robots.is_allowed(item.url):
            self._skip(item.url, SKIP_ROBOTS)
            return

        try:
            result = await self.fetcher.fetch(item.url)
        except CrawlError as exc:
            self._fail_or_requeue(item, exc)
            return

        if not is_same_origin(result.final_url, self.options.url):
            self._skip(item.url, SKIP_CROSS_ORIGIN)
            return

        converted = self.processor(result.body, result.content_type, result.final_url)
        content_hash = compute_hash(converted.markdown)

        if self.storage.has_unchanged(item.url, content_hash):
            self._skip(item.url, SKIP_UNCHANGED)
        else:
            try:
                self.storage.save_page(item.url, converted.markdown, converted.title)
            except OSError as exc:
                self._fail(item.url, f"Could not write page: {exc}", 0)
                return
            self.report.saved.append(item.url)
            self.progress.complete_url(item.url)

        if self.options.depth > 0 and item.depth < self.options.depth:
            self._enqueue_links(item, converted.markdown, result.final_url)

    def _enqueue_links(self, item: QueueItem, markdown: str, page_url: str) -> None:
        links = process_links(
            extract_links(markdown, page_url), self.options.url, self.include, self.exclude
        )
        added = self.queue.add_all(links, parent=item.url, depth=item.depth + 1)
        if added:
            LOGGER.debug("Discovered %d new links on %s", added, item.url)
            self.progress.add_to_total(added)

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def _skip(self, url: str, reason: str) -> None:
        self.report.skipped.append((url, reason))
        self.progress.skip_url(url, reason)

    def _fail(self, url: str, message: str, status: int) -> None:
        self.report.errors.append((url, message))
        self.progress.error_url(url, message)
        self.storage.record_failure(url, status)

    def _fail_or_requeue(self, item: QueueItem, exc: CrawlError) -> None:
        status = exc.status_code
        if isinstance(exc, HTTPStatusCrawlError) and status in REQUEUE_STATUS_CODES:
            if self.queue.retry(item):
                LOGGER.info("HTTP %s for %s; will retry later.", status, item.url)
                self.progress.requeue_url(item.url, RETRY_LATER)
                return
        self._fail(item.url, str(exc), status or 0)

    # ------------------------------------------------------------------
    # Special modes
    # ------------------------------------------------------------------

    async def _discover(self, seeds: List[str]) -> List[str]:
        """Fetch each seed once and list the new links it points to."""
        self.queue.add_all(seeds)
        discovered: List[str] = []
        while not self.queue.is_empty:
            item = await self.queue.next()
            if item is None:
                break
            if not await self.robots.is_allowed(item.url):
                continue
            try:
                result = await self.fetcher.fetch(item.url)
            except CrawlError as exc:
                LOGGER.warning("Discovery fetch failed for %s: %s", item.url, exc)
                continue
            if not is_same_origin(result.final_url, self.options.url):
                continue
            converted = self.processor(result.body, result.content_type, result.final_url)
            links = process_links(
                extract_links(converted.markdown, result.final_url),
                self.options.url,
                self.include,
                self.exclude,
            )
            for link in links:
                if not self.queue.has_visited(link):
                    self.queue.mark_visited(link)
                    discovered.append(normalize_url(link))
        return discovered

    async def _crawl_llms_full(self) -> CrawlReport:
        url = self.options.url
        if self.options.dry_run:
            self.report.planned = [url]
            self.progress.dry_run([url])
            return self.report

        self.progress.set_total(1)
        self.progress.start_url(url)
        try:
            result = await self.fetcher.fetch(url)
        except CrawlError as exc:
            raise ManifestFetchError(
                f"Failed to fetch llms-full.txt: {exc}", url=url, status_code=exc.status_code
            ) from exc

        converted = self.processor(result.body, result.content_type, result.final_url)
        self.storage.init()
        if self.storage.has_unchanged(url, compute_hash(converted.markdown)):
            self._skip(url, SKIP_UNCHANGED)
        else:
            self.storage.save_page(url, converted.markdown, converted.title)
            self.report.saved.append(url)
            self.progress.complete_url(url)

        self.storage.save_meta()
        self.progress.summary(str(self.storage.get_dir()))
        return self.report


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_options(options: CrawlOptions) -> ManifestType:
    """Reject unusable options before any network I/O."""
    if not is_valid_url(options.url):
        raise InvalidURLError(f"Invalid URL: {options.url}", url=options.url)
    if options.rate <= 0:
        raise InvalidInputError(f"Rate must be positive, got {options.rate}")
    if options.depth < 0:
        raise InvalidInputError(f"Depth must not be negative, got {options.depth}")
    if options.max_duration is not None and options.max_duration <= 0:
        raise InvalidInputError(
            f"Maximum duration must be positive, got {options.max_duration}"
        )
    return require_manifest_type(options.url)


async def crawl_async(
    options: CrawlOptions,
    *,
    fetcher: Optional[Fetcher] = None,
    robots: Optional[RobotsCache] = None,
    queue: Optional[CrawlQueue] = None,
    storage: Optional[CrawlStorage] = None,
    progress: Optional[ProgressReporter] = None,
    processor: ContentProcessor = process_content,
    clock: Callable[[], float] = time.monotonic,
) -> CrawlReport:
    """
    Crawl the documentation listed by a manifest URL.

    Args:
        options: Crawl options; ``options.url`` must point at an
            ``llms.txt``, ``llms-full.txt`` or sitemap.
        fetcher: Optional Fetcher (a new one is created and closed otherwise).
        robots: Optional robots.txt cache for this run.
        queue: Optional pre-configured queue.
        storage: Optional storage (defaults to the crawl directory for the URL).
        progress: Optional progress reporter.
        processor: Content converter, ``(body, content_type, url) -> ConvertedContent``.
        clock: Monotonic clock used for the optional deadline.

    Returns:
        CrawlReport with the written metadata and per-URL outcomes.

    Raises:
        InvalidInputError: For an invalid URL, unsupported manifest or option.
        ManifestFetchError: If the manifest itself cannot be retrieved.
    """
    manifest_type = validate_options(options)

    owns_fetcher = fetcher is None
    active_fetcher = fetcher if fetcher is not None else Fetcher()
    try:
        store = storage if storage is not None else CrawlStorage(options.url, options.output)
        store.set_source(manifest_type)
        run = CrawlRun(
            options,
            manifest_type,
            fetcher=active_fetcher,
            robots=robots if robots is not None else RobotsCache(active_fetcher),
            queue=queue if queue is not None else CrawlQueue(options.rate),
            storage=store,
            progress=progress
            if progress is not None
            else ProgressReporter(quiet=options.quiet, verbose=options.verbose),
            processor=processor,
            clock=clock,
        )
        return await run.execute()
    finally:
        if owns_fetcher:
            await active_fetcher.aclose()


def crawl(options: CrawlOptions, **kwargs) -> CrawlReport:
    """Synchronous wrapper for :func:`crawl_async`."""
    return asyncio.run(crawl_async(options, **kwargs))
