"""Progress line, per-URL events and the end-of-run summary."""

from __future__ import annotations

import sys
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, TextIO, Tuple

MAX_LISTED_ERRORS = 10
MAX_LISTED_SKIPS = 5
BAR_WIDTH = 30
MAX_URL_DISPLAY = 40


@dataclass(slots=True)
class CrawlProgress:
    total: int = 0
    processed: int = 0
    saved: int = 0
    current: Optional[str] = None
    errors: List[Tuple[str, str]] = field(default_factory=list)
    skipped: List[Tuple[str, str]] = field(default_factory=list)


class ProgressReporter:
    """Human-readable crawl progress.

    Messages go to *stream* (stdout by default); the single-line progress
    bar is redrawn on *status_stream* (stderr) so it never mixes with output
    that may be piped.
    """

    def __init__(
        self,
        *,
        quiet: bool = False,
        verbose: bool = False,
        stream: Optional[TextIO] = None,
        status_stream: Optional[TextIO] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.quiet = quiet
        self.verbose = verbose
        self._stream = stream or sys.stdout
        self._status = status_stream or sys.stderr
        self._clock = clock
        self._start = clock()
        self._last_line_length = 0
        self.progress = CrawlProgress()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def set_total(self, total: int) -> None:
        self.progress.total = total
        if not self.quiet:
            self._log(f"Found {total} URLs to crawl")

    def add_to_total(self, delta: int) -> None:
        self.progress.total += delta

    def start_url(self, url: str) -> None:
        self.progress.current = url
        if not self.quiet:
            self._update_progress_line()

    def complete_url(self, url: str) -> None:
        self.progress.processed += 1
        self.progress.saved += 1
        self.progress.current = None
        if self.verbose:
            self._log(f"  + {url}")
        elif not self.quiet:
            self._update_progress_line()

    def error_url(self, url: str, error: str) -> None:
        self.progress.processed += 1
        self.progress.errors.append((url, error))
        self.progress.current = None
        if not self.quiet:
            self._log(f"  x {url} - {error}")

    def skip_url(self, url: str, reason: str = "") -> None:
        self.progress.processed += 1
        self.progress.skipped.append((url, reason))
        self.progress.current = None
        if self.verbose:
            suffix = f" ({reason})" if reason else ""
            self._log(f"  - Skipped: {url}{suffix}")

    def requeue_url(self, url: str, reason: str) -> None:
        """A URL went back into the queue; it will be counted when it finishes."""
        self.progress.current = None
        if self.verbose:
            self._log(f"  ~ {url} ({reason})")

    def found_manifest(self, kind: str, url_count: int) -> None:
        if not self.quiet:
            self._log(f"Found {kind} with {url_count} URLs")

    def notice(self, message: str) -> None:
        if not self.quiet:
            self._log(message)

    def dry_run(self, urls: List[str]) -> None:
        self._log("\nDry run - would fetch:")
        for url in urls:
            self._log(f"  {url}")
        self._log(f"\nTotal: {len(urls)} URLs")

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render_bar(self) -> str:
        processed, total = self.progress.processed, self.progress.total
        ratio = min(1.0, processed / total) if total > 0 else 0.0
        filled = round(BAR_WIDTH * ratio)
        if filled < BAR_WIDTH:
            bar = "=" * filled + ">" + " " * (BAR_WIDTH - filled - 1)
        else:
            bar = "=" * BAR_WIDTH
        line = f"[{bar}] {processed}/{total}"
        current = self.progress.current
        if current:
            if len(current) > MAX_URL_DISPLAY:
                current = "..." + current[-(MAX_URL_DISPLAY - 3):]
            line += f" - {current}"
        return line

    def _update_progress_line(self) -> None:
        line = self.render_bar()
        self._status.write("\r" + " " * self._last_line_length + "\r" + line)
        self._status.flush()
        self._last_line_length = len(line)

    def _clear_line(self) -> None:
        if self._last_line_length > 0:
            self._status.write("\r" + " " * self._last_line_length + "\r")
            self._status.flush()
            self._last_line_length = 0

    def _log(self, message: str) -> None:
        self._clear_line()
        print(message, file=self._stream)

    def summary(self, output_dir: str) -> None:
        """Print the completion summary."""
        self._clear_line()
        elapsed = self._clock() - self._start
        errors = self.progress.errors
        skipped = self.progress.skipped

        self._log("")
        self._log(f"Complete: {self.progress.saved} pages saved to {output_dir}/")
        self._log(f"Time: {elapsed:.1f}s")

        if errors:
            self._log("")
            self._log(f"Errors ({len(errors)}):")
            for url, error in errors[:MAX_LISTED_ERRORS]:
                self._log(f"  x {url}")
                self._log(f"    {error}")
            if len(errors) > MAX_LISTED_ERRORS:
                self._log(f"  ... and {len(errors) - MAX_LISTED_ERRORS} more")

        if skipped and (self.verbose or not self.quiet):
            self._log("")
            self._log(f"Skipped ({len(skipped)}):")
            if self.verbose:
                for url, reason in skipped[:MAX_LISTED_SKIPS]:
                    suffix = f" ({reason})" if reason else ""
                    self._log(f"  - {url}{suffix}")
                if len(skipped) > MAX_LISTED_SKIPS:
                    self._log(f"  ... and {len(skipped) - MAX_LISTED_SKIPS} more")
