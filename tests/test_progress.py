"""Tests for lrn_crawl.progress."""

from __future__ import annotations

import io

from lrn_crawl.progress import ProgressReporter


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _reporter(**kwargs):
    stream, status = io.StringIO(), io.StringIO()
    clock = Clock()
    reporter = ProgressReporter(stream=stream, status_stream=status, clock=clock, **kwargs)
    return reporter, stream, status, clock


class TestEvents:
    def test_counts(self):
        reporter, stream, _, _ = _reporter()
        reporter.set_total(3)
        reporter.start_url("https://docs.example.com/a")
        reporter.complete_url("https://docs.example.com/a")
        reporter.error_url("https://docs.example.com/b", "HTTP 404: Not Found")
        reporter.skip_url("https://docs.example.com/c", "unchanged")

        progress = reporter.progress
        assert (progress.total, progress.processed, progress.saved) == (3, 3, 1)
        assert progress.errors == [("https://docs.example.com/b", "HTTP 404: Not Found")]
        assert progress.skipped == [("https://docs.example.com/c", "unchanged")]
        output = stream.getvalue()
        assert "Found 3 URLs to crawl" in output
        assert "  x https://docs.example.com/b - HTTP 404: Not Found" in output

    def test_requeue_does_not_count(self):
        reporter, _, _, _ = _reporter(verbose=True)
        reporter.requeue_url("https://docs.example.com/a", "retry later")
        assert reporter.progress.processed == 0

    def test_quiet_prints_nothing_until_summary(self):
        reporter, stream, status, _ = _reporter(quiet=True)
        reporter.set_total(1)
        reporter.found_manifest("sitemap", 1)
        reporter.start_url("https://docs.example.com/a")
        reporter.error_url("https://docs.example.com/a", "boom")
        assert stream.getvalue() == ""
        assert status.getvalue() == ""

    def test_verbose_lists_each_url(self):
        reporter, stream, _, _ = _reporter(verbose=True)
        reporter.complete_url("https://docs.example.com/a")
        reporter.skip_url("https://docs.example.com/b", "robots.txt")
        output = stream.getvalue()
        assert "  + https://docs.example.com/a" in output
        assert "  - Skipped: https://docs.example.com/b (robots.txt)" in output

    def test_progress_line_goes_to_status_stream(self):
        reporter, stream, status, _ = _reporter()
        reporter.set_total(2)
        reporter.start_url("https://docs.example.com/a")
        assert "[" in status.getvalue()
        assert "0/2" in status.getvalue()
        assert "0/2" not in stream.getvalue()

    def test_dry_run_listing(self):
        reporter, stream, _, _ = _reporter()
        reporter.dry_run(["https://docs.example.com/a", "https://docs.example.com/b"])
        assert stream.getvalue() == (
            "\nDry run - would fetch:\n"
            "  https://docs.example.com/a\n"
            "  https://docs.example.com/b\n"
            "\nTotal: 2 URLs\n"
        )


class TestRendering:
    def test_bar_fill(self):
        reporter, _, _, _ = _reporter()
        reporter.progress.total = 4
        reporter.progress.processed = 2
        assert reporter.render_bar() == "[" + "=" * 15 + ">" + " " * 14 + "] 2/4"

    def test_bar_complete(self):
        reporter, _, _, _ = _reporter()
        reporter.progress.total = 1
        reporter.progress.processed = 1
        assert reporter.render_bar() == "[" + "=" * 30 + "] 1/1"

    def test_long_url_is_truncated(self):
        reporter, _, _, _ = _reporter()
        reporter.progress.current = "https://docs.example.com/" + "x" * 80
        line = reporter.render_bar()
        assert line.endswith(" - ..." + "x" * 37)


class TestSummary:
    def test_summary(self):
        reporter, stream, _, clock = _reporter()
        reporter.complete_url("https://docs.example.com/a")
        for index in range(12):
            reporter.error_url(f"https://docs.example.com/e{index}", "HTTP 500")
        reporter.skip_url("https://docs.example.com/s", "unchanged")
        clock.now = 2.26

        reporter.summary("/tmp/out")

        output = stream.getvalue()
        assert "Complete: 1 pages saved to /tmp/out/" in output
        assert "Time: 2.3s" in output
        assert "Errors (12):" in output
        assert "https://docs.example.com/e9\n" in output
        assert "https://docs.example.com/e10\n" not in output
        assert "  ... and 2 more" in output
        assert "Skipped (1):" in output
        assert "  - https://docs.example.com/s" not in output

    def test_quiet_summary_omits_skips(self):
        reporter, stream, _, _ = _reporter(quiet=True)
        reporter.skip_url("https://docs.example.com/s", "unchanged")
        reporter.summary("/tmp/out")
        assert "Complete: 0 pages saved" in stream.getvalue()
        assert "Skipped" not in stream.getvalue()

    def test_verbose_summary_lists_skips(self):
        reporter, stream, _, _ = _reporter(verbose=True)
        for index in range(7):
            reporter.skip_url(f"https://docs.example.com/s{index}", "unchanged")
        reporter.summary("/tmp/out")
        output = stream.getvalue()
        assert "  - https://docs.example.com/s4 (unchanged)" in output
        assert "  - https://docs.example.com/s5 (unchanged)" not in output
        assert "  ... and 2 more" in output
