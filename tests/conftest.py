"""Shared fixtures and strict test-accounting guardrails."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Union
from unittest.mock import AsyncMock

import httpx
import pytest

from lrn_crawl.errors import CrawlError, HTTPStatusCrawlError
from lrn_crawl.fetcher import Fetcher
from lrn_crawl.models import FetchResult


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

Response = Union[FetchResult, CrawlError, Callable[[], Union[FetchResult, CrawlError]]]


class FakeFetcher:
    """Stand-in for :class:`Fetcher` that serves canned results by URL.

    Unknown URLs (robots.txt included) fail with HTTP 404.
    """

    def __init__(self, responses: Optional[Dict[str, Response]] = None):
        self.responses: Dict[str, Response] = dict(responses or {})
        self.calls: List[str] = []

    def page(
        self,
        url: str,
        body: str,
        *,
        content_type: str = "text/html; charset=utf-8",
        final_url: Optional[str] = None,
    ) -> None:
        self.responses[url] = FetchResult(
            url=url,
            final_url=final_url or url,
            status=200,
            headers={"content-type": content_type},
            body=body,
            content_type=content_type,
        )

    def fail(self, url: str, error: CrawlError) -> None:
        self.responses[url] = error

    async def fetch(self, url: str, *, timeout=None, max_retries=None) -> FetchResult:
        self.calls.append(url)
        response = self.responses.get(url)
        if callable(response):
            response = response()
        if response is None:
            raise HTTPStatusCrawlError("HTTP 404: Not Found", url=url, status_code=404)
        if isinstance(response, CrawlError):
            raise response
        return response

    async def aclose(self) -> None:
        return None


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def no_sleep() -> AsyncMock:
    return AsyncMock(return_value=None)


@pytest.fixture
def mock_fetcher(no_sleep):
    """Build a real Fetcher on top of an ``httpx.MockTransport`` handler."""
    def _build(handler, **kwargs) -> Fetcher:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        kwargs.setdefault("sleep", no_sleep)
        kwargs.setdefault("jitter", lambda: 0.0)
        kwargs.setdefault("timeout", 5.0)
        return Fetcher(client, **kwargs)

    return _build


@pytest.fixture(autouse=True)
def _isolated_lrn_home(tmp_path, monkeypatch):
    """Keep default crawl directories inside the test's tmp dir."""
    monkeypatch.setenv("LRN_HOME", str(tmp_path / "lrn-home"))
    for name in (
        "LRN_CRAWL_RATE",
        "LRN_CRAWL_TIMEOUT",
        "LRN_CRAWL_MAX_RETRIES",
        "LRN_CRAWL_MAX_BODY_BYTES",
    ):
        monkeypatch.delenv(name, raising=False)


# ---------------------------------------------------------------------------
# Test accounting
# ---------------------------------------------------------------------------


@dataclass
class _TestAccounting:
    deselected: int = 0
    skipped: int = 0
    xfailed: int = 0


_ACCOUNTING = _TestAccounting()


def pytest_deselected(items):  # pragma: no cover - pytest hook
    _ACCOUNTING.deselected += len(items)


def pytest_runtest_logreport(report):  # pragma: no cover - pytest hook
    if report.when not in {"setup", "call"} or report.outcome != "skipped":
        return
    if getattr(report, "wasxfail", False):
        _ACCOUNTING.xfailed += 1
    else:
        _ACCOUNTING.skipped += 1


def pytest_sessionfinish(session, exitstatus):  # pragma: no cover - pytest hook
    violations = [
        f"{name}={count}"
        for name, count in (
            ("deselected", _ACCOUNTING.deselected),
            ("skipped", _ACCOUNTING.skipped),
            ("xfailed", _ACCOUNTING.xfailed),
        )
        if count
    ]
    if not violations:
        return

    reporter = session.config.pluginmanager.get_plugin("terminalreporter")
    if reporter:
        reporter.write_sep(
            "=",
            f"Test accounting violations detected ({', '.join(violations)})",
        )
    session.exitstatus = 1
