"""Polite, resumable documentation crawler.

This package crawls documentation sites that publish a manifest and stores
every page as markdown next to a ``_meta.json`` file describing the run.
Supported manifests:

- ``llms.txt``: a sectioned list of page links
- ``llms-full.txt``: a single pre-concatenated document
- ``sitemap.xml`` and sitemap indexes

Re-running a crawl against the same output directory skips pages whose
content has not changed.

Example usage:

    from lrn_crawl import CrawlOptions, crawl, crawl_async

    # Synchronous
    report = crawl(CrawlOptions(url="https://docs.example.com/llms.txt"))
    print(report.output_dir, len(report.saved))

    # Async, restricted to the API reference
    report = await crawl_async(
        CrawlOptions(
            url="https://example.com/sitemap.xml",
            include=("/api/",),
            rate=1.0,
        )
    )
    for url, message in report.errors:
        print(url, message)
"""

from __future__ import annotations

from .converter import ConvertedContent, process_content
from .crawl_queue import CrawlQueue
from .errors import (
    CrawlError,
    FetchTimeoutError,
    HTTPStatusCrawlError,
    InvalidInputError,
    InvalidURLError,
    ManifestFetchError,
    NetworkCrawlError,
    ResponseDecodingError,
    ResponseTooLargeError,
    TLSCrawlError,
    TooManyRedirectsError,
    UnsupportedContentTypeError,
    UnsupportedManifestError,
)
from .fetcher import Fetcher
from .manifest import detect_manifest_type, resolve_manifest
from .models import (
    CrawlMetadata,
    CrawlOptions,
    CrawlReport,
    FetchResult,
    ManifestType,
    PageMeta,
    QueueItem,
)
from .orchestrator import crawl, crawl_async
from .robots import RobotsCache
from .storage import CrawlStorage

__all__ = [
    # Crawl entry points
    "crawl",
    "crawl_async",
    "CrawlOptions",
    "CrawlReport",
    # Components
    "Fetcher",
    "RobotsCache",
    "CrawlQueue",
    "CrawlStorage",
    "detect_manifest_type",
    "resolve_manifest",
    "process_content",
    # Data types
    "ConvertedContent",
    "CrawlMetadata",
    "FetchResult",
    "ManifestType",
    "PageMeta",
    "QueueItem",
    # Errors
    "CrawlError",
    "InvalidInputError",
    "InvalidURLError",
    "UnsupportedManifestError",
    "ManifestFetchError",
    "HTTPStatusCrawlError",
    "FetchTimeoutError",
    "NetworkCrawlError",
    "TLSCrawlError",
    "UnsupportedContentTypeError",
    "ResponseTooLargeError",
    "ResponseDecodingError",
    "TooManyRedirectsError",
    # MCP Server
    "mcp",
]


def get_mcp_server():
    """Get the MCP server instance (lazy import to avoid dependency if not needed)."""
    from .mcp_server import mcp

    return mcp


# Lazy import for mcp so that importing the package never starts logging setup
def __getattr__(name):
    if name == "mcp":
        from .mcp_server import mcp

        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
