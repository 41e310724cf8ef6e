"""MCP server exposing the documentation crawler.

Provides a ``crawl_docs`` tool that crawls a manifest URL into the local
crawl directory and returns a JSON report.

Supports both STDIO and HTTP transports.

Usage:
    # STDIO (for desktop MCP clients)
    python -m lrn_crawl.mcp_server

    # HTTP (for remote access)
    python -m lrn_crawl.mcp_server --transport http --port 8000
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from fastmcp import FastMCP

from . import config
from .errors import CrawlError
from .models import CrawlOptions
from .orchestrator import crawl_async
from .progress import ProgressReporter

# Logs go to stderr; stdout carries the STDIO transport
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
    stream=sys.stderr,
)
LOGGER = logging.getLogger(__name__)

config.load_config()

mcp = FastMCP(
    name="Documentation Crawler",
    instructions="""
    Crawls documentation sites that publish a manifest and stores each page
    as markdown on disk.

    Tool:
      - crawl_docs: Crawl an llms.txt, llms-full.txt or sitemap.xml URL.
        Unchanged pages from an earlier crawl are skipped. Use dry_run to
        preview the URL list without fetching pages.
    """,
)


@mcp.tool
async def crawl_docs(
    url: str,
    rate: Optional[float] = None,
    output: Optional[str] = None,
    include: Optional[List[str]] = None,
    exclude: Optional[List[str]] = None,
    dry_run: bool = False,
    depth: int = 0,
) -> str:
    """
    Crawl a documentation manifest and save its pages as markdown.

    Args:
        url: URL of an llms.txt, llms-full.txt or sitemap*.xml file.
        rate: Maximum requests per second (default: 2).
        output: Output directory (default: ~/.lrn/crawled/<host>).
        include: Path globs to include, e.g. ["/docs/"].
        exclude: Path globs to exclude, e.g. ["/blog/**"].
        dry_run: Only list the URLs that would be fetched.
        depth: Follow same-origin links up to this depth (default: 0).

    Returns:
        JSON report with saved, skipped and failed URLs and the output directory.
    """
    options = CrawlOptions(
        url=url,
        rate=rate if rate is not None else config.get_default_rate(),
        output=output,
        include=tuple(include or ()),
        exclude=tuple(exclude or ()),
        dry_run=dry_run,
        quiet=True,
        depth=depth,
    )
    LOGGER.info("crawl_docs: %s (dry_run=%s, depth=%d)", url, dry_run, depth)

    progress = ProgressReporter(quiet=True, stream=sys.stderr, status_stream=sys.stderr)
    try:
        report = await crawl_async(options, progress=progress)
    except CrawlError as exc:
        LOGGER.warning("crawl_docs failed for %s: %s", url, exc)
        return json.dumps({"url": url, "error": str(exc)}, indent=2)

    payload = report.to_dict()
    payload["url"] = url
    payload["pages"] = report.metadata.pages
    return json.dumps(payload, indent=2, ensure_ascii=False)


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        description="Run the documentation crawler MCP server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # STDIO transport (default)
    lrn-crawl-mcp

    # HTTP transport (for remote access)
    lrn-crawl-mcp --transport http --port 8000
""",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "http"],
        default="stdio",
        help="Transport protocol (default: stdio)",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to for HTTP transport (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to for HTTP transport (default: 8000)",
    )

    args = parser.parse_args(argv)

    LOGGER.info("Crawl root: %s", config.get_crawl_root())

    if args.transport == "http":
        LOGGER.info("Starting MCP server on http://%s:%d/mcp", args.host, args.port)
        mcp.run(transport="http", host=args.host, port=args.port)
    else:
        LOGGER.info("Starting MCP server with STDIO transport")
        mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
