"""Command-line interface for the documentation crawler."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from . import config
from .errors import CrawlError, GENERAL_ERROR
from .models import CrawlOptions, CrawlReport
from .orchestrator import crawl_async
from .progress import ProgressReporter


def _setup_logging(verbose: bool, quiet: bool = False) -> None:
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from exc
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value!r}")
    return number


def _non_negative_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}") from exc
    if number < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {value!r}")
    return number


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="lrn-crawl",
        description="Crawl a documentation site from its llms.txt, llms-full.txt or sitemap.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
Examples:
  # Crawl every page listed in llms.txt
  lrn-crawl https://docs.example.com/llms.txt

  # Download the single pre-concatenated document
  lrn-crawl https://docs.example.com/llms-full.txt

  # Sitemap, API pages only, at most one request per second
  lrn-crawl https://example.com/sitemap.xml --include "/api/" --rate 1

  # Show what would be fetched without writing anything
  lrn-crawl https://docs.example.com/llms.txt --dry-run

  # Also follow links found on the listed pages, one level deep
  lrn-crawl https://docs.example.com/llms.txt --depth 1

Environment Variables:
  LRN_HOME                  Base directory (default: ~/.lrn)
  LRN_CRAWL_RATE            Default requests per second (default: 2)
  LRN_CRAWL_TIMEOUT         Request timeout in seconds (default: 30)
  LRN_CRAWL_MAX_RETRIES     Fetch retries for transient errors (default: 3)
  LRN_CRAWL_MAX_BODY_BYTES  Response size ceiling (default: 1048576)
""",
    )

    parser.add_argument(
        "url",
        help="Manifest URL (llms.txt, llms-full.txt or sitemap*.xml)",
    )
    parser.add_argument(
        "--depth",
        type=_non_negative_int,
        default=0,
        help="Follow same-origin links found on crawled pages up to this depth (default: 0)",
    )
    parser.add_argument(
        "--rate",
        type=_positive_float,
        default=None,
        help="Maximum requests per second (default: 2)",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        default=None,
        help="Output directory (default: ~/.lrn/crawled/<host>)",
    )
    parser.add_argument(
        "--include",
        action="append",
        default=[],
        metavar="GLOB",
        help="Only crawl paths matching this glob (repeatable)",
    )
    parser.add_argument(
        "--exclude",
        action="append",
        default=[],
        metavar="GLOB",
        help="Skip paths matching this glob (repeatable)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the URLs that would be fetched and exit",
    )
    parser.add_argument(
        "--max-time",
        type=_positive_float,
        default=None,
        dest="max_duration",
        metavar="SECONDS",
        help="Stop fetching new pages after this many seconds",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Print a JSON report of the run to stdout",
    )

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="List every URL and enable debug logging",
    )
    verbosity.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only print errors and the final summary",
    )

    return parser.parse_args(argv)


def _options_from_args(args: argparse.Namespace) -> CrawlOptions:
    return CrawlOptions(
        url=args.url,
        rate=args.rate if args.rate is not None else config.get_default_rate(),
        output=args.output,
        include=tuple(args.include),
        exclude=tuple(args.exclude),
        dry_run=args.dry_run,
        verbose=args.verbose,
        quiet=args.quiet,
        depth=args.depth,
        max_duration=args.max_duration,
    )


async def _run_async(args: argparse.Namespace) -> CrawlReport:
    options = _options_from_args(args)
    logging.debug("Crawl options: %s", options)
    progress = None
    if args.json_output:
        # Keep stdout clean for the JSON report
        progress = ProgressReporter(quiet=True, stream=sys.stderr)
    return await crawl_async(options, progress=progress)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for lrn-crawl."""
    config.load_config()
    args = _parse_args(argv)
    _setup_logging(args.verbose, args.quiet)

    try:
        report = asyncio.run(_run_async(args))
    except KeyboardInterrupt:
        logging.info("Interrupted")
        return 130
    except CrawlError as exc:
        logging.error("Error: %s", exc)
        return exc.exit_code
    except Exception as exc:
        logging.error("Error: %s", exc)
        if args.verbose:
            logging.exception("Full traceback:")
        return GENERAL_ERROR

    if args.json_output:
        json.dump(report.to_dict(), sys.stdout, indent=2, ensure_ascii=False)
        sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
