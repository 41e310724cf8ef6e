"""Sitemap and sitemap index parsing."""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from typing import List
from urllib.parse import urlsplit

from .errors import CrawlError, ManifestFetchError
from .fetcher import Fetcher

LOGGER = logging.getLogger(__name__)

SITEMAP_RETRIES = 2

_SITEMAP_PATH_RE = re.compile(r"/sitemap[^/]*\.xml$")
_XML_DECLARATION_RE = re.compile(r"^<\?xml\b[^>]*\?>")


def is_sitemap_url(url: str) -> bool:
    return bool(_SITEMAP_PATH_RE.search(urlsplit(url).path))


def _local_name(tag: str) -> str:
    """Element name without its ``{namespace}`` prefix."""
    return tag.rsplit("}", 1)[-1]


def _parse_xml(xml: str) -> ET.Element:
    # Body is already decoded text; its encoding declaration no longer holds
    text = _XML_DECLARATION_RE.sub("", xml.lstrip("\ufeff").strip(), count=1)
    return ET.fromstring(text.encode("utf-8"))


def _collect_locs(root: ET.Element, container: str) -> List[str]:
    urls: List[str] = []
    for element in root:
        if _local_name(element.tag) != container:
            continue
        for child in element:
            if _local_name(child.tag) == "loc" and child.text and child.text.strip():
                urls.append(child.text.strip())
                break
    return urls


def is_sitemap_index(root: ET.Element) -> bool:
    return _local_name(root.tag) == "sitemapindex"


def extract_sitemap_urls(xml: str) -> List[str]:
    """Page URLs from the ``<url><loc>`` entries of a ``<urlset>``."""
    return _collect_locs(_parse_xml(xml), "url")


def extract_sitemap_index_urls(xml: str) -> List[str]:
    """Child sitemap URLs from the ``<sitemap><loc>`` entries of an index."""
    return _collect_locs(_parse_xml(xml), "sitemap")


async def parse_sitemap(url: str, fetcher: Fetcher) -> List[str]:
    """
    Fetch a sitemap and return the page URLs it lists.

    A sitemap index is expanded one level: every child sitemap is fetched
    and its entries are concatenated in index order. Children that fail to
    fetch or parse are logged and skipped.

    Args:
        url: Sitemap or sitemap index URL.
        fetcher: Fetcher used for the root and child documents.

    Returns:
        Ordered list of page URLs.

    Raises:
        ManifestFetchError: If the root document cannot be fetched or parsed.
    """
    try:
        result = await fetcher.fetch(url, max_retries=SITEMAP_RETRIES)
    except CrawlError as exc:
        raise ManifestFetchError(
            f"Failed to fetch sitemap: {exc}", url=url, status_code=exc.status_code
        ) from exc

    try:
        root = _parse_xml(result.body)
    except ET.ParseError as exc:
        raise ManifestFetchError(f"Failed to parse sitemap: {exc}", url=url) from exc

    if not is_sitemap_index(root):
        return _collect_locs(root, "url")

    urls: List[str] = []
    for child_url in _collect_locs(root, "sitemap"):
        try:
            child = await fetcher.fetch(child_url, max_retries=SITEMAP_RETRIES)
            child_urls = extract_sitemap_urls(child.body)
        except CrawlError as exc:
            LOGGER.warning("Skipping child sitemap %s: %s", child_url, exc)
            continue
        except ET.ParseError as exc:
            LOGGER.warning("Skipping unparseable child sitemap %s: %s", child_url, exc)
            continue
        LOGGER.debug("Child sitemap %s lists %d URLs", child_url, len(child_urls))
        urls.extend(child_urls)
    return urls
