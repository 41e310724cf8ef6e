"""Seed manifest detection and resolution."""

from __future__ import annotations

import logging
from typing import List, Optional

from .errors import CrawlError, ManifestFetchError, UnsupportedManifestError
from .fetcher import Fetcher
from .llms_txt import extract_urls, is_llms_full_url, is_llms_txt_url, parse_llms_txt
from .models import ManifestType
from .sitemap import is_sitemap_url, parse_sitemap

LOGGER = logging.getLogger(__name__)

USAGE_HINT = """Supported manifest URLs:
  https://docs.example.com/llms.txt
  https://docs.example.com/llms-full.txt
  https://docs.example.com/sitemap.xml"""


def detect_manifest_type(url: str) -> Optional[ManifestType]:
    """Classify *url* by its path; ``llms-full.txt`` is checked first."""
    if is_llms_full_url(url):
        return ManifestType.llms_full
    if is_llms_txt_url(url):
        return ManifestType.llms_txt
    if is_sitemap_url(url):
        return ManifestType.sitemap
    return None


def require_manifest_type(url: str) -> ManifestType:
    manifest_type = detect_manifest_type(url)
    if manifest_type is None:
        raise UnsupportedManifestError(
            f"URL must point to an llms.txt, llms-full.txt or sitemap.xml manifest.\n\n{USAGE_HINT}",
            url=url,
        )
    return manifest_type


async def resolve_manifest(
    manifest_type: ManifestType, url: str, fetcher: Fetcher
) -> List[str]:
    """
    Resolve a manifest into the ordered list of page URLs to crawl.

    Args:
        manifest_type: Result of :func:`detect_manifest_type`.
        url: Manifest URL.
        fetcher: Fetcher for the manifest (and child sitemaps).

    Returns:
        Absolute page URLs in manifest order. For ``llms-full`` this is the
        manifest URL itself.

    Raises:
        ManifestFetchError: If the manifest cannot be fetched or parsed.
    """
    if manifest_type is ManifestType.llms_full:
        return [url]

    if manifest_type is ManifestType.llms_txt:
        try:
            result = await fetcher.fetch(url)
        except CrawlError as exc:
            raise ManifestFetchError(
                f"Failed to fetch llms.txt: {exc}", url=url, status_code=exc.status_code
            ) from exc
        manifest = parse_llms_txt(result.body)
        urls = extract_urls(manifest, url)
        LOGGER.debug(
            "llms.txt %r: %d sections, %d URLs",
            manifest.title,
            len(manifest.sections),
            len(urls),
        )
        return urls

    return await parse_sitemap(url, fetcher)
