"""On-disk storage of crawled pages and incremental crawl metadata.

Layout of an output directory::

    <output>/
        _meta.json
        index.md
        guide.md
        api/reference.md
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import urlsplit

from . import config
from .fetcher import get_origin
from .models import CrawlMetadata, ManifestType, PageMeta

LOGGER = logging.getLogger(__name__)

_PAGE_EXTENSION_RE = re.compile(r"\.(html?|md|txt)$", re.IGNORECASE)


def _timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def get_crawl_dir(url: str, output: Optional[str] = None) -> Path:
    """Output directory for a crawl of *url*."""
    if output:
        return Path(output).expanduser()
    hostname = urlsplit(url).hostname or "unknown"
    return config.get_crawl_root() / hostname


def url_to_file_path(url: str) -> str:
    """Relative markdown file path for *url*.

    ``/`` becomes ``index.md``, ``/guide.html`` becomes ``guide.md`` and a
    directory URL such as ``/docs/`` becomes ``docs/index.md``. Dot segments
    are dropped so the result always stays inside the output directory.
    """
    try:
        path = urlsplit(url).path
    except ValueError:
        return "index.md"

    directory = path.endswith("/")
    segments = [segment for segment in path.split("/") if segment not in ("", ".", "..")]
    if not segments:
        return "index.md"
    if directory:
        segments.append("index")

    relative = "/".join(segments)
    relative = _PAGE_EXTENSION_RE.sub("", relative)
    if not relative.endswith(".md"):
        relative += ".md"
    return relative


def compute_hash(content: str) -> str:
    """First 16 hex characters of the SHA-256 of *content*."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]


class CrawlStorage:
    """Writes pages and ``_meta.json`` for one crawl.

    The metadata of the previous run is loaded on construction and only used
    for change detection; :meth:`save_meta` writes the metadata built during
    this run, never a merge of the two.
    """

    def __init__(self, url: str, output: Optional[str] = None):
        self._dir = get_crawl_dir(url, output)
        self._metadata = CrawlMetadata(origin=get_origin(url), crawled_at=_timestamp())
        self._written: Dict[str, str] = {}
        self._existing = self._load_meta()
        self._existing_by_url: Dict[str, PageMeta] = {}
        if self._existing is not None:
            self._existing_by_url = {page.url: page for page in self._existing.urls}

    def init(self) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)

    def get_dir(self) -> Path:
        return self._dir

    @property
    def meta_path(self) -> Path:
        return self._dir / config.META_FILE

    def _load_meta(self) -> Optional[CrawlMetadata]:
        path = self.meta_path
        if not path.is_file():
            LOGGER.debug("No previous crawl metadata at %s", path)
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return CrawlMetadata.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            LOGGER.warning("Ignoring unreadable crawl metadata %s: %s", path, exc)
            return None

    @property
    def previous_meta(self) -> Optional[CrawlMetadata]:
        return self._existing

    def has_unchanged(self, url: str, content_hash: str) -> bool:
        """True if the previous run stored *url* with the same content hash."""
        existing = self._existing_by_url.get(url)
        return existing is not None and existing.content_hash == content_hash

    def get_existing_file_path(self, url: str) -> Optional[str]:
        existing = self._existing_by_url.get(url)
        return existing.file if existing is not None else None

    def save_page(self, url: str, markdown: str, title: Optional[str] = None) -> PageMeta:
        """Write *markdown* for *url* and record it in the run's metadata."""
        file_path = url_to_file_path(url)
        full_path = self._dir / file_path

        previous_url = self._written.get(file_path)
        if previous_url is not None and previous_url != url:
            LOGGER.warning(
                "%s and %s both map to %s; keeping the later page.",
                previous_url,
                url,
                file_path,
            )
        self._written[file_path] = url

        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_text(markdown, encoding="utf-8")

        page = PageMeta(
            url=url,
            file=file_path,
            fetched_at=_timestamp(),
            status=200,
            content_hash=compute_hash(markdown),
            title=title,
        )
        self._metadata.urls.append(page)
        return page

    def record_failure(self, url: str, status: int) -> PageMeta:
        page = PageMeta(
            url=url,
            file=url_to_file_path(url),
            fetched_at=_timestamp(),
            status=status,
        )
        self._metadata.urls.append(page)
        return page

    def set_source(self, source: ManifestType) -> None:
        self._metadata.source = ManifestType(source).value

    def save_meta(self) -> Path:
        """Atomically replace ``_meta.json`` with this run's metadata."""
        self.init()
        payload = json.dumps(self._metadata.to_dict(), indent=2, ensure_ascii=False) + "\n"
        fd, tmp_name = tempfile.mkstemp(
            dir=self._dir, prefix=".meta-", suffix=".json.tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self.meta_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        LOGGER.debug("Wrote %s (%d entries)", self.meta_path, len(self._metadata.urls))
        return self.meta_path

    def get_meta(self) -> CrawlMetadata:
        return self._metadata

    def get_page_count(self) -> int:
        return self._metadata.pages

    def file_exists(self, file_path: str) -> bool:
        return (self._dir / file_path).exists()
