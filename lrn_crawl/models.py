"""Data types shared across the crawler."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


class ManifestType(str, Enum):
    """Kind of seed manifest a crawl starts from."""

    llms_txt = "llms-txt"
    llms_full = "llms-full"
    sitemap = "sitemap"


@dataclass(frozen=True, slots=True)
class CrawlOptions:
    """Options for a single crawl invocation."""

    url: str
    rate: float = 2.0
    output: Optional[str] = None
    include: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()
    dry_run: bool = False
    verbose: bool = False
    quiet: bool = False
    depth: int = 0
    max_duration: Optional[float] = None


@dataclass(slots=True)
class QueueItem:
    url: str
    parent: Optional[str] = None
    retries: int = 0
    depth: int = 0


@dataclass(slots=True)
class FetchResult:
    """Outcome of a successful fetch."""

    url: str
    final_url: str
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""
    content_type: str = ""


@dataclass(slots=True)
class PageMeta:
    """Per-URL entry of ``_meta.json``."""

    url: str
    file: str
    fetched_at: str
    status: int
    content_hash: Optional[str] = None
    title: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "url": self.url,
            "file": self.file,
            "fetchedAt": self.fetched_at,
            "status": self.status,
        }
        if self.content_hash is not None:
            data["contentHash"] = self.content_hash
        if self.title is not None:
            data["title"] = self.title
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PageMeta":
        return cls(
            url=str(data["url"]),
            file=str(data.get("file", "")),
            fetched_at=str(data.get("fetchedAt", "")),
            status=int(data.get("status", 0)),
            content_hash=data.get("contentHash"),
            title=data.get("title"),
        )


@dataclass(slots=True)
class CrawlMetadata:
    """Contents of ``_meta.json`` for one output directory."""

    origin: str
    crawled_at: str
    source: str = ManifestType.llms_txt.value
    urls: List[PageMeta] = field(default_factory=list)

    @property
    def pages(self) -> int:
        """Number of entries backed by a stored page (failures excluded)."""
        return sum(1 for page in self.urls if page.content_hash is not None)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON layout written to disk."""
        return {
            "origin": self.origin,
            "crawledAt": self.crawled_at,
            "source": self.source,
            "pages": self.pages,
            "urls": [page.to_dict() for page in self.urls],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CrawlMetadata":
        return cls(
            origin=str(data.get("origin", "")),
            crawled_at=str(data.get("crawledAt", "")),
            source=str(data.get("source", ManifestType.llms_txt.value)),
            urls=[PageMeta.from_dict(item) for item in data.get("urls", [])],
        )


@dataclass(slots=True)
class LlmsTxtEntry:
    label: str
    path: str


@dataclass(slots=True)
class LlmsTxtSection:
    title: str
    entries: List[LlmsTxtEntry] = field(default_factory=list)


@dataclass(slots=True)
class LlmsTxt:
    """Parsed ``llms.txt`` manifest."""

    title: str = ""
    description: Optional[str] = None
    sections: List[LlmsTxtSection] = field(default_factory=list)


@dataclass(slots=True)
class CrawlReport:
    """Result of a crawl run."""

    metadata: CrawlMetadata
    output_dir: Path
    saved: List[str] = field(default_factory=list)
    skipped: List[Tuple[str, str]] = field(default_factory=list)
    errors: List[Tuple[str, str]] = field(default_factory=list)
    planned: List[str] = field(default_factory=list)
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "output_dir": str(self.output_dir),
            "dry_run": self.dry_run,
            "source": self.metadata.source,
            "saved": list(self.saved),
            "skipped": [{"url": url, "reason": reason} for url, reason in self.skipped],
            "errors": [{"url": url, "error": message} for url, message in self.errors],
            "planned": list(self.planned),
        }
