"""Conversion of fetched bodies into normalized markdown."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from bs4 import BeautifulSoup
from bs4.element import Tag
from crawl4ai.markdown_generation_strategy import DefaultMarkdownGenerator

from .fetcher import parse_content_type

LOGGER = logging.getLogger(__name__)

# Elements dropped before conversion (scripts, chrome, ads, consent banners)
REMOVE_SELECTORS: List[str] = [
    "script",
    "style",
    "noscript",
    "iframe",
    "svg",
    "canvas",
    "nav",
    "[role='navigation']",
    "[role='banner']",
    "[role='contentinfo']",
    ".nav",
    ".navbar",
    ".navigation",
    ".sidebar",
    ".menu",
    ".toc",
    ".table-of-contents",
    ".advertisement",
    ".ad",
    ".ads",
    ".cookie-banner",
    ".cookie-consent",
    ".popup",
    ".modal",
    ".social-share",
    ".share-buttons",
    ".comments",
    ".comment-section",
]

# Page chrome that is kept when it belongs to an article
CHROME_TAGS = ["header", "footer"]

# Main content containers, most specific first
CONTENT_SELECTORS: List[str] = [
    "main",
    "article",
    "[role='main']",
    "[role='article']",
    ".content",
    ".main-content",
    ".post-content",
    ".article-content",
    ".documentation",
    ".docs",
    ".docs-content",
    "#content",
    "#main",
    "#main-content",
]

MARKDOWN_TYPES = frozenset({"text/markdown", "text/x-markdown", "text/plain"})

_MARKDOWN_TITLE_RE = re.compile(r"^#\s+(.+)$", re.MULTILINE)
_EXCESS_NEWLINES_RE = re.compile(r"\n{4,}")
_TRAILING_SPACE_RE = re.compile(r"[ \t]+$", re.MULTILINE)


@dataclass(slots=True)
class ConvertedContent:
    markdown: str
    title: Optional[str] = None


def build_markdown_generator() -> DefaultMarkdownGenerator:
    """Markdown generator tuned for documentation pages."""
    return DefaultMarkdownGenerator(
        options={
            "citations": False,
            "body_width": 0,
            "skip_internal_links": True,
            "ignore_images": True,
        },
    )


def is_markdown(content_type: str) -> bool:
    mime_type, _ = parse_content_type(content_type)
    return mime_type in MARKDOWN_TYPES


def clean_markdown(markdown: str) -> str:
    """Trim trailing whitespace, cap blank runs and end with one newline."""
    text = markdown.replace("\r\n", "\n").replace("\r", "\n")
    text = _TRAILING_SPACE_RE.sub("", text)
    text = _EXCESS_NEWLINES_RE.sub("\n\n\n", text)
    return text.strip() + "\n"


def extract_markdown_title(markdown: str) -> Optional[str]:
    match = _MARKDOWN_TITLE_RE.search(markdown)
    return match.group(1).strip() if match else None


def extract_title(soup: BeautifulSoup) -> Optional[str]:
    """Title from ``<title>``, then the first ``<h1>``, then ``og:title``."""
    if soup.title and soup.title.get_text(strip=True):
        return soup.title.get_text(strip=True)
    heading = soup.find("h1")
    if heading and heading.get_text(strip=True):
        return heading.get_text(" ", strip=True)
    og_title = soup.find("meta", attrs={"property": "og:title"})
    if og_title and og_title.get("content", "").strip():
        return og_title["content"].strip()
    return None


def _strip_noise(soup: BeautifulSoup) -> None:
    for element in soup.select(", ".join(REMOVE_SELECTORS)):
        element.decompose()
    for element in soup.find_all(CHROME_TAGS):
        if getattr(element, "decomposed", False):
            continue
        if isinstance(element, Tag) and element.find_parent("article") is None:
            element.decompose()


def select_main_content(soup: BeautifulSoup) -> Tag:
    """First element matching a content selector, else ``<body>``."""
    for selector in CONTENT_SELECTORS:
        candidate = soup.select_one(selector)
        if candidate is not None and candidate.get_text(strip=True):
            return candidate
    return soup.body or soup


def html_to_markdown(html: str, url: str) -> ConvertedContent:
    soup = BeautifulSoup(html, "html.parser")
    title = extract_title(soup)
    _strip_noise(soup)
    content = select_main_content(soup)

    generator = build_markdown_generator()
    try:
        generated = generator.generate_markdown(
            str(content),
            base_url=url,
            options=generator.options,
            citations=False,
        )
        markdown = getattr(generated, "raw_markdown", "") or ""
    except Exception as exc:
        LOGGER.warning("Markdown generation failed for %s (%s); using plain text.", url, exc)
        markdown = content.get_text("\n", strip=True)

    return ConvertedContent(markdown=clean_markdown(markdown), title=title)


def process_content(body: str, content_type: str, url: str) -> ConvertedContent:
    """
    Convert a fetched body into markdown.

    Markdown and plain text pass through with whitespace normalization; HTML
    is reduced to its main content region and converted.

    Args:
        body: Decoded response body.
        content_type: Response Content-Type header.
        url: Final URL of the page, used to resolve relative links.

    Returns:
        ConvertedContent with markdown and the page title, if any.
    """
    if is_markdown(content_type):
        return ConvertedContent(
            markdown=clean_markdown(body),
            title=extract_markdown_title(body),
        )
    return html_to_markdown(body, url)
