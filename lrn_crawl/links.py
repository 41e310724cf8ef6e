"""Link extraction and URL filtering."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable, List, Pattern, Sequence
from urllib.parse import urljoin, urlsplit

from .fetcher import is_same_origin, is_valid_url, normalize_url

_MARKDOWN_LINK_RE = re.compile(r"\[([^\]]*)\]\(([^)]+)\)")
_SKIPPED_PREFIXES = ("#", "mailto:", "tel:", "javascript:", "data:")


def extract_links(markdown: str, base_url: str) -> List[str]:
    """Absolute, normalized, de-duplicated link targets found in *markdown*."""
    links: List[str] = []
    seen = set()
    for match in _MARKDOWN_LINK_RE.finditer(markdown):
        target = match.group(2).strip()
        # [text](url "title")
        target = target.split(None, 1)[0] if target else target
        target = target.strip("<>")
        if not target or target.lower().startswith(_SKIPPED_PREFIXES):
            continue
        try:
            resolved = urljoin(base_url, target)
        except ValueError:
            continue
        if not is_valid_url(resolved):
            continue
        normalized = normalize_url(resolved)
        if normalized in seen:
            continue
        seen.add(normalized)
        links.append(normalized)
    return links


# ---------------------------------------------------------------------------
# Glob patterns
# ---------------------------------------------------------------------------


def normalize_patterns(patterns: Iterable[str]) -> List[str]:
    """Anchor patterns at ``/`` and expand directory patterns to ``dir/**``."""
    normalized: List[str] = []
    for pattern in patterns:
        pattern = pattern.strip()
        if not pattern:
            continue
        if not pattern.startswith(("/", "*")):
            pattern = "/" + pattern
        if pattern.endswith("/"):
            pattern += "**"
        normalized.append(pattern)
    return normalized


@lru_cache(maxsize=256)
def _compile_glob(pattern: str) -> Pattern[str]:
    """Translate a path glob to a regex.

    ``*`` and ``?`` stay within one path segment, ``**`` spans segments and
    a trailing ``/**`` also matches the directory itself.
    """
    parts: List[str] = []
    i = 0
    length = len(pattern)
    while i < length:
        char = pattern[i]
        if pattern.startswith("/**", i) and i + 3 == length:
            parts.append("(?:/.*)?")
            i += 3
        elif pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif char == "*":
            parts.append("[^/]*")
            i += 1
        elif char == "?":
            parts.append("[^/]")
            i += 1
        elif char == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                parts.append(re.escape(char))
                i += 1
            else:
                body = pattern[i + 1 : end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                parts.append(f"[{body}]")
                i = end + 1
        else:
            parts.append(re.escape(char))
            i += 1
    return re.compile("".join(parts) + r"\Z")


def path_matches(path: str, patterns: Sequence[str]) -> bool:
    return any(_compile_glob(pattern).match(path) for pattern in patterns)


def url_matches_patterns(url: str, include: Sequence[str], exclude: Sequence[str]) -> bool:
    """Apply include/exclude globs to the path of *url*.

    With include patterns the path must match at least one; it must match
    no exclude pattern.
    """
    try:
        path = urlsplit(url).path or "/"
    except ValueError:
        return False
    if include and not path_matches(path, include):
        return False
    if exclude and path_matches(path, exclude):
        return False
    return True


def filter_same_origin(links: Iterable[str], base_url: str) -> List[str]:
    return [link for link in links if is_same_origin(link, base_url)]


def filter_by_patterns(
    links: Iterable[str], include: Sequence[str], exclude: Sequence[str]
) -> List[str]:
    return [link for link in links if url_matches_patterns(link, include, exclude)]


def process_links(
    links: Iterable[str], base_url: str, include: Sequence[str], exclude: Sequence[str]
) -> List[str]:
    """Keep same-origin links that pass the include/exclude filters."""
    return filter_by_patterns(filter_same_origin(links, base_url), include, exclude)
