"""Parser for the ``llms.txt`` manifest format.

The format is line oriented::

    # Project title
    > One line description

    ## Section
    - Label: /relative/path
    - https://absolute.example.com/page
    - [Label](/linked/path): optional notes

Only entries inside a ``## Section`` are collected.
"""

from __future__ import annotations

import re
from typing import List, Optional
from urllib.parse import urljoin, urlsplit

from .fetcher import get_origin
from .models import LlmsTxt, LlmsTxtEntry, LlmsTxtSection

_TITLE_RE = re.compile(r"^#\s+(.+)$")
_DESCRIPTION_RE = re.compile(r"^>\s*(.+)$")
_SECTION_RE = re.compile(r"^##\s+(.+)$")
_LINK_ENTRY_RE = re.compile(r"^-\s+\[([^\]]*)\]\(([^)\s]+)\)(?::\s*.*)?$")
_LABELED_ENTRY_RE = re.compile(r"^-\s+(.+?):\s+(\S+)$")
_BARE_ENTRY_RE = re.compile(r"^-\s+(\S+)$")
_EXTENSION_RE = re.compile(r"\.(md|html|htm|txt)$", re.IGNORECASE)


def is_llms_txt_url(url: str) -> bool:
    return urlsplit(url).path.endswith("/llms.txt")


def is_llms_full_url(url: str) -> bool:
    return urlsplit(url).path.endswith("/llms-full.txt")


def path_to_label(path: str) -> str:
    """Derive a readable label from the last path segment."""
    stripped = _EXTENSION_RE.sub("", path)
    segments = [segment for segment in stripped.split("/") if segment]
    label = segments[-1] if segments else stripped
    label = re.sub(r"[-_]", " ", label)
    return re.sub(r"\b\w", lambda match: match.group(0).upper(), label)


def parse_llms_txt(content: str) -> LlmsTxt:
    """
    Parse the text of an llms.txt file.

    Args:
        content: Raw manifest text.

    Returns:
        LlmsTxt with the first title, first description and all sections.
    """
    manifest = LlmsTxt()
    current: Optional[LlmsTxtSection] = None

    for line in content.splitlines():
        stripped = line.strip()
        if not stripped:
            continue

        match = _TITLE_RE.match(stripped)
        if match and not manifest.title:
            manifest.title = match.group(1).strip()
            continue

        match = _DESCRIPTION_RE.match(stripped)
        if match and manifest.description is None:
            manifest.description = match.group(1).strip()
            continue

        match = _SECTION_RE.match(stripped)
        if match:
            current = LlmsTxtSection(title=match.group(1).strip())
            manifest.sections.append(current)
            continue

        if current is None:
            continue

        match = _LINK_ENTRY_RE.match(stripped)
        if match:
            path = match.group(2).strip()
            label = match.group(1).strip() or path_to_label(path)
            current.entries.append(LlmsTxtEntry(label=label, path=path))
            continue

        match = _LABELED_ENTRY_RE.match(stripped)
        if match:
            current.entries.append(
                LlmsTxtEntry(label=match.group(1).strip(), path=match.group(2).strip())
            )
            continue

        match = _BARE_ENTRY_RE.match(stripped)
        if match:
            path = match.group(1).strip()
            current.entries.append(LlmsTxtEntry(label=path_to_label(path), path=path))

    return manifest


def extract_urls(manifest: LlmsTxt, base_url: str) -> List[str]:
    """Flatten all section entries into absolute URLs.

    Relative paths resolve against the origin of *base_url*, the manifest's
    own location, so that a redirected manifest fetch does not move them.
    """
    origin = get_origin(base_url)
    urls: List[str] = []
    for section in manifest.sections:
        for entry in section.entries:
            if entry.path.startswith(("http://", "https://")):
                urls.append(entry.path)
            else:
                urls.append(urljoin(origin + "/", entry.path))
    return urls


def get_llms_txt_url(url: str) -> str:
    return f"{get_origin(url)}/llms.txt"
